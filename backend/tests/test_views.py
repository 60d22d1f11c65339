"""
Tests for the HTTP layer: chat, sessions, upload, models and health.

Views are called directly with RequestFactory; collaborators are
patched at the module where each view looks them up.
"""
import json

import httpx
import pytest
from unittest.mock import MagicMock, patch

from django.core.files.uploadedfile import SimpleUploadedFile
from django.test import RequestFactory, override_settings
from django.urls import resolve

from apps.chat import views as chat_views
from apps.chat.store import PersistenceError
from apps.indexing import views as indexing_views
from apps.indexing.extractor import ExtractionError
from apps.indexing.pipeline import IngestionError, IngestionResult
from apps.rag import health
from apps.rag import views as rag_views
from apps.rag.chat import ChatEngine
from apps.rag.ollama_admin import OllamaAdminError
from apps.rag.prompts import RAG_PROMPT_V1
from apps.rag.retrieval import ChunkStoreError, InMemoryChunkStore


@pytest.fixture
def rf():
    return RequestFactory()


def body(response):
    return json.loads(response.content)


def post_json(rf, path, payload):
    data = payload if isinstance(payload, (str, bytes)) else json.dumps(payload)
    return rf.post(path, data=data, content_type='application/json')


@pytest.fixture
def engine(embedder, chunk_store, conversation_store, llm):
    engine = ChatEngine(
        embedder=embedder,
        chunk_store=chunk_store,
        conversation_store=conversation_store,
        llm_client=llm,
        prompt_template=RAG_PROMPT_V1,
        validate_session_id=True,
    )
    with patch('apps.rag.views.get_chat_engine', return_value=engine):
        yield engine


# ============================================================================
# Routing
# ============================================================================

class TestRouting:

    def test_chat(self):
        assert resolve('/api/chat').func.view_class is rag_views.ChatView

    def test_sessions(self):
        assert resolve('/api/sessions').func is chat_views.list_sessions

    def test_history(self):
        match = resolve('/api/history/12')
        assert match.func is chat_views.session_history
        assert match.kwargs == {'session_id': 12}

    def test_delete_session(self):
        assert resolve('/api/sessions/3').func is chat_views.delete_session

    def test_upload(self):
        assert resolve('/api/upload').func is indexing_views.upload_document

    def test_models_and_pull(self):
        assert resolve('/api/models').func is rag_views.models_list
        assert resolve('/api/pull').func.view_class is rag_views.PullModelView

    def test_health(self):
        assert resolve('/healthz').func is health.healthz
        assert resolve('/readyz').func is health.readyz


# ============================================================================
# Chat
# ============================================================================

class TestChatView:

    def call(self, rf, payload):
        return rag_views.ChatView.as_view()(post_json(rf, '/api/chat', payload))

    def test_new_conversation(self, rf, engine, llm):
        llm.answers = ["Paris."]

        response = self.call(rf, {"question": "What is the capital of France?"})

        assert response.status_code == 200
        assert body(response) == {"answer": "Paris.", "sessionId": 1}

    def test_continue_conversation(self, rf, engine, llm, conversation_store):
        llm.answers = ["Paris.", "Yes."]
        self.call(rf, {"question": "What is the capital of France?", "model": "llama3.2"})

        response = self.call(rf, {"question": "Are you sure?", "sessionId": 1})

        assert body(response) == {"answer": "Yes.", "sessionId": 1}
        assert len(conversation_store.get_full_history(1)) == 4

    def test_null_session_starts_new(self, rf, engine):
        response = self.call(rf, {"question": "Hello", "sessionId": None})
        assert body(response)["sessionId"] == 1

    def test_string_session_id_accepted(self, rf, engine):
        self.call(rf, {"question": "Hello"})
        response = self.call(rf, {"question": "Again", "sessionId": "1"})
        assert body(response)["sessionId"] == 1

    def test_unknown_session(self, rf, engine):
        response = self.call(rf, {"question": "Hello", "sessionId": 42})

        assert response.status_code == 404
        assert body(response) == {"error": "Session not found."}

    @pytest.mark.parametrize("payload", [
        "{not json",
        "[1, 2]",
        {"question": ""},
        {"question": "   "},
        {"model": "llama3.2"},
        {"question": "Hi", "sessionId": -1},
        {"question": "Hi", "sessionId": "abc"},
        {"question": "Hi", "sessionId": True},
        {"question": "Hi", "model": 5},
    ])
    def test_bad_requests(self, rf, engine, payload):
        response = self.call(rf, payload)

        assert response.status_code == 400
        assert "error" in body(response)

    def test_generation_failure(self, rf, engine, failing_llm, conversation_store):
        engine.llm_client = failing_llm

        response = self.call(rf, {"question": "What is the capital of France?"})

        assert response.status_code == 500
        assert body(response) == {"error": "Brain malfunctioned."}
        assert [m.role for m in conversation_store.get_full_history(1)] == ['user']

    def test_unexpected_error(self, rf):
        broken = MagicMock()
        broken.answer.side_effect = RuntimeError("bug")

        with patch('apps.rag.views.get_chat_engine', return_value=broken):
            response = self.call(rf, {"question": "Hello"})

        assert response.status_code == 500
        assert body(response) == {"error": "Brain malfunctioned."}

    def test_get_not_allowed(self, rf):
        response = rag_views.ChatView.as_view()(rf.get('/api/chat'))
        assert response.status_code == 405


class TestParseSessionId:

    @pytest.mark.parametrize("value,expected", [
        (None, None),
        ("", None),
        (3, 3),
        ("17", 17),
    ])
    def test_valid(self, value, expected):
        assert rag_views.parse_session_id(value) == expected

    @pytest.mark.parametrize("value", [0, -2, "x1", 1.5, False, [1]])
    def test_invalid(self, value):
        with pytest.raises(ValueError):
            rag_views.parse_session_id(value)


# ============================================================================
# Sessions and history
# ============================================================================

class TestSessionViews:

    @pytest.fixture(autouse=True)
    def store(self, conversation_store):
        with patch('apps.chat.views.get_conversation_store', return_value=conversation_store):
            yield conversation_store

    def test_list_sessions(self, rf, store):
        store.create_session("First question")
        store.create_session("What is the capital of Fra...")

        response = chat_views.list_sessions(rf.get('/api/sessions'))

        assert response.status_code == 200
        assert body(response) == {"sessions": [
            {"id": 2, "title": "What is the capital of Fra..."},
            {"id": 1, "title": "First question"},
        ]}

    def test_list_sessions_empty(self, rf):
        assert body(chat_views.list_sessions(rf.get('/api/sessions'))) == {"sessions": []}

    def test_list_sessions_failure(self, rf, store, monkeypatch):
        monkeypatch.setattr(store, 'list_sessions', MagicMock(side_effect=PersistenceError("down")))

        response = chat_views.list_sessions(rf.get('/api/sessions'))

        assert response.status_code == 500
        assert body(response) == {"error": "Failed to load sessions."}

    def test_history(self, rf, store):
        session_id = store.create_session("chat")
        store.append_message(session_id, 'user', 'Q1')
        store.append_message(session_id, 'assistant', 'A1')

        response = chat_views.session_history(rf.get(f'/api/history/{session_id}'), session_id)

        assert body(response) == {"history": [
            {"role": "user", "content": "Q1"},
            {"role": "assistant", "content": "A1"},
        ]}

    def test_history_unknown_session(self, rf):
        response = chat_views.session_history(rf.get('/api/history/9'), 9)

        assert response.status_code == 404
        assert body(response) == {"error": "Session not found."}

    @override_settings(CHAT_VALIDATE_SESSION_ID=False)
    def test_history_unknown_session_without_validation(self, rf):
        response = chat_views.session_history(rf.get('/api/history/9'), 9)

        assert response.status_code == 200
        assert body(response) == {"history": []}

    def test_history_failure(self, rf, store, monkeypatch):
        session_id = store.create_session("chat")
        monkeypatch.setattr(store, 'get_full_history', MagicMock(side_effect=PersistenceError("down")))

        response = chat_views.session_history(rf.get('/api/history/1'), session_id)

        assert response.status_code == 500
        assert body(response) == {"error": "Failed to load history."}

    def test_delete_session(self, rf, store):
        session_id = store.create_session("chat")
        store.append_message(session_id, 'user', 'Q1')

        response = chat_views.delete_session(rf.delete(f'/api/sessions/{session_id}'), session_id)

        assert response.status_code == 200
        assert store.list_sessions() == []
        assert store.get_full_history(session_id) == []

    def test_delete_unknown_session(self, rf):
        response = chat_views.delete_session(rf.delete('/api/sessions/5'), 5)
        assert response.status_code == 404


# ============================================================================
# Upload
# ============================================================================

class TestUploadView:

    def upload(self, rf, name, content):
        request = rf.post('/api/upload', data={'document': SimpleUploadedFile(name, content)})
        return indexing_views.upload_document(request)

    @patch('apps.indexing.views.ingest_document')
    def test_success(self, mock_ingest, rf):
        mock_ingest.return_value = IngestionResult("geo.txt", 1)

        response = self.upload(rf, "geo.txt", b"Paris is the capital of France.")

        assert response.status_code == 200
        assert body(response) == {"message": "File vectorized!"}
        mock_ingest.assert_called_once_with("geo.txt", "Paris is the capital of France.")

    def test_blank_file_accepted(self, rf, embedder):
        store = InMemoryChunkStore()

        with patch('apps.indexing.pipeline.get_embedder', return_value=embedder), \
                patch('apps.indexing.pipeline.get_chunk_store', return_value=store):
            response = self.upload(rf, "empty.txt", b"  \n")

        assert response.status_code == 200
        assert body(response) == {"message": "File vectorized!"}
        assert store.count() == 0
        assert embedder.calls == []

    def test_missing_file(self, rf):
        response = indexing_views.upload_document(rf.post('/api/upload', data={}))

        assert response.status_code == 400
        assert body(response) == {"error": "No file uploaded."}

    def test_wrong_field_name(self, rf):
        request = rf.post('/api/upload', data={'file': SimpleUploadedFile("a.txt", b"text")})

        response = indexing_views.upload_document(request)

        assert response.status_code == 400

    def test_unsupported_type(self, rf):
        response = self.upload(rf, "slides.pptx", b"data")
        assert response.status_code == 400

    @override_settings(MAX_UPLOAD_SIZE=4)
    def test_too_large(self, rf):
        response = self.upload(rf, "big.txt", b"0123456789")
        assert response.status_code == 400

    @patch('apps.indexing.views.ingest_document')
    def test_ingestion_failure(self, mock_ingest, rf):
        mock_ingest.side_effect = IngestionError("failed at chunk 2")

        response = self.upload(rf, "doc.txt", b"some text")

        assert response.status_code == 500
        assert body(response) == {"error": "Ingestion failed."}

    @patch('apps.indexing.views.extract_text')
    def test_extraction_failure(self, mock_extract, rf):
        mock_extract.side_effect = ExtractionError("Failed to extract text from PDF")

        response = self.upload(rf, "doc.pdf", b"%PDF-broken")

        assert response.status_code == 500
        assert body(response) == {"error": "Ingestion failed."}

    def test_get_not_allowed(self, rf):
        assert indexing_views.upload_document(rf.get('/api/upload')).status_code == 405


# ============================================================================
# Models
# ============================================================================

class TestModelViews:

    @patch('apps.rag.views.list_models')
    def test_list(self, mock_list, rf):
        mock_list.return_value = [{"name": "llama3.2:latest"}]

        response = rag_views.models_list(rf.get('/api/models'))

        assert body(response) == {"models": [{"name": "llama3.2:latest"}]}

    @patch('apps.rag.views.list_models')
    def test_list_unreachable(self, mock_list, rf):
        mock_list.side_effect = OllamaAdminError("Cannot connect")

        response = rag_views.models_list(rf.get('/api/models'))

        assert response.status_code == 500
        assert body(response) == {"error": "Could not reach Ollama."}

    @patch('apps.rag.views.pull_model')
    def test_pull(self, mock_pull, rf):
        response = rag_views.PullModelView.as_view()(post_json(rf, '/api/pull', {"model": "mistral"}))

        assert body(response) == {"message": "Model pulled successfully."}
        mock_pull.assert_called_once_with("mistral")

    @patch('apps.rag.views.pull_model')
    def test_pull_failure(self, mock_pull, rf):
        mock_pull.side_effect = OllamaAdminError("Ollama API returned 500")

        response = rag_views.PullModelView.as_view()(post_json(rf, '/api/pull', {"model": "mistral"}))

        assert response.status_code == 500
        assert body(response) == {"error": "Failed to pull model."}

    def test_pull_requires_model(self, rf):
        response = rag_views.PullModelView.as_view()(post_json(rf, '/api/pull', {}))
        assert response.status_code == 400


# ============================================================================
# Health
# ============================================================================

class TestHealth:

    def test_healthz(self, rf):
        response = health.healthz(rf.get('/healthz'))

        assert response.status_code == 200
        assert body(response)['status'] == 'healthy'

    @patch('apps.rag.health.check_corpus', return_value=('3 chunks', True))
    @patch('apps.rag.health.check_ollama', return_value=('ok', True))
    @patch('apps.rag.health.check_database', return_value=('ok', True))
    def test_ready(self, mock_db, mock_ollama, mock_corpus, rf):
        response = health.readyz(rf.get('/readyz'))

        assert response.status_code == 200
        assert body(response)['checks'] == {
            'database': 'ok', 'ollama': 'ok', 'corpus': '3 chunks',
        }

    @patch('apps.rag.health.check_corpus', return_value=('3 chunks', True))
    @patch('apps.rag.health.check_ollama', return_value=('ok', True))
    @patch('apps.rag.health.check_database', return_value=('error: down', False))
    def test_database_down(self, mock_db, mock_ollama, mock_corpus, rf):
        response = health.readyz(rf.get('/readyz'))

        assert response.status_code == 503
        assert body(response)['status'] == 'not_ready'

    @patch('apps.rag.health.check_corpus', return_value=('3 chunks', True))
    @patch('apps.rag.health.check_ollama', return_value=('degraded: refused', False))
    @patch('apps.rag.health.check_database', return_value=('ok', True))
    def test_ollama_down_is_degraded(self, mock_db, mock_ollama, mock_corpus, rf):
        response = health.readyz(rf.get('/readyz'))

        assert response.status_code == 200
        assert body(response)['checks']['ollama'].startswith('degraded')
        assert body(response)['status'] == 'degraded'

    @patch('apps.rag.health.check_corpus', return_value=('degraded: Could not count chunks', False))
    @patch('apps.rag.health.check_ollama', return_value=('ok', True))
    @patch('apps.rag.health.check_database', return_value=('ok', True))
    def test_corpus_unavailable_is_degraded(self, mock_db, mock_ollama, mock_corpus, rf):
        response = health.readyz(rf.get('/readyz'))

        assert response.status_code == 200
        assert body(response)['status'] == 'degraded'
        assert body(response)['checks']['corpus'].startswith('degraded')


class TestHealthChecks:

    @patch('apps.rag.health.httpx.Client')
    def test_ollama_with_embedding_model(self, mock_client_cls):
        client = mock_client_cls.return_value.__enter__.return_value
        client.get.return_value.json.return_value = {
            "models": [{"name": "nomic-embed-text:latest"}, {"name": "llama3.2:latest"}]
        }

        assert health.check_ollama() == ('ok', True)

    @patch('apps.rag.health.httpx.Client')
    def test_ollama_missing_embedding_model(self, mock_client_cls):
        client = mock_client_cls.return_value.__enter__.return_value
        client.get.return_value.json.return_value = {"models": [{"name": "llama3.2:latest"}]}

        status, ok = health.check_ollama()

        assert ok is False
        assert "not pulled" in status

    @patch('apps.rag.health.httpx.Client')
    def test_ollama_unreachable(self, mock_client_cls):
        client = mock_client_cls.return_value.__enter__.return_value
        client.get.side_effect = httpx.ConnectError("refused")

        status, ok = health.check_ollama()

        assert ok is False
        assert status.startswith('degraded')

    @patch('apps.rag.health.httpx.Client')
    def test_ollama_skips_malformed_entries(self, mock_client_cls):
        client = mock_client_cls.return_value.__enter__.return_value
        client.get.return_value.json.return_value = {
            "models": ["llama3", {"name": None}, {"name": "nomic-embed-text:latest"}]
        }

        assert health.check_ollama() == ('ok', True)

    def test_corpus_counts_chunks(self, chunk_store):
        with patch('apps.rag.health.get_chunk_store', return_value=chunk_store):
            assert health.check_corpus() == ('2 chunks', True)

    def test_corpus_empty_is_ok(self):
        with patch('apps.rag.health.get_chunk_store', return_value=InMemoryChunkStore()):
            assert health.check_corpus() == ('0 chunks', True)

    def test_corpus_unavailable(self):
        store = MagicMock()
        store.count.side_effect = ChunkStoreError("Could not count chunks")

        with patch('apps.rag.health.get_chunk_store', return_value=store):
            status, ok = health.check_corpus()

        assert ok is False
        assert status == 'degraded: Could not count chunks'
