"""
Tests for prompt templates.
"""
import pytest

from django.core.exceptions import ImproperlyConfigured
from django.test import override_settings

from apps.rag.prompts import DEFAULT_TEMPLATE, RAG_PROMPT_V1, PromptTemplate, get_prompt_template


class TestRagPromptV1:

    def test_render_layout(self):
        prompt = RAG_PROMPT_V1.render(
            context="Paris is the capital of France.",
            history="User: Hi\nAssistant: Hello!",
            question="What is the capital of France?",
        )

        assert prompt == (
            "You are a highly accurate assistant.\n"
            "[DOCUMENT CONTEXT]\n"
            "Use ONLY the following context to answer technical questions. "
            "If the answer is not in the context, say \"I don't know.\"\n"
            "Paris is the capital of France.\n"
            "\n"
            "[RECENT CONVERSATION HISTORY]\n"
            "User: Hi\nAssistant: Hello!\n"
            "\n"
            "[CURRENT QUESTION]\n"
            "User: What is the capital of France?\n"
            "Assistant:"
        )

    def test_braces_in_values_are_literal(self):
        prompt = RAG_PROMPT_V1.render(context="{history}", history="", question="a {b}?")

        assert "{history}" in prompt
        assert "User: a {b}?" in prompt

    def test_version(self):
        assert RAG_PROMPT_V1.version == 'v1'


class TestPromptTemplateValidation:

    def test_missing_field(self):
        with pytest.raises(ImproperlyConfigured):
            PromptTemplate(version='bad', text="{context} {question}")

    def test_unknown_field(self):
        with pytest.raises(ImproperlyConfigured):
            PromptTemplate(version='bad', text="{context} {history} {question} {user}")

    def test_escaped_braces_allowed(self):
        template = PromptTemplate(version='ok', text="{{json}} {context} {history} {question}")
        assert template.render("c", "h", "q") == "{json} c h q"


class TestGetPromptTemplate:

    def test_default(self):
        assert get_prompt_template() is DEFAULT_TEMPLATE

    @override_settings(RAG_PROMPT_TEMPLATE="Q: {question}\nC: {context}\nH: {history}")
    def test_override(self):
        template = get_prompt_template()

        assert template.version == 'custom'
        assert template.render("c", "h", "q") == "Q: q\nC: c\nH: h"

    @override_settings(RAG_PROMPT_TEMPLATE="Only {question}")
    def test_invalid_override(self):
        with pytest.raises(ImproperlyConfigured):
            get_prompt_template()
