"""
Django settings for the Brain API backend.
"""
import os
from pathlib import Path
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

# Build paths inside the project like this: BASE_DIR / 'subdir'.
BASE_DIR = Path(__file__).resolve().parent.parent

# SECURITY WARNING: keep the secret key used in production secret!
SECRET_KEY = os.getenv('SECRET_KEY', 'django-insecure-dev-key-change-in-production')

# SECURITY WARNING: don't run with debug turned on in production!
DEBUG = os.getenv('DEBUG', 'False').lower() in ('true', '1', 'yes')

ALLOWED_HOSTS = [
    h.strip() for h in os.getenv('ALLOWED_HOSTS', 'localhost,127.0.0.1').split(',')
]

# Application definition
INSTALLED_APPS = [
    'daphne',  # ASGI server
    'django.contrib.contenttypes',
    'django.contrib.auth',
    'apps.chat',
    'apps.indexing',
    'apps.rag',
]

MIDDLEWARE = [
    'django.middleware.security.SecurityMiddleware',
    'django.middleware.common.CommonMiddleware',
]

ROOT_URLCONF = 'config.urls'

TEMPLATES = []

ASGI_APPLICATION = 'config.asgi.application'

# Database
# Using environment variable for database URL
DATABASE_URL = os.getenv('DATABASE_URL', '')

# Per-statement timeout so a stalled database cannot hang a chat turn
DB_STATEMENT_TIMEOUT_MS = int(os.getenv('DB_STATEMENT_TIMEOUT_MS', '15000'))

DATABASES = {
    'default': {
        'ENGINE': 'django.db.backends.sqlite3',
        'NAME': BASE_DIR / 'db.sqlite3',
    }
}

if DATABASE_URL:
    import re
    match = re.match(
        r'postgres(?:ql)?://(?P<user>[^:]+):(?P<password>[^@]+)@(?P<host>[^:]+):(?P<port>\d+)/(?P<name>.+)',
        DATABASE_URL
    )
    if match:
        DATABASES = {
            'default': {
                'ENGINE': 'django.db.backends.postgresql',
                'NAME': match.group('name'),
                'USER': match.group('user'),
                'PASSWORD': match.group('password'),
                'HOST': match.group('host'),
                'PORT': match.group('port'),
                'OPTIONS': {
                    'options': f'-c statement_timeout={DB_STATEMENT_TIMEOUT_MS}',
                },
            }
        }

# Password validation (minimal for API-only backend)
AUTH_PASSWORD_VALIDATORS = []

# Internationalization
LANGUAGE_CODE = 'en-us'
TIME_ZONE = 'UTC'
USE_I18N = True
USE_TZ = True

# Default primary key field type
DEFAULT_AUTO_FIELD = 'django.db.models.BigAutoField'

# =============================================================================
# Ollama
# =============================================================================
OLLAMA_BASE_URL = os.getenv('OLLAMA_BASE_URL', 'http://localhost:11434')
OLLAMA_EMBED_MODEL = os.getenv('OLLAMA_EMBED_MODEL', 'nomic-embed-text')
OLLAMA_CHAT_MODEL = os.getenv('OLLAMA_CHAT_MODEL', 'llama3.2')

# Must match the vector(N) column in memory_chunks
EMBEDDING_DIMENSION = int(os.getenv('EMBEDDING_DIMENSION', '768'))

# Timeout settings (in seconds) - increase for slower hardware
OLLAMA_EMBED_TIMEOUT = int(os.getenv('OLLAMA_EMBED_TIMEOUT', '120'))  # 2 min
OLLAMA_CHAT_TIMEOUT = int(os.getenv('OLLAMA_CHAT_TIMEOUT', '600'))  # 10 min
OLLAMA_ADMIN_TIMEOUT = int(os.getenv('OLLAMA_ADMIN_TIMEOUT', '10'))
OLLAMA_PULL_TIMEOUT = int(os.getenv('OLLAMA_PULL_TIMEOUT', '1800'))  # 30 min

# =============================================================================
# Retrieval & Conversation
# =============================================================================
# Storage backends: 'pgvector' / 'django' in production, 'memory' for local runs
CHUNK_STORE_BACKEND = os.getenv('CHUNK_STORE_BACKEND', 'pgvector')
CONVERSATION_STORE_BACKEND = os.getenv('CONVERSATION_STORE_BACKEND', 'django')

# Chunking parameters (characters)
CHUNK_SIZE = int(os.getenv('CHUNK_SIZE', '1000'))
CHUNK_OVERLAP = int(os.getenv('CHUNK_OVERLAP', '200'))

# Embedding retries during ingestion
EMBED_RETRY_MAX_RETRIES = int(os.getenv('EMBED_RETRY_MAX_RETRIES', '3'))
EMBED_RETRY_INITIAL_BACKOFF = float(os.getenv('EMBED_RETRY_INITIAL_BACKOFF', '2.0'))

# Number of chunks used as grounding context
RAG_TOP_K = int(os.getenv('RAG_TOP_K', '1'))

# Number of recent session messages fed back as short-term memory
RAG_HISTORY_LIMIT = int(os.getenv('RAG_HISTORY_LIMIT', '6'))

# Optional prompt template override; must contain {context}, {history}, {question}
RAG_PROMPT_TEMPLATE = os.getenv('RAG_PROMPT_TEMPLATE', '')

# Reject chat turns addressed to a session id that does not exist.
# Set to False to append to unknown ids silently (legacy client behaviour).
CHAT_VALIDATE_SESSION_ID = os.getenv('CHAT_VALIDATE_SESSION_ID', 'True').lower() in ('true', '1', 'yes')

# =============================================================================
# File Upload Configuration
# =============================================================================
# Maximum file size in bytes (50MB default)
MAX_UPLOAD_SIZE = int(os.getenv('MAX_UPLOAD_SIZE', 50 * 1024 * 1024))

# Allowed file extensions
ALLOWED_EXTENSIONS = ['.txt', '.pdf']

# =============================================================================
# Logging
# =============================================================================
LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'formatters': {
        'verbose': {
            'format': '{levelname} {asctime} {module} {message}',
            'style': '{',
        },
        'json': {
            'format': '%(message)s',  # Audit logs are already JSON
        },
    },
    'handlers': {
        'console': {
            'class': 'logging.StreamHandler',
            'formatter': 'verbose',
        },
        'audit': {
            'class': 'logging.StreamHandler',
            'formatter': 'json',
        },
    },
    'root': {
        'handlers': ['console'],
        'level': 'INFO',
    },
    'loggers': {
        'apps.chat': {
            'handlers': ['console'],
            'level': 'DEBUG',
            'propagate': False,
        },
        'apps.indexing': {
            'handlers': ['console'],
            'level': 'DEBUG',
            'propagate': False,
        },
        'apps.rag': {
            'handlers': ['console'],
            'level': 'DEBUG',
            'propagate': False,
        },
        'audit': {
            'handlers': ['audit'],
            'level': 'INFO',
            'propagate': False,
        },
    },
}
