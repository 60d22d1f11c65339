"""
RAG (Retrieval Augmented Generation) app.

Provides:
- Text embedding via Ollama
- Global chunk store with nearest-neighbour search
- The chat engine (retrieval, memory, prompting, generation)
- Model listing and pulling
"""
