"""
Chat app.

Provides:
- Session and message persistence (the conversation store)
- Session listing, history and deletion endpoints
"""
