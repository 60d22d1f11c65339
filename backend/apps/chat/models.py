"""
Chat session and message models.

A session is one multi-turn conversation. Messages are append-only and
ordered by their auto-increment id.
"""
from django.db import models


class MessageRole(models.TextChoices):
    """Author of a message."""
    USER = 'user', 'User'
    ASSISTANT = 'assistant', 'Assistant'


class ChatSession(models.Model):
    """
    A persistent conversation thread.
    
    The title is derived once from the first question and never recomputed.
    """
    title = models.CharField(
        max_length=255,
        help_text="Truncated text of the first question"
    )
    
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'chat_sessions'
        ordering = ['-id']

    def __str__(self):
        return f"Session {self.pk}: {self.title}"


class SessionMessage(models.Model):
    """A single user or assistant turn inside a session."""
    session = models.ForeignKey(
        ChatSession,
        on_delete=models.CASCADE,
        related_name='messages',
        help_text="The conversation this message belongs to"
    )
    
    role = models.CharField(
        max_length=10,
        choices=MessageRole.choices,
    )
    
    content = models.TextField()
    
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'session_messages'
        ordering = ['id']
        indexes = [
            models.Index(fields=['session', 'id'], name='session_msgs_session_id_idx'),
        ]

    def __str__(self):
        preview = self.content[:50] + '...' if len(self.content) > 50 else self.content
        return f"{self.role} in session {self.session_id}: {preview}"
