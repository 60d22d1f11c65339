"""
URL configuration for the chat app.
"""
from django.urls import path
from . import views

urlpatterns = [
    path('sessions', views.list_sessions, name='sessions'),
    path('sessions/<int:session_id>', views.delete_session, name='session-delete'),
    path('history/<int:session_id>', views.session_history, name='history'),
]
