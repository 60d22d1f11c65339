"""
RAG URL routing.
"""
from django.urls import path

from apps.rag.views import ChatView, PullModelView, models_list

urlpatterns = [
    path('chat', ChatView.as_view(), name='rag-chat'),
    path('models', models_list, name='rag-models'),
    path('pull', PullModelView.as_view(), name='rag-pull'),
]
