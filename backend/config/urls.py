"""
URL configuration for the Brain API backend.
"""
from django.urls import path, include

from apps.rag.health import healthz, readyz


urlpatterns = [
    # Health check endpoints
    path('healthz', healthz, name='healthz'),
    path('readyz', readyz, name='readyz'),

    # API routes
    path('api/', include('apps.chat.urls')),
    path('api/', include('apps.indexing.urls')),
    path('api/', include('apps.rag.urls')),
]
