"""
URL configuration for the indexing app.
"""
from django.urls import path
from . import views

urlpatterns = [
    path('upload', views.upload_document, name='upload'),
]
