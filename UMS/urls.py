"""URL configuration for the UMS project"""
from django.urls import include, path

urlpatterns = [
    path('api/', include('academics.urls')),
]
