"""Root URL configuration for the youlists project."""

from django.urls import include, path

urlpatterns = [
    path("curator/", include("curator.urls")),
    path("spotify/", include("spotify_auth.urls")),
]
