"""URL routing for Spotify authentication helpers."""

from django.urls import path

from .views import SpotifyLogoutView, SpotifyTokenView

app_name = "spotify_auth"

urlpatterns = [
    path("token/", SpotifyTokenView.as_view(), name="token"),
    path("logout/", SpotifyLogoutView.as_view(), name="logout"),
]
