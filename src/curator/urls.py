"""URL routes for playlist generation, enhancement and export."""

from django.urls import path

from . import views

app_name = "curator"

urlpatterns = [
    # POST endpoint producing a playlist from a prompt and/or image.
    path("generate/", views.generate_playlist, name="generate_playlist"),
    # POST endpoint attaching catalog metadata to generated songs.
    path("enhance/", views.enhance_playlist_view, name="enhance_playlist"),
    path("export/spotify/", views.export_to_spotify, name="export_spotify"),
    path("export/<str:export_format>/", views.export_playlist_file, name="export_file"),
]
