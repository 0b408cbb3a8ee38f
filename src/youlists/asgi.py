"""
ASGI entry point for the youlists project.

Playlist generation is single-flight per session, which relies on every request
being served from one event loop, so deploy under an ASGI server.
"""

import os

from django.core.asgi import get_asgi_application

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "youlists.settings")

application = get_asgi_application()
