"""
ASGI config for the messenger project.
"""

import os

# -----------------------------
# MUST set DJANGO_SETTINGS_MODULE before any Django imports
# -----------------------------
os.environ.setdefault("DJANGO_SETTINGS_MODULE", "messenger.settings")

from django.core.asgi import get_asgi_application

# Initialize Django ASGI app for HTTP handling (also populates the app registry
# before the consumer modules import models)
django_asgi_app = get_asgi_application()

from channels.routing import ProtocolTypeRouter, URLRouter
from channels.security.websocket import AllowedHostsOriginValidator
from channels.auth import AuthMiddlewareStack
from chat.routing import websocket_urlpatterns

application = ProtocolTypeRouter(
    {
        "http": django_asgi_app,
        # The consumer authenticates from the querystring token; the session
        # stack only matters for admin users browsing with a cookie.
        "websocket": AllowedHostsOriginValidator(
            AuthMiddlewareStack(URLRouter(websocket_urlpatterns))
        ),
    }
)
