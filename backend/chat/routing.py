from django.urls import re_path
from .consumers import ChatConsumer

websocket_urlpatterns = [
    # ws://127.0.0.1:8000/ws/chat/?token=<JWT>  or  ?ws_token=<signed token>
    re_path(r"ws/chat/$", ChatConsumer.as_asgi()),
]
