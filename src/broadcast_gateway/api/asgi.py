"""ASGI entrypoint for the broadcast gateway API."""

from broadcast_gateway.api.app import create_app
from broadcast_gateway.containers import build_container

app = create_app(build_container())
