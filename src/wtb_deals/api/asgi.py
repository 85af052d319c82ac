"""ASGI entrypoint for the WTB deal orchestrator API."""

from wtb_deals.api.app import create_app
from wtb_deals.containers import build_container

app = create_app(build_container())
