"""Update ingestion strategies: long polling and webhook push."""

from .poll import PollCursor, PollIngestor
from .webhook import WebhookIngestor, create_app, serve_http

__all__ = [
    "PollCursor",
    "PollIngestor",
    "WebhookIngestor",
    "create_app",
    "serve_http",
]
