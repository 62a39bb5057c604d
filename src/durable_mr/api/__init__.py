"""HTTP API (FastAPI) for starting and polling orchestrations."""

from durable_mr.api.app import create_app

__all__ = ["create_app"]
