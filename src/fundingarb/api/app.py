"""FastAPI application factory for the JSON API."""

from __future__ import annotations

from typing import Any

from fastapi import FastAPI

from fundingarb.api import routes


def create_app(lifespan: Any = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        lifespan: Optional async context manager for application lifespan events.
                  Used by main.py to inject startup/shutdown logic and to
                  attach components to ``app.state``.

    Returns:
        Configured FastAPI application with the API routes registered.
    """
    app = FastAPI(
        title="Cross-Exchange Funding Arbitrage",
        lifespan=lifespan,
    )

    # Wired by main.py lifespan (or directly by tests)
    app.state.settings = None
    app.state.snapshot_service = None
    app.state.reconciler = None
    app.state.engine = None

    app.include_router(routes.router, prefix="/api")

    return app
