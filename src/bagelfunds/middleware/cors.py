"""CORS middleware configuration."""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from bagelfunds.config import Settings


def setup_cors(app: FastAPI, settings: Settings) -> None:
    """Allow the configured front-end origins to send the session cookie."""
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["*"],
        expose_headers=["Location", "X-Request-Id", "X-RateLimit-Remaining", "X-RateLimit-Limit"],
    )
