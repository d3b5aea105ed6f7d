"""API middleware package."""

from src.advisor_ai.api.middleware.logging import LoggingMiddleware

__all__ = ["LoggingMiddleware"]
