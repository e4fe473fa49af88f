"""
Core utilities and configuration for the hotel rate refresh service.

Modules:
    config: Application configuration and environment variable management
    database: Database engine and session management
    exceptions: Custom exception hierarchy for error handling
    logging: Logging configuration

Usage:
    from core.config import settings
    from core.database import async_session_maker
    from core.exceptions import FetchError, UpsertError
    from core.logging import setup_logging

Example:
    setup_logging()

    async with async_session_maker() as session:
        # Perform database operations
        pass
"""

__all__ = [
    "settings",
    "async_session_maker",
    "get_session",
    "setup_logging",
    # Exceptions
    "RefreshException",
    "SourceRegistryError",
    "ResolutionError",
    "FetchError",
    "NetworkError",
    "FetchTimeoutError",
    "RateLimitError",
    "AuthenticationError",
    "ResourceNotFoundError",
    "RateParseError",
    "PersistenceError",
    "UpsertError",
    "StateTransitionError",
    "InvalidTransitionError",
    "RetryableError",
    "NonRetryableError",
]
