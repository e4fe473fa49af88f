"""
FastAPI dependencies
"""

from typing import AsyncGenerator
from sqlalchemy.ext.asyncio import AsyncSession
from core.database import async_session_maker
from refresh.clients import build_fetch_clients
from refresh.orchestrator import RefreshOrchestrator


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Database session for a request"""
    async with async_session_maker() as session:
        yield session


_orchestrator = None


def get_orchestrator() -> RefreshOrchestrator:
    """Process-wide orchestrator, built on first use"""
    global _orchestrator
    if _orchestrator is None:
        _orchestrator = RefreshOrchestrator(
            session_factory=async_session_maker,
            clients=build_fetch_clients(),
        )
    return _orchestrator
