"""
API dependencies: DB session, run queue, settings.

The engine/session maker and the RunQueue are built once in the app lifespan
and kept on app.state; tests swap them out through app.dependency_overrides.
"""

from typing import AsyncGenerator

from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession

from qa_dashboard.config import Settings, settings
from qa_dashboard.services.job_queue import RunQueue


async def get_db(request: Request) -> AsyncGenerator[AsyncSession, None]:
    """Yield a DB session per request, commit on success, rollback on error."""
    async with request.app.state.session_maker() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


def get_run_queue(request: Request) -> RunQueue:
    return request.app.state.run_queue


def get_settings() -> Settings:
    return settings
