# Notification publishing for the core: fire-and-forget, never fatal.
# DatabaseNotifier stores a Notification row through its own session so it is
# independent of the caller's transaction. notify_safely() is the error boundary.

from __future__ import annotations
import logging
from dataclasses import dataclass
from typing import Protocol

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from campus_connect.models import Notification

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NotificationPayload:
    title: str
    message: str
    action_url: str | None = None
    type: str = "INFO"  # INFO | SUCCESS | WARNING


class Notifier(Protocol):
    async def publish(self, user_id: str, payload: NotificationPayload) -> None: ...


class DatabaseNotifier:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def publish(self, user_id: str, payload: NotificationPayload) -> None:
        async with self._session_factory() as session:
            session.add(Notification(
                user_id=user_id,
                title=payload.title,
                message=payload.message,
                action_url=payload.action_url,
                type=payload.type,
            ))
            await session.commit()


async def notify_safely(notifier: Notifier | None, user_id: str | None, payload: NotificationPayload) -> bool:
    """Publish and report success; failures are logged and swallowed."""
    if notifier is None or not user_id:
        return False
    try:
        await notifier.publish(user_id, payload)
    except Exception:
        logger.exception("notification to user %s failed: %s", user_id, payload.title)
        return False
    return True


def default_notifier() -> DatabaseNotifier:
    from campus_connect.db import SessionLocal
    return DatabaseNotifier(SessionLocal)
