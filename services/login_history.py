"""
Login History

Write-only audit of login attempts. Nothing in the service reads it back.
"""

import logging
from typing import Protocol

from models.identity import LoginHistory
from models.schemas import LoginAttempt
from services.database import DatabaseService

logger = logging.getLogger(__name__)


class LoginHistoryStore(Protocol):
    async def record(self, attempt: LoginAttempt) -> None: ...


class SQLLoginHistoryStore:
    """Appends ``LoginAttempt`` rows to the ``login_history`` table."""

    def __init__(self, db: DatabaseService):
        self.db = db

    async def record(self, attempt: LoginAttempt) -> None:
        async with self.db.session() as session:
            session.add(
                LoginHistory(
                    user_id=attempt.user_id,
                    user_type=attempt.user_type,
                    gym_id=attempt.tenant_id,
                    ip_address=attempt.client_ip,
                    user_agent=attempt.user_agent,
                    login_successful=attempt.success,
                    login_at=attempt.attempted_at,
                )
            )
