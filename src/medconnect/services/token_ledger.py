"""Token ledger — persisted refresh tokens.

Learn: A refresh token is valid only while its row exists here. Bulk
deletes bypass ORM session synchronisation (synchronize_session=False)
because callers never reuse the deleted objects.

replace_refresh_token() is the rotation primitive: the DELETE of the
consumed row is conditional, and the INSERT of its successor only
happens (and commits) if that DELETE removed exactly one row. Two
concurrent rotations of the same token therefore yield one winner.
"""

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from medconnect.db.models import RefreshToken, utcnow


class TokenLedger:
    """Refresh-token persistence."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def create_refresh_token(
        self, token: str, user_id: uuid.UUID, expires_at: datetime
    ) -> RefreshToken:
        record = RefreshToken(token=token, user_id=user_id, expires_at=expires_at)
        self.db.add(record)
        await self.db.flush()
        return record

    async def find_refresh_token_by_value(self, token: str) -> Optional[RefreshToken]:
        result = await self.db.execute(
            select(RefreshToken).where(RefreshToken.token == token)
        )
        return result.scalars().first()

    async def delete_refresh_token_by_id(self, record_id: uuid.UUID) -> int:
        return await self._delete(RefreshToken.id == record_id)

    async def delete_refresh_tokens_by_value(self, token: str) -> int:
        return await self._delete(RefreshToken.token == token)

    async def delete_refresh_tokens_by_user(self, user_id: uuid.UUID) -> int:
        return await self._delete(RefreshToken.user_id == user_id)

    async def delete_expired_refresh_tokens(self, now: Optional[datetime] = None) -> int:
        return await self._delete(RefreshToken.expires_at < (now or utcnow()))

    async def replace_refresh_token(
        self,
        old_id: uuid.UUID,
        token: str,
        user_id: uuid.UUID,
        expires_at: datetime,
    ) -> Optional[RefreshToken]:
        """Atomically swap a consumed token for its successor.

        Returns None (and changes nothing) if the old row was already gone.
        """
        try:
            removed = await self.delete_refresh_token_by_id(old_id)
            if removed != 1:
                await self.db.rollback()
                return None
            record = await self.create_refresh_token(token, user_id, expires_at)
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise
        return record

    async def _delete(self, condition) -> int:
        result = await self.db.execute(
            delete(RefreshToken)
            .where(condition)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount or 0
