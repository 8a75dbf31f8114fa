from __future__ import annotations

from typing import AsyncGenerator

from fastapi import Header
from sqlalchemy.ext.asyncio import AsyncSession

from cutover.persistence.db import get_session


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    # One AsyncSession per request; context manager ensures close on success/error.
    async with get_session() as session:
        yield session


async def get_actor_id(x_actor_id: str | None = Header(default=None)) -> str | None:
    # Operator identity is asserted by the fronting gateway; absent means an unattributed call.
    if x_actor_id is None:
        return None
    actor = x_actor_id.strip()
    return actor or None
