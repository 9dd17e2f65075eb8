from __future__ import annotations

from typing import Any, Iterable, List, Optional

from sqlalchemy import Executable
from sqlalchemy.ext.asyncio import AsyncSession


class BaseRepository:
    """
    Shared query helpers over one AsyncSession.

    Repositories stage changes and flush; only services commit, so a service
    can span several repositories in one transaction.
    """

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def execute(self, statement: Executable, params: Optional[dict[str, Any]] = None):
        return await self.session.execute(statement, params or {})

    async def scalars(self, statement: Executable, params: Optional[dict[str, Any]] = None):
        result = await self.execute(statement, params)
        return result.scalars()

    async def all(self, statement: Executable) -> List[Any]:
        """Every scalar row of a select, as a list."""
        return list(await self.scalars(statement))

    async def scalar_one_or_none(self, statement: Executable, params: Optional[dict[str, Any]] = None):
        result = await self.execute(statement, params)
        return result.scalar_one_or_none()

    async def add_all(self, entities: Iterable[Any]) -> None:
        self.session.add_all(list(entities))

    async def persist(self, entity: Any) -> Any:
        """
        Add, flush and reload an entity so database defaults (UUIDs, folios,
        timestamps) are visible to the caller.
        """
        self.session.add(entity)
        await self.session.flush()
        await self.session.refresh(entity)
        return entity

    async def flush(self) -> None:
        await self.session.flush()

    async def refresh(self, entity: Any) -> None:
        await self.session.refresh(entity)

    async def delete(self, entity: Any) -> None:
        await self.session.delete(entity)

    async def commit(self) -> None:
        await self.session.commit()
