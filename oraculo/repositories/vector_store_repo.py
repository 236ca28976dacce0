"""Vector store repository."""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from oraculo.models.vector_store import VectorStore


class VectorStoreRepository:
    """Read access to the vector store registry."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def find_searchable(self) -> list[VectorStore]:
        """Active and searchable stores, default store first, newest next."""
        result = await self._session.execute(
            select(VectorStore)
            .where(
                VectorStore.is_active.is_(True),
                VectorStore.is_searchable.is_(True),
            )
            .order_by(
                VectorStore.is_default.desc(),
                VectorStore.created_at.desc(),
                VectorStore.id.desc(),
            )
        )
        return list(result.scalars().all())
