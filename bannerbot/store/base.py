"""Schedule store abstraction."""

from __future__ import annotations

from abc import ABC, abstractmethod

from bannerbot.models import PersistedScheduleRecord


class ScheduleStore(ABC):
    """Durable record of every active schedule plus the active-tenant index.

    ``put`` and ``delete`` keep the record and the index consistent. Backend
    failures surface as :class:`bannerbot.errors.StoreError`; no retries are
    attempted at this layer.
    """

    @abstractmethod
    async def put(self, record: PersistedScheduleRecord) -> None:
        """Insert or replace the record and mark the tenant active."""

    @abstractmethod
    async def get(self, tenant_id: int) -> PersistedScheduleRecord | None:
        """Return the record, or ``None`` when the tenant is not active."""

    @abstractmethod
    async def delete(self, tenant_id: int) -> None:
        """Remove the record and the tenant from the active index."""

    @abstractmethod
    async def list_active_tenant_ids(self) -> list[int]:
        ...

    @abstractmethod
    async def is_active(self, tenant_id: int) -> bool:
        ...

    async def close(self) -> None:
        return None


__all__ = ["ScheduleStore"]
