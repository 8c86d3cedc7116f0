"""Process-local schedule store."""

from __future__ import annotations

from bannerbot.models import PersistedScheduleRecord
from bannerbot.store.base import ScheduleStore


class InMemoryScheduleStore(ScheduleStore):
    """Dictionary-backed store for development runs and tests."""

    def __init__(self) -> None:
        self._records: dict[int, PersistedScheduleRecord] = {}

    async def put(self, record: PersistedScheduleRecord) -> None:
        self._records[record.tenant_id] = record

    async def get(self, tenant_id: int) -> PersistedScheduleRecord | None:
        return self._records.get(tenant_id)

    async def delete(self, tenant_id: int) -> None:
        self._records.pop(tenant_id, None)

    async def list_active_tenant_ids(self) -> list[int]:
        return sorted(self._records)

    async def is_active(self, tenant_id: int) -> bool:
        return tenant_id in self._records


__all__ = ["InMemoryScheduleStore"]
