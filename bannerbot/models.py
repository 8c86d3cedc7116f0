"""Core data types shared by the scheduler, store and run pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Mapping

from bannerbot.errors import RunFailure, ScheduleAction, StoreError

RECORD_FIELDS: tuple[str, ...] = (
    "tenant_id",
    "source_id",
    "interval_seconds",
    "start_at_epoch_seconds",
    "last_run_epoch_seconds",
    "lookback_limit",
)


@dataclass(slots=True, frozen=True)
class Schedule:
    """An active banner rotation for one server.

    ``start_at`` is the epoch second of the first (or next) fire and
    ``last_run`` the epoch second of the last successful change, if any.
    A ``lookback_limit`` of 0 means the configured maximum.
    """

    tenant_id: int
    source_id: int
    interval_seconds: int
    start_at: int
    last_run: int | None = None
    lookback_limit: int = 0

    def with_last_run(self, last_run: int) -> Schedule:
        return replace(self, last_run=last_run)

    def to_record(self, now: int) -> PersistedScheduleRecord:
        """Project onto the stored layout; a never-run schedule stores ``now``."""

        return PersistedScheduleRecord(
            tenant_id=self.tenant_id,
            source_id=self.source_id,
            interval_seconds=self.interval_seconds,
            start_at_epoch_seconds=self.start_at,
            last_run_epoch_seconds=self.last_run if self.last_run is not None else now,
            lookback_limit=self.lookback_limit,
        )


@dataclass(slots=True, frozen=True)
class PersistedScheduleRecord:
    tenant_id: int
    source_id: int
    interval_seconds: int
    start_at_epoch_seconds: int
    last_run_epoch_seconds: int
    lookback_limit: int

    def to_mapping(self) -> dict[str, str]:
        return {name: str(getattr(self, name)) for name in RECORD_FIELDS}

    @classmethod
    def from_mapping(cls, raw: Mapping[str, str]) -> PersistedScheduleRecord:
        """Parse a flat string map, raising :class:`StoreError` on any bad field."""

        values: dict[str, int] = {}
        for name in RECORD_FIELDS:
            if name not in raw:
                raise StoreError(f"Stored schedule is missing field '{name}'")
            try:
                values[name] = int(raw[name])
            except (TypeError, ValueError) as exc:
                raise StoreError(f"Stored schedule field '{name}' is not an integer: {raw[name]!r}") from exc
        return cls(**values)

    def to_schedule(self) -> Schedule:
        return Schedule(
            tenant_id=self.tenant_id,
            source_id=self.source_id,
            interval_seconds=self.interval_seconds,
            start_at=self.start_at_epoch_seconds,
            last_run=self.last_run_epoch_seconds,
            lookback_limit=self.lookback_limit,
        )


@dataclass(slots=True, frozen=True)
class Attachment:
    url: str
    content_type: str | None = None


@dataclass(slots=True, frozen=True)
class SourceMessage:
    """Platform-neutral view of a chat message that may carry media."""

    tenant_id: int
    message_id: int
    jump_url: str
    attachments: tuple[Attachment, ...] = ()
    embed_image_urls: tuple[str, ...] = ()


@dataclass(slots=True, frozen=True)
class Provenance:
    tenant_id: int
    source_id: int
    message_id: int
    jump_url: str
    content_type: str | None = None


@dataclass(slots=True, frozen=True)
class Candidate:
    media_url: str
    provenance: Provenance


@dataclass(slots=True, frozen=True)
class CommitResult:
    tenant_id: int
    media_url: str
    size_bytes: int
    extension: str


@dataclass(slots=True)
class AttemptState:
    """Mutable bookkeeping for one fired run; never persisted."""

    retries_remaining: int
    avoid_list: set[str] = field(default_factory=set)
    pinned_candidate: Candidate | None = None


@dataclass(slots=True)
class RunReport:
    """Outcome of processing one fired schedule."""

    tenant_id: int
    run_id: str
    final_action: ScheduleAction | None = None
    actions: list[ScheduleAction] = field(default_factory=list)
    retries_remaining: int = 0
    avoid_list: set[str] = field(default_factory=set)
    committed: CommitResult | None = None
    last_failure: RunFailure | None = None
    exhausted: bool = False
    next_schedule: Schedule | None = None

    @property
    def succeeded(self) -> bool:
        return self.committed is not None


__all__ = [
    "RECORD_FIELDS",
    "Attachment",
    "AttemptState",
    "Candidate",
    "CommitResult",
    "PersistedScheduleRecord",
    "Provenance",
    "RunReport",
    "Schedule",
    "SourceMessage",
]
