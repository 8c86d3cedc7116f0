"""Failure taxonomy for banner runs.

Every failure that can happen while a fired schedule is being processed is a
:class:`RunFailure` carrying a :class:`FailureKind`. The orchestrator turns the
kind into a :class:`ScheduleAction` through :data:`ACTION_BY_KIND`, which has
an entry for every kind and is indexed without a fallback.
"""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from bannerbot.models import Candidate


class ScheduleAction(str, Enum):
    """What the orchestrator does after an attempt."""

    CONTINUE = "continue"
    RETRY_SAME_IMAGE = "retry_same_image"
    RETRY_NEW_IMAGE = "retry_new_image"
    ABORT = "abort"

    @property
    def is_retry(self) -> bool:
        return self in (ScheduleAction.RETRY_SAME_IMAGE, ScheduleAction.RETRY_NEW_IMAGE)


class FailureKind(str, Enum):
    STORE = "store"
    DISCOVERY = "discovery"
    MISSING_FEATURE = "missing_feature"
    MISSING_ANIMATED_FEATURE = "missing_animated_feature"
    UNDETERMINED_EXTENSION = "undetermined_extension"
    EMPTY_IMAGE = "empty_image"
    OVERSIZE_IMAGE = "oversize_image"
    UNKNOWN_SIZE_OVERFLOW = "unknown_size_overflow"
    IMAGE_UNREACHABLE = "image_unreachable"
    NO_CANDIDATE = "no_candidate"
    REMOTE_TRANSIENT = "remote_transient"
    REMOTE_REJECTED = "remote_rejected"
    REMOTE_PERMISSION = "remote_permission"
    REMOTE_NOT_FOUND = "remote_not_found"
    ATTEMPT_TIMEOUT = "attempt_timeout"


ACTION_BY_KIND: dict[FailureKind, ScheduleAction] = {
    FailureKind.STORE: ScheduleAction.CONTINUE,
    FailureKind.DISCOVERY: ScheduleAction.RETRY_NEW_IMAGE,
    FailureKind.MISSING_FEATURE: ScheduleAction.ABORT,
    FailureKind.MISSING_ANIMATED_FEATURE: ScheduleAction.RETRY_NEW_IMAGE,
    FailureKind.UNDETERMINED_EXTENSION: ScheduleAction.RETRY_NEW_IMAGE,
    FailureKind.EMPTY_IMAGE: ScheduleAction.RETRY_NEW_IMAGE,
    FailureKind.OVERSIZE_IMAGE: ScheduleAction.RETRY_NEW_IMAGE,
    FailureKind.UNKNOWN_SIZE_OVERFLOW: ScheduleAction.RETRY_NEW_IMAGE,
    FailureKind.IMAGE_UNREACHABLE: ScheduleAction.RETRY_NEW_IMAGE,
    FailureKind.NO_CANDIDATE: ScheduleAction.RETRY_NEW_IMAGE,
    FailureKind.REMOTE_TRANSIENT: ScheduleAction.RETRY_SAME_IMAGE,
    FailureKind.REMOTE_REJECTED: ScheduleAction.RETRY_NEW_IMAGE,
    FailureKind.REMOTE_PERMISSION: ScheduleAction.ABORT,
    FailureKind.REMOTE_NOT_FOUND: ScheduleAction.ABORT,
    FailureKind.ATTEMPT_TIMEOUT: ScheduleAction.RETRY_SAME_IMAGE,
}


class BannerBotError(Exception):
    """Base class for all bannerbot errors."""


class RunFailure(BannerBotError):
    """A classified failure raised while processing a fired schedule."""

    kind: FailureKind

    def __init__(self, message: str, *, candidate: Candidate | None = None) -> None:
        super().__init__(message)
        self.candidate = candidate

    @property
    def action(self) -> ScheduleAction:
        return classify(self)


class StoreError(RunFailure):
    """The schedule store could not be read or written."""

    kind = FailureKind.STORE


class DiscoveryError(RunFailure):
    """Message history of the source channel could not be read."""

    kind = FailureKind.DISCOVERY


class MissingFeature(RunFailure):
    """The server is not allowed to have a banner."""

    kind = FailureKind.MISSING_FEATURE


class MissingAnimatedFeature(RunFailure):
    """An animated image was picked but the server cannot use animated banners."""

    kind = FailureKind.MISSING_ANIMATED_FEATURE


class UndeterminedExtension(RunFailure):
    kind = FailureKind.UNDETERMINED_EXTENSION


class EmptyImage(RunFailure):
    kind = FailureKind.EMPTY_IMAGE


class OversizeImage(RunFailure):
    kind = FailureKind.OVERSIZE_IMAGE


class UnknownSizeOverflow(RunFailure):
    """No size was declared and the stream grew past the limit."""

    kind = FailureKind.UNKNOWN_SIZE_OVERFLOW


class ImageUnreachable(RunFailure):
    """The media host refused to serve the image."""

    kind = FailureKind.IMAGE_UNREACHABLE


class NoCandidateAvailable(RunFailure):
    """Discovery yielded nothing that is not already on the avoid list."""

    kind = FailureKind.NO_CANDIDATE


class RemoteTransient(RunFailure):
    """A network or server-side failure that is worth retrying as-is."""

    kind = FailureKind.REMOTE_TRANSIENT


class RemoteRejected(RunFailure):
    """The platform refused this particular image."""

    kind = FailureKind.REMOTE_REJECTED


class RemotePermission(RunFailure):
    """The bot lacks permission to read the channel or edit the server."""

    kind = FailureKind.REMOTE_PERMISSION


class RemoteNotFound(RunFailure):
    """The server or channel no longer exists."""

    kind = FailureKind.REMOTE_NOT_FOUND


class AttemptTimeout(RunFailure):
    kind = FailureKind.ATTEMPT_TIMEOUT


class CriticalError(BannerBotError):
    """A failure while handling another failure; reported to operators."""


def classify(failure: RunFailure) -> ScheduleAction:
    return ACTION_BY_KIND[failure.kind]


__all__ = [
    "ACTION_BY_KIND",
    "AttemptTimeout",
    "BannerBotError",
    "CriticalError",
    "DiscoveryError",
    "EmptyImage",
    "FailureKind",
    "ImageUnreachable",
    "MissingAnimatedFeature",
    "MissingFeature",
    "NoCandidateAvailable",
    "OversizeImage",
    "RemoteNotFound",
    "RemotePermission",
    "RemoteRejected",
    "RemoteTransient",
    "RunFailure",
    "ScheduleAction",
    "StoreError",
    "UndeterminedExtension",
    "UnknownSizeOverflow",
    "classify",
]
