from __future__ import annotations

import pytest

from bannerbot import errors
from bannerbot.errors import ACTION_BY_KIND, FailureKind, RunFailure, ScheduleAction, classify
from tests.fakes import make_candidate


def _failure_classes() -> list[type[RunFailure]]:
    return [
        value
        for value in vars(errors).values()
        if isinstance(value, type) and issubclass(value, RunFailure) and value is not RunFailure
    ]


def test_every_kind_has_an_action() -> None:
    assert set(ACTION_BY_KIND) == set(FailureKind)


def test_every_failure_class_has_a_distinct_kind() -> None:
    kinds = [cls.kind for cls in _failure_classes()]
    assert sorted(kinds) == sorted(FailureKind)


@pytest.mark.parametrize(
    ("failure_cls", "expected"),
    [
        (errors.MissingFeature, ScheduleAction.ABORT),
        (errors.RemotePermission, ScheduleAction.ABORT),
        (errors.RemoteNotFound, ScheduleAction.ABORT),
        (errors.RemoteTransient, ScheduleAction.RETRY_SAME_IMAGE),
        (errors.AttemptTimeout, ScheduleAction.RETRY_SAME_IMAGE),
        (errors.OversizeImage, ScheduleAction.RETRY_NEW_IMAGE),
        (errors.NoCandidateAvailable, ScheduleAction.RETRY_NEW_IMAGE),
        (errors.StoreError, ScheduleAction.CONTINUE),
    ],
)
def test_classify(failure_cls: type[RunFailure], expected: ScheduleAction) -> None:
    failure = failure_cls("boom")
    assert classify(failure) is expected
    assert failure.action is expected


def test_failure_keeps_candidate() -> None:
    candidate = make_candidate("https://cdn.example/a.png")
    failure = errors.EmptyImage("empty", candidate=candidate)
    assert failure.candidate is candidate
    assert str(failure) == "empty"


def test_retry_actions() -> None:
    assert ScheduleAction.RETRY_SAME_IMAGE.is_retry
    assert ScheduleAction.RETRY_NEW_IMAGE.is_retry
    assert not ScheduleAction.CONTINUE.is_retry
    assert not ScheduleAction.ABORT.is_retry


def test_critical_error_is_not_a_run_failure() -> None:
    assert not issubclass(errors.CriticalError, RunFailure)
    assert issubclass(errors.CriticalError, errors.BannerBotError)
