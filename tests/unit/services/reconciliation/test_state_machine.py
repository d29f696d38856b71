# tests/unit/services/reconciliation/test_state_machine.py
import pytest

from watchsync.core.enums import SyncStatus
from watchsync.core.exceptions import InvalidTransitionError
from watchsync.services.reconciliation.state_machine import begin_publish, can_transition, transition
from watchsync.services.reconciliation.types import MirrorRecord

S = SyncStatus


def record(status, **kwargs):
    return MirrorRecord(channel="MOCK", sku="1001", attributes={"web_price_sale": "100"},
                        sync_status=status, **kwargs)


@pytest.mark.parametrize("current,target", [
    (S.NEW, S.WAITING_PUBLISH),
    (S.WAITING_PUBLISH, S.PUBLISHED),
    (S.WAITING_PUBLISH, S.PUBLISH_FAILED),
    (S.PUBLISHED, S.CHANGED_WAITING_UPDATE),
    (S.CHANGED_WAITING_UPDATE, S.PUBLISHED),
    (S.CHANGED_WAITING_UPDATE, S.PUBLISH_FAILED),
    (S.PUBLISH_FAILED, S.WAITING_PUBLISH),
    (S.PUBLISHED, S.DEACTIVATED),
    (S.PUBLISH_FAILED, S.DEACTIVATED),
    (S.DEACTIVATED, S.WAITING_PUBLISH),
])
def test_allowed_transitions(current, target):
    assert can_transition(current, target)


@pytest.mark.parametrize("current,target", [
    (S.NEW, S.PUBLISHED),
    (S.PUBLISHED, S.NEW),
    (S.DEACTIVATED, S.PUBLISHED),
    (S.DEACTIVATED, S.DEACTIVATED),
    (S.PUBLISH_FAILED, S.PUBLISHED),
])
def test_disallowed_transitions(current, target):
    assert not can_transition(current, target)
    with pytest.raises(InvalidTransitionError):
        transition(record(current), target)


def test_transition_returns_copy():
    original = record(S.WAITING_PUBLISH)
    published = transition(original, S.PUBLISHED)

    assert original.sync_status is S.WAITING_PUBLISH
    assert published.sync_status is S.PUBLISHED
    assert published.attributes == original.attributes
    assert published.attributes is not original.attributes


def test_failure_records_error_and_success_clears_it():
    failed = transition(record(S.WAITING_PUBLISH), S.PUBLISH_FAILED, error="HTTP 400")
    assert failed.last_error == "HTTP 400"

    retried = transition(transition(failed, S.WAITING_PUBLISH), S.PUBLISHED)
    assert retried.last_error is None
    assert retried.last_synced_at is not None


@pytest.mark.parametrize("current,expected", [
    (S.NEW, S.WAITING_PUBLISH),
    (S.PUBLISHED, S.CHANGED_WAITING_UPDATE),
    (S.PUBLISH_FAILED, S.WAITING_PUBLISH),
    (S.DEACTIVATED, S.WAITING_PUBLISH),
    (S.WAITING_PUBLISH, S.WAITING_PUBLISH),
    (S.CHANGED_WAITING_UPDATE, S.CHANGED_WAITING_UPDATE),
])
def test_begin_publish(current, expected):
    assert begin_publish(record(current)).sync_status is expected


def test_only_deactivated_is_inactive():
    assert [s for s in SyncStatus if not s.is_active] == [S.DEACTIVATED]
