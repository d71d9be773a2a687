import json
from datetime import timedelta

import pytest

from conftest import BASE_TIME, caller_for
from fieldsync.errors import AuthorizationError, NotFoundError, ValidationFailed
from fieldsync.services.conflicts import Applied, Conflict, ConflictDetector, is_stale
from fieldsync.utils.timeutil import ensure_utc

NOW = BASE_TIME + timedelta(hours=2)


@pytest.fixture
def detector(repos):
    return ConflictDetector(repos.cases, clock=lambda: NOW)


def test_is_stale():
    assert is_stale(BASE_TIME, BASE_TIME - timedelta(seconds=1)) is True
    assert is_stale(BASE_TIME, BASE_TIME) is False
    assert is_stale(BASE_TIME, BASE_TIME + timedelta(seconds=1)) is False


def test_stale_update_is_a_conflict_and_does_not_mutate(repos, detector, seeded):
    agent = caller_for(seeded["users"]["agent"])

    outcome = detector.try_apply_case_update(
        "case-1", {"notes": "from the field"}, BASE_TIME - timedelta(minutes=5), agent
    )

    assert isinstance(outcome, Conflict)
    assert outcome.case_id == "case-1"
    assert outcome.local_version == {"notes": "from the field"}
    stored = repos.cases.get("case-1")
    assert stored.notes is None
    assert ensure_utc(stored.updated_at) == BASE_TIME


def test_fresh_update_applies_and_advances_updated_at(repos, detector, seeded):
    agent = caller_for(seeded["users"]["agent"])

    outcome = detector.try_apply_case_update(
        "case-1",
        {"notes": "met applicant", "status": "IN_PROGRESS", "formData": {"step": 2}},
        BASE_TIME,
        agent,
    )

    assert isinstance(outcome, Applied)
    stored = repos.cases.get("case-1")
    assert stored.notes == "met applicant"
    assert stored.status == "IN_PROGRESS"
    assert json.loads(stored.verification_data) == {"step": 2}
    assert ensure_utc(stored.updated_at) == NOW


def test_completing_a_case_stamps_completed_at(repos, detector, seeded):
    backend = caller_for(seeded["users"]["backend"])

    detector.try_apply_case_update("case-1", {"status": "COMPLETED"}, NOW, backend)

    assert ensure_utc(repos.cases.get("case-1").completed_at) == NOW


def test_update_outside_assignment_looks_like_not_found(detector, seeded):
    agent = caller_for(seeded["users"]["agent"])

    with pytest.raises(NotFoundError) as exc:
        detector.try_apply_case_update("case-3", {"notes": "x"}, NOW, agent)
    assert exc.value.code == "CASE_NOT_FOUND"


def test_unknown_fields_are_rejected(repos, detector, seeded):
    agent = caller_for(seeded["users"]["agent"])

    with pytest.raises(ValidationFailed) as exc:
        detector.try_apply_case_update("case-1", {"assignedToId": "usr_agent"}, NOW, agent)
    assert exc.value.code == "INVALID_CHANGE"
    assert repos.cases.get("case-1").assigned_to_id == "usr_agent"


def test_field_role_cannot_change_priority(detector, seeded):
    agent = caller_for(seeded["users"]["agent"])

    with pytest.raises(AuthorizationError) as exc:
        detector.try_apply_case_update("case-1", {"priority": 3}, NOW, agent)
    assert exc.value.code == "PRIORITY_UPDATE_FORBIDDEN"


def test_field_role_cannot_complete_a_case_by_status(repos, detector, seeded):
    agent = caller_for(seeded["users"]["agent"])

    with pytest.raises(AuthorizationError) as exc:
        detector.try_apply_case_update("case-1", {"status": "COMPLETED", "notes": "done"}, NOW, agent)

    assert exc.value.code == "STATUS_UPDATE_FORBIDDEN"
    stored = repos.cases.get("case-1")
    assert stored.status == "ASSIGNED"
    assert stored.notes is None
    assert stored.completed_at is None


def test_backend_role_may_change_priority_on_any_case(repos, detector, seeded):
    backend = caller_for(seeded["users"]["backend"])

    detector.try_apply_case_update("case-3", {"priority": 3}, NOW, backend)

    assert repos.cases.get("case-3").priority == 3


def test_field_role_cannot_create_cases(repos, detector, seeded):
    agent = caller_for(seeded["users"]["agent"])

    with pytest.raises(AuthorizationError) as exc:
        detector.try_apply_case_create("case-new", {"title": "New"}, NOW, agent)
    assert exc.value.code == "CASE_CREATE_FORBIDDEN"
    assert repos.cases.get("case-new") is None


def test_create_is_idempotent_on_client_id(repos, detector, seeded):
    backend = caller_for(seeded["users"]["backend"])
    payload = {"title": "Walk-in", "customerName": "Ravi", "assignedToId": "usr_agent"}

    first = detector.try_apply_case_create("case-new", payload, BASE_TIME, backend)
    second = detector.try_apply_case_create("case-new", payload, BASE_TIME, backend)

    assert first.created is True and first.replayed is False
    assert second.replayed is True
    stored = repos.cases.get("case-new")
    assert stored.customer_name == "Ravi"
    assert stored.assigned_to_id == "usr_agent"
    assert ensure_utc(stored.created_at) == BASE_TIME
    assert ensure_utc(stored.updated_at) == NOW


def test_create_requires_title(detector, seeded):
    backend = caller_for(seeded["users"]["backend"])

    with pytest.raises(ValidationFailed):
        detector.try_apply_case_create("case-new", {"customerName": "Ravi"}, NOW, backend)


def test_staleness_rule_is_pluggable(repos, seeded):
    always_stale = ConflictDetector(repos.cases, staleness=lambda server, local: True, clock=lambda: NOW)
    agent = caller_for(seeded["users"]["agent"])

    outcome = always_stale.try_apply_case_update("case-1", {"notes": "x"}, NOW, agent)

    assert isinstance(outcome, Conflict)
