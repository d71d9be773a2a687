from datetime import timedelta

import pytest

from conftest import BASE_TIME, approved_device, caller_for
from fieldsync.errors import ApiError, AuthorizationError, NotFoundError
from fieldsync.models import RefreshToken
from fieldsync.schemas.auth import DeviceInfo
from fieldsync.services.device_registry import DeviceRegistry, device_state, normalize_platform
from fieldsync.utils.timeutil import ensure_utc


def test_normalize_platform():
    assert normalize_platform("android") == "ANDROID"
    assert normalize_platform(" ios ") == "IOS"
    assert normalize_platform("windows") == "UNKNOWN"
    assert normalize_platform("") is None


def test_field_device_starts_pending_with_auth_code(repos, audit, seeded):
    registry = DeviceRegistry(repos, audit)
    agent = seeded["users"]["agent"]

    device, created = registry.register_or_update(
        agent, "dev-1", DeviceInfo(platform="android", model="Pixel 8", app_version="4.0.0"), agent.role
    )

    assert created is True
    assert device.is_approved is False
    assert device.auth_code is not None and len(device.auth_code) == 6
    assert device.auth_code_expires_at is not None
    assert device.platform == "ANDROID"
    assert device_state(device) == "PENDING_APPROVAL"
    assert [e.action for e in repos.audit_logs.find("DEVICE_REGISTERED")] == ["DEVICE_REGISTERED"]


def test_non_field_device_is_approved_immediately(repos, audit, seeded):
    backend = seeded["users"]["backend"]
    device, _ = DeviceRegistry(repos, audit).register_or_update(backend, "dev-b", None, backend.role)

    assert device.is_approved is True
    assert device.auth_code is None
    assert device_state(device) == "APPROVED"


def test_reregistration_keeps_metadata_when_fields_are_empty(repos, audit, seeded):
    registry = DeviceRegistry(repos, audit)
    agent = seeded["users"]["agent"]
    registry.register_or_update(agent, "dev-1", DeviceInfo(platform="IOS", model="iPhone 15"), agent.role)

    device, created = registry.register_or_update(
        agent, "dev-1", DeviceInfo(model="", app_version="4.1.0"), agent.role
    )

    assert created is False
    assert device.model == "iPhone 15"
    assert device.platform == "IOS"
    assert device.app_version == "4.1.0"


def test_expired_auth_code_is_regenerated(repos, audit, seeded):
    registry = DeviceRegistry(repos, audit)
    agent = seeded["users"]["agent"]
    device, _ = registry.register_or_update(agent, "dev-1", None, agent.role)
    device.auth_code = "OLD123"
    device.auth_code_expires_at = BASE_TIME - timedelta(days=1)
    repos.devices.save(device)

    device, _ = registry.register_or_update(agent, "dev-1", None, agent.role)

    assert device.auth_code != "OLD123"
    assert ensure_utc(device.auth_code_expires_at) > BASE_TIME


def test_quota_deactivates_least_recently_active_device(repos, audit, seeded):
    registry = DeviceRegistry(repos, audit)
    backend = seeded["users"]["backend"]
    for i, device_id in enumerate(["dev-a", "dev-b", "dev-c"]):
        approved_device(repos, backend.id, device_id, BASE_TIME + timedelta(hours=i + 1))
    # dev-b is the stalest once dev-a is touched again
    repos.devices.get(backend.id, "dev-a").last_active_at = BASE_TIME + timedelta(hours=10)
    repos.devices.save(repos.devices.get(backend.id, "dev-a"))
    repos.refresh_tokens.add(RefreshToken(
        token_hash="hash-b", user_id=backend.id, device_id="dev-b", expires_at=BASE_TIME + timedelta(days=400),
    ))

    registry.register_or_update(backend, "dev-d", None, backend.role)
    evicted = registry.enforce_quota(backend.id, "dev-d")

    assert evicted is not None and evicted.device_id == "dev-b"
    assert repos.devices.count_active(backend.id) == 3
    assert repos.devices.get(backend.id, "dev-b").is_active is False
    assert repos.refresh_tokens.find_valid("hash-b", backend.id, "dev-b", BASE_TIME) is None
    assert len(repos.audit_logs.find("DEVICE_DEACTIVATED")) == 1


def test_quota_is_noop_under_the_limit(repos, audit, seeded):
    backend = seeded["users"]["backend"]
    approved_device(repos, backend.id, "dev-a")

    assert DeviceRegistry(repos, audit).enforce_quota(backend.id, "dev-a") is None
    assert repos.devices.count_active(backend.id) == 1


def test_approve_clears_auth_code_and_lists_pending(repos, audit, seeded):
    registry = DeviceRegistry(repos, audit)
    agent = seeded["users"]["agent"]
    registry.register_or_update(agent, "dev-1", None, agent.role)

    pending = registry.list_pending()
    assert [(d.device_id, owner.username) for d, owner in pending] == [("dev-1", "agent")]

    device = registry.approve("dev-1", "usr_admin")

    assert device.is_approved is True
    assert device.approved_by == "usr_admin"
    assert device.auth_code is None
    assert registry.list_pending() == []
    assert len(repos.audit_logs.find("DEVICE_APPROVED")) == 1


def test_reject_blocks_relogin_and_approval(repos, audit, seeded):
    registry = DeviceRegistry(repos, audit)
    agent = seeded["users"]["agent"]
    registry.register_or_update(agent, "dev-1", None, agent.role)

    device = registry.reject("dev-1", "usr_admin", "Unknown handset")

    assert device_state(device) == "REJECTED"
    assert device.rejection_reason == "Unknown handset"
    with pytest.raises(AuthorizationError) as exc:
        registry.register_or_update(agent, "dev-1", None, agent.role)
    assert exc.value.code == "DEVICE_REJECTED"
    with pytest.raises(ApiError) as exc:
        registry.approve("dev-1", "usr_admin")
    assert exc.value.status_code == 409


def test_resolve_unknown_device(repos, audit, seeded):
    with pytest.raises(NotFoundError) as exc:
        DeviceRegistry(repos, audit).approve("nope", "usr_admin")
    assert exc.value.code == "DEVICE_NOT_FOUND"


def test_require_usable_checks_approval_and_activity(repos, audit, seeded):
    registry = DeviceRegistry(repos, audit)
    agent = seeded["users"]["agent"]
    caller = caller_for(agent, "dev-1")

    with pytest.raises(AuthorizationError) as exc:
        registry.require_usable(caller)
    assert exc.value.code == "DEVICE_NOT_APPROVED"

    registry.register_or_update(agent, "dev-1", None, agent.role)
    with pytest.raises(AuthorizationError) as exc:
        registry.require_usable(caller)
    assert exc.value.code == "DEVICE_NOT_APPROVED"

    registry.approve("dev-1", "usr_admin", user_id=agent.id)
    assert registry.require_usable(caller).device_id == "dev-1"

    registry.deactivate(agent.id, "dev-1")
    with pytest.raises(AuthorizationError) as exc:
        registry.require_usable(caller)
    assert exc.value.code == "DEVICE_INACTIVE"


def test_deactivate_keeps_last_activity(repos, audit, seeded):
    approved_device(repos, "usr_agent", "dev-1", BASE_TIME - timedelta(days=2))

    device = DeviceRegistry(repos, audit).deactivate("usr_agent", "dev-1")

    assert device.is_active is False
    stored = repos.devices.get("usr_agent", "dev-1")
    assert ensure_utc(stored.last_active_at) == BASE_TIME - timedelta(days=2)
