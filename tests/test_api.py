"""HTTP surface tests: envelopes, auth flow, admin approval, sync and forms."""

from datetime import timedelta

from conftest import BASE_TIME, PASSWORD, add_photos
from fieldsync.utils.timeutil import format_ts

API = "/api/mobile"


def _login(api, username, device_id, **device_info):
    body = {"username": username, "password": PASSWORD, "deviceId": device_id}
    if device_info:
        body["deviceInfo"] = device_info
    r = api.post(f"{API}/auth/login", json=body)
    assert r.status_code == 200, r.text
    return r.json()["data"]


def _auth(token):
    return {"Authorization": f"Bearer {token}"}


def _approved_session(api, username="agent", device_id="dev-1"):
    data = _login(api, username, device_id)
    if data["deviceAuthentication"]["needsApproval"]:
        admin = _login(api, "admin", "dev-admin")
        r = api.post(f"{API}/devices/{device_id}/approve", headers=_auth(admin["accessToken"]))
        assert r.status_code == 200, r.text
    return data


def _assert_error(r, status, code):
    assert r.status_code == status, r.text
    body = r.json()
    assert body["success"] is False
    assert body["error"]["code"] == code
    assert body["error"]["timestamp"].endswith("Z")
    return body


def test_root_and_health(api):
    assert api.get("/").json()["status"] == "running"
    assert api.get(f"{API}/health").json() == {"status": "ok"}


def test_first_login_then_approval_then_download(api):
    """First login from a field device, admin approval, then a 30-day pull."""
    agent = _login(api, "agent", "dev-1", platform="ANDROID", model="Pixel 8", appVersion="4.0.0")

    assert agent["deviceRegistered"] is False
    assert agent["forceUpdate"] is False
    auth = agent["deviceAuthentication"]
    assert auth["needsApproval"] is True
    assert auth["isApproved"] is False
    assert len(auth["authCode"]) == 6
    assert agent["user"]["employeeId"] == "E-100"

    since = format_ts(BASE_TIME - timedelta(days=30))
    r = api.get(f"{API}/sync/download", params={"lastSyncTimestamp": since}, headers=_auth(agent["accessToken"]))
    _assert_error(r, 403, "DEVICE_NOT_APPROVED")

    admin = _login(api, "admin", "dev-admin")
    pending = api.get(f"{API}/devices/pending", headers=_auth(admin["accessToken"])).json()["data"]
    assert [(d["deviceId"], d["user"]["username"], d["state"]) for d in pending] == [
        ("dev-1", "agent", "PENDING_APPROVAL")
    ]

    r = api.post(f"{API}/devices/dev-1/approve", headers=_auth(admin["accessToken"]))
    assert r.status_code == 200
    assert r.json()["data"]["isApproved"] is True
    assert r.json()["data"]["state"] == "APPROVED"

    r = api.get(f"{API}/sync/download", params={"lastSyncTimestamp": since}, headers=_auth(agent["accessToken"]))
    assert r.status_code == 200, r.text
    data = r.json()["data"]
    assert [c["id"] for c in data["cases"]] == ["case-1", "case-2"]
    assert data["hasMore"] is False
    assert data["deletedCaseIds"] == []
    assert data["cases"][0]["customerName"] == "Customer 1"
    assert data["cases"][0]["client"] == {"id": "cli_acme", "name": "Acme Bank", "code": "ACME"}


def test_second_login_on_approved_device(api):
    _approved_session(api)

    again = _login(api, "agent", "dev-1")

    assert again["deviceRegistered"] is True
    assert again["deviceAuthentication"]["needsApproval"] is False
    assert again["deviceAuthentication"]["authCode"] is None


def test_bad_credentials_envelope(api):
    r = api.post(f"{API}/auth/login", json={"username": "agent", "password": "nope", "deviceId": "dev-1"})

    body = _assert_error(r, 401, "INVALID_CREDENTIALS")
    assert body["message"] == "Invalid credentials"


def test_request_validation_envelope(api):
    r = api.post(f"{API}/auth/login", json={"username": "agent"})

    body = _assert_error(r, 400, "VALIDATION_ERROR")
    assert body["error"]["details"]["errors"]


def test_missing_or_bad_token(api):
    _assert_error(api.get(f"{API}/sync/status"), 401, "INVALID_TOKEN")
    _assert_error(api.get(f"{API}/sync/status", headers=_auth("garbage")), 401, "INVALID_TOKEN")


def test_refresh_then_logout_revokes(api):
    session = _approved_session(api, "backend", "dev-b")

    r = api.post(f"{API}/auth/refresh", json={"refreshToken": session["refreshToken"]})
    assert r.status_code == 200
    assert r.json()["data"]["accessToken"]

    r = api.post(f"{API}/auth/logout", json={"deviceId": "dev-b"}, headers=_auth(session["accessToken"]))
    assert r.status_code == 200
    assert r.json()["success"] is True

    r = api.post(f"{API}/auth/refresh", json={"refreshToken": session["refreshToken"]})
    _assert_error(r, 401, "INVALID_REFRESH_TOKEN")


def test_version_check_and_config(api):
    r = api.post(f"{API}/auth/version-check", json={"currentVersion": "1.9.0", "platform": "IOS"})
    data = r.json()["data"]
    assert data["forceUpdate"] is True
    assert data["updateRequired"] is True
    assert data["latestVersion"] == "4.0.0"
    assert "apple" in data["downloadUrl"]

    config = api.get(f"{API}/auth/config").json()["data"]
    assert config["minSupportedVersion"] == "3.0.0"
    assert config["limits"]["requiredPhotos"] == 5
    assert config["features"]["offlineMode"] is True
    assert config["apiBaseUrl"].endswith("/api/mobile")


def test_old_app_version_header_is_refused(api):
    agent = _approved_session(api)

    r = api.get(
        f"{API}/sync/status",
        headers={**_auth(agent["accessToken"]), "x-app-version": "1.2.0", "x-platform": "ANDROID"},
    )

    body = _assert_error(r, 426, "FORCE_UPDATE_REQUIRED")
    assert "play.google.com" in body["error"]["details"]["downloadUrl"]


def test_non_admin_cannot_approve(api):
    agent = _approved_session(api)

    r = api.get(f"{API}/devices/pending", headers=_auth(agent["accessToken"]))

    _assert_error(r, 403, "ADMIN_REQUIRED")


def test_reject_then_relogin_is_refused(api):
    _login(api, "agent", "dev-1")
    admin = _login(api, "admin", "dev-admin")

    r = api.post(
        f"{API}/devices/dev-1/reject",
        params={"userId": "usr_agent"},
        json={"reason": "Not a company phone"},
        headers=_auth(admin["accessToken"]),
    )
    assert r.status_code == 200
    assert r.json()["data"]["state"] == "REJECTED"

    r = api.post(f"{API}/auth/login", json={"username": "agent", "password": PASSWORD, "deviceId": "dev-1"})
    _assert_error(r, 403, "DEVICE_REJECTED")

    devices = api.get(f"{API}/devices/user/usr_agent", headers=_auth(admin["accessToken"])).json()["data"]
    assert [d["rejectionReason"] for d in devices] == ["Not a company phone"]


def test_upload_returns_conflicts_and_errors_as_data(api):
    agent = _approved_session(api)
    body = {
        "localChanges": {
            "cases": [
                {"id": "case-1", "action": "UPDATE", "data": {"notes": "late"},
                 "timestamp": format_ts(BASE_TIME - timedelta(hours=1))},
                {"id": "case-2", "action": "UPDATE", "data": {"notes": "fresh"},
                 "timestamp": format_ts(BASE_TIME + timedelta(hours=1))},
                {"id": "case-3", "action": "UPDATE", "data": {"notes": "not mine"},
                 "timestamp": format_ts(BASE_TIME + timedelta(hours=1))},
            ],
        },
        "deviceInfo": {"deviceId": "dev-1"},
        "lastSyncTimestamp": format_ts(BASE_TIME),
    }

    r = api.post(f"{API}/sync/upload", json=body, headers=_auth(agent["accessToken"]))

    assert r.status_code == 200, r.text
    results = r.json()["data"]["results"]
    assert results["processedCases"] == 1
    assert [c["caseId"] for c in results["conflicts"]] == ["case-1"]
    assert results["conflicts"][0]["conflictType"] == "VERSION_CONFLICT"
    assert results["conflicts"][0]["serverVersion"]["syncStatus"] == "SYNCED"
    assert results["errors"] == [
        {"type": "CASE", "id": "case-3", "error": "Case not found or access denied", "code": "CASE_NOT_FOUND"}
    ]


def test_upload_without_local_changes(api):
    agent = _approved_session(api)

    r = api.post(f"{API}/sync/upload", json={}, headers=_auth(agent["accessToken"]))

    _assert_error(r, 400, "MISSING_LOCAL_CHANGES")


def test_download_pages_with_resume_cursor(api):
    agent = _approved_session(api)
    headers = _auth(agent["accessToken"])
    since = format_ts(BASE_TIME - timedelta(days=1))

    first = api.get(f"{API}/sync/download", params={"lastSyncTimestamp": since, "limit": 1}, headers=headers)
    page1 = first.json()["data"]
    assert [c["id"] for c in page1["cases"]] == ["case-1"]
    assert page1["hasMore"] is True
    assert page1["resumeId"] == "case-1"

    params = {"lastSyncTimestamp": page1["resumeTimestamp"], "resumeId": page1["resumeId"], "limit": 1}
    page2 = api.get(f"{API}/sync/download", params=params, headers=headers).json()["data"]
    assert [c["id"] for c in page2["cases"]] == ["case-2"]


def test_sync_status_uses_device_header(api):
    agent = _approved_session(api)

    r = api.get(f"{API}/sync/status", headers={**_auth(agent["accessToken"]), "x-device-id": "dev-1"})

    assert r.status_code == 200
    assert r.json()["data"]["deviceId"] == "dev-1"


def test_auto_save_and_verification_over_http(api, repos):
    agent = _approved_session(api)
    headers = _auth(agent["accessToken"])

    r = api.post(
        f"{API}/cases/case-1/auto-save",
        json={"formType": "RESIDENCE", "formData": {"applicantName": "A"}, "timestamp": format_ts(BASE_TIME)},
        headers=headers,
    )
    assert r.status_code == 200
    assert r.json()["data"]["version"] == 1

    r = api.get(f"{API}/cases/case-1/auto-save/RESIDENCE", headers=headers)
    assert r.json()["data"]["formData"] == {"applicantName": "A"}

    ids = add_photos(repos, "case-1", 5)
    photos = [{"attachmentId": i, "geoLocation": {"latitude": 18.5, "longitude": 73.8}} for i in ids]

    r = api.post(
        f"{API}/cases/case-1/verification/residence",
        json={"formData": {"outcome": "VERIFIED"}, "attachmentIds": ids[:4], "photos": photos[:4]},
        headers=headers,
    )
    body = _assert_error(r, 400, "INSUFFICIENT_PHOTOS")
    assert body["error"]["details"] == {"required": 5, "provided": 4}

    r = api.post(
        f"{API}/cases/case-1/verification/residence",
        json={"formData": {"outcome": "VERIFIED"}, "attachmentIds": ids, "photos": photos,
              "geoLocation": {"latitude": 18.5, "longitude": 73.8}},
        headers=headers,
    )
    assert r.status_code == 200, r.text
    assert r.json()["data"]["status"] == "COMPLETED"
    assert r.json()["data"]["completedAt"].endswith("Z")

    r = api.get(f"{API}/cases/case-1/auto-save/RESIDENCE", headers=headers)
    _assert_error(r, 404, "AUTO_SAVE_NOT_FOUND")


def test_form_template_endpoint(api):
    agent = _approved_session(api)

    r = api.get(f"{API}/forms/office/template", headers=_auth(agent["accessToken"]))

    assert r.status_code == 200
    assert r.json()["data"]["formType"] == "OFFICE"
    _assert_error(api.get(f"{API}/forms/garage/template", headers=_auth(agent["accessToken"])), 400, "INVALID_FORM_TYPE")


def test_unknown_route_uses_envelope(api):
    _assert_error(api.get(f"{API}/nope"), 404, "NOT_FOUND")
