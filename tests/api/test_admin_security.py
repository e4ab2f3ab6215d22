from __future__ import annotations

from fastapi.testclient import TestClient

from tests.conftest import auth

IP = "203.0.113.7"


def test_requires_admin_role(client: TestClient, token: str) -> None:
    resp = client.get("/admin/security/blocks", headers=auth(token))
    assert resp.status_code == 403


def test_requires_authentication(client: TestClient) -> None:
    assert client.get("/admin/security/blocks").status_code == 401


def test_block_list_status_unblock(client: TestClient, admin_token: str) -> None:
    headers = auth(admin_token)

    created = client.post(
        "/admin/security/blocks",
        json={"ip": IP, "duration_seconds": 600, "reason": "scraping"},
        headers=headers,
    )
    assert created.status_code == 201
    entry = created.json()
    assert entry["ip"] == IP
    assert entry["expires_at"] - entry["blocked_at"] == 600
    assert entry["blocked_by"] == "user:900"

    listed = client.get("/admin/security/blocks", headers=headers)
    assert listed.json() == [entry]

    status = client.get(f"/admin/security/blocks/{IP}", headers=headers).json()
    assert status["blocked"] is True
    assert status["permanent"] is False
    assert status["block"] == entry

    removed = client.delete(f"/admin/security/blocks/{IP}", headers=headers)
    assert removed.status_code == 204
    assert client.get("/admin/security/blocks", headers=headers).json() == []


def test_unblock_unknown_ip_is_404(client: TestClient, admin_token: str) -> None:
    resp = client.delete(f"/admin/security/blocks/{IP}", headers=auth(admin_token))
    assert resp.status_code == 404


def test_invalid_ip_is_422(client: TestClient, admin_token: str) -> None:
    resp = client.post(
        "/admin/security/blocks", json={"ip": "nope"}, headers=auth(admin_token)
    )
    assert resp.status_code == 422
    assert "invalid IP address" in resp.json()["detail"]


def test_zero_duration_is_422(client: TestClient, admin_token: str) -> None:
    resp = client.post(
        "/admin/security/blocks",
        json={"ip": IP, "duration_seconds": 0},
        headers=auth(admin_token),
    )
    assert resp.status_code == 422
