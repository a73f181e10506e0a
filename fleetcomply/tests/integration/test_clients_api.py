from __future__ import annotations

import pytest
from httpx import ASGITransport, AsyncClient

from fleetcomply.apps.api.main import create_app
from fleetcomply.tests.utils.auth import create_test_user


@pytest.mark.asyncio
async def test_join_approve_leave_lifecycle() -> None:
    app = create_app()
    manager_id, manager_headers = await create_test_user(role="transport_manager", full_name="Ann Manager")
    client_id, client_headers = await create_test_user(role="standalone_user")

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        response = await client.get("/v1/clients/managers", headers=client_headers)
        assert response.status_code == 200
        assert manager_id in {item["id"] for item in response.json()["data"]}

        response = await client.post(
            "/v1/clients/join-requests", json={"manager_id": manager_id}, headers=client_headers
        )
        assert response.status_code == 201
        body = response.json()
        assert body["data"]["status"] == "pending"
        assert body["meta"]["api_version"] == "v1"

        response = await client.get("/v1/clients/pending", headers=manager_headers)
        assert [item["client_id"] for item in response.json()["data"]] == [client_id]

        response = await client.post(
            f"/v1/clients/{client_id}/decision", json={"approve": True}, headers=manager_headers
        )
        assert response.status_code == 200
        assert response.json()["data"]["status"] == "approved"
        assert response.json()["data"]["approved_at"] is not None

        response = await client.post(
            f"/v1/clients/{client_id}/decision", json={"approve": False}, headers=manager_headers
        )
        assert response.status_code == 409
        assert response.json()["error"]["code"] == "INVALID_TRANSITION"

        response = await client.get("/v1/clients/me/manager", headers=client_headers)
        assert response.json()["data"]["manager_id"] == manager_id

        response = await client.get("/v1/clients/limit", headers=manager_headers)
        assert response.json()["data"] == {"capacity": 4, "current": 1, "remaining": 3}

        response = await client.post("/v1/clients/me/leave", headers=client_headers)
        assert response.json()["data"]["status"] == "leave_requested"

        response = await client.get("/v1/clients/leave-requests", headers=manager_headers)
        assert [item["client_id"] for item in response.json()["data"]] == [client_id]

        response = await client.post(f"/v1/clients/{client_id}/accept-leave", headers=manager_headers)
        assert response.json()["data"]["status"] == "revoked"

        response = await client.get("/v1/clients", headers=manager_headers)
        assert response.json()["data"] == []
        response = await client.get("/v1/clients/me/manager", headers=client_headers)
        assert response.json()["data"] is None


@pytest.mark.asyncio
async def test_remove_flow_and_status_filter() -> None:
    app = create_app()
    _manager_id, manager_headers = await create_test_user(role="transport_manager")
    client_id, client_headers = await create_test_user(role="standalone_user")

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        response = await client.post(
            "/v1/clients/enroll", json={"client_id": client_id}, headers=manager_headers
        )
        assert response.status_code == 201
        assert response.json()["data"]["status"] == "approved"

        response = await client.get(
            "/v1/clients", params={"status": "approved"}, headers=manager_headers
        )
        assert [item["client_id"] for item in response.json()["data"]] == [client_id]

        response = await client.post(f"/v1/clients/{client_id}/remove", headers=manager_headers)
        assert response.json()["data"]["status"] == "remove_requested"

        response = await client.post("/v1/clients/me/accept-removal", headers=client_headers)
        assert response.json()["data"]["status"] == "revoked"

        response = await client.post("/v1/clients/me/accept-removal", headers=client_headers)
        assert response.status_code == 404
        assert response.json()["error"]["code"] == "CLIENT_NOT_FOUND"


@pytest.mark.asyncio
async def test_capacity_limit_is_reported_with_details() -> None:
    app = create_app()
    manager_id, manager_headers = await create_test_user(role="transport_manager")
    _admin_id, admin_headers = await create_test_user(role="platform_admin")
    first_id, _ = await create_test_user(role="standalone_user")
    second_id, _ = await create_test_user(role="standalone_user")

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        response = await client.put(
            f"/v1/clients/rosters/{manager_id}/capacity", json={"capacity": 1}, headers=admin_headers
        )
        assert response.status_code == 200
        assert response.json()["data"] == {"capacity": 1, "current": 0, "remaining": 1}

        response = await client.post("/v1/clients/enroll", json={"client_id": first_id}, headers=manager_headers)
        assert response.status_code == 201
        response = await client.post("/v1/clients/enroll", json={"client_id": second_id}, headers=manager_headers)
        assert response.status_code == 409
        error = response.json()["error"]
        assert error["code"] == "CLIENT_LIMIT_REACHED"
        assert error["message"] == "Client limit reached. Maximum: 1. Current: 1"
        assert error["details"] == {"capacity": 1, "current": 1}

        response = await client.put(
            f"/v1/clients/rosters/{manager_id}/capacity", json={"capacity": 3}, headers=manager_headers
        )
        assert response.status_code == 403


@pytest.mark.asyncio
async def test_roles_and_authentication_are_enforced() -> None:
    app = create_app()
    _manager_id, manager_headers = await create_test_user(role="transport_manager")
    client_id, client_headers = await create_test_user(role="standalone_user")
    other_client_id, _ = await create_test_user(role="standalone_user")

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        response = await client.get("/v1/clients")
        assert response.status_code == 401
        assert response.json()["error"]["code"] == "AUTH_UNAUTHORIZED"

        response = await client.get("/v1/clients", headers={"Authorization": "Bearer nope"})
        assert response.status_code == 401

        response = await client.get("/v1/clients", headers=client_headers)
        assert response.status_code == 403
        assert response.json()["error"]["code"] == "AUTH_FORBIDDEN"

        response = await client.post(
            "/v1/clients/join-requests", json={"manager_id": other_client_id}, headers=client_headers
        )
        assert response.status_code == 404
        assert response.json()["error"]["code"] == "CLIENT_NOT_FOUND"

        response = await client.post(
            "/v1/clients/join-requests",
            json={"manager_id": "m", "client_id": client_id},
            headers=client_headers,
        )
        assert response.status_code == 422
        assert response.json()["error"]["code"] == "REQUEST_VALIDATION_ERROR"

        response = await client.post(f"/v1/clients/{client_id}/remove", headers=manager_headers)
        assert response.status_code == 404
        assert response.json()["error"]["code"] == "CLIENT_NOT_FOUND"
