"""HTTP API tests through the ASGI app with a temporary database and a mocked indexer."""
from __future__ import annotations

from collections.abc import AsyncIterator
from unittest.mock import AsyncMock

import httpx
import pytest
import pytest_asyncio

from debt_market.core.config import Settings
from debt_market.core.db import Database
from debt_market.core.exceptions import AllEndpointsFailedError
from debt_market.main import create_app
from debt_market.services.health_factor import INFINITE_HEALTH_FACTOR
from factories import DEBT, ONE_HF, OTHER_KEY, make_indexer_position


@pytest_asyncio.fixture()
async def api(settings: Settings, database: Database, indexer_mock: AsyncMock) -> AsyncIterator[httpx.AsyncClient]:
    app = create_app(settings, database=database, indexer_client=indexer_mock)
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


def _body(request) -> dict:
    return request.model_dump(mode="json", by_alias=True)


class TestCreateOrder:
    @pytest.mark.asyncio
    async def test_created(self, api: httpx.AsyncClient, make_full_request) -> None:
        response = await api.post("/api/orders", json=_body(make_full_request()))

        assert response.status_code == 201
        payload = response.json()
        assert payload["success"] is True
        assert payload["data"]["status"] == "ACTIVE"
        assert payload["data"]["debt_address"] == DEBT
        assert payload["data"]["current_hf"] == INFINITE_HEALTH_FACTOR

    @pytest.mark.asyncio
    async def test_snake_case_body_is_accepted(self, api: httpx.AsyncClient, make_partial_request) -> None:
        body = make_partial_request().model_dump(mode="json")

        response = await api.post("/api/orders", json=body)

        assert response.status_code == 201
        assert response.json()["data"]["order_type"] == "PARTIAL"

    @pytest.mark.asyncio
    async def test_duplicate_active_order_conflicts(self, api: httpx.AsyncClient, make_full_request) -> None:
        first = (await api.post("/api/orders", json=_body(make_full_request()))).json()["data"]

        response = await api.post("/api/orders", json=_body(make_full_request(trigger_hf=str(ONE_HF))))

        assert response.status_code == 409
        payload = response.json()
        assert payload["success"] is False
        assert payload["data"]["existing_order_id"] == first["id"]
        assert payload["data"]["existing_order_expiry"] == first["end_time"]

    @pytest.mark.asyncio
    async def test_resubmission_conflicts(self, api: httpx.AsyncClient, make_full_request) -> None:
        body = _body(make_full_request())
        await api.post("/api/orders", json=body)

        response = await api.post("/api/orders", json=body)

        assert response.status_code == 409
        assert response.json()["data"]["existing_status"] == "ACTIVE"

    @pytest.mark.asyncio
    async def test_bad_signature(self, api: httpx.AsyncClient, make_full_request) -> None:
        response = await api.post("/api/orders", json=_body(make_full_request(private_key=OTHER_KEY)))

        assert response.status_code == 400
        assert response.json()["error"] == "Invalid signature"

    @pytest.mark.asyncio
    async def test_validation_errors_are_listed(self, api: httpx.AsyncClient, make_full_request) -> None:
        body = _body(make_full_request())
        body["fullSellOrder"]["percentOfEquity"] = "20000"

        response = await api.post("/api/orders", json=body)

        assert response.status_code == 400
        payload = response.json()
        assert payload["data"]["errors"] == ["Invalid percent of equity (must be 1-10000)"]
        assert payload["error"].startswith("Invalid full sell order")

    @pytest.mark.asyncio
    async def test_max_uint_end_time_is_a_validation_error(self, api: httpx.AsyncClient, make_full_request) -> None:
        response = await api.post("/api/orders", json=_body(make_full_request(end_time=2**256 - 1)))

        assert response.status_code == 400
        assert response.json()["data"]["errors"] == ["Start or end time out of range"]

    @pytest.mark.asyncio
    async def test_missing_payload(self, api: httpx.AsyncClient, make_full_request) -> None:
        body = _body(make_full_request())
        body["fullSellOrder"] = None

        response = await api.post("/api/orders", json=body)

        assert response.status_code == 400
        assert response.json()["error"] == "Full sell order data required for FULL order type"

    @pytest.mark.asyncio
    async def test_unknown_order_type_is_unprocessable(self, api: httpx.AsyncClient, make_full_request) -> None:
        body = _body(make_full_request())
        body["orderType"] = "HALF"

        response = await api.post("/api/orders", json=body)

        assert response.status_code == 422


class TestQueryOrders:
    @pytest.mark.asyncio
    async def test_get_by_id(self, api: httpx.AsyncClient, make_full_request) -> None:
        created = (await api.post("/api/orders", json=_body(make_full_request()))).json()["data"]

        response = await api.get(f"/api/orders/{created['id']}")

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["id"] == created["id"]
        assert data["full_sell_order"]["percentOfEquity"] == "10000"
        assert data["can_execute"] == "NO - HF too high"

    @pytest.mark.asyncio
    async def test_unknown_id(self, api: httpx.AsyncClient) -> None:
        response = await api.get("/api/orders/0x" + "00" * 32)

        assert response.status_code == 404
        assert response.json()["success"] is False
        assert response.json()["error"] == "Order not found"

    @pytest.mark.asyncio
    async def test_list_with_pagination(self, api: httpx.AsyncClient, make_full_request, make_partial_request) -> None:
        await api.post("/api/orders", json=_body(make_full_request()))
        await api.post("/api/orders", json=_body(make_partial_request()))

        response = await api.get("/api/orders", params={"limit": 1, "page": 2, "sort_order": "asc"})

        data = response.json()["data"]
        assert response.status_code == 200
        assert len(data["orders"]) == 1
        assert data["orders"][0]["order_type"] == "PARTIAL"
        assert data["pagination"] == {
            "current_page": 2,
            "total_pages": 2,
            "total_items": 2,
            "items_per_page": 1,
            "has_next": False,
            "has_prev": True,
        }

    @pytest.mark.asyncio
    async def test_list_filters(self, api: httpx.AsyncClient, make_full_request, make_partial_request) -> None:
        await api.post("/api/orders", json=_body(make_full_request()))
        await api.post("/api/orders", json=_body(make_partial_request()))

        response = await api.get("/api/orders", params={"order_type": "FULL", "status": "ACTIVE"})

        assert [o["order_type"] for o in response.json()["data"]["orders"]] == ["FULL"]

    @pytest.mark.asyncio
    async def test_list_rejects_oversized_limit(self, api: httpx.AsyncClient) -> None:
        response = await api.get("/api/orders", params={"limit": 101})
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_active_orders(self, api: httpx.AsyncClient, make_full_request) -> None:
        await api.post("/api/orders", json=_body(make_full_request()))

        response = await api.get("/api/orders/active")
        executable = await api.get("/api/orders/active", params={"executable_only": True})

        assert response.json()["data"]["count"] == 1
        assert executable.json()["data"] == {"orders": [], "count": 0}


class TestMarketEndpoints:
    @pytest.mark.asyncio
    async def test_health_factor_of_unknown_position(self, api: httpx.AsyncClient) -> None:
        response = await api.get(f"/api/positions/{DEBT}/health-factor")

        assert response.json()["data"] == {"address": DEBT, "health_factor": INFINITE_HEALTH_FACTOR}

    @pytest.mark.asyncio
    async def test_sync_then_positions(self, api: httpx.AsyncClient, indexer_mock: AsyncMock) -> None:
        indexer_mock.fetch_debt_positions.return_value = [make_indexer_position()]

        sync = await api.post("/api/sync")
        positions = await api.get("/api/positions")
        health = await api.get(f"/api/positions/{DEBT}/health-factor")

        assert sync.status_code == 200
        assert sync.json()["data"]["ok"] is True
        assert positions.json()["data"]["count"] == 1
        assert positions.json()["data"]["positions"][0]["health_factor"] == "1700000000000000000"
        assert health.json()["data"]["health_factor"] == "1700000000000000000"

    @pytest.mark.asyncio
    async def test_subgraph_proxy(self, api: httpx.AsyncClient, indexer_mock: AsyncMock) -> None:
        indexer_mock.execute_query.return_value = {"data": {"users": []}}

        response = await api.post("/api/subgraph", json={"query": "{ users { id } }", "operationName": "Users"})

        assert response.json()["data"] == {"data": {"users": []}}
        indexer_mock.execute_query.assert_awaited_once_with("{ users { id } }", None, "Users")

    @pytest.mark.asyncio
    async def test_subgraph_unavailable(self, api: httpx.AsyncClient, indexer_mock: AsyncMock) -> None:
        indexer_mock.execute_query.side_effect = AllEndpointsFailedError(3, None)

        response = await api.post("/api/subgraph", json={"query": "{ users { id } }"})

        assert response.status_code == 502
        assert response.json()["error"] == "Indexer unavailable"

    @pytest.mark.asyncio
    async def test_health(self, api: httpx.AsyncClient) -> None:
        response = await api.get("/api/health")

        data = response.json()["data"]
        assert response.status_code == 200
        assert data["status"] == "healthy"
        assert data["sync"]["enabled"] is False
        assert data["sync"]["scheduled"] is False

    @pytest.mark.asyncio
    async def test_stats(self, api: httpx.AsyncClient, make_full_request) -> None:
        await api.post("/api/orders", json=_body(make_full_request()))
        await api.post("/api/sync")

        data = (await api.get("/api/stats")).json()["data"]

        assert data["orders"] == 1
        assert data["orders_by_status"] == {"ACTIVE": 1}
        assert len(data["last_syncs"]) == 7
        assert data["sync"]["last_report"]["ok"] is True

    @pytest.mark.asyncio
    async def test_reference_lists_are_empty_before_sync(self, api: httpx.AsyncClient) -> None:
        for path in ("/api/users", "/api/prices", "/api/liquidation-thresholds"):
            response = await api.get(path)
            assert response.status_code == 200
            assert response.json()["data"] == []

    @pytest.mark.asyncio
    async def test_root(self, api: httpx.AsyncClient) -> None:
        response = await api.get("/")
        assert response.json()["message"] == "Debt Market API"


class TestUnexpectedErrors:
    @pytest.mark.asyncio
    async def test_unhandled_error_is_masked(
        self, settings: Settings, database: Database, indexer_mock: AsyncMock
    ) -> None:
        indexer_mock.execute_query.side_effect = RuntimeError("password=hunter2 at db-primary:5432")
        app = create_app(settings, database=database, indexer_client=indexer_mock)
        transport = httpx.ASGITransport(app=app, raise_app_exceptions=False)

        async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
            response = await client.post("/api/subgraph", json={"query": "{ users { id } }"})

        assert response.status_code == 500
        payload = response.json()
        assert payload["success"] is False
        assert payload["error"] == "Internal server error"
        assert payload["data"] is None
        assert "hunter2" not in response.text
