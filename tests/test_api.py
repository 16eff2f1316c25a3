from __future__ import annotations

import time
from datetime import date

import pytest
from fastapi.testclient import TestClient

from poifinder.api.app import Services, create_app
from poifinder.core.orchestrator import BulkSearchOrchestrator
from poifinder.core.tasks import RegionSummary, TaskRegistry
from poifinder.providers.base import PoiRecord
from poifinder.regions import RegionDirectory
from poifinder.storage.base import SearchSnapshot

from conftest import FakeProvider, MemoryStore, exhausted

HEADERS = {"X-API-Key": "secret"}


@pytest.fixture
def services(settings) -> Services:
    provider = FakeProvider({("南京市", 1): 3, ("苏州市", 1): 2, ("CityX", 1): exhausted()})
    store = MemoryStore()
    registry = TaskRegistry()
    return Services(
        settings=settings,
        orchestrator=BulkSearchOrchestrator(provider, store, registry, settings),
        registry=registry,
        store=store,
        directory=RegionDirectory(
            provinces=["江苏省"],
            province_to_cities={"江苏省": ["南京市", "苏州市"]},
        ),
    )


@pytest.fixture
def client(services):
    with TestClient(create_app(services=services)) as c:
        yield c


def wait_for_terminal(client: TestClient, task_id: str) -> dict:
    for _ in range(200):
        body = client.get(f"/v1/tasks/{task_id}", headers=HEADERS).json()
        if body["status"] in ("completed", "failed"):
            return body
        time.sleep(0.01)
    raise AssertionError(f"task {task_id} did not finish")


def test_health_needs_no_key(client) -> None:
    assert client.get("/health").json()["status"] == "ok"


def test_routes_require_api_key(client) -> None:
    assert client.get("/v1/tasks/stats").status_code == 401
    assert client.get("/v1/tasks/stats", headers={"X-API-Key": "wrong"}).status_code == 401


def test_empty_configured_key_rejects_every_request(services) -> None:
    services.settings = services.settings.model_copy(update={"api_key": ""})
    with TestClient(create_app(services=services)) as c:
        assert c.get("/v1/tasks/stats").status_code == 401
        assert c.get("/v1/tasks/stats", headers={"X-API-Key": ""}).status_code == 401
        assert c.get("/v1/tasks/stats", headers=HEADERS).status_code == 401


def test_bulk_search_expands_provinces_and_completes(client) -> None:
    resp = client.post(
        "/v1/bulk-searches",
        json={"keyword": "coffee", "regions": ["江苏省"], "max_concurrency": 2, "delay_min_ms": 0, "delay_max_ms": 0},
        headers=HEADERS,
    )
    assert resp.status_code == 200
    created = resp.json()
    assert created["total_regions"] == 2
    assert created["delay_range"] == "0ms - 0ms"

    task = wait_for_terminal(client, created["task_id"])
    assert task["status"] == "completed"
    assert task["progress"] == {"current": 2, "total": 2, "percentage": 100}
    assert task["total_results"] == 5
    assert task["regions"] == ["南京市", "苏州市"]
    assert task["result_handle"].startswith("memory:coffee:")

    listed = client.get("/v1/tasks/keyword/coffee", headers=HEADERS).json()
    assert [t["id"] for t in listed] == [created["task_id"]]
    stats = client.get("/v1/tasks/stats", headers=HEADERS).json()
    assert stats["completed"] == 1
    assert stats["total"] == 1


def test_failing_region_still_completes(client) -> None:
    created = client.post(
        "/v1/bulk-searches", json={"keyword": "coffee", "regions": ["CityX", "南京市"]}, headers=HEADERS
    ).json()
    task = wait_for_terminal(client, created["task_id"])
    assert task["status"] == "completed"
    assert task["total_results"] == 3
    assert {"region": "CityX", "count": 0} in task["region_results"]


def test_bulk_search_over_every_city(client) -> None:
    resp = client.post("/v1/bulk-searches/coffee", headers=HEADERS)
    assert resp.status_code == 200
    assert resp.json()["total_regions"] == 2
    wait_for_terminal(client, resp.json()["task_id"])


def test_bulk_search_validation(client) -> None:
    assert client.post("/v1/bulk-searches", json={"keyword": "coffee", "regions": []}, headers=HEADERS).status_code == 422
    bad_delay = client.post(
        "/v1/bulk-searches",
        json={"keyword": "coffee", "regions": ["南京市"], "delay_min_ms": 500, "delay_max_ms": 100},
        headers=HEADERS,
    )
    assert bad_delay.status_code == 400


def test_unknown_task_is_404(client) -> None:
    assert client.get("/v1/tasks/nope", headers=HEADERS).status_code == 404


def test_single_page_search(client) -> None:
    body = client.get("/v1/poi/search", params={"keyword": "coffee", "region": "南京市"}, headers=HEADERS).json()
    assert body["count"] == 3
    assert [p["id"] for p in body["pois"]] == ["南京市-p1-0", "南京市-p1-1", "南京市-p1-2"]


def test_single_page_search_upstream_failure_is_502(client) -> None:
    resp = client.get("/v1/poi/search", params={"keyword": "coffee", "region": "CityX"}, headers=HEADERS)
    assert resp.status_code == 502


def test_saved_results(client, services) -> None:
    services.store.saved.append(
        SearchSnapshot(
            keyword="coffee",
            search_date=date(2024, 5, 1),
            timestamp="2024-05-01T10:00:00",
            total_count=1,
            region_breakdown=[RegionSummary("南京市", 1)],
            pois=[PoiRecord(provider_id="B1", name="coffee")],
        )
    )

    assert client.get("/v1/saved", headers=HEADERS).json() == ["coffee"]
    assert client.get("/v1/saved/coffee/dates", headers=HEADERS).json() == ["2024-05-01"]
    saved = client.get("/v1/saved/coffee", headers=HEADERS).json()
    assert saved["total_count"] == 1
    assert saved["region_breakdown"] == [{"region": "江苏省", "count": 1}]
    assert saved["pois"][0]["id"] == "B1"
    assert client.get("/v1/saved/tea", headers=HEADERS).status_code == 404


def test_regions(client) -> None:
    body = client.get("/v1/regions", headers=HEADERS).json()
    assert body["provinces"] == ["江苏省"]
    assert body["province_to_cities"]["江苏省"] == ["南京市", "苏州市"]


def test_saved_breakdown_with_unknown_bucket_still_sums_to_total(client, services) -> None:
    services.store.saved.append(
        SearchSnapshot(
            keyword="tea",
            search_date=date(2024, 5, 2),
            timestamp="2024-05-02T10:00:00",
            total_count=6,
            region_breakdown=[RegionSummary("南京市", 3), RegionSummary("unknown", 2), RegionSummary("苏州市", 1)],
            pois=[],
        )
    )

    saved = client.get("/v1/saved/tea", headers=HEADERS).json()

    assert saved["region_breakdown"] == [{"region": "江苏省", "count": 4}, {"region": "unknown", "count": 2}]
    assert sum(r["count"] for r in saved["region_breakdown"]) == saved["total_count"]
