"""Tests for the catalog API client."""

from __future__ import annotations

import json
from unittest.mock import MagicMock

import pytest
import requests

from catalog_engine.api.catalog import CatalogApiError, CatalogClient, CatalogRateLimitError
from catalog_engine.api.ratelimit import TokenBucket
from catalog_engine.core.config import Settings
from catalog_engine.core.models import UnitKind, WorkUnit
from catalog_engine.db.repository import Repository
from catalog_engine.utils.mock_data import MOCK_ITEMS_PER_UNIT


def make_response(payload: object, status_code: int = 200) -> MagicMock:
    response = MagicMock()
    response.status_code = status_code
    response.content = json.dumps(payload).encode("utf-8")
    response.json.return_value = payload
    return response


@pytest.fixture
def live_settings(settings: Settings) -> Settings:
    settings.api.mock_mode = False
    settings.api.access_token = "test-token"
    settings.api.base_url = "https://catalog.example.com/v1/"
    return settings


@pytest.fixture
def http() -> MagicMock:
    session = MagicMock()
    session.headers = {}
    return session


@pytest.fixture
def client(live_settings: Settings, http: MagicMock) -> CatalogClient:
    return CatalogClient(live_settings, rate_limiter=TokenBucket(0), session=http)


class TestLiveRequests:
    """Tests against a stubbed HTTP session."""

    def test_list_page_by_keyword(self, client: CatalogClient, http: MagicMock) -> None:
        http.get.return_value = make_response(
            {"result": True, "code": 200, "data": {"list": [{"pid": "P1"}, {"pid": "P2"}, "junk"]}}
        )

        items = client.list_page(WorkUnit(UnitKind.KEYWORD, "hoodie"), 2, 20)

        assert [i["pid"] for i in items] == ["P1", "P2"]
        url = http.get.call_args.args[0]
        kwargs = http.get.call_args.kwargs
        assert url == "https://catalog.example.com/v1/product/list"
        assert kwargs["params"] == {"pageNum": 2, "pageSize": 20, "productNameEn": "hoodie"}
        assert kwargs["headers"] == {"CJ-Access-Token": "test-token"}
        assert kwargs["timeout"] == 25

    def test_list_page_by_category(self, client: CatalogClient, http: MagicMock) -> None:
        http.get.return_value = make_response({"result": True, "data": {"list": []}})

        assert client.list_page(WorkUnit(UnitKind.CATEGORY, "cat-7"), 1, 10) == []
        assert http.get.call_args.kwargs["params"]["categoryId"] == "cat-7"

    def test_null_data_is_empty_page(self, client: CatalogClient, http: MagicMock) -> None:
        http.get.return_value = make_response({"result": True, "data": None})
        assert client.list_page(WorkUnit(UnitKind.KEYWORD, "x"), 1, 10) == []

    def test_fetch_detail(self, client: CatalogClient, http: MagicMock) -> None:
        http.get.return_value = make_response({"result": True, "data": {"pid": "P1", "variants": []}})

        detail = client.fetch_detail("P1")

        assert detail["pid"] == "P1"
        assert http.get.call_args.kwargs["params"] == {"pid": "P1"}

    def test_fetch_detail_missing(self, client: CatalogClient, http: MagicMock) -> None:
        http.get.return_value = make_response({"result": True, "data": None})
        with pytest.raises(CatalogApiError):
            client.fetch_detail("P404")

    def test_get_product_variants(self, client: CatalogClient, http: MagicMock) -> None:
        http.get.return_value = make_response({
            "result": True,
            "data": [
                {"vid": "V1", "variantSku": "CJ1", "variantKey": "Black-M"},
                {"vid": "V2", "variantSku": "CJ2", "variantKey": "White-L"},
            ],
        })

        variants = client.get_product_variants("P1")

        assert [v.variant_id for v in variants] == ["V1", "V2"]
        assert variants[1].size == "l"
        assert variants[1].color == "white"


class TestErrors:
    """Tests for error mapping."""

    def test_rate_limited(self, client: CatalogClient, http: MagicMock) -> None:
        http.get.return_value = make_response({}, status_code=429)
        with pytest.raises(CatalogRateLimitError) as exc_info:
            client.fetch_detail("P1")
        assert exc_info.value.status_code == 429

    def test_http_error(self, client: CatalogClient, http: MagicMock) -> None:
        http.get.return_value = make_response({}, status_code=503)
        with pytest.raises(CatalogApiError) as exc_info:
            client.fetch_detail("P1")
        assert exc_info.value.status_code == 503

    def test_api_error_payload(self, client: CatalogClient, http: MagicMock) -> None:
        http.get.return_value = make_response({"result": False, "code": 1600100, "message": "Invalid token"})
        with pytest.raises(CatalogApiError, match="Invalid token"):
            client.fetch_detail("P1")

    def test_invalid_json(self, client: CatalogClient, http: MagicMock) -> None:
        response = make_response({})
        response.json.side_effect = ValueError("Expecting value")
        http.get.return_value = response
        with pytest.raises(CatalogApiError, match="invalid JSON"):
            client.fetch_detail("P1")

    def test_network_error_is_wrapped(self, client: CatalogClient, http: MagicMock) -> None:
        http.get.side_effect = requests.ConnectionError("connection reset")
        with pytest.raises(CatalogApiError, match="connection reset"):
            client.fetch_detail("P1")


class TestApiLogging:
    """Every live call is recorded."""

    def test_calls_are_logged(self, live_settings: Settings, http: MagicMock) -> None:
        repo = Repository()
        client = CatalogClient(live_settings, rate_limiter=TokenBucket(0), api_log=repo, session=http)
        http.get.side_effect = [
            make_response({"result": True, "data": {"pid": "P1"}}),
            make_response({}, status_code=500),
        ]

        client.fetch_detail("P1")
        with pytest.raises(CatalogApiError):
            client.fetch_detail("P2")

        logs = repo.get_api_logs(api_name="catalog")
        assert len(logs) == 2
        assert {log["success"] for log in logs} == {True, False}
        failed = next(log for log in logs if not log["success"])
        assert failed["response_status"] == 500
        assert json.loads(failed["request_params"]) == {"pid": "P2"}

    def test_log_failure_does_not_fail_call(self, live_settings: Settings, http: MagicMock) -> None:
        sink = MagicMock()
        sink.save_api_log.side_effect = RuntimeError("database locked")
        client = CatalogClient(live_settings, rate_limiter=TokenBucket(0), api_log=sink, session=http)
        http.get.return_value = make_response({"result": True, "data": {"pid": "P1"}})

        assert client.fetch_detail("P1")["pid"] == "P1"

    def test_rate_limiter_is_used(self, live_settings: Settings, http: MagicMock) -> None:
        limiter = MagicMock()
        client = CatalogClient(live_settings, rate_limiter=limiter, session=http)
        http.get.return_value = make_response({"result": True, "data": {"pid": "P1"}})

        client.fetch_detail("P1")

        limiter.acquire.assert_called_once()


class TestMockMode:
    """Tests for the offline mock catalog."""

    def test_mock_pages_are_deterministic(self, settings: Settings) -> None:
        client = CatalogClient(settings)
        unit = WorkUnit(UnitKind.KEYWORD, "hoodie")

        first = client.list_page(unit, 1, 20)
        again = client.list_page(unit, 1, 20)

        assert first == again
        assert len(first) == 20

    def test_mock_unit_is_exhausted(self, settings: Settings) -> None:
        client = CatalogClient(settings)
        unit = WorkUnit(UnitKind.CATEGORY, "cat-1")
        sizes = [len(client.list_page(unit, page, 20)) for page in (1, 2, 3, 4)]
        assert sizes == [20, 20, MOCK_ITEMS_PER_UNIT - 40, 0]

    def test_mock_detail_and_variants_agree(self, settings: Settings) -> None:
        client = CatalogClient(settings)
        pid = client.list_page(WorkUnit(UnitKind.KEYWORD, "tote"), 1, 5)[0]["pid"]

        detail = client.fetch_detail(pid)
        variants = client.get_product_variants(pid)

        assert detail["pid"] == pid
        assert [v["vid"] for v in detail["variants"]] == [v.variant_id for v in variants]

    def test_mock_mode_makes_no_requests(self, settings: Settings, http: MagicMock) -> None:
        client = CatalogClient(settings, session=http)
        client.fetch_detail("MOCK-1")
        http.get.assert_not_called()
