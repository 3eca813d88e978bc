import json

import httpx
import pytest

from app.clients.financial_datasets_client import FinancialApiError, FinancialDataClient, build_query_params


def test_build_query_params_skips_absent_values():
    assert build_query_params({"ticker": "AAPL", "limit": None, "period": "ttm", "n": 2}) == {
        "ticker": "AAPL",
        "period": "ttm",
        "n": "2",
    }


async def test_statement_request(fake_api, client):
    fake_api.add("/financials/income-statements/", {"income_statements": [{"revenue": 1}]})

    data = await client.get_income_statements("AAPL", period="annual", limit=4)

    assert data == {"income_statements": [{"revenue": 1}]}
    request = fake_api.requests[0]
    assert request.headers["X-API-Key"] == "test-key"
    assert dict(request.url.params) == {"ticker": "AAPL", "period": "annual", "limit": "4"}


async def test_statement_defaults_to_ttm_without_limit(fake_api, client):
    fake_api.add("/financials/balance-sheets/", {"balance_sheets": []})

    await client.get_balance_sheets("MSFT")

    assert dict(fake_api.requests[0].url.params) == {"ticker": "MSFT", "period": "ttm"}


async def test_stock_prices_snapshot(fake_api, client):
    fake_api.add("/prices/snapshot", {"snapshot": {"ticker": "AAPL", "price": 190.0}})

    data = await client.get_stock_prices("AAPL")

    assert data == {"ticker": "AAPL", "snapshot": {"snapshot": {"ticker": "AAPL", "price": 190.0}}, "historical": None}
    assert fake_api.paths() == ["/prices/snapshot"]


async def test_stock_prices_historical(fake_api, client):
    fake_api.add("/prices/", {"prices": [{"close": 1.0}]})

    data = await client.get_stock_prices("AAPL", start_date="2024-01-01", end_date="2024-02-01", interval="week")

    assert data["snapshot"] is None
    assert data["historical"] == {"prices": [{"close": 1.0}]}
    assert dict(fake_api.requests[0].url.params) == {
        "ticker": "AAPL",
        "interval": "week",
        "interval_multiplier": "1",
        "start_date": "2024-01-01",
        "end_date": "2024-02-01",
    }


async def test_stock_prices_with_only_one_date_uses_snapshot(fake_api, client):
    fake_api.add("/prices/snapshot", {"snapshot": {}})

    await client.get_stock_prices("AAPL", start_date="2024-01-01")

    assert fake_api.paths() == ["/prices/snapshot"]


async def test_news_default_limit(fake_api, client):
    fake_api.add("/news/", {"news": []})

    await client.get_news("AAPL")

    assert dict(fake_api.requests[0].url.params) == {"ticker": "AAPL", "limit": "5"}


async def test_search_stocks_posts_body_with_defaults(fake_api, client):
    fake_api.add("/stocks/search/", {"search_results": []}, method="POST")
    filters = [{"field": "revenue", "operator": "gt", "value": 1e9}]

    await client.search_stocks(filters)

    request = fake_api.requests[0]
    assert request.method == "POST"
    assert json.loads(request.content) == {
        "filters": filters,
        "period": "ttm",
        "limit": 5,
        "order_by": "-report_period",
    }


async def test_non_2xx_raises_financial_api_error(fake_api, client):
    fake_api.add("/financials/income-statements/", {"error": "Insufficient credits"}, status=402)

    with pytest.raises(FinancialApiError) as exc_info:
        await client.get_income_statements("AAPL")

    error = exc_info.value
    assert error.status == 402
    assert error.is_credits_exhausted
    assert not error.is_unauthorized
    assert error.endpoint == "/financials/income-statements/"
    assert "Insufficient credits" in error.response_text
    assert error.user_friendly_message.startswith("💳 Financial data API credits exhausted")


async def test_unauthorized_message(fake_api, client):
    fake_api.add("/news/", {"error": "bad key"}, status=401)

    with pytest.raises(FinancialApiError) as exc_info:
        await client.get_news("AAPL")

    assert exc_info.value.is_unauthorized
    assert exc_info.value.user_friendly_message.startswith("🔑 Authentication failed")


async def test_transport_errors_propagate():
    def refuse(request):
        raise httpx.ConnectError("connection refused", request=request)

    async with FinancialDataClient("k", base_url="https://api.test", transport=httpx.MockTransport(refuse)) as client:
        with pytest.raises(httpx.ConnectError):
            await client.get_price_snapshot("AAPL")
