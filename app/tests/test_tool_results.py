import pytest

from app.agents.financial_tools import ToolName, UnknownToolError
from app.utils.error_handler import ErrorResult
from app.utils.tool_results import RENDERERS, is_error_result, render_tool_result


def test_every_tool_has_a_renderer():
    assert set(RENDERERS) == set(ToolName)


def test_stock_prices_from_snapshot():
    result = {
        "ticker": "AAPL",
        "snapshot": {"snapshot": {"ticker": "AAPL", "price": 190.5, "day_change": 1.2, "day_change_percent": 0.63}},
        "historical": None,
    }

    rendered = render_tool_result("getStockPrices", result)

    assert rendered["component"] == "stock-chart"
    props = rendered["props"]
    assert props["ticker"] == "AAPL"
    assert props["current_price"] == 190.5
    assert props["day_change"] == 1.2
    assert props["day_change_percent"] == 0.63
    assert props["has_chart_data"] is False


def test_stock_prices_from_history():
    result = {
        "ticker": "AAPL",
        "snapshot": None,
        "historical": {"prices": [{"time": "2024-01-02", "close": 185.0}, {"time": "2024-01-03", "close": 184.2}]},
    }

    props = render_tool_result(ToolName.GET_STOCK_PRICES, result)["props"]

    assert props["has_chart_data"] is True
    assert props["current_price"] == 184.2
    assert props["day_change"] == 0
    assert len(props["prices"]) == 2


def test_stock_prices_with_no_data():
    props = render_tool_result("getStockPrices", {"ticker": "AAPL", "snapshot": None, "historical": None})["props"]

    assert props["ticker"] == "AAPL"
    assert props["current_price"] == 0
    assert props["prices"] == []
    assert props["snapshot"] is None


def test_financials_table():
    result = {"balance_sheets": [{"ticker": "AAPL", "total_assets": 1, "cash_and_equivalents": 2}]}

    rendered = render_tool_result("getBalanceSheets", result)

    assert rendered == {
        "component": "financials-table",
        "props": {
            "title": "Balance Sheets",
            "rows": result["balance_sheets"],
            "columns": ["cash_and_equivalents", "ticker", "total_assets"],
        },
    }


def test_news_carousel():
    result = {"news": [{"title": "Apple ships", "source": "Wire", "url": "https://x", "date": "2024-05-01"}]}

    rendered = render_tool_result("getNews", result)

    assert rendered["component"] == "news-carousel"
    assert rendered["props"]["items"][0]["title"] == "Apple ships"
    assert rendered["props"]["items"][0]["date"] == "2024-05-01"


def test_stock_screener():
    rendered = render_tool_result("searchStocksByFilters", {"search_results": [{"ticker": "NVDA"}]})

    assert rendered == {"component": "stock-screener", "props": {"results": [{"ticker": "NVDA"}]}}


def test_skipped_call_renders_nothing():
    assert render_tool_result("getNews", None) is None


def test_error_card_flags_payment():
    error = ErrorResult(
        error="💳 Financial data API credits exhausted",
        message="Please add more credits",
        status=402,
        action_required="Add credits or update API key",
    )

    rendered = render_tool_result("getIncomeStatements", error)

    assert rendered["component"] == "api-error"
    assert rendered["props"]["needs_payment"] is True
    assert rendered["props"]["needs_api_key"] is False
    assert rendered["props"]["status"] == 402


def test_error_card_flags_api_key():
    rendered = render_tool_result("getNews", {"error": "🔑 Authentication failed", "message": "bad", "status": 401})

    assert rendered["props"]["needs_api_key"] is True


def test_is_error_result():
    assert is_error_result({"error": "x", "status": 500})
    assert not is_error_result({"news": []})


def test_unknown_tool():
    with pytest.raises(UnknownToolError):
        render_tool_result("getWeather", {})
