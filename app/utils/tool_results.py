"""
Tool result presentation.

Turns raw tool results into `{"component": ..., "props": ...}` payloads the
chat UI renders inline (stock chart, financials table, news carousel, screener
table, error card). Dispatch is an exhaustive table over ToolName; adding a
tool without a renderer fails at import time instead of falling through.
"""

from typing import Any, Callable, Dict, List, Optional

from app.agents.financial_tools import ToolName, resolve_tool_name
from app.utils.error_handler import ErrorResult, is_api_key_error, is_payment_error

Rendered = Optional[Dict[str, Any]]


def _first_list(result: Any, key: str) -> List[Any]:
    if isinstance(result, dict):
        value = result.get(key)
        if isinstance(value, list):
            return value
    if isinstance(result, list):
        return result
    return []


def render_stock_prices(result: Any) -> Dict[str, Any]:
    """Chart props; tolerates snapshot and historical both being absent."""
    result = result if isinstance(result, dict) else {}
    historical = result.get("historical") or {}
    snapshot_payload = result.get("snapshot") or {}

    prices = historical.get("prices") or []
    snapshot = snapshot_payload.get("snapshot") if isinstance(snapshot_payload, dict) else None

    if snapshot and snapshot.get("price") is not None:
        current_price = snapshot["price"]
    elif prices:
        current_price = prices[-1].get("close", 0)
    else:
        current_price = 0

    return {
        "component": "stock-chart",
        "props": {
            "ticker": result.get("ticker") or historical.get("ticker") or (snapshot or {}).get("ticker"),
            "has_chart_data": bool(prices),
            "prices": prices,
            "snapshot": snapshot or None,
            "current_price": current_price,
            "day_change": (snapshot or {}).get("day_change", 0),
            "day_change_percent": (snapshot or {}).get("day_change_percent", 0),
        },
    }


def _financials_table(key: str, title: str) -> Callable[[Any], Dict[str, Any]]:
    def render(result: Any) -> Dict[str, Any]:
        rows = _first_list(result, key)
        return {
            "component": "financials-table",
            "props": {"title": title, "rows": rows, "columns": sorted(rows[0].keys()) if rows else []},
        }

    return render


def render_news(result: Any) -> Dict[str, Any]:
    items = []
    for article in _first_list(result, "news"):
        items.append(
            {
                "title": article.get("title"),
                "source": article.get("source"),
                "url": article.get("url"),
                "date": article.get("date") or article.get("published_at"),
                "sentiment": article.get("sentiment"),
            }
        )
    return {"component": "news-carousel", "props": {"items": items}}


def render_stock_screener(result: Any) -> Dict[str, Any]:
    return {"component": "stock-screener", "props": {"results": _first_list(result, "search_results")}}


def render_error(result: Any) -> Dict[str, Any]:
    if isinstance(result, ErrorResult):
        result = result.to_dict()
    body = f"{result.get('error', '')} {result.get('message', '')}"
    status = result.get("status")
    return {
        "component": "api-error",
        "props": {
            **result,
            "needs_api_key": is_api_key_error(status, body),
            "needs_payment": is_payment_error(status, body),
        },
    }


RENDERERS: Dict[ToolName, Callable[[Any], Dict[str, Any]]] = {
    ToolName.GET_STOCK_PRICES: render_stock_prices,
    ToolName.GET_INCOME_STATEMENTS: _financials_table("income_statements", "Income Statements"),
    ToolName.GET_BALANCE_SHEETS: _financials_table("balance_sheets", "Balance Sheets"),
    ToolName.GET_CASH_FLOW_STATEMENTS: _financials_table("cash_flow_statements", "Cash Flow Statements"),
    ToolName.GET_FINANCIAL_METRICS: _financials_table("financial_metrics", "Financial Metrics"),
    ToolName.SEARCH_STOCKS_BY_FILTERS: render_stock_screener,
    ToolName.GET_NEWS: render_news,
}

_missing = [name.value for name in ToolName if name not in RENDERERS]
if _missing:
    raise RuntimeError(f"Financial tools without a renderer: {_missing}")


def is_error_result(result: Any) -> bool:
    if isinstance(result, ErrorResult):
        return True
    return isinstance(result, dict) and "error" in result and "status" in result


def render_tool_result(tool_name: Any, result: Any) -> Rendered:
    """UI payload for one tool result, or None for a skipped duplicate call."""
    name = resolve_tool_name(tool_name)
    if result is None:
        return None
    if is_error_result(result):
        return render_error(result)
    return RENDERERS[name](result)
