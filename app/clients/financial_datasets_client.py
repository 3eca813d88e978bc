"""
Financial Datasets API client.

Thin async wrapper around https://api.financialdatasets.ai used by the
financial tools. Every call is a single HTTP request; the client keeps no
state besides its API key and the underlying httpx connection pool.

Key Features:
- GET endpoints for prices, statements, metrics and news
- POST stock screener search with a JSON body
- Query strings built from present parameters only
- Non-2xx responses raised as FinancialApiError (status, body, endpoint)
- Transport errors (timeouts, DNS, connection resets) are NOT caught here;
  the tool orchestrator classifies them

Dependencies:
- httpx: async HTTP client
"""

import json
import logging
from typing import Any, Dict, List, Optional

import httpx

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.financialdatasets.ai"
LOG_BODY_LIMIT = 500  # Max characters of an error body written to logs

ENDPOINT_PRICE_SNAPSHOT = "/prices/snapshot"
ENDPOINT_PRICES = "/prices/"
ENDPOINT_INCOME_STATEMENTS = "/financials/income-statements/"
ENDPOINT_BALANCE_SHEETS = "/financials/balance-sheets/"
ENDPOINT_CASH_FLOW_STATEMENTS = "/financials/cash-flow-statements/"
ENDPOINT_FINANCIAL_METRICS = "/financial-metrics/"
ENDPOINT_NEWS = "/news/"
ENDPOINT_STOCK_SEARCH = "/stocks/search/"


class FinancialApiError(Exception):
    """Raised for any non-2xx response from the financial data API."""

    def __init__(self, status: int, status_text: str, response_text: str, endpoint: str):
        super().__init__(f"Financial API Error {status}: {status_text} at {endpoint}")
        self.status = status
        self.status_text = status_text
        self.response_text = response_text
        self.endpoint = endpoint

    @property
    def is_credits_exhausted(self) -> bool:
        return self.status == 402

    @property
    def is_unauthorized(self) -> bool:
        return self.status == 401

    @property
    def user_friendly_message(self) -> str:
        if self.is_credits_exhausted:
            return (
                "💳 Financial data API credits exhausted. Please add more credits at "
                "https://financialdatasets.ai or update your API key in settings."
            )
        if self.is_unauthorized:
            return (
                "🔑 Authentication failed. Invalid or missing Financial Datasets API key. "
                "Please check your API key in settings."
            )
        return f"🚫 API error ({self.status}): {self.status_text}. Please try again later."


def build_query_params(params: Dict[str, Any]) -> Dict[str, str]:
    """Drop absent values and stringify the rest, preserving order."""
    query = {}
    for key, value in params.items():
        if value is None:
            continue
        query[key] = str(value)
    return query


class FinancialDataClient:
    """
    Async client for the Financial Datasets API.

    Args:
        api_key: Financial Datasets API key, sent as the X-API-Key header
        base_url: API root (overridable for tests or proxies)
        timeout: Per-request timeout in seconds
        transport: Optional httpx transport (httpx.MockTransport in tests)

    Example:
        async with FinancialDataClient(api_key) as client:
            statements = await client.get_income_statements("AAPL", period="annual", limit=4)
    """

    def __init__(
        self,
        api_key: str,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._api_key = api_key
        self.base_url = base_url.rstrip("/")
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout,
            transport=transport,
            headers={"X-API-Key": api_key},
        )

    async def __aenter__(self) -> "FinancialDataClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    # ---------- CORE REQUESTS ----------

    async def request(self, endpoint: str, query_params: Optional[Dict[str, Any]] = None) -> Any:
        """
        Issue a GET against the API and return the parsed JSON body.

        Args:
            endpoint: API path, e.g. "/financials/income-statements/"
            query_params: Parameters; None values are left out of the query string

        Raises:
            FinancialApiError: Response status was not 2xx
            httpx.TransportError: Network failure (propagated untouched)
        """
        params = build_query_params(query_params or {})
        logger.debug("Making financial API request endpoint=%s params=%s", endpoint, params)

        response = await self._client.get(endpoint, params=params)
        return self._handle_response(response, endpoint)

    async def search_stocks(
        self,
        filters: List[Dict[str, Any]],
        period: Optional[str] = None,
        limit: Optional[int] = None,
        order_by: Optional[str] = None,
    ) -> Any:
        """POST a screener query; same error convention as request()."""
        body = {
            "filters": filters,
            "period": period or "ttm",
            "limit": limit if limit is not None else 5,
            "order_by": order_by or "-report_period",
        }
        logger.debug("Making stock search request with %d filters", len(filters))

        response = await self._client.post(ENDPOINT_STOCK_SEARCH, json=body)
        return self._handle_response(response, ENDPOINT_STOCK_SEARCH)

    def _handle_response(self, response: httpx.Response, endpoint: str) -> Any:
        if not response.is_success:
            error_text = response.text
            logger.error(
                "Financial API request failed status=%s status_text=%s endpoint=%s body=%s",
                response.status_code,
                response.reason_phrase,
                endpoint,
                error_text[:LOG_BODY_LIMIT],
            )
            raise FinancialApiError(
                response.status_code, response.reason_phrase, error_text, endpoint
            )

        data = response.json()
        logger.debug(
            "Financial API request successful endpoint=%s data_length=%d",
            endpoint,
            len(json.dumps(data)),
        )
        return data

    # ---------- PRICES ----------

    async def get_price_snapshot(self, ticker: str) -> Any:
        return await self.request(ENDPOINT_PRICE_SNAPSHOT, {"ticker": ticker})

    async def get_historical_prices(
        self,
        ticker: str,
        start_date: str,
        end_date: str,
        interval: str = "day",
        interval_multiplier: int = 1,
    ) -> Any:
        return await self.request(
            ENDPOINT_PRICES,
            {
                "ticker": ticker,
                "interval": interval,
                "interval_multiplier": interval_multiplier,
                "start_date": start_date,
                "end_date": end_date,
            },
        )

    async def get_stock_prices(
        self,
        ticker: str,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
        interval: str = "day",
        interval_multiplier: int = 1,
    ) -> Dict[str, Any]:
        """
        Snapshot or historical prices, depending on which dates are given.

        Returns:
            {"ticker": ..., "snapshot": {...} | None, "historical": {...} | None}
            A date range selects the historical series; anything else a snapshot.
        """
        if start_date and end_date:
            historical = await self.get_historical_prices(
                ticker, start_date, end_date, interval, interval_multiplier
            )
            return {"ticker": ticker, "snapshot": None, "historical": historical}

        snapshot = await self.get_price_snapshot(ticker)
        return {"ticker": ticker, "snapshot": snapshot, "historical": None}

    # ---------- FINANCIAL STATEMENTS ----------

    async def _get_statements(
        self,
        endpoint: str,
        ticker: str,
        period: Optional[str] = None,
        limit: Optional[int] = None,
        report_period_lte: Optional[str] = None,
        report_period_gte: Optional[str] = None,
    ) -> Any:
        return await self.request(
            endpoint,
            {
                "ticker": ticker,
                "period": period or "ttm",
                "limit": limit,
                "report_period_lte": report_period_lte,
                "report_period_gte": report_period_gte,
            },
        )

    async def get_income_statements(self, ticker: str, **kwargs) -> Any:
        return await self._get_statements(ENDPOINT_INCOME_STATEMENTS, ticker, **kwargs)

    async def get_balance_sheets(self, ticker: str, **kwargs) -> Any:
        return await self._get_statements(ENDPOINT_BALANCE_SHEETS, ticker, **kwargs)

    async def get_cash_flow_statements(self, ticker: str, **kwargs) -> Any:
        return await self._get_statements(ENDPOINT_CASH_FLOW_STATEMENTS, ticker, **kwargs)

    async def get_financial_metrics(self, ticker: str, **kwargs) -> Any:
        return await self._get_statements(ENDPOINT_FINANCIAL_METRICS, ticker, **kwargs)

    # ---------- NEWS ----------

    async def get_news(self, ticker: str, limit: Optional[int] = None) -> Any:
        return await self.request(
            ENDPOINT_NEWS, {"ticker": ticker, "limit": limit if limit is not None else 5}
        )
