from typing import Any, Dict, List, Optional, Tuple

import httpx
import pytest

from app.agents.data_stream import DataStreamService
from app.clients.financial_datasets_client import FinancialDataClient

TEST_BASE_URL = "https://api.test"


class FakeFinancialApi:
    """In-memory Financial Datasets API behind an httpx.MockTransport."""

    def __init__(self):
        self.routes: Dict[Tuple[str, str, Optional[str]], Tuple[int, Any]] = {}
        self.requests: List[httpx.Request] = []

    def add(self, path: str, body: Any, status: int = 200, method: str = "GET", ticker: Optional[str] = None):
        self.routes[(method, path, ticker)] = (status, body)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        ticker = request.url.params.get("ticker")
        key = (request.method, request.url.path, ticker)
        if key not in self.routes:
            key = (request.method, request.url.path, None)
        if key not in self.routes:
            return httpx.Response(404, json={"error": "Not found"})
        status, body = self.routes[key]
        return httpx.Response(status, json=body)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def paths(self) -> List[str]:
        return [request.url.path for request in self.requests]


class RecordingSink:
    def __init__(self):
        self.deltas = []

    def write_data(self, delta):
        self.deltas.append(delta)

    def events(self, delta_type: Optional[str] = None) -> List[Dict[str, Any]]:
        events = [delta.to_dict() for delta in self.deltas]
        if delta_type:
            events = [event for event in events if event["type"] == delta_type]
        return events


def statement_payloads(ticker: str = "AAPL", **overrides) -> Dict[str, Dict[str, Any]]:
    """Latest-statement responses for a healthy company; overrides patch single fields."""
    income = {
        "ticker": ticker,
        "report_period": "2024-09-28",
        "revenue": 1000,
        "gross_profit": 500,
        "operating_income": 250,
        "net_income": 200,
    }
    balance = {
        "ticker": ticker,
        "report_period": "2024-09-28",
        "total_assets": 800,
        "shareholders_equity": 1000,
        "current_assets": 400,
        "current_liabilities": 100,
        "inventory": 0,
        "total_debt": 100,
    }
    cash_flow = {
        "ticker": ticker,
        "report_period": "2024-09-28",
        "net_cash_flow_from_operations": 300,
        "change_in_cash_and_equivalents": 50,
        "capital_expenditure": -100,
    }
    metrics = {"ticker": ticker, "report_period": "2024-09-28", "market_cap": 3.5e12}

    for key, value in overrides.items():
        for statement in (income, balance, cash_flow, metrics):
            if key in statement:
                statement[key] = value

    return {
        "/financials/income-statements/": {"income_statements": [income]},
        "/financials/balance-sheets/": {"balance_sheets": [balance]},
        "/financials/cash-flow-statements/": {"cash_flow_statements": [cash_flow]},
        "/financial-metrics/": {"financial_metrics": [metrics]},
    }


@pytest.fixture
def fake_api():
    return FakeFinancialApi()


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def data_stream(sink):
    return DataStreamService(sink)


@pytest.fixture
async def client(fake_api):
    async with FinancialDataClient("test-key", base_url=TEST_BASE_URL, transport=fake_api.transport) as c:
        yield c


@pytest.fixture
def add_statements(fake_api):
    def add(ticker: str = "AAPL", **overrides):
        for path, body in statement_payloads(ticker, **overrides).items():
            fake_api.add(path, body, ticker=ticker)

    return add
