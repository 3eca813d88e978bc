"""
Statement fetching for the analysis endpoints.

Pulls the latest income statement, balance sheet, cash-flow statement and
metrics for a ticker concurrently and parses them into the snapshot models the
analysis engine reads. API errors propagate as FinancialApiError for the
caller to classify.
"""

import asyncio
import logging
from typing import Any, Type, TypeVar

from pydantic import BaseModel

from app.agents.financial_models import (
    BalanceSheet,
    CashFlowStatement,
    CompanyFinancials,
    FinancialMetrics,
    IncomeStatement,
)
from app.clients.financial_datasets_client import FinancialDataClient

logger = logging.getLogger(__name__)

StatementT = TypeVar("StatementT", bound=BaseModel)


class NoFinancialDataError(LookupError):
    def __init__(self, ticker: str, statement: str):
        super().__init__(f"No {statement} available for {ticker}")
        self.ticker = ticker
        self.statement = statement


def latest_statement(payload: Any, key: str, model: Type[StatementT], ticker: str) -> StatementT:
    rows = payload.get(key) if isinstance(payload, dict) else None
    if not rows:
        raise NoFinancialDataError(ticker, key.replace("_", " "))
    statement = model.model_validate(rows[0])
    if not getattr(statement, "ticker", None):
        statement.ticker = ticker
    return statement


async def fetch_company_financials(client: FinancialDataClient, ticker: str, period: str = "ttm") -> CompanyFinancials:
    income, balance, cash_flow, metrics = await asyncio.gather(
        client.get_income_statements(ticker, period=period, limit=1),
        client.get_balance_sheets(ticker, period=period, limit=1),
        client.get_cash_flow_statements(ticker, period=period, limit=1),
        client.get_financial_metrics(ticker, period=period, limit=1),
    )
    logger.debug("Fetched statements for %s (%s)", ticker, period)

    return CompanyFinancials(
        income_statement=latest_statement(income, "income_statements", IncomeStatement, ticker),
        balance_sheet=latest_statement(balance, "balance_sheets", BalanceSheet, ticker),
        cash_flow_statement=latest_statement(cash_flow, "cash_flow_statements", CashFlowStatement, ticker),
        metrics=latest_statement(metrics, "financial_metrics", FinancialMetrics, ticker),
    )
