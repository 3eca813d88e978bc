"""
Typed models for the financial tools.

Two groups live here:
- Tool parameter models: the input contract the LLM must satisfy. Validation
  happens before any network call, so malformed input never reaches the API.
- Statement snapshots: the subset of API fields the analysis engine reads.
  Missing or null numbers are read as 0 so ratio math never sees None.
"""

from enum import Enum
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

ISO_DATE_PATTERN = r"^\d{4}-\d{2}-\d{2}$"

# Fields accepted by the stock screener endpoint
VALID_STOCK_SEARCH_FILTERS = (
    "revenue",
    "cost_of_revenue",
    "gross_profit",
    "operating_expense",
    "operating_income",
    "net_income",
    "earnings_per_share",
    "total_assets",
    "total_liabilities",
    "shareholders_equity",
    "current_assets",
    "current_liabilities",
    "cash_and_equivalents",
    "total_debt",
    "free_cash_flow",
    "net_cash_flow_from_operations",
    "capital_expenditure",
    "market_cap",
    "enterprise_value",
    "price_to_earnings_ratio",
    "price_to_book_ratio",
    "price_to_sales_ratio",
    "return_on_equity",
    "return_on_assets",
    "debt_to_equity",
    "gross_margin",
    "operating_margin",
    "net_margin",
    "revenue_growth",
    "earnings_growth",
)


class FinancialPeriod(str, Enum):
    QUARTERLY = "quarterly"
    ANNUAL = "annual"
    TTM = "ttm"


class PriceInterval(str, Enum):
    SECOND = "second"
    MINUTE = "minute"
    DAY = "day"
    WEEK = "week"
    MONTH = "month"
    YEAR = "year"


class TickerParams(BaseModel):
    model_config = ConfigDict(use_enum_values=True)

    ticker: str = Field(..., min_length=1, max_length=10, description="The ticker symbol of the company")

    @field_validator("ticker", mode="before")
    @classmethod
    def normalize_ticker(cls, value):
        if isinstance(value, str):
            return value.strip().upper()
        return value


class FinancialStatementParams(TickerParams):
    period: FinancialPeriod = Field(FinancialPeriod.TTM, description="The reporting period to return")
    limit: int = Field(1, ge=1, le=100, description="The number of reports to return")
    report_period_lte: Optional[str] = Field(
        None,
        pattern=ISO_DATE_PATTERN,
        description="Only reports on or before this date (YYYY-MM-DD). This lets us bound the data by date.",
    )
    report_period_gte: Optional[str] = Field(
        None,
        pattern=ISO_DATE_PATTERN,
        description="Only reports on or after this date (YYYY-MM-DD). This lets us bound the data by date.",
    )


class StockPriceParams(TickerParams):
    start_date: Optional[str] = Field(
        None, pattern=ISO_DATE_PATTERN, description="The start date for historical prices (YYYY-MM-DD)"
    )
    end_date: Optional[str] = Field(
        None, pattern=ISO_DATE_PATTERN, description="The end date for historical prices (YYYY-MM-DD)"
    )
    interval: PriceInterval = Field(PriceInterval.DAY, description="The interval between price points")
    interval_multiplier: int = Field(1, ge=1, description="The multiplier for the interval")

    @property
    def is_historical(self) -> bool:
        return bool(self.start_date and self.end_date)


class NewsParams(TickerParams):
    limit: int = Field(5, ge=1, le=100, description="The number of news articles to return")


class StockSearchFilter(BaseModel):
    field: str = Field(..., description="The financial field to filter on")
    operator: Literal["gt", "gte", "lt", "lte", "eq"]
    value: float

    @field_validator("field")
    @classmethod
    def check_field(cls, value: str) -> str:
        if value not in VALID_STOCK_SEARCH_FILTERS:
            raise ValueError(f"unsupported filter field '{value}'")
        return value


class StockSearchParams(BaseModel):
    model_config = ConfigDict(use_enum_values=True)

    filters: List[StockSearchFilter] = Field(..., min_length=1, description="The filters to search for")
    period: FinancialPeriod = Field(FinancialPeriod.TTM, description="The period of the financial metrics to screen")
    limit: int = Field(5, ge=1, le=100, description="The number of stocks to return")
    order_by: Literal["-report_period", "report_period"] = Field(
        "-report_period", description="The order of the stocks to return"
    )


# ---------- STATEMENT SNAPSHOTS ----------


class _Statement(BaseModel):
    model_config = ConfigDict(extra="ignore")

    ticker: str = ""
    report_period: str = ""

    @field_validator("*", mode="before")
    @classmethod
    def none_as_zero(cls, value, info):
        if value is None and info.field_name not in ("ticker", "report_period"):
            return 0.0
        return value


class IncomeStatement(_Statement):
    revenue: float = 0.0
    cost_of_revenue: float = 0.0
    gross_profit: float = 0.0
    operating_expense: float = 0.0
    operating_income: float = 0.0
    net_income: float = 0.0
    earnings_per_share: float = 0.0
    earnings_per_share_diluted: float = 0.0
    weighted_average_shares: float = 0.0


class BalanceSheet(_Statement):
    total_assets: float = 0.0
    total_liabilities: float = 0.0
    shareholders_equity: float = 0.0
    current_assets: float = 0.0
    current_liabilities: float = 0.0
    cash_and_equivalents: float = 0.0
    inventory: float = 0.0
    total_debt: float = 0.0


class CashFlowStatement(_Statement):
    net_cash_flow_from_operations: float = 0.0
    net_cash_flow_from_investing: float = 0.0
    net_cash_flow_from_financing: float = 0.0
    change_in_cash_and_equivalents: float = 0.0
    capital_expenditure: float = 0.0
    depreciation_and_amortization: float = 0.0


class FinancialMetrics(_Statement):
    market_cap: float = 0.0
    enterprise_value: float = 0.0
    price_to_earnings_ratio: float = 0.0
    price_to_book_ratio: float = 0.0
    price_to_sales_ratio: float = 0.0
    debt_to_equity: float = 0.0
    return_on_equity: float = 0.0
    return_on_assets: float = 0.0


class CompanyFinancials(BaseModel):
    income_statement: IncomeStatement
    balance_sheet: BalanceSheet
    cash_flow_statement: CashFlowStatement = Field(default_factory=CashFlowStatement)
    metrics: FinancialMetrics = Field(default_factory=FinancialMetrics)
