"""
Financial tools exposed to the LLM.

FinancialToolsManager owns the fixed catalog of seven tools. Each tool is a
ToolDescriptor (name, description, parameter model, executor) and every call
goes through the same pipeline in `execute`:

    1. validate parameters against the tool's pydantic model
    2. skip silently (return None) if the same call already ran this session
    3. announce tool-loading=true on the data stream
    4. call the Financial Datasets API
    5. announce tool-loading=false and return the payload unchanged
    6. on failure, announce tool-loading=false and return a classified ErrorResult

The manager is the error containment boundary: API, transport and validation
failures come back as ErrorResult values, never as exceptions. The only
exception that passes through is asyncio.CancelledError, after loading state
has been cleared.
"""

import asyncio
import json
import logging
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Type, Union

from langchain_core.tools import StructuredTool
from pydantic import BaseModel, ValidationError

from app.agents.data_stream import DataStreamService
from app.agents.financial_models import (
    FinancialStatementParams,
    NewsParams,
    StockPriceParams,
    StockSearchParams,
)
from app.agents.tool_cache import ToolCallCache
from app.clients.financial_datasets_client import FinancialApiError, FinancialDataClient
from app.utils.error_handler import (
    ErrorResult,
    handle_financial_api_error,
    handle_unexpected_error,
    handle_validation_error,
)

logger = logging.getLogger(__name__)

DUPLICATE_CALL_NOTE = "Skipped: this exact data was already fetched earlier in the conversation."


class ToolName(str, Enum):
    GET_STOCK_PRICES = "getStockPrices"
    GET_INCOME_STATEMENTS = "getIncomeStatements"
    GET_BALANCE_SHEETS = "getBalanceSheets"
    GET_CASH_FLOW_STATEMENTS = "getCashFlowStatements"
    GET_FINANCIAL_METRICS = "getFinancialMetrics"
    SEARCH_STOCKS_BY_FILTERS = "searchStocksByFilters"
    GET_NEWS = "getNews"


class UnknownToolError(LookupError):
    pass


Executor = Callable[[Dict[str, Any]], Awaitable[Any]]


@dataclass(frozen=True)
class ToolSpec:
    name: ToolName
    description: str
    args_schema: Type[BaseModel]

    def to_json_schema(self) -> Dict[str, Any]:
        return {
            "name": self.name.value,
            "description": self.description,
            "parameters": self.args_schema.model_json_schema(),
        }


@dataclass(frozen=True)
class ToolDescriptor:
    spec: ToolSpec
    executor: Executor

    @property
    def name(self) -> ToolName:
        return self.spec.name

    @property
    def description(self) -> str:
        return self.spec.description

    @property
    def args_schema(self) -> Type[BaseModel]:
        return self.spec.args_schema


TOOL_SPECS: Dict[ToolName, ToolSpec] = {
    spec.name: spec
    for spec in (
        ToolSpec(
            ToolName.GET_STOCK_PRICES,
            "Get stock prices for a company. Omit the dates for the current price snapshot, "
            "or pass start_date and end_date for historical prices over a date range.",
            StockPriceParams,
        ),
        ToolSpec(ToolName.GET_INCOME_STATEMENTS, "Get the income statements of a company", FinancialStatementParams),
        ToolSpec(ToolName.GET_BALANCE_SHEETS, "Get the balance sheets of a company", FinancialStatementParams),
        ToolSpec(
            ToolName.GET_CASH_FLOW_STATEMENTS, "Get the cash flow statements of a company", FinancialStatementParams
        ),
        ToolSpec(
            ToolName.GET_FINANCIAL_METRICS,
            "Get the financial metrics of a company. These financial metrics are derived metrics "
            "like P/E ratio, operating income, etc. that cannot be found in the income statement, "
            "balance sheet, or cash flow statement.",
            FinancialStatementParams,
        ),
        ToolSpec(
            ToolName.SEARCH_STOCKS_BY_FILTERS,
            "Search for stocks based on financial criteria filters. You can filter stocks by "
            "various financial metrics like revenue, net income, market cap, etc.",
            StockSearchParams,
        ),
        ToolSpec(
            ToolName.GET_NEWS,
            "Use this tool to get news and latest events for a company. This tool will return a "
            "list of news articles and events for a company. When using this tool, include dates "
            "in your output.",
            NewsParams,
        ),
    )
}


def get_tool_schemas() -> List[Dict[str, Any]]:
    """JSON schemas of the whole catalog, in declaration order."""
    return [spec.to_json_schema() for spec in TOOL_SPECS.values()]


def generate_call_id(tool_name: str) -> str:
    """Correlates the loading=true/false pair of one invocation."""
    return f"{tool_name}_{uuid.uuid4().hex[:8]}"


def resolve_tool_name(tool_name: Union[str, ToolName]) -> ToolName:
    try:
        return ToolName(tool_name)
    except ValueError:
        raise UnknownToolError(f"Unknown financial tool: {tool_name}") from None


class FinancialToolsManager:
    """
    Catalog and executor for the financial tools of one conversation.

    Args:
        data_client: Financial Datasets API client
        tool_cache: Duplicate-call cache for one request or chat turn
        data_stream: Where loading state is published
    """

    def __init__(
        self,
        data_client: FinancialDataClient,
        tool_cache: Optional[ToolCallCache] = None,
        data_stream: Optional[DataStreamService] = None,
    ):
        self.data_client = data_client
        self.tool_cache = tool_cache if tool_cache is not None else ToolCallCache()
        self.data_stream = data_stream if data_stream is not None else DataStreamService()
        self._tools = self._build_catalog()

    # ---------- CATALOG ----------

    def _build_catalog(self) -> Dict[ToolName, ToolDescriptor]:
        executors: Dict[ToolName, Executor] = {
            ToolName.GET_STOCK_PRICES: self._get_stock_prices,
            ToolName.GET_INCOME_STATEMENTS: self._get_income_statements,
            ToolName.GET_BALANCE_SHEETS: self._get_balance_sheets,
            ToolName.GET_CASH_FLOW_STATEMENTS: self._get_cash_flow_statements,
            ToolName.GET_FINANCIAL_METRICS: self._get_financial_metrics,
            ToolName.SEARCH_STOCKS_BY_FILTERS: self._search_stocks_by_filters,
            ToolName.GET_NEWS: self._get_news,
        }

        missing = [name.value for name in ToolName if name not in executors or name not in TOOL_SPECS]
        if missing:
            raise RuntimeError(f"Financial tools without a spec or executor: {missing}")

        return {name: ToolDescriptor(TOOL_SPECS[name], executors[name]) for name in ToolName}

    def get_tool(self, tool_name: Union[str, ToolName]) -> ToolDescriptor:
        return self._tools[resolve_tool_name(tool_name)]

    def get_tool_schemas(self) -> List[Dict[str, Any]]:
        return [descriptor.spec.to_json_schema() for descriptor in self._tools.values()]

    # ---------- EXECUTION ----------

    async def execute(
        self,
        tool_name: Union[str, ToolName],
        params: Optional[Dict[str, Any]] = None,
        call_id: Optional[str] = None,
    ) -> Any:
        """
        Run one tool call through validation, dedup, loading state and the API.

        Returns:
            The API payload, an ErrorResult, or None when the identical call
            already ran in this session.

        Raises:
            UnknownToolError: tool_name is not part of the catalog
        """
        descriptor = self.get_tool(tool_name)
        name = descriptor.name.value

        try:
            validated = descriptor.args_schema.model_validate(params or {})
        except ValidationError as e:
            return handle_validation_error(e, name)

        normalized = validated.model_dump(mode="json", exclude_none=True)

        if not self.tool_cache.should_execute(name, normalized):
            logger.debug("Skipping duplicate %s call: %s", name, normalized)
            return None

        call_id = call_id or generate_call_id(name)
        self.data_stream.set_tool_loading(name, True, call_id=call_id)

        try:
            result = await descriptor.executor(normalized)
        except asyncio.CancelledError:
            self.data_stream.set_tool_loading(name, False, message="cancelled", call_id=call_id)
            raise
        except FinancialApiError as e:
            self.data_stream.set_tool_loading(name, False, call_id=call_id)
            return handle_financial_api_error(e, name)
        except Exception as e:
            self.data_stream.set_tool_loading(name, False, call_id=call_id)
            return handle_unexpected_error(e, f"execute {name}")

        self.data_stream.set_tool_loading(name, False, call_id=call_id)
        logger.debug("%s executed successfully params_length=%d", name, len(json.dumps(normalized)))
        return result

    # ---------- EXECUTORS ----------

    async def _get_stock_prices(self, params: Dict[str, Any]) -> Any:
        return await self.data_client.get_stock_prices(**params)

    async def _get_income_statements(self, params: Dict[str, Any]) -> Any:
        return await self.data_client.get_income_statements(**params)

    async def _get_balance_sheets(self, params: Dict[str, Any]) -> Any:
        return await self.data_client.get_balance_sheets(**params)

    async def _get_cash_flow_statements(self, params: Dict[str, Any]) -> Any:
        return await self.data_client.get_cash_flow_statements(**params)

    async def _get_financial_metrics(self, params: Dict[str, Any]) -> Any:
        return await self.data_client.get_financial_metrics(**params)

    async def _search_stocks_by_filters(self, params: Dict[str, Any]) -> Any:
        return await self.data_client.search_stocks(
            filters=params["filters"],
            period=params.get("period"),
            limit=params.get("limit"),
            order_by=params.get("order_by"),
        )

    async def _get_news(self, params: Dict[str, Any]) -> Any:
        return await self.data_client.get_news(**params)

    # ---------- ADMIN ----------

    def clear_cache(self) -> None:
        self.tool_cache.clear()

    def get_cache_stats(self) -> Dict[str, int]:
        return {"size": self.tool_cache.size, "max_size": self.tool_cache.max_size}

    # ---------- LANGCHAIN ----------

    def as_langchain_tools(self) -> List[StructuredTool]:
        """The catalog as LangChain tools, for binding to a chat model."""
        return [self._to_structured_tool(descriptor) for descriptor in self._tools.values()]

    def _to_structured_tool(self, descriptor: ToolDescriptor) -> StructuredTool:
        async def _run(**kwargs):
            return to_tool_message_content(await self.execute(descriptor.name, kwargs))

        return StructuredTool.from_function(
            coroutine=_run,
            name=descriptor.name.value,
            description=descriptor.description,
            args_schema=descriptor.args_schema,
        )


def to_tool_message_content(result: Any) -> str:
    """Serialize a tool result for the model's ToolMessage."""
    if result is None:
        return DUPLICATE_CALL_NOTE
    if isinstance(result, ErrorResult):
        return json.dumps(result.to_dict(), ensure_ascii=False)
    return json.dumps(result, ensure_ascii=False, default=str)
