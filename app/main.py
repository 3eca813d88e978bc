import asyncio
import json
import logging
from contextlib import suppress
from typing import Any, Callable, Dict, List, Optional
from uuid import uuid4

import httpx
from fastapi import Body, FastAPI, Header, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse
from langchain_core.messages import AIMessage, HumanMessage
from pydantic import BaseModel, Field, ValidationError

from app.agents.company_financials import NoFinancialDataError, fetch_company_financials
from app.agents.data_stream import DataStreamService, StreamChannel
from app.agents.financial_agent_graph import create_financial_agent_graph
from app.agents.financial_analysis import analyze_financial_health, compare_companies
from app.agents.financial_models import FinancialPeriod, TickerParams
from app.agents.financial_tools import FinancialToolsManager, UnknownToolError, get_tool_schemas, resolve_tool_name
from app.agents.session import SessionStore
from app.agents.tool_cache import ToolCallCache
from app.clients.financial_datasets_client import FinancialApiError, FinancialDataClient
from app.config import ApiKeyProvider, Config, EnvApiKeyProvider, configure_logging
from app.utils.error_handler import (
    ACTION_UPDATE_API_KEY,
    ErrorResult,
    create_error_response,
    handle_financial_api_error,
    handle_unexpected_error,
    handle_validation_error,
)
from app.utils.llm import get_tool_calling_llm

logger = logging.getLogger(__name__)

ModelFactory = Callable[[List[Any], Optional[str]], Any]


# Request model
class SessionRequest(BaseModel):
    session_id: Optional[str] = None
    message: str = Field(..., min_length=1)


def _missing_key_error() -> ErrorResult:
    return create_error_response(
        "🔑 Authentication failed",
        "No Financial Datasets API key is configured. Please add your API key in settings.",
        401,
        ACTION_UPDATE_API_KEY,
    )


def _error_response(error: ErrorResult) -> JSONResponse:
    return JSONResponse(error.to_dict(), status_code=error.status)


def _serialize_result(result: Any) -> Any:
    if isinstance(result, ErrorResult):
        return result.to_dict()
    return result


def _history_messages(history: List[Dict[str, str]]) -> List[Any]:
    messages = []
    for msg in history:
        if msg["role"] == "user":
            messages.append(HumanMessage(content=msg["content"]))
        elif msg["role"] == "assistant":
            messages.append(AIMessage(content=msg["content"]))
    return messages


def create_app(
    config: Optional[Config] = None,
    api_key_provider: Optional[ApiKeyProvider] = None,
    http_transport: Optional[httpx.AsyncBaseTransport] = None,
    model_factory: Optional[ModelFactory] = None,
) -> FastAPI:
    """
    Build the MONETRIX API.

    Args:
        config: Settings; read from the environment when omitted
        api_key_provider: Source of stored API keys (defaults to the config)
        http_transport: httpx transport for the financial data API (tests)
        model_factory: Builds the tool-bound chat model from (tools, api_key)
    """
    config = config or Config()
    configure_logging(config)
    keys = api_key_provider or EnvApiKeyProvider(config)

    def default_model_factory(tools: List[Any], api_key: Optional[str]) -> Any:
        return get_tool_calling_llm(config, tools, api_key=api_key)

    build_model = model_factory or default_model_factory

    sessions = SessionStore(ttl_seconds=config.SESSION_TTL_MINUTES * 60, max_sessions=config.MAX_SESSIONS)

    app = FastAPI(
        title="MONETRIX API",
        description="Financial data assistant with LLM tool calling",
        version="1.0.0",
    )
    app.state.config = config
    app.state.sessions = sessions

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Session-ID"],
    )

    def financial_api_key(header_key: Optional[str]) -> Optional[str]:
        return header_key or keys.get_api_key("financial-datasets")

    def data_client(api_key: str) -> FinancialDataClient:
        return FinancialDataClient(
            api_key,
            base_url=config.FINANCIAL_API_BASE_URL,
            timeout=config.HTTP_TIMEOUT_SECONDS,
            transport=http_transport,
        )

    def turn_cache() -> ToolCallCache:
        # Dedup is scoped to one request; history does not carry tool data
        return ToolCallCache(config.TOOL_CACHE_MAX_SIZE, config.TOOL_CACHE_EVICT_FRACTION)

    # Root endpoint
    @app.get("/")
    async def root():
        return {"message": "MONETRIX is running!", "docs": "/docs"}

    @app.get("/tools")
    async def list_tools():
        return {"tools": get_tool_schemas()}

    @app.post("/tools/{tool_name}")
    async def run_tool(
        tool_name: str,
        params: Optional[Dict[str, Any]] = Body(None),
        x_financial_datasets_key: Optional[str] = Header(None),
    ):
        try:
            name = resolve_tool_name(tool_name)
        except UnknownToolError as e:
            raise HTTPException(status_code=404, detail=str(e))

        api_key = financial_api_key(x_financial_datasets_key)
        if not api_key:
            return {"tool": name.value, "result": _missing_key_error().to_dict(), "events": []}

        channel = StreamChannel(config.STREAM_QUEUE_SIZE)
        async with data_client(api_key) as client:
            manager = FinancialToolsManager(client, turn_cache(), DataStreamService(channel))
            result = await manager.execute(name, params or {})

        return {
            "tool": name.value,
            "result": _serialize_result(result),
            "events": [delta.to_dict() for delta in channel.drain()],
        }

    @app.post("/chat/stream")
    async def chat_stream(
        request: SessionRequest,
        x_financial_datasets_key: Optional[str] = Header(None),
    ):
        google_key = keys.get_api_key("google")
        if not google_key and model_factory is None:
            try:
                config.validate(("GOOGLE_API_KEY",))
            except ValueError as e:
                raise HTTPException(status_code=503, detail=f"Chat model not configured: {e}")

        session = sessions.get_or_create(request.session_id)
        logger.info("Chat turn for session %s", session.session_id)

        history = session.messages + [{"role": "user", "content": request.message}]
        api_key = financial_api_key(x_financial_datasets_key) or ""

        channel = StreamChannel(config.STREAM_QUEUE_SIZE)
        stream = DataStreamService(channel)

        async def run_agent(client: FinancialDataClient):
            stream.send_user_message_id(str(uuid4()))
            stream.set_query_loading(True, message="Analyzing your question")
            try:
                manager = FinancialToolsManager(client, turn_cache(), stream)
                model = build_model(manager.as_langchain_tools(), google_key)
                graph = create_financial_agent_graph(model, manager, config.MAX_AGENT_STEPS)

                final_state = await graph.ainvoke({"messages": _history_messages(history)})
                session.messages.extend(
                    [
                        {"role": "user", "content": request.message},
                        {"role": "assistant", "content": final_state.get("answer", "")},
                    ]
                )
            except asyncio.CancelledError:
                logger.info("Chat turn cancelled for session %s", session.session_id)
                raise
            except Exception:
                logger.exception("Agent run failed for session %s", session.session_id)
                stream.send_error("The assistant failed to answer. Please try again.")
            finally:
                stream.set_query_loading(False)
                stream.finish()

        async def event_stream():
            async with data_client(api_key) as client:
                task = asyncio.create_task(run_agent(client))
                try:
                    async for delta in channel:
                        yield f"data: {json.dumps(delta.to_dict(), ensure_ascii=False, default=str)}\n\n"
                finally:
                    if not task.done():
                        task.cancel()
                    with suppress(asyncio.CancelledError):
                        await task
                    channel.detach()

        headers = {"X-Session-ID": session.session_id}
        return StreamingResponse(event_stream(), media_type="text/event-stream", headers=headers)

    @app.get("/companies/compare")
    async def company_comparison(
        tickers: str = Query(..., description="Two comma-separated tickers, e.g. AAPL,MSFT"),
        period: FinancialPeriod = FinancialPeriod.TTM,
        x_financial_datasets_key: Optional[str] = Header(None),
    ):
        symbols = [t for t in (s.strip() for s in tickers.split(",")) if t]
        if len(symbols) != 2:
            return _error_response(
                handle_validation_error(ValueError("exactly two tickers are required"), "compare companies")
            )
        try:
            symbols = [TickerParams(ticker=s).ticker for s in symbols]
        except ValidationError as e:
            return _error_response(handle_validation_error(e, "compare companies"))

        api_key = financial_api_key(x_financial_datasets_key)
        if not api_key:
            return _error_response(_missing_key_error())

        async with data_client(api_key) as client:
            try:
                first, second = await asyncio.gather(
                    fetch_company_financials(client, symbols[0], period.value),
                    fetch_company_financials(client, symbols[1], period.value),
                )
            except Exception as e:
                return _error_response(_classify_fetch_error(e, f"compare {symbols[0]} and {symbols[1]}"))

        return compare_companies(first, second).model_dump()

    @app.get("/companies/{ticker}/health")
    async def company_health(
        ticker: str,
        period: FinancialPeriod = FinancialPeriod.TTM,
        x_financial_datasets_key: Optional[str] = Header(None),
    ):
        try:
            symbol = TickerParams(ticker=ticker).ticker
        except ValidationError as e:
            return _error_response(handle_validation_error(e, "analyze financial health"))

        api_key = financial_api_key(x_financial_datasets_key)
        if not api_key:
            return _error_response(_missing_key_error())

        async with data_client(api_key) as client:
            try:
                financials = await fetch_company_financials(client, symbol, period.value)
            except Exception as e:
                return _error_response(_classify_fetch_error(e, f"analyze {symbol}"))

        analysis = analyze_financial_health(
            financials.income_statement,
            financials.balance_sheet,
            financials.cash_flow_statement,
            financials.metrics,
        )
        return analysis.model_dump()

    return app


def _classify_fetch_error(error: Exception, context: str) -> ErrorResult:
    if isinstance(error, FinancialApiError):
        return handle_financial_api_error(error, context)
    if isinstance(error, NoFinancialDataError):
        logger.warning("No financial data for %s: %s", context, error)
        return create_error_response(
            "🔍 Resource not found",
            f"{error}. Please check the ticker symbol or try a different period.",
            404,
        )
    return handle_unexpected_error(error, context)


app = create_app()

if __name__ == "__main__":
    import uvicorn

    uvicorn.run("app.main:app", host="0.0.0.0", port=8000, reload=app.state.config.is_development)
