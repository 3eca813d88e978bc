import asyncio
import json

import httpx
import pytest
from langchain_core.messages import AIMessage, HumanMessage, SystemMessage, ToolMessage

from app.agents.financial_agent_graph import STEP_LIMIT_ANSWER, create_financial_agent_graph
from app.agents.financial_tools import DUPLICATE_CALL_NOTE, FinancialToolsManager
from app.clients.financial_datasets_client import FinancialDataClient


class ScriptedModel:
    """Stands in for a tool-bound chat model; replays canned responses."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.calls = []

    async def ainvoke(self, messages):
        self.calls.append(list(messages))
        return self.responses.pop(0)


def tool_call(name, args, call_id):
    return AIMessage(content="", tool_calls=[{"name": name, "args": args, "id": call_id}])


@pytest.fixture
def manager(client, data_stream):
    return FinancialToolsManager(client, data_stream=data_stream)


async def test_tool_call_then_answer(fake_api, manager, sink):
    fake_api.add("/financials/income-statements/", {"income_statements": [{"ticker": "AAPL", "revenue": 100}]})
    model = ScriptedModel(
        tool_call("getIncomeStatements", {"ticker": "AAPL"}, "call_1"),
        AIMessage(content="Apple's revenue was 100."),
    )
    graph = create_financial_agent_graph(model, manager)

    result = await graph.ainvoke({"messages": [HumanMessage(content="What was Apple's revenue?")]})

    assert result["answer"] == "Apple's revenue was 100."
    assert isinstance(model.calls[0][0], SystemMessage)

    tool_messages = [m for m in model.calls[1] if isinstance(m, ToolMessage)]
    assert len(tool_messages) == 1
    assert tool_messages[0].tool_call_id == "call_1"
    assert json.loads(tool_messages[0].content) == {"income_statements": [{"ticker": "AAPL", "revenue": 100}]}

    types = [event["type"] for event in sink.events()]
    assert types == ["tool-loading", "tool-loading", "tool-result", "text-delta"]
    tool_result = sink.events("tool-result")[0]["content"]
    assert tool_result["call_id"] == "call_1"
    assert tool_result["result"]["component"] == "financials-table"
    assert sink.events("tool-loading")[0]["content"]["call_id"] == "call_1"
    assert sink.events("text-delta")[0]["content"] == "Apple's revenue was 100."


async def test_api_error_is_fed_back_to_model(fake_api, manager, sink):
    fake_api.add("/news/", {"error": "no credits"}, status=402)
    model = ScriptedModel(
        tool_call("getNews", {"ticker": "AAPL"}, "call_1"),
        AIMessage(content="Your data credits ran out."),
    )
    graph = create_financial_agent_graph(model, manager)

    result = await graph.ainvoke({"messages": [HumanMessage(content="Apple news?")]})

    assert result["answer"] == "Your data credits ran out."
    tool_message = next(m for m in model.calls[1] if isinstance(m, ToolMessage))
    assert json.loads(tool_message.content)["status"] == 402
    assert sink.events("tool-result")[0]["content"]["result"]["component"] == "api-error"


async def test_unknown_tool_is_reported_to_model(manager, sink):
    model = ScriptedModel(
        tool_call("getWeather", {"city": "Paris"}, "call_1"),
        AIMessage(content="I can only look up financial data."),
    )
    graph = create_financial_agent_graph(model, manager)

    result = await graph.ainvoke({"messages": [HumanMessage(content="Weather?")]})

    assert result["answer"] == "I can only look up financial data."
    tool_message = next(m for m in model.calls[1] if isinstance(m, ToolMessage))
    assert tool_message.status == "error"
    assert "getWeather" in tool_message.content
    assert sink.events("tool-loading") == []


async def test_step_limit_stops_tool_loop(fake_api, manager, sink):
    fake_api.add("/news/", {"news": []})
    model = ScriptedModel(
        tool_call("getNews", {"ticker": "AAPL"}, "call_1"),
        tool_call("getNews", {"ticker": "AAPL"}, "call_2"),
    )
    graph = create_financial_agent_graph(model, manager, max_steps=2)

    result = await graph.ainvoke({"messages": [HumanMessage(content="News?")]})

    assert result["answer"] == STEP_LIMIT_ANSWER
    assert len(model.calls) == 2
    assert len(fake_api.requests) == 1
    assert sink.events("text-delta")[-1]["content"] == STEP_LIMIT_ANSWER


async def test_repeated_call_is_not_refetched(fake_api, manager, sink):
    fake_api.add("/news/", {"news": []})
    model = ScriptedModel(
        tool_call("getNews", {"ticker": "AAPL"}, "call_1"),
        tool_call("getNews", {"ticker": "aapl", "limit": 5}, "call_2"),
        AIMessage(content="No news."),
    )
    graph = create_financial_agent_graph(model, manager)

    await graph.ainvoke({"messages": [HumanMessage(content="News?")]})

    assert len(fake_api.requests) == 1
    duplicate = [m for m in model.calls[2] if isinstance(m, ToolMessage)][-1]
    assert duplicate.content == DUPLICATE_CALL_NOTE
    assert len(sink.events("tool-result")) == 1


async def test_tool_calls_of_one_turn_run_concurrently(data_stream, sink):
    started = []
    both_started = asyncio.Event()

    async def handler(request):
        started.append(request.url.params["ticker"])
        if len(started) == 2:
            both_started.set()
        await asyncio.wait_for(both_started.wait(), timeout=2)
        return httpx.Response(200, json={"news": [{"title": request.url.params["ticker"]}]})

    model = ScriptedModel(
        AIMessage(
            content="",
            tool_calls=[
                {"name": "getNews", "args": {"ticker": "AAPL"}, "id": "call_aapl"},
                {"name": "getNews", "args": {"ticker": "MSFT"}, "id": "call_msft"},
            ],
        ),
        AIMessage(content="Both have news."),
    )

    async with FinancialDataClient("k", base_url="https://api.test", transport=httpx.MockTransport(handler)) as client:
        graph = create_financial_agent_graph(model, FinancialToolsManager(client, data_stream=data_stream))
        await graph.ainvoke({"messages": [HumanMessage(content="AAPL and MSFT news?")]})

    tool_messages = [m for m in model.calls[1] if isinstance(m, ToolMessage)]
    assert [m.tool_call_id for m in tool_messages] == ["call_aapl", "call_msft"]
    assert [json.loads(m.content)["news"][0]["title"] for m in tool_messages] == ["AAPL", "MSFT"]

    loading = [e["content"] for e in sink.events("tool-loading")]
    assert [e["isLoading"] for e in loading[:2]] == [True, True]
    for call_id in ("call_aapl", "call_msft"):
        assert [e["isLoading"] for e in loading if e["call_id"] == call_id] == [True, False]
