"""
Financial agent workflow graph using LangGraph.

The chat model drives the conversation and decides when to call the financial
tools. The graph loops:

1. call_model: the tool-bound chat model answers or requests tool calls
2. run_tools: every requested call runs through FinancialToolsManager
   (dedup, loading state, API call, error classification) and the results are
   fed back as ToolMessages
3. back to call_model until the model answers without tool calls or the step
   budget is spent

Text and rendered tool results are pushed to the manager's data stream as
they become available.
"""

import asyncio
import logging
from typing import Any, Dict, List

from langchain_core.messages import AIMessage, SystemMessage, ToolMessage
from langgraph.graph import END, StateGraph

from app.agents.financial_agent_state import FinancialAgentState
from app.agents.financial_tools import (
    FinancialToolsManager,
    UnknownToolError,
    generate_call_id,
    to_tool_message_content,
)
from app.utils.tool_results import render_tool_result

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are MONETRIX, a professional AI financial analyst. Use the available tools to fetch "
    "stock prices, financial statements, financial metrics, stock screens and news before "
    "answering questions about specific companies. Report figures exactly as the tools return "
    "them and include dates for news. If a tool returns an error, explain it to the user and "
    "mention any action required."
)

STEP_LIMIT_ANSWER = "I stopped after several data lookups without reaching an answer. Please narrow the question."


def _message_text(message: AIMessage) -> str:
    content = message.content
    if isinstance(content, str):
        return content
    # Gemini may return a list of content parts
    parts = []
    for part in content:
        if isinstance(part, str):
            parts.append(part)
        elif isinstance(part, dict) and part.get("type") == "text":
            parts.append(part.get("text", ""))
    return "".join(parts)


def create_financial_agent_graph(model: Any, tools_manager: FinancialToolsManager, max_steps: int = 8):
    """
    Create and compile the chat agent workflow.

    Args:
        model: Chat model already bound to the catalog's tools
            (anything with an async `ainvoke(messages) -> AIMessage`)
        tools_manager: Executes tool calls for this conversation
        max_steps: Maximum model invocations per turn

    Returns:
        Compiled LangGraph workflow
    """
    stream = tools_manager.data_stream

    async def call_model(state: FinancialAgentState) -> Dict[str, Any]:
        messages = list(state.messages)
        if not messages or not isinstance(messages[0], SystemMessage):
            messages.insert(0, SystemMessage(content=SYSTEM_PROMPT))

        response = await model.ainvoke(messages)
        update: Dict[str, Any] = {"messages": [response], "steps": state.steps + 1}

        if not getattr(response, "tool_calls", None):
            answer = _message_text(response)
            if answer:
                stream.send_text_delta(answer)
            update["answer"] = answer
        return update

    async def run_tool_call(call: Dict[str, Any]) -> ToolMessage:
        name = call["name"]
        call_id = call.get("id") or generate_call_id(name)
        try:
            result = await tools_manager.execute(name, call.get("args") or {}, call_id=call_id)
        except UnknownToolError as e:
            logger.warning("Model requested unknown tool %s", name)
            return ToolMessage(content=str(e), tool_call_id=call_id, name=name, status="error")

        rendered = render_tool_result(name, result)
        if rendered is not None:
            stream.send_tool_result(name, call_id, rendered)

        return ToolMessage(content=to_tool_message_content(result), tool_call_id=call_id, name=name)

    async def run_tools(state: FinancialAgentState) -> Dict[str, List[ToolMessage]]:
        # Calls of one model turn run concurrently; results keep the requested order
        tool_messages = await asyncio.gather(*(run_tool_call(call) for call in state.messages[-1].tool_calls))
        return {"messages": list(tool_messages)}

    def stop_at_step_limit(state: FinancialAgentState) -> Dict[str, Any]:
        logger.warning("Agent hit the step limit (%d) without a final answer", max_steps)
        stream.send_text_delta(STEP_LIMIT_ANSWER)
        return {"answer": STEP_LIMIT_ANSWER}

    # === ROUTING LOGIC ===

    def route_after_model(state: FinancialAgentState) -> str:
        last = state.messages[-1]
        if not getattr(last, "tool_calls", None):
            return END
        if state.steps >= max_steps:
            return "step_limit"
        return "run_tools"

    workflow = StateGraph(FinancialAgentState)
    workflow.add_node("call_model", call_model)
    workflow.add_node("run_tools", run_tools)
    workflow.add_node("step_limit", stop_at_step_limit)

    workflow.set_entry_point("call_model")
    workflow.add_conditional_edges(
        "call_model",
        route_after_model,
        {"run_tools": "run_tools", "step_limit": "step_limit", END: END},
    )
    workflow.add_edge("run_tools", "call_model")
    workflow.add_edge("step_limit", END)

    return workflow.compile()
