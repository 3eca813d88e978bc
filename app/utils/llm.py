from typing import List, Optional

from langchain_core.tools import BaseTool
from langchain_google_genai import ChatGoogleGenerativeAI

from app.config import Config


def get_llm(
    config: Config,
    model: Optional[str] = None,
    temperature: Optional[float] = None,
    max_tokens: Optional[int] = None,
    api_key: Optional[str] = None,
) -> ChatGoogleGenerativeAI:
    """Gemini chat model configured from `config`; arguments override it."""
    return ChatGoogleGenerativeAI(
        model=model or config.CHAT_MODEL,
        api_key=api_key or config.GOOGLE_API_KEY,
        temperature=config.TEMPERATURE if temperature is None else temperature,
        max_tokens=max_tokens or config.MAX_TOKENS,
        timeout=config.HTTP_TIMEOUT_SECONDS,
    )


def get_tool_calling_llm(config: Config, tools: List[BaseTool], api_key: Optional[str] = None):
    """Chat model bound to the financial tools, for the agent graph"""
    return get_llm(config, api_key=api_key).bind_tools(tools)
