"""
Financial agent state management.

Defines the FinancialAgentState passed between the nodes of the chat agent
graph. The state tracks:
- The conversation as LangChain messages (merged with the add_messages reducer)
- How many model turns have run, to bound tool-calling loops
- The final answer text
"""

from typing import Annotated, List

from langchain_core.messages import AnyMessage
from langgraph.graph.message import add_messages
from pydantic import BaseModel, Field


class FinancialAgentState(BaseModel):
    """
    State container for the financial chat agent.

    Attributes:
        messages: System, human, AI and tool messages of the conversation
        steps: Model invocations performed in the current turn
        answer: Final assistant text once the model stops calling tools
    """

    messages: Annotated[List[AnyMessage], add_messages] = Field(default_factory=list)
    steps: int = 0
    answer: str = ""
