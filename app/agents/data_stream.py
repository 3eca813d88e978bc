"""
Live UI updates for a chat turn.

DataStreamService turns state changes (tool loading, text deltas, tool
results, ...) into `{"type": ..., "content": ...}` envelopes and hands them to
a sink. StreamChannel is the sink used by the HTTP layer: a bounded queue with
an explicit attached/detached state that the SSE response drains.

Publishing is fire-and-forget. A missing, detached or full sink degrades to a
logged warning; writers are never blocked and never see an exception.
"""

import asyncio
import logging
from enum import Enum
from typing import Any, AsyncIterator, List, Optional, Protocol

from pydantic import BaseModel

logger = logging.getLogger(__name__)


class DeltaType(str, Enum):
    TOOL_LOADING = "tool-loading"
    QUERY_LOADING = "query-loading"
    TEXT_DELTA = "text-delta"
    CODE_DELTA = "code-delta"
    TITLE = "title"
    USER_MESSAGE_ID = "user-message-id"
    ID = "id"
    KIND = "kind"
    SUGGESTION = "suggestion"
    TOOL_RESULT = "tool-result"
    ERROR = "error"
    CLEAR = "clear"
    FINISH = "finish"


class ToolLoadingContent(BaseModel):
    tool: str
    isLoading: bool
    message: Optional[str] = None
    call_id: Optional[str] = None


class QueryLoadingContent(BaseModel):
    isLoading: bool
    taskNames: List[str] = []
    message: Optional[str] = None


class DataStreamDelta(BaseModel):
    type: DeltaType
    content: Any

    def to_dict(self) -> dict:
        content = self.content
        if isinstance(content, BaseModel):
            content = content.model_dump(exclude_none=True)
        return {"type": self.type.value, "content": content}


class DataStreamSink(Protocol):
    def write_data(self, delta: DataStreamDelta) -> Any:
        ...


class StreamChannel:
    """Bounded queue of deltas with explicit consumer attachment."""

    def __init__(self, max_size: int = 1000):
        self._queue: "asyncio.Queue[Optional[DataStreamDelta]]" = asyncio.Queue(maxsize=max_size)
        self._attached = True
        self.dropped = 0

    @property
    def attached(self) -> bool:
        return self._attached

    def write_data(self, delta: DataStreamDelta) -> bool:
        if not self._attached:
            logger.warning("Stream detached, dropping %s delta", delta.type.value)
            self.dropped += 1
            return False
        try:
            self._queue.put_nowait(delta)
        except asyncio.QueueFull:
            logger.warning("Stream queue full, dropping %s delta", delta.type.value)
            self.dropped += 1
            return False
        return True

    def detach(self) -> None:
        """Stop accepting deltas and wake the consumer."""
        if not self._attached:
            return
        self._attached = False
        try:
            self._queue.put_nowait(None)
        except asyncio.QueueFull:
            # Consumer will notice the detached flag once it drains the queue
            pass

    def drain(self) -> List[DataStreamDelta]:
        """Everything queued so far, without waiting."""
        deltas = []
        while not self._queue.empty():
            delta = self._queue.get_nowait()
            if delta is not None:
                deltas.append(delta)
        return deltas

    async def __aiter__(self) -> AsyncIterator[DataStreamDelta]:
        while True:
            if not self._attached and self._queue.empty():
                return
            delta = await self._queue.get()
            if delta is None:
                return
            yield delta
            if delta.type is DeltaType.FINISH:
                return


class DataStreamService:
    """Publishes typed deltas to an injected sink."""

    def __init__(self, sink: Optional[DataStreamSink] = None):
        self._sink = sink

    def write_data(self, delta: DataStreamDelta) -> None:
        write = getattr(self._sink, "write_data", None)
        if write is None:
            logger.warning("Stream not available for writing data: %s", delta.to_dict())
            return
        try:
            write(delta)
        except Exception:
            logger.warning("Stream sink rejected %s delta", delta.type.value, exc_info=True)

    def set_tool_loading(
        self,
        tool: str,
        is_loading: bool,
        message: Optional[str] = None,
        call_id: Optional[str] = None,
    ) -> None:
        content = ToolLoadingContent(tool=tool, isLoading=is_loading, message=message, call_id=call_id)
        self.write_data(DataStreamDelta(type=DeltaType.TOOL_LOADING, content=content))

    def set_query_loading(
        self, is_loading: bool, task_names: Optional[List[str]] = None, message: Optional[str] = None
    ) -> None:
        content = QueryLoadingContent(isLoading=is_loading, taskNames=task_names or [], message=message)
        self.write_data(DataStreamDelta(type=DeltaType.QUERY_LOADING, content=content))

    def send_text_delta(self, content: str) -> None:
        self.write_data(DataStreamDelta(type=DeltaType.TEXT_DELTA, content=content))

    def send_code_delta(self, content: str) -> None:
        self.write_data(DataStreamDelta(type=DeltaType.CODE_DELTA, content=content))

    def send_title(self, title: str) -> None:
        self.write_data(DataStreamDelta(type=DeltaType.TITLE, content=title))

    def send_user_message_id(self, message_id: str) -> None:
        self.write_data(DataStreamDelta(type=DeltaType.USER_MESSAGE_ID, content=message_id))

    def send_block_id(self, block_id: str) -> None:
        self.write_data(DataStreamDelta(type=DeltaType.ID, content=block_id))

    def send_kind(self, kind: str) -> None:
        self.write_data(DataStreamDelta(type=DeltaType.KIND, content=kind))

    def send_suggestion(self, suggestion: Any) -> None:
        self.write_data(DataStreamDelta(type=DeltaType.SUGGESTION, content=suggestion))

    def send_tool_result(self, tool: str, call_id: Optional[str], payload: Any) -> None:
        self.write_data(
            DataStreamDelta(
                type=DeltaType.TOOL_RESULT,
                content={"tool": tool, "call_id": call_id, "result": payload},
            )
        )

    def send_error(self, message: str) -> None:
        self.write_data(DataStreamDelta(type=DeltaType.ERROR, content={"message": message}))

    def clear(self) -> None:
        self.write_data(DataStreamDelta(type=DeltaType.CLEAR, content=""))

    def finish(self) -> None:
        self.write_data(DataStreamDelta(type=DeltaType.FINISH, content=""))
