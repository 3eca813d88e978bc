"""
Duplicate suppression for tool calls.

The LLM frequently repeats the exact same tool call within one conversation
(e.g. asking for AAPL's income statement twice in a single turn). The cache
remembers every (tool name, parameters) pair it has admitted and tells the
orchestrator to skip repeats.

The cache is bounded: once it holds `max_size` keys, the oldest
`evict_fraction` of them (by insertion order, not last use) are dropped before
a new key is admitted. Duplicate suppression can therefore lapse for very old
calls, which is acceptable for a memory guard.

Instances are owned by a conversation session; nothing is shared across
sessions or persisted.
"""

import json
from typing import Any, Dict


class ToolCallCache:
    def __init__(self, max_size: int = 1000, evict_fraction: float = 0.2):
        if max_size < 1:
            raise ValueError("max_size must be at least 1")
        self.max_size = max_size
        self.evict_fraction = evict_fraction
        # dict preserves insertion order, used as an ordered set
        self._keys: Dict[str, None] = {}

    @staticmethod
    def make_key(tool_name: str, params: Any) -> str:
        # Keys are sorted so parameter sets built in a different order collide
        return json.dumps({"toolName": tool_name, "params": params}, sort_keys=True, default=str)

    def should_execute(self, tool_name: str, params: Any) -> bool:
        """Record the call and return True on first sight, False on repeats."""
        key = self.make_key(tool_name, params)

        if key in self._keys:
            return False

        if len(self._keys) >= self.max_size:
            self._evict_oldest()

        self._keys[key] = None
        return True

    def _evict_oldest(self) -> None:
        # Always drop at least one key so a tiny cache still admits new calls
        count = max(1, int(self.max_size * self.evict_fraction))
        for key in list(self._keys)[:count]:
            del self._keys[key]

    def is_cached(self, tool_name: str, params: Any) -> bool:
        return self.make_key(tool_name, params) in self._keys

    def remove(self, tool_name: str, params: Any) -> bool:
        key = self.make_key(tool_name, params)
        if key in self._keys:
            del self._keys[key]
            return True
        return False

    def clear(self) -> None:
        self._keys.clear()

    @property
    def size(self) -> int:
        return len(self._keys)

    def __len__(self) -> int:
        return len(self._keys)
