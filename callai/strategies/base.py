"""Abstract base for structured-output strategies."""

import enum
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

from callai.strategies.extract import canonicalize, extract_json_text
from callai.streaming.payloads import select_candidate


class StrategyKind(str, enum.Enum):
    NATIVE_SCHEMA_OBJECT = "json_schema"
    TOOL_INVOCATION = "tool_mode"
    SYSTEM_INSTRUCTION = "system_message"
    NONE = "none"


class Strategy(ABC):
    """How a schema becomes request fields, and how a response becomes text."""

    kind: StrategyKind
    force_streaming: bool = False

    @abstractmethod
    def shape_request(self, schema: dict | None, messages: list[dict]) -> dict:
        """Return request-body fields to merge into the outbound request.

        Args:
            schema: Caller's output schema, or None.
            messages: The normalized conversation. Strategies that need to
                alter it return a new ``messages`` list; the input is never
                mutated.
        """
        ...

    def extract_result(self, raw: Any) -> str:
        """Reduce a candidate value (text or structured payload) to a string."""
        if isinstance(raw, str):
            return self.extract_text(raw)
        return canonicalize(raw)

    def extract_text(self, text: str) -> str:
        return extract_json_text(text)

    def extract_from_response(self, body: dict) -> str:
        """Extract the result from a complete, non-streamed response body."""
        return self.extract_result(select_candidate(body))


@dataclass(frozen=True)
class StrategyDescriptor:
    """The strategy chosen for one call attempt."""

    kind: StrategyKind
    target_model: str
    strategy: Strategy

    @property
    def force_streaming(self) -> bool:
        return self.strategy.force_streaming

    def shape_request(self, schema: dict | None, messages: list[dict]) -> dict:
        return self.strategy.shape_request(schema, messages)

    def extract_result(self, raw: Any) -> str:
        return self.strategy.extract_result(raw)

    def extract_from_response(self, body: dict) -> str:
        return self.strategy.extract_from_response(body)
