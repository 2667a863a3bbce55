"""Strategy for calls without an output schema."""

from callai.strategies.base import Strategy, StrategyKind


class PassthroughStrategy(Strategy):
    """Leaves the request alone and returns model text verbatim."""

    kind = StrategyKind.NONE

    def shape_request(self, schema: dict | None, messages: list[dict]) -> dict:
        return {}

    def extract_text(self, text: str) -> str:
        return text
