"""Strategy resolver: maps a model id and schema to a strategy."""

import re

from callai.strategies.base import Strategy, StrategyDescriptor, StrategyKind
from callai.strategies.native import NativeSchemaStrategy
from callai.strategies.passthrough import PassthroughStrategy
from callai.strategies.system import SystemInstructionStrategy
from callai.strategies.tool import ToolInvocationStrategy

DEFAULT_SCHEMA_MODEL = "openai/gpt-4o"
DEFAULT_MODEL = "openrouter/auto"

ANTHROPIC_FAMILY = re.compile(r"claude|anthropic", re.IGNORECASE)
# Families that reject or ignore response_format and forced tools
SCHEMA_INCOMPATIBLE = re.compile(r"llama-3|deepseek", re.IGNORECASE)

# Strategies are stateless, one shared instance per kind
_strategies: dict[StrategyKind, Strategy] = {}


def get_strategy(kind: StrategyKind) -> Strategy:
    """Get or create the strategy instance for a kind."""
    if kind in _strategies:
        return _strategies[kind]

    if kind is StrategyKind.NONE:
        _strategies[kind] = PassthroughStrategy()
    elif kind is StrategyKind.TOOL_INVOCATION:
        _strategies[kind] = ToolInvocationStrategy()
    elif kind is StrategyKind.SYSTEM_INSTRUCTION:
        _strategies[kind] = SystemInstructionStrategy()
    elif kind is StrategyKind.NATIVE_SCHEMA_OBJECT:
        _strategies[kind] = NativeSchemaStrategy()
    else:
        raise ValueError(f"Unknown strategy: {kind}")

    return _strategies[kind]


def resolve_strategy(model: str | None, schema: dict | None) -> StrategyDescriptor:
    """Choose the strategy for one call attempt."""
    target_model = model or (DEFAULT_SCHEMA_MODEL if schema else DEFAULT_MODEL)

    if not schema:
        kind = StrategyKind.NONE
    elif ANTHROPIC_FAMILY.search(target_model):
        kind = StrategyKind.TOOL_INVOCATION
    elif SCHEMA_INCOMPATIBLE.search(target_model):
        kind = StrategyKind.SYSTEM_INSTRUCTION
    else:
        kind = StrategyKind.NATIVE_SCHEMA_OBJECT

    return StrategyDescriptor(kind=kind, target_model=target_model, strategy=get_strategy(kind))
