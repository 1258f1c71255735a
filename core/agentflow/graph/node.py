"""
Node Protocol - What a flow node is and how it is executed.

A node in an agent flow is:
1. A spec: identity, kind, optional iteration nesting, opaque config
2. An output: one structural value (json / text / binary / error)
3. An executor: a pluggable implementation registered per node kind

The scheduler never looks inside ``config``; only the executor registered
for the node's kind does.
"""

from abc import ABC, abstractmethod
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError

NESTED_EXTENT = "parent"


class NodeKind(StrEnum):
    """Closed set of node kinds a flow may contain."""

    START = "start"
    AGENT = "agent"
    LLM = "llm"
    TOOL = "tool"
    CONDITION = "condition"
    CONDITION_AGENT = "condition_agent"
    HUMAN_INPUT = "human_input"
    ITERATION = "iteration"
    GENERIC = "generic"

    @property
    def is_decision(self) -> bool:
        """Decision nodes select output branches and prune the rest."""
        return self in _DECISION_KINDS

    @property
    def uses_llm(self) -> bool:
        """LLM-backed kinds get the flow's LLM cache handed to them."""
        return self in _LLM_KINDS


_DECISION_KINDS = frozenset({NodeKind.CONDITION, NodeKind.CONDITION_AGENT, NodeKind.HUMAN_INPUT})
_LLM_KINDS = frozenset({NodeKind.AGENT, NodeKind.LLM, NodeKind.CONDITION_AGENT})


class NodeSpec(BaseModel):
    """
    Definition of a node in a flow graph.

    Examples:
        NodeSpec(id="start_0", kind=NodeKind.START)

        NodeSpec(
            id="cond_0",
            kind=NodeKind.CONDITION,
            config={"conditions": [{"type": "string", "operation": "contains"}]},
        )

        # A node drawn inside an iteration block
        NodeSpec(id="llm_3", kind=NodeKind.LLM, parent_node="iter_0", extent="parent")
    """

    id: str
    kind: NodeKind = NodeKind.GENERIC
    label: str = ""
    extent: str | None = Field(
        default=None, description='"parent" when the node is nested inside an iteration'
    )
    parent_node: str | None = Field(
        default=None,
        validation_alias=AliasChoices("parent_node", "parentNode"),
        description="ID of the enclosing iteration node, if any",
    )
    config: dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    @property
    def is_nested(self) -> bool:
        return self.extent == NESTED_EXTENT

    @property
    def is_decision(self) -> bool:
        return self.kind.is_decision

    @property
    def display_name(self) -> str:
        return self.label or self.id


class BranchCondition(BaseModel):
    """Fulfilment flag for one output branch of a decision node."""

    is_fulfilled: bool = Field(
        default=False, validation_alias=AliasChoices("is_fulfilled", "isFulfilled")
    )

    model_config = ConfigDict(extra="allow", populate_by_name=True)


STRUCTURED_OUTPUT_KEYS = frozenset({"json", "text", "binary", "error"})


class NodeOutput(BaseModel):
    """
    The value a node produces.

    Not a class hierarchy: any combination of the optional fields may be set.
    Decision nodes additionally report ``conditions``, index-aligned with
    their output slots.
    """

    json_data: dict[str, Any] | None = Field(
        default=None, validation_alias=AliasChoices("json", "json_data"), serialization_alias="json"
    )
    text: str | None = None
    binary: dict[str, Any] | None = None
    error: Any | None = None
    conditions: list[BranchCondition] | None = None

    model_config = ConfigDict(extra="allow", populate_by_name=True, arbitrary_types_allowed=True)

    @property
    def json(self) -> dict[str, Any] | None:  # type: ignore[override]
        return self.json_data

    @property
    def has_error(self) -> bool:
        return self.error is not None

    @classmethod
    def coerce(cls, value: Any) -> "NodeOutput | None":
        """Return ``value`` as a NodeOutput when it is structured, else None.

        Mappings count as structured when they carry at least one of
        ``json``/``text``/``binary``/``error`` with values of the right type;
        anything else is a bare value.
        """
        if isinstance(value, NodeOutput):
            return value
        if isinstance(value, Mapping) and STRUCTURED_OUTPUT_KEYS.intersection(value.keys()):
            try:
                return cls.model_validate(dict(value))
            except ValidationError:
                return None
        return None

    @classmethod
    def from_exception(cls, exc: BaseException) -> "NodeOutput":
        return cls(error=exc, text=str(exc) or exc.__class__.__name__)


@dataclass
class NodeContext:
    """Everything a node executor needs to run one invocation.

    Passed to every executor:
    - The node spec and its opaque config
    - The combined input from upstream nodes (or the run input for start nodes)
    - The run's abort token, which long-running work should observe
    - The flow's LLM cache for LLM-backed kinds
    """

    node_id: str
    node_spec: NodeSpec
    input: Any = None
    abort_token: Any = None  # AbortToken; Any avoids a runtime import cycle
    run_id: str = ""
    flow_id: str = ""
    chat_id: str = ""
    is_recursive: bool = False
    llm_cache: dict[Any, Any] | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def config(self) -> dict[str, Any]:
        return self.node_spec.config

    @property
    def aborted(self) -> bool:
        return bool(self.abort_token is not None and self.abort_token.aborted)


class NodeProtocol(ABC):
    """Interface every node executor implements."""

    @abstractmethod
    async def execute(self, ctx: NodeContext) -> NodeOutput | Any:
        """Run the node and return its output.

        Raising is allowed: the executor turns the exception into
        ``NodeOutput(error=...)`` and keeps the run going.
        """


class NodeRegistry:
    """
    Maps node kinds to executors, with optional per-node overrides.

    Example:
        registry = NodeRegistry({NodeKind.LLM: MyLLMNode()})
        registry.register_node("llm_2", SpecialLLMNode())
        impl = registry.resolve(node_spec)
    """

    def __init__(
        self,
        by_kind: Mapping[NodeKind, NodeProtocol] | None = None,
        by_node_id: Mapping[str, NodeProtocol] | None = None,
    ):
        self._by_kind: dict[NodeKind, NodeProtocol] = dict(by_kind or {})
        self._by_node_id: dict[str, NodeProtocol] = dict(by_node_id or {})

    def register_kind(self, kind: NodeKind, implementation: NodeProtocol) -> None:
        self._by_kind[NodeKind(kind)] = implementation

    def register_node(self, node_id: str, implementation: NodeProtocol) -> None:
        self._by_node_id[node_id] = implementation

    def resolve(self, node: NodeSpec) -> NodeProtocol | None:
        """Per-node override first, then the kind's executor."""
        impl = self._by_node_id.get(node.id)
        if impl is not None:
            return impl
        return self._by_kind.get(node.kind)

    def __contains__(self, kind: object) -> bool:
        return kind in self._by_kind
