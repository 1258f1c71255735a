"""
Flow Executor - Runs agent flows.

The executor:
1. Validates the flow structure (single entry point, edge references, executors)
2. Builds the join requirements of every node in the run's scope
3. Invokes every node whose requirements are met, concurrently
4. Prunes branches that decision nodes did not select
5. Delivers outputs to dependents until nothing else can run
6. Returns the outputs, the invocation path and the final status
"""

import asyncio
import logging
import time
import uuid
from collections.abc import Iterable
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from agentflow.config import RuntimeConfig
from agentflow.errors import (
    DeadlockError,
    ErrorContext,
    NodeNotFoundError,
    RunCancelledError,
)
from agentflow.graph.combine import combine_inputs
from agentflow.graph.dependencies import (
    WaitingNode,
    can_become_ready,
    is_ready,
    setup_dependencies,
)
from agentflow.graph.edge import FlowGraph
from agentflow.graph.node import NodeContext, NodeKind, NodeOutput, NodeRegistry, NodeSpec
from agentflow.graph.pruning import prune_targets
from agentflow.graph.validator import validate_flow
from agentflow.observability import set_trace_context
from agentflow.runtime.abort import AbortRegistry, AbortToken
from agentflow.runtime.cache_pool import CachePool
from agentflow.runtime.event_bus import EventBus


class NodeState(StrEnum):
    """Scheduling state of one node within a run."""

    PENDING = "pending"
    READY = "ready"
    RUNNING = "running"
    DONE = "done"
    IGNORED = "ignored"


class RunStatus(StrEnum):
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass
class ExecutionResult:
    """Result of executing a flow."""

    success: bool
    status: RunStatus = RunStatus.COMPLETED
    outputs: dict[str, Any] = field(default_factory=dict)
    path: list[str] = field(default_factory=list)  # Node IDs in invocation order
    ignored_nodes: list[str] = field(default_factory=list)
    pending_nodes: list[str] = field(default_factory=list)  # Never ran, never pruned
    error: str | None = None
    error_code: str | None = None
    run_id: str = ""
    final_output: Any = None  # Combined output of the terminal nodes that ran
    total_latency_ms: int = 0

    @property
    def was_cancelled(self) -> bool:
        return self.status == RunStatus.CANCELLED

    @property
    def node_errors(self) -> dict[str, Any]:
        """Node id -> error, for nodes whose output carries one."""
        errors = {}
        for node_id, output in self.outputs.items():
            structured = NodeOutput.coerce(output)
            if structured is not None and structured.error is not None:
                errors[node_id] = structured.error
        return errors


@dataclass
class RunContext:
    """
    Scheduling state exclusively owned by one run.

    Built from the static graph when the run starts; only the scheduling
    coroutine mutates it, except that a node task records ``invoked`` and
    ``path`` once it actually starts. Iteration bodies get their own RunContext.
    """

    run_id: str
    flow_id: str
    chat_id: str
    graph: FlowGraph  # nodes and edges in this run's scope
    full_graph: FlowGraph  # needed to resolve nested iteration bodies
    is_recursive: bool = False
    abort_token: AbortToken | None = None
    run_input: Any = None
    waiting: dict[str, WaitingNode] = field(default_factory=dict)
    states: dict[str, NodeState] = field(default_factory=dict)
    dependents: dict[str, list[str]] = field(default_factory=dict)
    ignored: set[str] = field(default_factory=set)
    invoked: set[str] = field(default_factory=set)
    outputs: dict[str, Any] = field(default_factory=dict)
    path: list[str] = field(default_factory=list)

    @classmethod
    def create(
        cls,
        graph: FlowGraph,
        full_graph: FlowGraph,
        *,
        run_id: str,
        flow_id: str,
        chat_id: str = "",
        is_recursive: bool = False,
        abort_token: AbortToken | None = None,
        run_input: Any = None,
    ) -> "RunContext":
        ctx = cls(
            run_id=run_id,
            flow_id=flow_id,
            chat_id=chat_id,
            graph=graph,
            full_graph=full_graph,
            is_recursive=is_recursive,
            abort_token=abort_token,
            run_input=run_input,
        )
        node_map = graph.node_map()
        for node in graph.nodes:
            ctx.waiting[node.id] = setup_dependencies(node.id, graph.edges, node_map)
            ctx.states[node.id] = NodeState.PENDING
            ctx.dependents.setdefault(node.id, [])
        for edge in graph.edges:
            targets = ctx.dependents.setdefault(edge.source, [])
            if edge.target not in targets:
                targets.append(edge.target)
        return ctx

    @property
    def aborted(self) -> bool:
        return self.abort_token is not None and self.abort_token.aborted

    def node(self, node_id: str) -> NodeSpec:
        node = self.graph.get_node(node_id)
        if node is None:
            raise NodeNotFoundError(
                f"Node '{node_id}' is not in this run's scope",
                context=ErrorContext(flow_id=self.flow_id, run_id=self.run_id, node_ids=[node_id]),
            )
        return node

    def ready_node_ids(self) -> list[str]:
        """Pending nodes whose join requirements are met, in declaration order."""
        return [
            node.id
            for node in self.graph.nodes
            if self.states[node.id] == NodeState.PENDING and is_ready(self.waiting[node.id])
        ]

    def is_entry(self, node_id: str) -> bool:
        return not self.waiting[node_id].required_ids

    def input_for(self, node_id: str) -> Any:
        if self.is_entry(node_id):
            return self.run_input
        return combine_inputs(self.waiting[node_id].received_inputs)

    def deliver(self, node_id: str, output: Any) -> None:
        """Record a finished node and hand its output to pending dependents."""
        self.states[node_id] = NodeState.DONE
        self.outputs[node_id] = output
        for target in self.dependents.get(node_id, []):
            if self.states.get(target) == NodeState.PENDING:
                self.waiting[target].receive(node_id, output)

    def ignore(self, node_ids: Iterable[str]) -> list[str]:
        """
        Mark nodes ignored, then every pending dependent that can no longer
        become ready. Returns the newly ignored ids in the order they were
        marked. Walks a worklist with a visited set, so cycles terminate.
        """
        newly_ignored: list[str] = []
        worklist = list(node_ids)
        visited: set[str] = set()
        while worklist:
            node_id = worklist.pop(0)
            if node_id in visited:
                continue
            visited.add(node_id)
            if self.states.get(node_id) != NodeState.PENDING:
                continue
            self.states[node_id] = NodeState.IGNORED
            self.ignored.add(node_id)
            newly_ignored.append(node_id)
            for target in self.dependents.get(node_id, []):
                if self.states.get(target) != NodeState.PENDING:
                    continue
                if not can_become_ready(self.waiting[target], self.ignored):
                    worklist.append(target)
        return newly_ignored

    def nodes_in_state(self, state: NodeState) -> list[str]:
        return [node.id for node in self.graph.nodes if self.states[node.id] == state]

    def final_output(self) -> Any:
        """Combined output of the nodes that ran and have no outgoing edges."""
        terminal = {
            node_id: self.outputs[node_id]
            for node_id in self.nodes_in_state(NodeState.DONE)
            if not self.dependents.get(node_id)
        }
        return combine_inputs(terminal)


class FlowExecutor:
    """
    Executes agent flows.

    Example:
        registry = NodeRegistry({
            NodeKind.START: StartNode(),
            NodeKind.LLM: ChatModelNode(),
            NodeKind.CONDITION: ConditionNode(),
        })
        executor = FlowExecutor(registry, event_bus=bus, abort_registry=aborts)

        result = await executor.execute(
            graph,
            {"question": "hello"},
            flow_id="flow-1",
            chat_id="chat-9",
            session_key=session_key("flow-1", "chat-9"),
        )
    """

    def __init__(
        self,
        registry: NodeRegistry,
        *,
        event_bus: EventBus | None = None,
        cache_pool: CachePool | None = None,
        abort_registry: AbortRegistry | None = None,
        config: RuntimeConfig | None = None,
    ):
        """
        Initialize the executor.

        Args:
            registry: Node executors by kind, with optional per-node overrides
            event_bus: Optional event bus for run and node lifecycle events
            cache_pool: Optional cache pool; LLM-backed nodes get the flow's LLM cache
            abort_registry: Optional registry the run's abort token is published in
            config: Runtime configuration (concurrency limit); loaded when omitted
        """
        self.registry = registry
        self.config = config or RuntimeConfig()
        self.logger = logging.getLogger(__name__)
        self._event_bus = event_bus
        self._cache_pool = cache_pool
        self._abort_registry = abort_registry

    async def execute(
        self,
        graph: FlowGraph,
        run_input: Any = None,
        *,
        flow_id: str | None = None,
        chat_id: str = "",
        session_key: str | None = None,
        is_recursive: bool = False,
        abort_token: AbortToken | None = None,
    ) -> ExecutionResult:
        """
        Execute a flow.

        Args:
            graph: The flow graph
            run_input: Input handed to the entry node(s)
            flow_id: Flow identifier (defaults to graph.id)
            chat_id: Chat/session identifier
            session_key: When given, the abort token is registered under this key
                for the duration of the run
            is_recursive: Run the whole graph as an iteration body (no
                single-entry constraint)
            abort_token: Token to observe; a fresh one is created when omitted

        Returns:
            ExecutionResult with outputs, path and status
        """
        flow_id = flow_id or graph.id
        run_id = uuid.uuid4().hex
        set_trace_context(run_id=run_id, flow_id=flow_id, chat_id=chat_id)

        validation = validate_flow(graph, is_recursive=is_recursive, registry=self.registry)
        if not validation.success:
            self.logger.error("❌ Flow validation failed:")
            for err in validation.errors:
                self.logger.error(f"   • {err.message}")
            if self._event_bus:
                await self._event_bus.emit_run_failed(flow_id, run_id, validation.error)
            return ExecutionResult(
                success=False,
                status=RunStatus.FAILED,
                error=validation.error,
                error_code=validation.errors[0].error_code,
                run_id=run_id,
            )

        token = abort_token or AbortToken()
        if session_key and self._abort_registry is not None:
            self._abort_registry.add(session_key, token)

        try:
            scope = graph if is_recursive else graph.scoped(None)
            ctx = RunContext.create(
                scope,
                graph,
                run_id=run_id,
                flow_id=flow_id,
                chat_id=chat_id,
                is_recursive=is_recursive,
                abort_token=token,
                run_input=run_input,
            )
            return await self._run(ctx)
        finally:
            if session_key and self._abort_registry is not None:
                self._abort_registry.remove(session_key)

    async def _run(self, ctx: RunContext) -> ExecutionResult:
        """The scheduling loop for one run."""
        started_at = time.monotonic()
        label = "iteration run" if ctx.is_recursive else "run"
        self.logger.info(
            f"🚀 Starting {label} {ctx.run_id[:8]} of flow '{ctx.flow_id}' "
            f"({len(ctx.graph.nodes)} nodes)",
            extra={"event": "run_started"},
        )
        if self._event_bus:
            await self._event_bus.emit_run_started(
                ctx.flow_id, ctx.run_id, ctx.run_input, ctx.is_recursive
            )

        semaphore = asyncio.Semaphore(self.config.max_concurrent_nodes)
        running: dict[asyncio.Task, str] = {}
        abort_waiter = asyncio.create_task(ctx.abort_token.wait()) if ctx.abort_token else None

        try:
            while not ctx.aborted:
                for node_id in ctx.ready_node_ids():
                    ctx.states[node_id] = NodeState.READY
                    node_input = ctx.input_for(node_id)
                    ctx.states[node_id] = NodeState.RUNNING
                    task = asyncio.create_task(
                        self._invoke(ctx, ctx.node(node_id), node_input, semaphore)
                    )
                    running[task] = node_id

                if not running:
                    break

                if len(running) > 1:
                    self.logger.debug(f"⑂ {len(running)} nodes in flight")

                wait_set: set[asyncio.Task] = set(running)
                if abort_waiter is not None:
                    wait_set.add(abort_waiter)
                done, _ = await asyncio.wait(wait_set, return_when=asyncio.FIRST_COMPLETED)

                for task in done:
                    if task is abort_waiter:
                        continue
                    node_id = running.pop(task)
                    # Outputs are not delivered once the run is aborted
                    if ctx.aborted:
                        continue
                    output, latency_ms = task.result()
                    await self._complete(ctx, ctx.node(node_id), output, latency_ms)
        finally:
            if abort_waiter is not None:
                abort_waiter.cancel()
            for task in running:
                task.cancel()
            if running:
                await asyncio.gather(*running, return_exceptions=True)

        total_latency_ms = int((time.monotonic() - started_at) * 1000)
        result = ExecutionResult(
            success=True,
            outputs=dict(ctx.outputs),
            path=list(ctx.path),
            ignored_nodes=ctx.nodes_in_state(NodeState.IGNORED),
            pending_nodes=ctx.nodes_in_state(NodeState.PENDING)
            + ctx.nodes_in_state(NodeState.RUNNING),
            run_id=ctx.run_id,
            total_latency_ms=total_latency_ms,
        )

        if ctx.aborted:
            reason = ctx.abort_token.reason if ctx.abort_token else None
            error = RunCancelledError(f"Run cancelled: {reason or 'Aborted'}")
            result.success = False
            result.status = RunStatus.CANCELLED
            result.error = error.message
            result.error_code = error.error_code
            self.logger.warning(f"⛔ {error.message}", extra={"event": "run_cancelled"})
            if self._event_bus:
                await self._event_bus.emit_run_cancelled(ctx.flow_id, ctx.run_id, reason)
            return result

        if result.pending_nodes:
            error = DeadlockError(
                f"Flow deadlocked: nodes {result.pending_nodes} can never become ready"
            )
            result.success = False
            result.status = RunStatus.FAILED
            result.error = error.message
            result.error_code = error.error_code
            self.logger.error(f"✗ {error.message}", extra={"event": "run_failed"})
            if self._event_bus:
                await self._event_bus.emit_run_failed(
                    ctx.flow_id, ctx.run_id, error.message, result.pending_nodes
                )
            return result

        result.final_output = ctx.final_output()
        self.logger.info(
            f"✓ {label.capitalize()} complete: {len(ctx.path)} nodes ran, "
            f"{len(result.ignored_nodes)} ignored",
            extra={"event": "run_completed", "latency_ms": total_latency_ms},
        )
        if self._event_bus:
            await self._event_bus.emit_run_completed(ctx.flow_id, ctx.run_id, ctx.path)
        return result

    async def _invoke(
        self,
        ctx: RunContext,
        node: NodeSpec,
        node_input: Any,
        semaphore: asyncio.Semaphore,
    ) -> tuple[Any, int]:
        """Run one node; executor failures become ``NodeOutput(error=...)``."""
        async with semaphore:
            # Queued behind the semaphore; the run may have been aborted meanwhile
            if ctx.aborted:
                return None, 0
            ctx.invoked.add(node.id)
            ctx.path.append(node.id)
            set_trace_context(node_id=node.id)
            self.logger.info(
                f"▶ {node.display_name} ({node.kind})",
                extra={"event": "node_started", "node_id": node.id, "node_kind": str(node.kind)},
            )
            if self._event_bus:
                await self._event_bus.emit_node_started(
                    ctx.flow_id, ctx.run_id, node.id, str(node.kind)
                )

            started_at = time.monotonic()
            try:
                if node.kind == NodeKind.ITERATION:
                    output = await self._run_iteration(ctx, node, node_input)
                else:
                    output = await self._call_node(ctx, node, node_input)
            except Exception as e:
                self.logger.error(
                    f"✗ {node.display_name} failed: {e}",
                    extra={"event": "node_failed", "node_id": node.id},
                )
                output = NodeOutput.from_exception(e)
            return output, int((time.monotonic() - started_at) * 1000)

    async def _call_node(self, ctx: RunContext, node: NodeSpec, node_input: Any) -> Any:
        impl = self.registry.resolve(node)
        if impl is None:
            raise LookupError(f"No executor registered for node '{node.id}' (kind={node.kind})")

        llm_cache = None
        if node.kind.uses_llm and self._cache_pool is not None:
            llm_cache = await self._cache_pool.get_llm_cache(ctx.flow_id)
            if llm_cache is None:
                llm_cache = {}
                await self._cache_pool.add_llm_cache(ctx.flow_id, llm_cache)

        node_ctx = NodeContext(
            node_id=node.id,
            node_spec=node,
            input=node_input,
            abort_token=ctx.abort_token,
            run_id=ctx.run_id,
            flow_id=ctx.flow_id,
            chat_id=ctx.chat_id,
            is_recursive=ctx.is_recursive,
            llm_cache=llm_cache,
        )
        return await impl.execute(node_ctx)

    async def _complete(
        self, ctx: RunContext, node: NodeSpec, output: Any, latency_ms: int
    ) -> None:
        """Deliver a finished node's output and apply its branch decision."""
        structured = NodeOutput.coerce(output)
        has_error = structured is not None and structured.has_error
        if has_error:
            self.logger.warning(f"⚠ {node.display_name} produced an error output")
        else:
            self.logger.info(
                f"✓ {node.display_name} done",
                extra={"event": "node_completed", "node_id": node.id, "latency_ms": latency_ms},
            )
        if self._event_bus:
            await self._event_bus.emit_node_completed(
                ctx.flow_id, ctx.run_id, node.id, has_error, latency_ms
            )
        if ctx.aborted:
            return

        if node.is_decision:
            pruned = prune_targets(node, output, ctx.graph.edges)
            for ignored_id in ctx.ignore(pruned):
                self.logger.info(
                    f"✂ Ignoring {ignored_id} (branch not taken at {node.id})",
                    extra={"event": "node_ignored", "node_id": ignored_id},
                )
                if self._event_bus:
                    await self._event_bus.emit_node_ignored(
                        ctx.flow_id, ctx.run_id, ignored_id, pruned_by=node.id
                    )

        ctx.deliver(node.id, output)

    @staticmethod
    def _iteration_items(node: NodeSpec, node_input: Any) -> list[Any]:
        """
        Items an iteration node loops over: config ``items``, else a list
        input, else ``json["items"]`` of a structured input, else the input
        itself as the only item.
        """
        items = node.config.get("items")
        if isinstance(items, list):
            return items
        if isinstance(node_input, list):
            return node_input
        structured = NodeOutput.coerce(node_input)
        if structured is not None and structured.json_data is not None:
            json_items = structured.json_data.get("items")
            if isinstance(json_items, list):
                return json_items
        if node_input is None:
            return []
        return [node_input]

    async def _run_iteration(self, ctx: RunContext, node: NodeSpec, node_input: Any) -> NodeOutput:
        """Run the iteration node's children once per item, one item at a time."""
        items = self._iteration_items(node, node_input)
        body = ctx.full_graph.scoped(node.id)
        self.logger.info(f"🔁 {node.display_name}: {len(items)} iterations")

        results: list[Any] = []
        for index, item in enumerate(items):
            if ctx.aborted:
                break
            inner = RunContext.create(
                body,
                ctx.full_graph,
                run_id=f"{ctx.run_id}:{node.id}:{index}",
                flow_id=ctx.flow_id,
                chat_id=ctx.chat_id,
                is_recursive=True,
                abort_token=ctx.abort_token,
                run_input=item,
            )
            inner_result = await self._run(inner)
            if not inner_result.success:
                return NodeOutput(
                    json_data={"iterations": results},
                    error=f"Iteration {index} of '{node.id}' failed: {inner_result.error}",
                )
            results.append(inner_result.final_output)

        return NodeOutput(json_data={"iterations": results})
