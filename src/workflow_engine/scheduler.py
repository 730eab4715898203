"""
Step Scheduler - frontier-by-frontier graph walk.

Starting from a set of frontier node ids, the scheduler executes every
unvisited frontier member, gathers their successors into the next frontier and
repeats until the frontier is empty. Frontier ids are marked visited before
they run, which is also what stops cycles: a node never runs twice in one
walk.

Frontiers with several members run on a thread pool. All members run to
completion; if any failed, the first failure (in frontier order) is raised
after the whole step has finished and nothing further is scheduled.
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from typing import Dict, Iterable, List, Optional, Set

from .context import ExecutionContext
from .errors import WorkflowExecutionError
from .models import BaseNode
from .nodes import NodeOutcome, NodeRunner
from .observability import get_logger


logger = get_logger(__name__)


def dedupe(node_ids: Iterable[str]) -> List[str]:
    """Drop duplicates, keeping first-seen order."""
    seen: Set[str] = set()
    unique = []
    for node_id in node_ids:
        if node_id not in seen:
            seen.add(node_id)
            unique.append(node_id)
    return unique


class StepScheduler:
    """
    Walks a workflow graph from an initial frontier.

    Usage:
        scheduler = StepScheduler(ctx, NodeRunner())
        reached = scheduler.run([start_id], stop_after="n2")
    """

    def __init__(
        self,
        ctx: ExecutionContext,
        runner: NodeRunner,
        max_workers: int = 8,
        warn_on_revisit: bool = True,
    ):
        self.ctx = ctx
        self.runner = runner
        self.max_workers = max_workers
        self.warn_on_revisit = warn_on_revisit
        self.visited: Set[str] = set()
        self.steps = 0
        self._nodes: Dict[str, BaseNode] = {node.id: node for node in ctx.definition.nodes}

    def run(self, frontier: Iterable[str], stop_after: Optional[str] = None) -> bool:
        """
        Execute frontiers until none remain.

        Args:
            frontier: Initial node ids
            stop_after: Stop, without error, right after the step that
                executed this node

        Returns:
            True if ``stop_after`` was executed

        Raises:
            WorkflowError: the first node failure of the failing step
        """
        pending = dedupe(frontier)
        sources: Dict[str, List[str]] = {}

        while True:
            current = [node_id for node_id in pending if node_id not in self.visited]
            revisits = [node_id for node_id in pending if node_id in self.visited]
            if revisits:
                self._report_revisits(revisits, sources)
            if not current:
                return False

            self.visited.update(current)
            self.steps += 1
            logger.debug(f"Step {self.steps}: executing {current}", extra=self.ctx.log_context())

            outcomes = self._execute_frontier(current)

            if stop_after is not None and stop_after in current:
                return True

            sources = {}
            for outcome in outcomes:
                for successor in outcome.successors:
                    sources.setdefault(successor, []).append(outcome.node_id)
            pending = dedupe(sources)

    def execute_node(self, node_id: str) -> NodeOutcome:
        """Execute one node by id."""
        node = self._nodes.get(node_id)
        if node is None:
            raise WorkflowExecutionError(node_id, "Node not found")
        return self.runner.run(node, self.ctx)

    def _report_revisits(self, revisits: List[str], sources: Dict[str, List[str]]) -> None:
        """Warn about back-edges; a late arrival at an already-run join is only debug noise."""
        cyclic = [node_id for node_id in revisits if self._reaches(node_id, sources.get(node_id, []))]
        joins = [node_id for node_id in revisits if node_id not in cyclic]
        if cyclic and self.warn_on_revisit:
            logger.warning(
                f"Not re-entering already executed nodes: {cyclic}",
                extra=self.ctx.log_context(),
            )
        if joins:
            logger.debug(f"Join nodes already executed: {joins}", extra=self.ctx.log_context())

    def _reaches(self, start: str, targets: List[str]) -> bool:
        """True if any of ``targets`` is reachable from ``start`` (``start`` included)."""
        wanted = set(targets)
        seen: Set[str] = set()
        stack = [start]
        while stack:
            node_id = stack.pop()
            if node_id in wanted:
                return True
            if node_id in seen:
                continue
            seen.add(node_id)
            stack.extend(self.ctx.definition.get_downstream_nodes(node_id))
        return False

    def _execute_frontier(self, node_ids: List[str]) -> List[NodeOutcome]:
        if len(node_ids) == 1:
            return [self.execute_node(node_ids[0])]

        workers = min(self.max_workers, len(node_ids))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="workflow-node") as pool:
            futures = [pool.submit(self.execute_node, node_id) for node_id in node_ids]

        outcomes = []
        first_error: Optional[BaseException] = None
        for future in futures:
            error = future.exception()
            if error is not None:
                if first_error is None:
                    first_error = error
                continue
            outcomes.append(future.result())

        if first_error is not None:
            raise first_error
        return outcomes


__all__ = [
    "StepScheduler",
    "dedupe",
]
