"""Tests for the frontier scheduler."""
import logging
import threading
import time

import pytest

from conftest import FakeHandlers, edge, node
from workflow_engine.context import ExecutionContext, StepRecorder
from workflow_engine.errors import WorkflowExecutionError
from workflow_engine.handlers import CallbackHandlers
from workflow_engine.models import StepStatus, parse_workflow
from workflow_engine.nodes import NodeRunner
from workflow_engine.scheduler import StepScheduler, dedupe
from workflow_engine.variables import VariableStore


def make_scheduler(nodes, edges, handlers=None, variables=None, **kwargs):
    ctx = ExecutionContext(
        workflow_id="wf",
        run_id="run",
        definition=parse_workflow({"nodes": nodes, "edges": edges}),
        variables=VariableStore(variables),
        handlers=handlers or FakeHandlers(),
        recorder=StepRecorder(),
    )
    return StepScheduler(ctx, NodeRunner(), **kwargs), ctx


def executed(ctx):
    return [log.node_id for log in ctx.step_logs]


class TestDedupe:
    def test_keeps_first_seen_order(self):
        assert dedupe(["b", "a", "b", "c", "a"]) == ["b", "a", "c"]


class TestLinearWalk:
    """Test sequential execution."""

    def test_runs_until_frontier_is_empty(self):
        scheduler, ctx = make_scheduler(
            [node("s", "start"), node("a", "logging", "A", message="a"),
             node("b", "logging", "B", message="b"), node("e", "end", "E")],
            [edge("s", "a"), edge("a", "b"), edge("b", "e")],
        )

        assert scheduler.run(["s"]) is False
        assert executed(ctx) == ["a", "b", "e"]
        assert scheduler.steps == 4

    def test_stop_after_target(self):
        scheduler, ctx = make_scheduler(
            [node("s", "start"), node("a", "logging", "A", message="a"), node("b", "logging", "B", message="b")],
            [edge("s", "a"), edge("a", "b")],
        )

        assert scheduler.run(["s"], stop_after="a") is True
        assert executed(ctx) == ["a"]

    def test_later_nodes_see_earlier_results(self):
        handlers = FakeHandlers(transactions={"tx": {"success": True, "txHash": "0xfeed"}})
        scheduler, ctx = make_scheduler(
            [node("s", "start"), node("n1", "transaction", "Mint", transactionId="tx"),
             node("n2", "logging", "Report", message="hash={{mint.result.txHash}}")],
            [edge("s", "n1"), edge("n1", "n2")],
            handlers=handlers,
        )
        scheduler.run(["s"])
        assert ctx.variables.get("report.result") == "hash=0xfeed"

    def test_unknown_node_id_fails(self):
        scheduler, ctx = make_scheduler([node("s", "start")], [edge("s", "ghost")])

        with pytest.raises(WorkflowExecutionError) as exc_info:
            scheduler.run(["s"])
        assert exc_info.value.node_id == "ghost"
        assert exc_info.value.message == "Node not found"


class TestCycles:
    """Test revisit protection."""

    def test_cycle_terminates(self):
        scheduler, ctx = make_scheduler(
            [node("a", "logging", "A", message="a"), node("b", "logging", "B", message="b")],
            [edge("a", "b"), edge("b", "a")],
        )

        scheduler.run(["a"])

        assert executed(ctx) == ["a", "b"]

    def test_revisit_warning(self, caplog):
        scheduler, _ = make_scheduler(
            [node("a", "logging", "A", message="a"), node("b", "logging", "B", message="b")],
            [edge("a", "b"), edge("b", "a")],
        )
        with caplog.at_level(logging.WARNING, logger="workflow_engine.scheduler"):
            scheduler.run(["a"])
        assert any("already executed" in r.message for r in caplog.records)

    def test_revisit_warning_can_be_disabled(self, caplog):
        scheduler, _ = make_scheduler(
            [node("a", "logging", "A", message="a"), node("b", "logging", "B", message="b")],
            [edge("a", "b"), edge("b", "a")],
            warn_on_revisit=False,
        )
        with caplog.at_level(logging.WARNING, logger="workflow_engine.scheduler"):
            scheduler.run(["a"])
        assert not any("already executed" in r.message for r in caplog.records)

    def test_uneven_join_is_not_reported_as_cycle(self, caplog):
        scheduler, ctx = make_scheduler(
            [node("s", "start"), node("a", "logging", "A", message="a"), node("b", "logging", "B", message="b"),
             node("x", "logging", "X", message="x"), node("c", "logging", "C", message="c")],
            [edge("s", "a"), edge("s", "b"), edge("a", "c"), edge("b", "x"), edge("x", "c")],
        )
        with caplog.at_level(logging.DEBUG, logger="workflow_engine.scheduler"):
            scheduler.run(["s"])

        assert executed(ctx).count("c") == 1
        assert not any(r.levelno >= logging.WARNING for r in caplog.records)
        assert any("Join nodes already executed: ['c']" in r.message for r in caplog.records)

    def test_diamond_join_runs_once(self):
        scheduler, ctx = make_scheduler(
            [node("s", "start"), node("l", "logging", "L", message="l"),
             node("r", "logging", "R", message="r"), node("j", "end", "J")],
            [edge("s", "l"), edge("s", "r"), edge("l", "j"), edge("r", "j")],
        )
        scheduler.run(["s"])
        assert sorted(executed(ctx)) == ["j", "l", "r"]
        assert executed(ctx).count("j") == 1


class TestFanOut:
    """Test concurrent frontiers."""

    def test_siblings_run_concurrently(self):
        barrier = threading.Barrier(2, timeout=5)

        def script(script_id, flags, env_var_keys):
            # Both siblings must be in flight at once to pass the barrier
            barrier.wait()
            return {"success": True, "output": script_id}

        scheduler, ctx = make_scheduler(
            [node("s", "start"), node("a", "script", "A", scriptId="a"), node("b", "script", "B", scriptId="b")],
            [edge("s", "a"), edge("s", "b")],
            handlers=CallbackHandlers(script=script),
        )

        scheduler.run(["s"])

        assert ctx.variables.get("a.result.output") == "a"
        assert ctx.variables.get("b.result.output") == "b"

    def test_failure_waits_for_siblings_and_stops(self):
        def transaction(transaction_id, wallet_id, args):
            if transaction_id == "bad":
                return {"success": False, "error": "reverted"}
            time.sleep(0.05)
            return {"success": True, "txHash": "0x1"}

        scheduler, ctx = make_scheduler(
            [node("s", "start"), node("bad", "transaction", "Bad", transactionId="bad"),
             node("good", "transaction", "Good", transactionId="good"), node("after", "end", "After")],
            [edge("s", "bad"), edge("s", "good"), edge("good", "after")],
            handlers=CallbackHandlers(transaction=transaction),
        )

        with pytest.raises(WorkflowExecutionError, match="reverted"):
            scheduler.run(["s"])

        statuses = {log.node_id: log.status for log in ctx.step_logs}
        assert statuses == {"bad": StepStatus.FAILED, "good": StepStatus.COMPLETED}
        assert "after" not in statuses

    def test_first_failure_in_frontier_order_is_raised(self):
        handlers = FakeHandlers(transactions={
            "x": {"success": False, "error": "first"},
            "y": {"success": False, "error": "second"},
        })
        scheduler, _ = make_scheduler(
            [node("s", "start"), node("x", "transaction", "X", transactionId="x"),
             node("y", "transaction", "Y", transactionId="y")],
            [edge("s", "x"), edge("s", "y")],
            handlers=handlers,
        )
        with pytest.raises(WorkflowExecutionError, match="first"):
            scheduler.run(["s"])

    def test_successor_order_follows_edges(self):
        scheduler, ctx = make_scheduler(
            [node("s", "start"), node("a", "end", "A"), node("b", "end", "B"), node("c", "end", "C")],
            [edge("s", "c"), edge("s", "a"), edge("s", "b")],
            max_workers=1,
        )
        scheduler.run(["s"])
        assert executed(ctx) == ["c", "a", "b"]
        assert scheduler.steps == 2
