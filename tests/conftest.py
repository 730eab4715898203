"""Pytest configuration and fixtures."""
import os
import threading

import pytest

# Set test environment variables
os.environ["WORKFLOW_ENGINE_ENV"] = "test"
os.environ["WORKFLOW_ENGINE_LOG_FORMAT"] = "text"
os.environ["WORKFLOW_ENGINE_MAX_PARALLEL_NODES"] = "4"


@pytest.fixture(autouse=True)
def _fresh_settings():
    """Drop cached settings so monkeypatched env vars take effect."""
    from workflow_engine.config import reset_settings

    reset_settings()
    yield
    reset_settings()


class FakeHandlers:
    """ExecutionHandlers that record calls and answer from dicts."""

    def __init__(self, transactions=None, scripts=None, adapters=None):
        self.transactions = transactions or {}
        self.scripts = scripts or {}
        self.adapters = adapters or {}
        self.calls = []
        self._lock = threading.Lock()

    def _record(self, *call):
        with self._lock:
            self.calls.append(call)

    def execute_transaction(self, transaction_id, wallet_id, args):
        self._record("transaction", transaction_id, wallet_id, args)
        response = self.transactions.get(transaction_id, {"success": True, "txHash": f"0x{transaction_id}"})
        if isinstance(response, Exception):
            raise response
        return response

    def execute_script(self, script_id, flags=None, env_var_keys=None):
        self._record("script", script_id, flags, env_var_keys)
        response = self.scripts.get(script_id, {"success": True, "output": f"ran {script_id}"})
        if isinstance(response, Exception):
            raise response
        return response

    def execute_adapter(self, adapter_id, operation, config, input):
        self._record("adapter", adapter_id, operation, config, input)
        response = self.adapters.get(adapter_id, {"success": True, "data": {"echo": input}})
        if isinstance(response, Exception):
            raise response
        return response

    def called_ids(self):
        return [call[1] for call in self.calls]


class RecordingEmitter:
    """RunEmitter that keeps every event in order."""

    def __init__(self):
        self.events = []
        self._lock = threading.Lock()

    def _add(self, *event):
        with self._lock:
            self.events.append(event)

    def emit_run_start(self):
        self._add("run_start")

    def emit_step_start(self, node_id, label, node_type):
        self._add("step_start", node_id, label, node_type)

    def emit_step_complete(self, node_id, output=None):
        self._add("step_complete", node_id, output)

    def emit_step_error(self, node_id, error):
        self._add("step_error", node_id, error)

    def emit_logs_update(self, step_logs):
        self._add("logs_update", len(step_logs))

    def emit_run_complete(self, status):
        self._add("run_complete", status)

    def emit_run_error(self, error):
        self._add("run_error", error)

    def names(self):
        return [event[0] for event in self.events]


@pytest.fixture
def handlers():
    """Handlers that succeed for every id unless told otherwise."""
    return FakeHandlers()


@pytest.fixture
def emitter():
    return RecordingEmitter()


def node(node_id, node_type, label=None, **config):
    data = {"id": node_id, "type": node_type, "position": {"x": 0, "y": 0}}
    if label is not None:
        data["label"] = label
    if config or node_type not in ("start", "end"):
        data["config"] = config
    return data


def edge(source, target, handle=None):
    data = {"id": f"{source}-{target}", "sourceId": source, "targetId": target}
    if handle is not None:
        data["sourceHandle"] = handle
    return data


@pytest.fixture
def linear_workflow():
    """start -> n1 (transaction) -> n2 (script) -> end"""
    return {
        "nodes": [
            node("start", "start", "Start"),
            node("n1", "transaction", "Mint Tokens", transactionId="tx-mint", args={"amount": "{{amount}}"}),
            node("n2", "script", "Verify", scriptId="verify", flags={"tx": "{{n1.result.txHash}}"}),
            node("end", "end", "End"),
        ],
        "edges": [edge("start", "n1"), edge("n1", "n2"), edge("n2", "end")],
        "variables": [{"name": "amount", "type": "number", "defaultValue": 100}],
    }


@pytest.fixture
def branching_workflow():
    """start -> check (balance > 5) -> rich | poor"""
    return {
        "nodes": [
            node("start", "start", "Start"),
            node("check", "predicate", "Check Balance",
                 expression={"left": "{{balance}}", "operator": "gt", "right": 5}),
            node("rich", "logging", "Rich", message="rich: {{balance}}"),
            node("poor", "logging", "Poor", message="poor: {{balance}}", level="warn"),
        ],
        "edges": [
            edge("start", "check"),
            edge("check", "rich", "true"),
            edge("check", "poor", "false"),
        ],
    }
