"""
External handler interface.

The engine never signs transactions, spawns scripts or talks to databases
itself. It calls an ExecutionHandlers implementation supplied by the host and
treats whatever comes back as opaque, apart from the ``success``/``error``
fields.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Mapping, Optional, Protocol, runtime_checkable

from pydantic import BaseModel, ConfigDict, Field

from .errors import WorkflowExecutionError


class HandlerResult(BaseModel):
    """Common shape of every handler result."""
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    success: bool
    data: Optional[Any] = None
    error: Optional[str] = None


class TransactionResult(HandlerResult):
    tx_hash: Optional[str] = Field(None, alias="txHash")


class ScriptResult(HandlerResult):
    output: Optional[str] = None


class AdapterResult(HandlerResult):
    metadata: Optional[Dict[str, Any]] = None


@runtime_checkable
class ExecutionHandlers(Protocol):
    """Protocol for the host-side operations the engine calls."""

    def execute_transaction(
        self,
        transaction_id: str,
        wallet_id: Optional[str],
        args: Dict[str, str],
    ) -> Mapping[str, Any] | TransactionResult:
        """
        Sign and broadcast a saved transaction.

        Returns:
            ``{success, data?, error?, txHash?}``
        """
        ...

    def execute_script(
        self,
        script_id: str,
        flags: Optional[Dict[str, str]] = None,
        env_var_keys: Optional[List[str]] = None,
    ) -> Mapping[str, Any] | ScriptResult:
        """
        Run a saved script and wait for it.

        Returns:
            ``{success, output?, error?}``
        """
        ...

    def execute_adapter(
        self,
        adapter_id: str,
        operation: str,
        config: Dict[str, Any],
        input: Dict[str, Any],
    ) -> Mapping[str, Any] | AdapterResult:
        """
        Run an operation on an integration adapter.

        Returns:
            ``{success, data?, error?}``
        """
        ...


@dataclass
class CallbackHandlers:
    """
    ExecutionHandlers built from plain callables.

    Any callable left as None fails the node that needs it.

    Usage:
        handlers = CallbackHandlers(
            transaction=lambda tx_id, wallet_id, args: {"success": True, "txHash": "0x1"},
        )
    """

    transaction: Optional[Callable[..., Any]] = None
    script: Optional[Callable[..., Any]] = None
    adapter: Optional[Callable[..., Any]] = None

    def execute_transaction(self, transaction_id, wallet_id, args):
        if self.transaction is None:
            raise WorkflowExecutionError("", "No transaction handler configured")
        return self.transaction(transaction_id, wallet_id, args)

    def execute_script(self, script_id, flags=None, env_var_keys=None):
        if self.script is None:
            raise WorkflowExecutionError("", "No script handler configured")
        return self.script(script_id, flags, env_var_keys)

    def execute_adapter(self, adapter_id, operation, config, input):
        if self.adapter is None:
            raise WorkflowExecutionError("", "No adapter handler configured")
        return self.adapter(adapter_id, operation, config, input)


def normalize_result(result: Any) -> Dict[str, Any]:
    """
    Turn a handler result into a plain dict.

    Mappings are copied as returned; pydantic models are dumped with their
    camelCase aliases.

    Raises:
        TypeError: for any other return type
    """
    if isinstance(result, BaseModel):
        return result.model_dump(by_alias=True, exclude_none=True)
    if isinstance(result, Mapping):
        return dict(result)
    raise TypeError(f"Handler returned unsupported result type: {type(result).__name__}")


__all__ = [
    "HandlerResult",
    "TransactionResult",
    "ScriptResult",
    "AdapterResult",
    "ExecutionHandlers",
    "CallbackHandlers",
    "normalize_result",
]
