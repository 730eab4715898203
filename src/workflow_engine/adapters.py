"""
Adapter Registry - integrations reachable from adapter nodes.

An adapter wraps an external service (a database, an HTTP API) behind a small
set of named operations. Each adapter declares a pydantic model for its
connection config and one input model per operation; the registry validates
both before calling the adapter.

Adapters are registered by hand or discovered through the
``workflow_engine.adapters`` entry-point group:

    [project.entry-points."workflow_engine.adapters"]
    postgres = "mypkg.adapters:PostgresAdapter"

No adapters ship with the engine.
"""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from importlib.metadata import entry_points
from typing import Any, Callable, ClassVar, Dict, List, Optional, Type

from pydantic import BaseModel, ConfigDict, ValidationError

from .errors import AdapterError
from .handlers import AdapterResult
from .observability import get_logger


logger = get_logger(__name__)

ADAPTER_ENTRY_POINT = "workflow_engine.adapters"


class AdapterOperation(BaseModel):
    """One operation an adapter can perform."""
    model_config = ConfigDict(arbitrary_types_allowed=True)

    id: str
    name: str
    description: str = ""
    input_model: Type[BaseModel]
    examples: List[Dict[str, Any]] = []


class WorkflowAdapter(ABC):
    """
    Base class for adapters.

    Subclasses set ``id``, ``name``, ``config_model`` and ``operations`` and
    implement ``execute``.

    Usage:
        class EchoInput(BaseModel):
            text: str

        class EchoAdapter(WorkflowAdapter):
            id = "echo"
            name = "Echo"
            config_model = EchoConfig
            operations = {
                "echo": AdapterOperation(id="echo", name="Echo", input_model=EchoInput),
            }

            def execute(self, config, operation, input):
                return AdapterResult(success=True, data=input.text)
    """

    id: ClassVar[str] = ""
    name: ClassVar[str] = ""
    description: ClassVar[str] = ""
    icon: ClassVar[Optional[str]] = None
    config_model: ClassVar[Type[BaseModel]] = BaseModel
    operations: ClassVar[Dict[str, AdapterOperation]] = {}

    @abstractmethod
    def execute(self, config: BaseModel, operation: str, input: BaseModel) -> AdapterResult:
        """
        Run ``operation`` with validated ``config`` and ``input``.

        Raises:
            AdapterError: if the operation fails
        """

    def test_connection(self, config: BaseModel) -> bool:
        """Check that ``config`` can reach the service."""
        return True

    def validate_config(self, config: Dict[str, Any]) -> BaseModel:
        try:
            return self.config_model.model_validate(config or {})
        except ValidationError as e:
            raise AdapterError(self.id, "config", f"Invalid configuration: {e}") from e

    def validate_input(self, operation: str, input: Dict[str, Any]) -> BaseModel:
        op = self.operations.get(operation)
        if op is None:
            raise AdapterError(self.id, operation, f"Unknown operation: {operation}")
        try:
            return op.input_model.model_validate(input or {})
        except ValidationError as e:
            raise AdapterError(self.id, operation, f"Invalid input for {operation}: {e}") from e


class AdapterRegistry:
    """
    Central registry of adapters by id.

    Usage:
        registry = AdapterRegistry()
        registry.register(EchoAdapter())
        result = registry.execute("echo", "echo", {}, {"text": "hi"})

        handlers = CallbackHandlers(adapter=registry.as_handler())
    """

    def __init__(self):
        self._adapters: Dict[str, WorkflowAdapter] = {}
        self._discovered = False
        self._lock = threading.Lock()

    def register(self, adapter: WorkflowAdapter) -> None:
        """Register ``adapter``, replacing any adapter with the same id."""
        if not adapter.id:
            raise ValueError("Adapter must define an id")
        with self._lock:
            self._adapters[adapter.id] = adapter
        logger.debug(f"Registered adapter: {adapter.id}")

    def get(self, adapter_id: str) -> Optional[WorkflowAdapter]:
        return self._adapters.get(adapter_id)

    def get_all(self) -> List[WorkflowAdapter]:
        return list(self._adapters.values())

    def __contains__(self, adapter_id: str) -> bool:
        return adapter_id in self._adapters

    def __len__(self) -> int:
        return len(self._adapters)

    def discover_entry_points(self, force: bool = False) -> int:
        """
        Register adapters advertised under the ``workflow_engine.adapters``
        entry-point group. Each entry point must load to a WorkflowAdapter
        subclass or instance.

        Returns:
            Number of adapters discovered
        """
        if self._discovered and not force:
            return 0

        count = 0
        for ep in entry_points(group=ADAPTER_ENTRY_POINT):
            try:
                loaded = ep.load()
                adapter = loaded() if isinstance(loaded, type) else loaded
                self.register(adapter)
                count += 1
                logger.info(f"Discovered adapter: {ep.name}")
            except Exception as e:
                logger.error(f"Failed to load adapter '{ep.name}': {e}")

        self._discovered = True
        return count

    def execute(
        self,
        adapter_id: str,
        operation: str,
        config: Dict[str, Any],
        input: Dict[str, Any],
    ) -> AdapterResult:
        """
        Validate config and input, then run the operation.

        Raises:
            AdapterError: unknown adapter or operation, invalid config or
                input, or a failure inside the adapter
        """
        adapter = self.get(adapter_id)
        if adapter is None:
            raise AdapterError(adapter_id, operation, f"Adapter not found: {adapter_id}")

        valid_config = adapter.validate_config(config)
        valid_input = adapter.validate_input(operation, input)

        try:
            result = adapter.execute(valid_config, operation, valid_input)
        except AdapterError:
            raise
        except Exception as e:
            raise AdapterError(adapter_id, operation, str(e), cause=e) from e

        if isinstance(result, dict):
            result = AdapterResult.model_validate(result)
        return result

    def as_handler(self) -> Callable[[str, str, Dict[str, Any], Dict[str, Any]], AdapterResult]:
        """``execute_adapter`` callable for CallbackHandlers."""
        return self.execute


_registry: Optional[AdapterRegistry] = None


def get_adapter_registry() -> AdapterRegistry:
    """Get the global adapter registry."""
    global _registry
    if _registry is None:
        _registry = AdapterRegistry()
    return _registry


def reset_adapter_registry() -> None:
    """Drop the global registry (for tests)."""
    global _registry
    _registry = None


def register_adapter(adapter: WorkflowAdapter) -> None:
    """Register an adapter with the global registry."""
    get_adapter_registry().register(adapter)


__all__ = [
    "AdapterOperation",
    "WorkflowAdapter",
    "AdapterRegistry",
    "get_adapter_registry",
    "reset_adapter_registry",
    "register_adapter",
]
