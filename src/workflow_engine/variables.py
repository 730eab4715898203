"""
Variable Resolver - ``{{path.to.value}}`` templating over the variable bag.

Supports:
- whole-value references: ``"{{step1.result}}"`` returns the referenced value
  with its type intact
- interpolation: ``"Sent {{amount}} to {{wallet.address}}"`` returns a string
- recursive resolution of lists and dicts, preserving shape

Paths are dotted; numeric segments index lists (``a.b.0.c``).
"""

from __future__ import annotations

import json
import math
import re
import threading
from typing import Any, Callable, Dict, Iterator, Mapping, Optional

from .errors import VariableResolutionError


VARIABLE_PATTERN = re.compile(r"\{\{([^}]+)\}\}")
SINGLE_VARIABLE_PATTERN = re.compile(r"^\{\{([^}]+)\}\}$")

_MISSING = object()


def slugify(text: str) -> str:
    """
    Normalize a label into a variable-bag key segment.

    e.g. "Mint Tokens" -> "mint_tokens"
    """
    slug = re.sub(r"[^a-zA-Z0-9]", "_", text.strip().lower())
    slug = re.sub(r"_+", "_", slug)
    return slug.strip("_")


def to_text(value: Any) -> str:
    """Stringify a resolved value the way template interpolation renders it."""
    if isinstance(value, str):
        return value
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float):
        if math.isnan(value):
            return "NaN"
        if math.isinf(value):
            return "Infinity" if value > 0 else "-Infinity"
        if value.is_integer():
            return str(int(value))
        return repr(value)
    if isinstance(value, (dict, list, tuple)):
        return to_compact_json(value)
    return str(value)


def _json_ready(value: Any) -> Any:
    """Render floats the way JSON.stringify does: integral as int, NaN/Infinity as null."""
    if isinstance(value, float):
        if math.isnan(value) or math.isinf(value):
            return None
        return int(value) if value.is_integer() else value
    if isinstance(value, Mapping):
        return {key: _json_ready(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_json_ready(item) for item in value]
    return value


def to_compact_json(value: Any) -> str:
    return json.dumps(_json_ready(value), separators=(",", ":"), ensure_ascii=False, default=str)


def to_pretty_json(value: Any) -> str:
    return json.dumps(_json_ready(value), indent=2, ensure_ascii=False, default=str)


def get_nested_value(variables: Mapping[str, Any], path: str) -> Any:
    """
    Look up a dotted path. Returns the module-private missing sentinel when
    any segment is absent; use ``has_path``/``resolve_path`` from outside.
    """
    current: Any = variables
    for part in path.split("."):
        if current is None:
            current = _MISSING
            break
        if isinstance(current, (list, tuple)):
            if not (part.isascii() and part.isdigit()):
                current = _MISSING
                break
            index = int(part)
            if index >= len(current):
                current = _MISSING
                break
            current = current[index]
        elif isinstance(current, Mapping):
            if part not in current:
                current = _MISSING
                break
            current = current[part]
        else:
            current = _MISSING
            break

    if current is _MISSING and path in variables:
        # Flat keys such as "n1.result" are stored verbatim as well
        return variables[path]
    return current


def resolve_path(path: str, variables: Mapping[str, Any]) -> Any:
    """Resolve a single dotted path or raise VariableResolutionError."""
    path = path.strip()
    value = get_nested_value(variables, path)
    if value is _MISSING:
        raise VariableResolutionError(path, f"Variable not found: {path}")
    return value


def has_path(path: str, variables: Mapping[str, Any]) -> bool:
    return get_nested_value(variables, path.strip()) is not _MISSING


def set_nested_value(variables: Dict[str, Any], path: str, value: Any) -> None:
    """
    Set ``value`` at a dotted path, creating intermediate dicts.

    An intermediate that is not a dict is replaced by one.
    """
    parts = path.split(".")
    current = variables
    for part in parts[:-1]:
        existing = current.get(part)
        if not isinstance(existing, dict):
            existing = {}
            current[part] = existing
        current = existing
    current[parts[-1]] = value


def resolve_variables(value: Any, variables: Mapping[str, Any]) -> Any:
    """
    Resolve variable references in ``value``.

    Raises:
        VariableResolutionError: if any referenced path is missing
    """
    if isinstance(value, str):
        single = SINGLE_VARIABLE_PATTERN.match(value)
        if single:
            return resolve_path(single.group(1), variables)

        def _replace(match: "re.Match[str]") -> str:
            return to_text(resolve_path(match.group(1), variables))

        return VARIABLE_PATTERN.sub(_replace, value)

    if isinstance(value, list):
        return [resolve_variables(item, variables) for item in value]

    if isinstance(value, tuple):
        return [resolve_variables(item, variables) for item in value]

    if isinstance(value, Mapping):
        return {key: resolve_variables(item, variables) for key, item in value.items()}

    return value


def resolve_record(
    record: Optional[Mapping[str, str]],
    variables: Mapping[str, Any],
) -> Dict[str, str]:
    """
    Resolve every value of a flat string map, coercing results to text.

    Used for transaction args, script flags and adapter input mappings.
    """
    if not record:
        return {}
    return {key: to_text(resolve_variables(value, variables)) for key, value in record.items()}


class VariableStore:
    """
    Mutex-guarded variable bag shared by the nodes of one run.

    Concurrent frontier members resolve their inputs and publish their results
    through this store; each ``apply`` is atomic and the last writer wins.
    """

    def __init__(self, initial: Optional[Mapping[str, Any]] = None):
        self._data: Dict[str, Any] = dict(initial or {})
        self._lock = threading.RLock()

    def resolve(self, value: Any) -> Any:
        with self._lock:
            return resolve_variables(value, self._data)

    def resolve_record(self, record: Optional[Mapping[str, str]]) -> Dict[str, str]:
        with self._lock:
            return resolve_record(record, self._data)

    def get(self, path: str, default: Any = None) -> Any:
        with self._lock:
            value = get_nested_value(self._data, path)
        return default if value is _MISSING else value

    def set(self, key: str, value: Any) -> None:
        """Write ``key`` both as a flat key and, if dotted, as a nested path."""
        with self._lock:
            self._assign(key, value)

    def apply(self, patch: Mapping[str, Any]) -> None:
        """Write several keys as one atomic update."""
        with self._lock:
            for key, value in patch.items():
                self._assign(key, value)

    def update(self, values: Mapping[str, Any]) -> None:
        """Shallow overwrite of top-level keys."""
        with self._lock:
            self._data.update(values)

    def setdefault(self, key: str, value: Any) -> None:
        with self._lock:
            self._data.setdefault(key, value)

    def read(self, reader: Callable[[Dict[str, Any]], Any]) -> Any:
        """Call ``reader`` with the live bag while holding the lock."""
        with self._lock:
            return reader(self._data)

    def snapshot(self) -> Dict[str, Any]:
        with self._lock:
            return dict(self._data)

    def to_dict(self) -> Dict[str, Any]:
        return self.snapshot()

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._data

    def __iter__(self) -> Iterator[str]:
        return iter(self.snapshot())

    def __len__(self) -> int:
        with self._lock:
            return len(self._data)

    def _assign(self, key: str, value: Any) -> None:
        if "." in key:
            set_nested_value(self._data, key, value)
        self._data[key] = value


__all__ = [
    "VARIABLE_PATTERN",
    "slugify",
    "to_text",
    "to_compact_json",
    "to_pretty_json",
    "get_nested_value",
    "resolve_path",
    "has_path",
    "set_nested_value",
    "resolve_variables",
    "resolve_record",
    "VariableStore",
]
