"""
Script output extraction.

Script nodes may carry ``extractions``: regex rules that pull named values out
of the script's text output so later nodes can reference them as
``{{script_label.name}}``. The engine does not apply them; hosts call
``apply_extractions`` on the output they captured and merge the result into
the variables they resume with.
"""

from __future__ import annotations

import json
import re
from typing import Any, Dict, Iterable, Optional

from .models import ExtractionRule, ScriptNode
from .observability import get_logger
from .predicates import to_number
from .variables import slugify


logger = get_logger(__name__)

_TRUE = {"true", "1", "yes", "on"}
_FALSE = {"false", "0", "no", "off"}


def coerce_value(raw: str, value_type: str) -> Any:
    """
    Convert extracted text to the rule's type.

    Raises:
        ValueError: if ``raw`` cannot be read as ``value_type``
    """
    if value_type == "string":
        return raw
    if value_type == "number":
        number = to_number(raw.strip())
        if not raw.strip() or number != number:
            raise ValueError(f"Not a number: {raw!r}")
        return int(number) if number.is_integer() and "." not in raw and "e" not in raw.lower() else number
    if value_type == "boolean":
        lowered = raw.strip().lower()
        if lowered in _TRUE:
            return True
        if lowered in _FALSE:
            return False
        raise ValueError(f"Not a boolean: {raw!r}")
    if value_type == "json":
        return json.loads(raw)
    raise ValueError(f"Unknown extraction type: {value_type}")


def apply_extractions(output: Optional[str], rules: Optional[Iterable[ExtractionRule | Dict[str, Any]]]) -> Dict[str, Any]:
    """
    Apply extraction rules to script output.

    Rules whose pattern is invalid, does not match, or whose capture cannot be
    coerced are skipped with a warning.

    Returns:
        ``{rule.name: value}`` for every rule that produced a value
    """
    values: Dict[str, Any] = {}
    if not output or not rules:
        return values

    for rule in rules:
        if not isinstance(rule, ExtractionRule):
            rule = ExtractionRule.model_validate(rule)

        try:
            match = re.search(rule.pattern, output, re.MULTILINE)
        except re.error as e:
            logger.warning(f"Invalid extraction pattern for '{rule.name}': {e}")
            continue
        if match is None:
            logger.debug(f"Extraction '{rule.name}' did not match")
            continue

        try:
            raw = match.group(rule.match_group)
        except IndexError:
            logger.warning(f"Extraction '{rule.name}' has no group {rule.match_group}")
            continue
        if raw is None:
            continue

        try:
            values[rule.name] = coerce_value(raw, rule.type)
        except ValueError as e:
            logger.warning(f"Extraction '{rule.name}' could not be coerced: {e}")

    return values


def extract_script_variables(node: ScriptNode, output: Optional[str]) -> Dict[str, Any]:
    """
    Apply a script node's extractions and key them for the variable bag.

    Returns:
        ``{"<slug>.<name>": value}`` so ``{{slug.name}}`` resolves once the
        dict is applied to a VariableStore
    """
    slug = slugify(node.display_name)
    extracted = apply_extractions(output, node.config.extractions)
    return {f"{slug}.{name}": value for name, value in extracted.items()}


__all__ = [
    "apply_extractions",
    "coerce_value",
    "extract_script_variables",
]
