from __future__ import annotations

import copy
import json
import logging
import re
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterator, List, Optional, Sequence, Tuple

from webinar_pipeline.contracts.enums import DeliverableId
from webinar_pipeline.contracts.types import NormalizationChange, NormalizationLog

logger = logging.getLogger(__name__)

NUMERIC_STRING = re.compile(r"^-?\d+(\.\d+)?$")

IdFixer = Callable[[str], Optional[str]]
Deriver = Callable[[Dict[str, Any]], Optional[Any]]


@dataclass
class Scope:
    """Permitted fields and per-field rules for the objects found at ``path``.

    ``path`` is a tuple of keys from the root; ``"*"`` steps into every
    element of an array. The empty tuple is the root object.
    """

    path: Tuple[str, ...]
    fields: Sequence[str]
    ids: Dict[str, IdFixer] = field(default_factory=dict)
    numbers: Sequence[str] = ()
    booleans: Sequence[str] = ()
    derived: Dict[str, Deriver] = field(default_factory=dict)


@dataclass
class SortRule:
    key: str
    sort_key: Callable[[Any], Any]
    label: str


def coerce_number(value: Any) -> Any:
    if isinstance(value, str):
        trimmed = value.strip()
        if NUMERIC_STRING.match(trimmed):
            return float(trimmed) if "." in trimmed else int(trimmed)
    return None


def coerce_boolean(value: Any) -> Any:
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered == "true":
            return True
        if lowered == "false":
            return False
    if type(value) is int and value in (0, 1):
        return bool(value)
    return None


def _join(prefix: str, key: str) -> str:
    return f"{prefix}.{key}" if prefix else key


def _nodes_at(root: Any, path: Tuple[str, ...], trail: str = "") -> Iterator[Tuple[Dict, str]]:
    if not path:
        if isinstance(root, dict):
            yield root, trail
        return
    head, rest = path[0], path[1:]
    if head == "*":
        if isinstance(root, list):
            for index, item in enumerate(root):
                yield from _nodes_at(item, rest, f"{trail}[{index}]")
        return
    if isinstance(root, dict) and head in root:
        yield from _nodes_at(root[head], rest, _join(trail, head))


class CanonicalizationRun:
    def __init__(self, deliverable: str) -> None:
        self.deliverable = deliverable
        self.changes: List[NormalizationChange] = []

    def record(self, kind: str, path: str, before: Any, after: Any, description: str) -> None:
        self.changes.append(
            NormalizationChange(
                type=kind, path=path, before=before, after=after, description=description
            )
        )

    def apply_scope(self, node: Dict, trail: str, scope: Scope) -> None:
        allowed = set(scope.fields)
        for key in [key for key in node if key not in allowed]:
            before = node.pop(key)
            self.record(
                "field_removal", _join(trail, key), before, None, f'Removed unknown field "{key}"'
            )

        for key, fixer in scope.ids.items():
            value = node.get(key)
            if not isinstance(value, str):
                continue
            fixed = fixer(value)
            if fixed is not None and fixed != value:
                node[key] = fixed
                self.record(
                    "id_padding", _join(trail, key), value, fixed, f"Normalized {key}: {value} -> {fixed}"
                )

        for key, derive in scope.derived.items():
            expected = derive(node)
            if expected is not None and node.get(key) != expected:
                before = node.get(key)
                node[key] = expected
                self.record(
                    "phase_fix", _join(trail, key), before, expected, f"Fixed {key}: {before} -> {expected}"
                )

        for key in scope.numbers:
            if key not in node:
                continue
            coerced = coerce_number(node[key])
            if coerced is not None:
                before = node[key]
                node[key] = coerced
                self.record(
                    "type_coercion", _join(trail, key), before, coerced, f"Coerced {key} to number"
                )

        for key in scope.booleans:
            if key not in node or isinstance(node[key], bool):
                continue
            coerced = coerce_boolean(node[key])
            if coerced is not None:
                before = node[key]
                node[key] = coerced
                self.record(
                    "type_coercion", _join(trail, key), before, coerced, f"Coerced {key} to boolean"
                )

    def apply_sort(self, root: Dict, rule: SortRule) -> None:
        items = root.get(rule.key)
        if not isinstance(items, list):
            return
        ordered = sorted(items, key=rule.sort_key)
        if json.dumps(ordered, sort_keys=True) != json.dumps(items, sort_keys=True):
            root[rule.key] = ordered
            self.record(
                "array_sort", rule.key, "unsorted", f"sorted by {rule.label}",
                f"Sorted {rule.key} by {rule.label}",
            )


def run_rules(
    deliverable: str,
    raw: Any,
    scopes: Sequence[Scope],
    sorts: Sequence[SortRule] = (),
    clock: Callable[[], float] = time.time,
) -> Tuple[Any, NormalizationLog]:
    value = copy.deepcopy(raw)
    run = CanonicalizationRun(deliverable)
    if isinstance(value, dict):
        for scope in scopes:
            for node, trail in list(_nodes_at(value, scope.path)):
                run.apply_scope(node, trail, scope)
        for rule in sorts:
            run.apply_sort(value, rule)
    log = NormalizationLog(deliverable=deliverable, timestamp=clock(), changes=run.changes)
    if run.changes:
        logger.debug("[canonicalize] deliverable=%s changes=%d", deliverable, len(run.changes))
    return value, log


def canonicalize(deliverable: DeliverableId, raw: Any) -> Tuple[Any, NormalizationLog]:
    from webinar_pipeline.kinds import kind_for

    return kind_for(deliverable).canonicalize(raw)


def format_normalization_log(log: NormalizationLog) -> str:
    if not log.changes:
        return f"{log.deliverable}: no normalization needed"
    counts: Dict[str, int] = {}
    for change in log.changes:
        counts[change.type] = counts.get(change.type, 0) + 1
    summary = ", ".join(f"{count} {kind}" for kind, count in sorted(counts.items()))
    lines = [f"{log.deliverable}: {log.total_changes} changes ({summary})"]
    lines.extend(f"  - {change.path}: {change.description}" for change in log.changes)
    return "\n".join(lines)
