from __future__ import annotations

import logging
import re
from typing import Any, Dict, FrozenSet, List, Mapping

from webinar_pipeline.contracts.enums import DeliverableId
from webinar_pipeline.contracts.ids import build_artifact_id, parse_artifact_id
from webinar_pipeline.contracts.types import PlaceholderLocation, PlaceholderScan
from webinar_pipeline.kinds import kind_for

logger = logging.getLogger(__name__)

PLACEHOLDER_PATTERNS = (
    re.compile(r"\{\{[^}]+\}\}"),
    re.compile(r"\[TBD\]", re.IGNORECASE),
    re.compile(r"\[TODO\]", re.IGNORECASE),
    re.compile(r"\[INSERT[^\]]*\]", re.IGNORECASE),
    re.compile(r"\[PLACEHOLDER\]", re.IGNORECASE),
    re.compile(r"\[FILL[^\]]*\]", re.IGNORECASE),
    re.compile(r"\[ADD[^\]]*\]", re.IGNORECASE),
    re.compile(r"_placeholder", re.IGNORECASE),
    re.compile(r"XXX"),
    re.compile(r"FIXME", re.IGNORECASE),
)

CRITICAL_MARKERS = ("link_placeholder", "cta_link", "registration_link", "booking_link")

SKIPPED = frozenset({DeliverableId.PREFLIGHT, DeliverableId.WR9})


def is_critical_text(text: str) -> bool:
    lowered = text.lower()
    return any(marker in lowered for marker in CRITICAL_MARKERS)


def leaf_field(field_path: str) -> str:
    last = field_path.rsplit(".", 1)[-1]
    return re.sub(r"(\[\d+\])+$", "", last)


def _scan_text(
    text: str,
    artifact_id: str,
    field_path: str,
    non_critical: FrozenSet[str],
    locations: List[PlaceholderLocation],
) -> None:
    exempt = leaf_field(field_path) in non_critical
    for pattern in PLACEHOLDER_PATTERNS:
        for match in pattern.finditer(text):
            matched = match.group(0)
            locations.append(
                PlaceholderLocation(
                    artifact_id=artifact_id,
                    field_path=field_path,
                    placeholder_text=matched,
                    is_critical=is_critical_text(matched) and not exempt,
                )
            )


def _walk(
    value: Any,
    artifact_id: str,
    path: str,
    non_critical: FrozenSet[str],
    locations: List[PlaceholderLocation],
) -> None:
    if isinstance(value, str):
        _scan_text(value, artifact_id, path, non_critical, locations)
    elif isinstance(value, list):
        for index, item in enumerate(value):
            _walk(item, artifact_id, f"{path}[{index}]", non_critical, locations)
    elif isinstance(value, dict):
        for key, item in value.items():
            _walk(item, artifact_id, f"{path}.{key}" if path else key, non_critical, locations)


def scan_placeholders(artifacts_by_id: Mapping[str, Any]) -> PlaceholderScan:
    scan = PlaceholderScan()
    for artifact_id, content in artifacts_by_id.items():
        key = parse_artifact_id(artifact_id)
        if key is None:
            scan.malformed_count += 1
            logger.warning("[placeholders] skipping malformed artifact_id=%r", artifact_id)
            continue
        if key.deliverable in SKIPPED:
            continue
        kind = kind_for(key.deliverable)
        _walk(content, artifact_id, "", kind.non_critical_fields, scan.locations)
        scan.locations.extend(kind.extra_placeholders(artifact_id, content))
    logger.debug(
        "[placeholders] total=%d critical=%d malformed=%d",
        scan.total_count,
        scan.critical_count,
        scan.malformed_count,
    )
    return scan


def scan_contents(
    project_id: str, run_id: str, contents: Dict[DeliverableId, Any]
) -> PlaceholderScan:
    return scan_placeholders(
        {
            build_artifact_id(project_id, run_id, deliverable): content
            for deliverable, content in contents.items()
        }
    )
