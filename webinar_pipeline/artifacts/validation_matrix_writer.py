from __future__ import annotations

from pathlib import Path
from typing import Dict, List, Mapping

from webinar_pipeline.contracts.catalog import DELIVERABLES
from webinar_pipeline.contracts.enums import DeliverableId
from webinar_pipeline.contracts.types import PlaceholderScan, ValidationResult
from webinar_pipeline.utils.io import write_text


def _cell(value: object) -> str:
    text = str(value)
    if any(char in text for char in ',"\r\n'):
        return '"' + text.replace('"', '""') + '"'
    return text


def write_validation_matrix(
    path: Path,
    validation_results: Mapping[DeliverableId, ValidationResult],
    scan: PlaceholderScan,
) -> None:
    placeholders: Dict[str, List[int]] = {}
    for location in scan.locations:
        deliverable = location.artifact_id.split(":")[2]
        counts = placeholders.setdefault(deliverable, [0, 0])
        counts[0] += 1
        if location.is_critical:
            counts[1] += 1
    lines: List[str] = ["deliverable,title,ok,issue_count,placeholders,critical_placeholders,first_issue"]
    for deliverable, result in validation_results.items():
        total, critical = placeholders.get(deliverable.value, [0, 0])
        errors = result.errors
        lines.append(
            ",".join(
                _cell(value)
                for value in (
                    deliverable.value,
                    DELIVERABLES[deliverable].title,
                    "yes" if result.ok else "no",
                    len(errors),
                    total,
                    critical,
                    errors[0] if errors else "",
                )
            )
        )
    write_text(path, "\n".join(lines) + "\n")
