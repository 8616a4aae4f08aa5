from __future__ import annotations

from pathlib import Path
from typing import Dict, List, Optional

from webinar_pipeline.utils.io import write_text
from webinar_pipeline.utils.time import format_epoch


def _clock(minute: int) -> str:
    return f"{minute // 60:02d}:{minute % 60:02d}"


def write_readiness_report(path: Path, report: Dict, generated_at: Optional[float] = None) -> None:
    verdict = "PASS" if report.get("pass") else "NOT READY"
    lines: List[str] = [
        "# Readiness & QA Report",
        "",
        f"Score: **{report.get('readiness_score', 0)}** ({verdict})",
    ]
    if generated_at is not None:
        lines.append(f"Generated: {format_epoch(generated_at)}")
    if report.get("blocking_reasons"):
        lines.extend(["", "## Blocking Reasons"])
        lines.extend([f"- {item}" for item in report["blocking_reasons"]])
    lines.extend(["", "## Validation Results"])
    for deliverable, result in report.get("validation_results", {}).items():
        status = "ok" if result.get("ok") else "invalid"
        lines.append(f"- **{deliverable}**: {status}")
        lines.extend([f"  - {error}" for error in result.get("errors", [])])
    scan = report.get("placeholder_scan", {})
    lines.extend(
        [
            "",
            "## Placeholders",
            f"Total: {scan.get('total_count', 0)}, critical: {scan.get('critical_count', 0)}",
        ]
    )
    for location in scan.get("locations", []):
        marker = " (critical)" if location.get("is_critical") else ""
        lines.append(
            f"- `{location['field_path']}` in {location['artifact_id']}: "
            f"{location['placeholder_text']}{marker}"
        )
    if report.get("stale_deliverables"):
        lines.extend(["", "## Stale Deliverables"])
        for deliverable, sources in report["stale_deliverables"].items():
            lines.append(f"- **{deliverable}** predates changes to {', '.join(sources)}")
    if report.get("recommended_next_actions"):
        lines.extend(["", "## Recommended Next Actions"])
        lines.extend([f"- {item}" for item in report["recommended_next_actions"]])
    write_text(path, "\n".join(lines) + "\n")


def write_run_of_show(path: Path, run_of_show: Dict, title: str, include_coaching: bool = True) -> None:
    lines: List[str] = [
        f"# Run of Show: {title}",
        "",
        f"Total duration: {run_of_show.get('total_duration_minutes', 0)} minutes",
        "",
    ]
    for segment in run_of_show.get("timeline", []):
        window = f"{_clock(segment['start_minute'])}-{_clock(segment['end_minute'])}"
        lines.extend(
            [
                f"## {window} {segment['segment_title']} ({segment['block_id']})",
                "",
                segment.get("description", ""),
                "",
            ]
        )
        if include_coaching:
            lines.extend(
                [
                    f"- Coach cue: {segment.get('coach_cue', '')}",
                    f"- If the room is cold: {segment.get('fallback_if_cold', '')}",
                    f"- Time check: {segment.get('time_check', '')}",
                    "",
                ]
            )
    write_text(path, "\n".join(lines).strip() + "\n")


def write_script(path: Path, framework: Dict, title: str, run_of_show: Optional[Dict] = None) -> None:
    windows = {
        segment.get("block_id"): (segment["start_minute"], segment["end_minute"])
        for segment in (run_of_show or {}).get("timeline", [])
    }
    lines: List[str] = [f"# Webinar Script: {title}", "", "## Table of Contents", ""]
    for block in framework.get("blocks", []):
        lines.append(f"- {block['block_id']}: {block['title']}")
    lines.append("")
    for block in framework.get("blocks", []):
        header = f"**Phase:** {block['phase'].capitalize()} | **Duration:** {block['timebox_minutes']} min"
        if block["block_id"] in windows:
            start, end = windows[block["block_id"]]
            header += f" | **Timestamp:** {_clock(start)}-{_clock(end)}"
        lines.extend(
            [
                f"## {block['block_id']}: {block['title']}",
                "",
                header,
                "",
                "### What to Say",
                "",
                block.get("talk_track_md", ""),
                "",
                "### Stage Directions",
                "",
                f"- Purpose: {block.get('purpose', '')}",
                f"- Transition in: {block.get('transition_in', '')}",
                f"- Transition out: {block.get('transition_out', '')}",
                "",
            ]
        )
        if block.get("proof_insertion_points"):
            lines.extend(["### Proof Points", ""])
            lines.extend([f"- {item}" for item in block["proof_insertion_points"]])
            lines.append("")
        if block.get("objections_handled"):
            lines.extend(["### Objections to Address", ""])
            lines.extend([f"- {item}" for item in block["objections_handled"]])
            lines.append("")
    write_text(path, "\n".join(lines).strip() + "\n")
