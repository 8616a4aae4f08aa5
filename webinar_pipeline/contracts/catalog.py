from __future__ import annotations

import json
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Dict, Iterable, List, Set, Tuple

from .enums import DeliverableId

SCHEMAS_DIR = Path(__file__).resolve().parents[1] / "schemas"


@dataclass(frozen=True)
class DeliverableMeta:
    id: DeliverableId
    title: str
    short_title: str
    category: str
    exportable: bool
    sort_order: int
    filename_title: str


@dataclass(frozen=True)
class StageSpec:
    deliverable: DeliverableId
    batch: int
    dependencies: Tuple[DeliverableId, ...]


D = DeliverableId

DELIVERABLES: Dict[DeliverableId, DeliverableMeta] = {
    D.PREFLIGHT: DeliverableMeta(D.PREFLIGHT, "Preflight (Readiness Check)", "Preflight", "Operator", False, 0, "Preflight_Readiness_Check"),
    D.WR1: DeliverableMeta(D.WR1, "Client Profile Dossier", "Dossier", "Strategy", True, 1, "Client_Profile_Dossier"),
    D.WR2: DeliverableMeta(D.WR2, "Framework 21", "Framework 21", "Core Delivery", True, 2, "Framework_21"),
    D.WR3: DeliverableMeta(D.WR3, "Landing Page Copy", "Landing Page", "Marketing", True, 3, "Landing_Page_Copy"),
    D.WR4: DeliverableMeta(D.WR4, "Email Campaign", "Email", "Marketing", True, 4, "Email_Campaign"),
    D.WR5: DeliverableMeta(D.WR5, "Social Posts Pack", "Social", "Marketing", True, 5, "Social_Posts_Pack"),
    D.WR6: DeliverableMeta(D.WR6, "Run of Show", "Run of Show", "Delivery", True, 6, "Run_of_Show"),
    D.WR7: DeliverableMeta(D.WR7, "Execution Checklist", "Checklist", "Delivery", True, 7, "Execution_Checklist"),
    D.WR8: DeliverableMeta(D.WR8, "Deck Prompt (Gamma)", "Deck Prompt", "Delivery", True, 8, "Deck_Prompt_Gamma"),
    D.WR9: DeliverableMeta(D.WR9, "Readiness & QA Report", "QA Report", "Operator", False, 9, "Readiness_QA_Report"),
}

STAGES: Tuple[StageSpec, ...] = (
    StageSpec(D.PREFLIGHT, 1, ()),
    StageSpec(D.WR1, 2, (D.PREFLIGHT,)),
    StageSpec(D.WR2, 3, (D.WR1,)),
    StageSpec(D.WR3, 4, (D.WR1, D.WR2)),
    StageSpec(D.WR4, 4, (D.WR1, D.WR2)),
    StageSpec(D.WR5, 4, (D.WR1, D.WR2)),
    StageSpec(D.WR6, 5, (D.WR2,)),
    StageSpec(D.WR7, 5, (D.WR2,)),
    StageSpec(D.WR8, 5, (D.WR2, D.WR3)),
    StageSpec(D.WR9, 6, (D.WR1, D.WR2, D.WR3, D.WR4, D.WR5, D.WR6, D.WR7, D.WR8)),
)

STAGE_BY_ID: Dict[DeliverableId, StageSpec] = {stage.deliverable: stage for stage in STAGES}

SCHEMA_FILES: Dict[DeliverableId, str] = {
    deliverable: f"{deliverable.value.lower()}.schema.json" for deliverable in DeliverableId
}


def batches(only: Iterable[DeliverableId] | None = None) -> List[List[StageSpec]]:
    wanted = set(only) if only is not None else None
    grouped: Dict[int, List[StageSpec]] = {}
    for stage in STAGES:
        if wanted is not None and stage.deliverable not in wanted:
            continue
        grouped.setdefault(stage.batch, []).append(stage)
    return [grouped[number] for number in sorted(grouped)]


def dependents_of(target: DeliverableId) -> Set[DeliverableId]:
    affected: Set[DeliverableId] = set()
    frontier = [target]
    while frontier:
        current = frontier.pop()
        for stage in STAGES:
            if current in stage.dependencies and stage.deliverable not in affected:
                affected.add(stage.deliverable)
                frontier.append(stage.deliverable)
    return affected


def exportable_deliverables() -> List[DeliverableId]:
    metas = sorted(DELIVERABLES.values(), key=lambda meta: meta.sort_order)
    return [meta.id for meta in metas if meta.exportable]


def export_filename(deliverable: DeliverableId) -> str:
    meta = DELIVERABLES[deliverable]
    return f"{meta.sort_order:02d}_{meta.filename_title}_{deliverable.value}"


@lru_cache(maxsize=None)
def load_schema(deliverable: DeliverableId) -> Dict:
    path = SCHEMAS_DIR / SCHEMA_FILES[DeliverableId(deliverable)]
    return json.loads(path.read_text(encoding="utf-8"))
