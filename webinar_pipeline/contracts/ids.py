from __future__ import annotations

import re
import uuid
from dataclasses import dataclass
from typing import Optional

from .enums import BlockPhase, DeliverableId, phase_for_block_number

ARTIFACT_VERSION = "v1"
CHECKLIST_CATEGORIES = ("pre", "live", "post")


@dataclass(frozen=True)
class IdRule:
    prefix: str
    width: int
    low: int
    high: int
    label: str

    def pattern(self) -> re.Pattern[str]:
        return re.compile(rf"^{re.escape(self.prefix)}(\d+)$")

    def number(self, value: str) -> Optional[int]:
        match = self.pattern().match(value.strip())
        if not match:
            return None
        return int(match.group(1))

    def pad(self, value: str) -> Optional[str]:
        number = self.number(value)
        if number is None or number < self.low or number > self.high:
            return None
        return f"{self.prefix}{number:0{self.width}d}"

    def example(self) -> str:
        first = f"{self.prefix}{self.low:0{self.width}d}"
        last = f"{self.prefix}{self.high:0{self.width}d}"
        return f"{first}-{last}"


BLOCK_ID = IdRule(prefix="B", width=2, low=1, high=21, label="Block")
EMAIL_ID = IdRule(prefix="E", width=2, low=1, high=10, label="Email")
SOCIAL_ID = IdRule(prefix="S", width=2, low=1, high=18, label="Social")


def checklist_rule(category: str) -> IdRule:
    return IdRule(prefix=f"CL_{category}_", width=3, low=1, high=999, label="Checklist")


CHECKLIST_ID_PATTERN = re.compile(r"^CL_(pre|live|post)_(\d+)$")


def rehome_checklist_id(value: str, category: str) -> Optional[str]:
    match = CHECKLIST_ID_PATTERN.match(value.strip())
    if not match:
        return None
    return checklist_rule(category).pad(f"CL_{category}_{match.group(2)}")


def block_number(block_id: str) -> Optional[int]:
    return BLOCK_ID.number(block_id)


def phase_for_block_id(block_id: str) -> Optional[BlockPhase]:
    number = block_number(block_id)
    if number is None:
        return None
    return phase_for_block_number(number)


def generate_project_id() -> str:
    return f"wrproj_{uuid.uuid4()}"


def generate_run_id() -> str:
    return f"run_{uuid.uuid4()}"


def build_artifact_id(project_id: str, run_id: str, deliverable: DeliverableId) -> str:
    return f"{project_id}:{run_id}:{DeliverableId(deliverable).value}:{ARTIFACT_VERSION}"


@dataclass(frozen=True)
class ArtifactKey:
    project_id: str
    run_id: str
    deliverable: DeliverableId
    version: str


def parse_artifact_id(artifact_id: str) -> Optional[ArtifactKey]:
    if not isinstance(artifact_id, str):
        return None
    parts = artifact_id.split(":")
    if len(parts) != 4 or not all(parts):
        return None
    if any(part.lower() in ("undefined", "null", "none") for part in parts):
        return None
    try:
        deliverable = DeliverableId(parts[2])
    except ValueError:
        return None
    return ArtifactKey(
        project_id=parts[0],
        run_id=parts[1],
        deliverable=deliverable,
        version=parts[3],
    )
