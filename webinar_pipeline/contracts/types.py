from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional

from .enums import AudienceTemperature, CTAMode, DeliverableId, ProjectStatus

CHANGE_TYPES = ("id_padding", "field_removal", "type_coercion", "array_sort", "phase_fix")
ISSUE_KINDS = ("schema", "crosslink", "dependency", "generation", "missing")


@dataclass
class NormalizationChange:
    type: str
    path: str
    before: Any
    after: Any
    description: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class NormalizationLog:
    deliverable: str
    timestamp: float
    changes: List[NormalizationChange] = field(default_factory=list)

    @property
    def total_changes(self) -> int:
        return len(self.changes)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "deliverable": self.deliverable,
            "timestamp": self.timestamp,
            "changes": [change.to_dict() for change in self.changes],
            "total_changes": self.total_changes,
        }

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "NormalizationLog":
        return cls(
            deliverable=payload.get("deliverable", ""),
            timestamp=payload.get("timestamp", 0.0),
            changes=[NormalizationChange(**item) for item in payload.get("changes", [])],
        )


@dataclass(frozen=True)
class ValidationIssue:
    kind: str
    deliverable: str
    field: str
    detail: str
    code: str = ""
    blocking: bool = True

    def render(self) -> str:
        location = f"{self.deliverable}.{self.field}" if self.field else self.deliverable
        return f"{self.kind}:{location} {self.detail}"

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class ValidationResult:
    issues: List[ValidationIssue] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not any(issue.blocking for issue in self.issues)

    @property
    def errors(self) -> List[str]:
        return [issue.render() for issue in self.issues]

    @property
    def warnings(self) -> List[str]:
        return [issue.render() for issue in self.issues if not issue.blocking]

    def kinds(self) -> set[str]:
        return {issue.kind for issue in self.issues if issue.blocking}

    def merge(self, other: "ValidationResult") -> "ValidationResult":
        return ValidationResult(issues=[*self.issues, *other.issues])

    def to_dict(self) -> Dict[str, Any]:
        return {"ok": self.ok, "errors": self.errors}


@dataclass
class ArtifactRecord:
    content: Any
    validated: bool
    generated_at: float
    edited_at: Optional[float] = None
    normalization_log: Optional[NormalizationLog] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "content": self.content,
            "validated": self.validated,
            "generated_at": self.generated_at,
            "edited_at": self.edited_at,
            "normalization_log": self.normalization_log.to_dict()
            if self.normalization_log
            else None,
        }

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "ArtifactRecord":
        log = payload.get("normalization_log")
        return cls(
            content=payload.get("content"),
            validated=bool(payload.get("validated", False)),
            generated_at=payload.get("generated_at", 0.0),
            edited_at=payload.get("edited_at"),
            normalization_log=NormalizationLog.from_dict(log) if log else None,
        )


@dataclass
class PlaceholderLocation:
    artifact_id: str
    field_path: str
    placeholder_text: str
    is_critical: bool

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class PlaceholderScan:
    locations: List[PlaceholderLocation] = field(default_factory=list)
    malformed_count: int = 0

    @property
    def total_count(self) -> int:
        return len(self.locations)

    @property
    def critical_count(self) -> int:
        return sum(1 for location in self.locations if location.is_critical)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_count": self.total_count,
            "critical_count": self.critical_count,
            "locations": [location.to_dict() for location in self.locations],
        }


@dataclass
class ReadinessResult:
    score: int
    pass_: bool
    blocking_reasons: List[str]
    recommended_actions: List[str] = field(default_factory=list)


@dataclass
class TranscriptData:
    build_transcript: str
    intake_transcript: Optional[str] = None
    operator_notes: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class ProjectSettings:
    cta_mode: CTAMode = CTAMode.BOOK_CALL
    audience_temperature: AudienceTemperature = AudienceTemperature.WARM
    webinar_length_minutes: int = 60
    client_name: Optional[str] = None
    speaker_name: Optional[str] = None
    company_name: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        payload = asdict(self)
        payload["cta_mode"] = self.cta_mode.value
        payload["audience_temperature"] = self.audience_temperature.value
        return payload

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "ProjectSettings":
        return cls(
            cta_mode=CTAMode(payload.get("cta_mode", CTAMode.BOOK_CALL.value)),
            audience_temperature=AudienceTemperature(
                payload.get("audience_temperature", AudienceTemperature.WARM.value)
            ),
            webinar_length_minutes=int(payload.get("webinar_length_minutes", 60)),
            client_name=payload.get("client_name"),
            speaker_name=payload.get("speaker_name"),
            company_name=payload.get("company_name"),
        )


@dataclass
class ProjectMetadata:
    project_id: str
    run_id: str
    title: str
    status: ProjectStatus = ProjectStatus.REVIEW
    settings: ProjectSettings = field(default_factory=ProjectSettings)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "project_id": self.project_id,
            "run_id": self.run_id,
            "title": self.title,
            "status": self.status.value,
            "settings": self.settings.to_dict(),
        }

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "ProjectMetadata":
        return cls(
            project_id=payload["project_id"],
            run_id=payload["run_id"],
            title=payload.get("title", ""),
            status=ProjectStatus(payload.get("status", ProjectStatus.REVIEW.value)),
            settings=ProjectSettings.from_dict(payload.get("settings", {})),
        )


@dataclass(frozen=True)
class TargetConstraints:
    webinar_length_minutes: Optional[int] = None


DependencyMap = Dict[DeliverableId, ArtifactRecord]
