from __future__ import annotations

from functools import lru_cache
from typing import Any, Iterable, List

from jsonschema import Draft7Validator
from jsonschema.exceptions import ValidationError

from webinar_pipeline.contracts.catalog import load_schema
from webinar_pipeline.contracts.enums import DeliverableId
from webinar_pipeline.contracts.types import ValidationIssue, ValidationResult


@lru_cache(maxsize=None)
def _validator(deliverable: DeliverableId) -> Draft7Validator:
    schema = load_schema(deliverable)
    Draft7Validator.check_schema(schema)
    return Draft7Validator(schema)


def field_path(parts: Iterable[Any]) -> str:
    path = ""
    for part in parts:
        if isinstance(part, int):
            path += f"[{part}]"
        else:
            path = f"{path}.{part}" if path else str(part)
    return path


def _code(error: ValidationError) -> str:
    return f"schema_{error.validator}"


def validate_schema(deliverable: Any, content: Any) -> ValidationResult:
    try:
        deliverable_id = DeliverableId(deliverable)
    except ValueError:
        return ValidationResult(
            issues=[
                ValidationIssue(
                    kind="schema",
                    deliverable=str(deliverable),
                    field="",
                    detail="no contract registered",
                    code="schema_not_found",
                )
            ]
        )

    errors: List[ValidationError] = sorted(
        _validator(deliverable_id).iter_errors(content),
        key=lambda error: (field_path(error.absolute_path), error.message),
    )
    return ValidationResult(
        issues=[
            ValidationIssue(
                kind="schema",
                deliverable=deliverable_id.value,
                field=field_path(error.absolute_path),
                detail=error.message,
                code=_code(error),
            )
            for error in errors
        ]
    )
