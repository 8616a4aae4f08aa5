from __future__ import annotations

from typing import List, Sequence

from webinar_pipeline.contracts.types import ValidationIssue


class PipelineError(Exception):
    pass


class PreconditionError(PipelineError):
    pass


class GenerationError(PipelineError):
    """Model or transport failure. Consumed by the repair loop's attempt budget."""

    retryable = True


class AuthenticationError(GenerationError):
    retryable = False


class RateLimitedError(GenerationError):
    pass


class GenerationTimeout(GenerationError):
    pass


class RepairExhaustedError(PipelineError):
    def __init__(
        self,
        deliverable: str,
        attempts: int,
        translated: Sequence[str],
        issues: Sequence[ValidationIssue],
        last_candidate: object = None,
    ) -> None:
        self.deliverable = deliverable
        self.attempts = attempts
        self.translated: List[str] = list(translated)
        self.issues: List[ValidationIssue] = list(issues)
        self.last_candidate = last_candidate
        super().__init__(self._message())

    @property
    def errors(self) -> List[str]:
        return [issue.render() for issue in self.issues]

    def _message(self) -> str:
        head = "; ".join(self.translated[:3])
        more = " (and more)" if len(self.translated) > 3 else ""
        return (
            f"Failed to generate valid {self.deliverable} after {self.attempts} "
            f"repair attempts. Issues: {head}{more}"
        )


class PipelineCancelled(PipelineError):
    pass


class ExportNotAllowed(PipelineError):
    pass
