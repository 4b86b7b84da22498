"""
Gate workflow exception hierarchy.

Services raise these; ``fieldgates.main`` registers one handler per type so
every router gets the same HTTP status codes.

Usage:
    from fieldgates.core.exceptions import NotFoundError, ValidationFailedError

    raise NotFoundError(resource="Gate", resource_id=gate_id)
    raise ValidationFailedError(errors=[...], warnings=[...])
"""


class GateWorkflowError(Exception):
    """Base class for every error the workflow engine raises on purpose."""


class NotFoundError(GateWorkflowError):
    """Raised when a job or gate does not exist.

    Fatal to the request and never retried. Maps to HTTP 404.

    Args:
        resource: Entity name ("Job", "Gate").
        resource_id: The identifier that was looked up.
    """

    def __init__(self, resource: str, resource_id: str | None = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        super().__init__(msg)


class NotAssignedError(GateWorkflowError):
    """Raised when the acting user is not the job's lead technician. Maps to 403."""

    def __init__(self, job_id: str, job_title: str | None, actor_id: str) -> None:
        self.job_id = job_id
        self.actor_id = actor_id
        super().__init__(f'Job "{job_title or job_id}" is not assigned to you.')


class GateAlreadyResolvedError(GateWorkflowError):
    """Raised when a completion or exception targets a complete/skipped gate.

    An idempotency guard rather than a failure: callers show the message and
    do not retry. Maps to HTTP 409.
    """

    def __init__(self, gate_id: str, stage_name: str, status: str) -> None:
        self.gate_id = gate_id
        self.stage_name = stage_name
        self.status = status
        super().__init__(f"{stage_name} gate is already {status}.")


class ValidationFailedError(GateWorkflowError):
    """Raised when stage or cross-gate validation leaves blocking errors.

    The expected, user-facing outcome of a blocked completion. Carries every
    error and warning so the technician can fix them all in one pass.
    Maps to HTTP 422.
    """

    def __init__(self, errors: list[str], warnings: list[str] | None = None) -> None:
        self.errors = list(errors)
        self.warnings = list(warnings or [])
        super().__init__("\n\n".join(self.errors))


class InvalidExceptionReasonError(GateWorkflowError):
    """Raised when an exception is logged without a reason. Maps to 400."""

    def __init__(self) -> None:
        super().__init__("Exception reason is required.")


class UploadFailedError(GateWorkflowError):
    """Raised when a photo upload fails after all retries.

    ``message`` is already translated into guidance a technician can act on.
    Maps to HTTP 502.
    """

    def __init__(self, message: str, attempts: int = 0) -> None:
        self.attempts = attempts
        super().__init__(message)


class WrongStageError(GateWorkflowError):
    """Raised when a stage-specific action targets a gate of another stage. Maps to 400."""

    def __init__(self, expected: str, actual: str) -> None:
        self.expected = expected
        self.actual = actual
        super().__init__(f"This action is only available on the {expected} gate, not {actual}.")
