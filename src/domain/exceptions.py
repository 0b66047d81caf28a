"""Domain exceptions for the assembly processing pipeline."""

from typing import Optional


class DomainException(Exception):
    """Base exception for all domain errors."""
    pass


class ValidationError(DomainException):
    """Raised when a job or event is malformed or references a disallowed bucket.

    Rejected outright: never retried, never written to the status store.
    """
    pass


class ConfigurationError(DomainException):
    """Raised when configuration is invalid."""
    pass


class TemplateNotFoundError(DomainException):
    """Raised when no registered template index knows the template id."""

    def __init__(self, template_id: str):
        super().__init__(f"Template not found: {template_id}")
        self.template_id = template_id


class RegistryUnavailableError(DomainException):
    """Raised when the template registry has no index to resolve against."""
    pass


class ExternalToolError(DomainException):
    """Raised when an external media tool exits non-zero."""

    def __init__(self, program: str, returncode: int, stderr: str = ""):
        detail = stderr.strip()[-2000:] if stderr else ""
        message = f"{program} exited with code {returncode}"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)
        self.program = program
        self.returncode = returncode
        self.stderr = stderr


class TransientInfraError(DomainException):
    """Raised when storage, queue or status-store calls fail.

    These are left to queue redelivery rather than retried in-process.
    """
    pass


class WebhookDeliveryError(DomainException):
    """Raised when a webhook could not be delivered."""

    def __init__(self, message: str, status_code: Optional[int] = None, attempts: int = 0):
        super().__init__(message)
        self.status_code = status_code
        self.attempts = attempts


class AssemblyNotFoundError(DomainException):
    """Raised when a status record does not exist."""

    def __init__(self, assembly_id: str):
        super().__init__(f"Assembly not found: {assembly_id}")
        self.assembly_id = assembly_id


class AssemblyAlreadyStartedError(DomainException):
    """Raised when processing was already claimed for an assembly."""

    def __init__(self, assembly_id: str):
        super().__init__(f"Assembly already started: {assembly_id}")
        self.assembly_id = assembly_id
