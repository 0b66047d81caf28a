"""Domain layer package."""

from .models import (
    ASSEMBLY_COMPLETED,
    ErrorKind,
    AssemblyState,
    ObjectRef,
    ObjectHead,
    UserContext,
    AssemblyGroup,
    SoloGroup,
    GroupKey,
    UploadedObject,
    ProcessingJob,
    UploadEntry,
    ResultArtifact,
    JobOutcome,
    JobResult,
    BatchReport,
    derive_assembly_id,
)
from .templates import Step, Template
from .exceptions import (
    DomainException,
    ValidationError,
    ConfigurationError,
    TemplateNotFoundError,
    RegistryUnavailableError,
    ExternalToolError,
    TransientInfraError,
    WebhookDeliveryError,
    AssemblyNotFoundError,
    AssemblyAlreadyStartedError,
)
from .protocols import (
    IObjectStorage,
    IMessageQueue,
    IStatusStore,
    IWebhookNotifier,
    ITempStorage,
    IMetricsCollector,
)

__all__ = [
    # Models
    "ASSEMBLY_COMPLETED",
    "ErrorKind",
    "AssemblyState",
    "ObjectRef",
    "ObjectHead",
    "UserContext",
    "AssemblyGroup",
    "SoloGroup",
    "GroupKey",
    "UploadedObject",
    "ProcessingJob",
    "UploadEntry",
    "ResultArtifact",
    "JobOutcome",
    "JobResult",
    "BatchReport",
    "derive_assembly_id",
    "Step",
    "Template",
    # Exceptions
    "DomainException",
    "ValidationError",
    "ConfigurationError",
    "TemplateNotFoundError",
    "RegistryUnavailableError",
    "ExternalToolError",
    "TransientInfraError",
    "WebhookDeliveryError",
    "AssemblyNotFoundError",
    "AssemblyAlreadyStartedError",
    # Protocols
    "IObjectStorage",
    "IMessageQueue",
    "IStatusStore",
    "IWebhookNotifier",
    "ITempStorage",
    "IMetricsCollector",
]
