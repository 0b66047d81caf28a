"""Template and step definitions."""

from dataclasses import dataclass, field
from typing import Callable, List, Optional, Any

# Step functions receive an application.step_context.StepContext; typed as
# Any here so the domain layer does not import the application layer.
StepFunction = Callable[[Any], None]


@dataclass(frozen=True)
class Step:
    """One named unit of work in a template pipeline."""

    name: str
    run: StepFunction

    def __post_init__(self):
        if not self.name:
            raise ValueError("Step name is required")
        if not callable(self.run):
            raise ValueError(f"Step {self.name} is not callable")


@dataclass(frozen=True)
class Template:
    """An ordered pipeline of steps registered ahead of deployment."""

    id: str
    steps: List[Step] = field(default_factory=list)
    output_bucket: Optional[str] = None
    output_prefix: Optional[str] = None
    webhook_url: Optional[str] = None
    webhook_secret: Optional[str] = None

    def __post_init__(self):
        if not self.id:
            raise ValueError("Template id is required")
        names = [s.name for s in self.steps]
        if len(names) != len(set(names)):
            raise ValueError(f"Template {self.id} has duplicate step names: {names}")

    @property
    def step_names(self) -> List[str]:
        return [s.name for s in self.steps]

    @property
    def has_webhook(self) -> bool:
        return bool(self.webhook_url)
