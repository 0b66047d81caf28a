"""Built-in templates.

``DEFAULT_INDEX`` holds the templates shipped with a deployment.
``LOCAL_INDEX`` is the fallback consulted last, for development
templates that never ship.
"""

from typing import Dict

from application.registry import build_index
from domain.templates import Step, Template
from templates.preview import PREVIEW
from templates.basic_audio import BASIC_AUDIO


def _noop(ctx) -> None:
    ctx.publish("noop")


DEFAULT_INDEX: Dict[str, Template] = build_index(PREVIEW, BASIC_AUDIO)

LOCAL_INDEX: Dict[str, Template] = build_index(
    Template(id="test-template", steps=[Step("noop", _noop)])
)

__all__ = ['DEFAULT_INDEX', 'LOCAL_INDEX', 'PREVIEW', 'BASIC_AUDIO']
