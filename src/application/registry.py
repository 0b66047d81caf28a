"""Template registry: static id -> template lookup."""

from typing import Dict, List, Mapping, Optional

from domain.templates import Template
from domain.exceptions import TemplateNotFoundError, RegistryUnavailableError
from shared.logging import get_logger

logger = get_logger(__name__)

TemplateIndex = Mapping[str, Template]


def build_index(*templates: Template) -> Dict[str, Template]:
    """Index templates by id, rejecting duplicate ids."""
    index: Dict[str, Template] = {}
    for template in templates:
        if template.id in index:
            raise ValueError(f"Duplicate template id: {template.id}")
        index[template.id] = template
    return index


class TemplateRegistry:
    """
    Resolves template ids against an ordered list of indexes.

    The usual order is an explicit override index, then the default
    (deployed) index, then local-development templates. All indexes are
    plain mappings assembled at import time; resolution is a lookup.
    """

    def __init__(self, *indexes: Optional[TemplateIndex]):
        self._indexes: List[TemplateIndex] = [i for i in indexes if i is not None]
        self._logger = get_logger(__name__)

    @classmethod
    def default(cls, override: Optional[TemplateIndex] = None) -> 'TemplateRegistry':
        """Registry over the built-in templates, optionally shadowed by ``override``."""
        from templates import DEFAULT_INDEX, LOCAL_INDEX
        return cls(override, DEFAULT_INDEX, LOCAL_INDEX)

    def resolve(self, template_id: str) -> Template:
        """
        Return the first template registered under ``template_id``.

        Raises:
            RegistryUnavailableError: If no index is configured at all
            TemplateNotFoundError: If no index knows the id
        """
        if not self._indexes:
            raise RegistryUnavailableError("No template index configured")

        for index in self._indexes:
            template = index.get(template_id)
            if template is not None:
                return template

        raise TemplateNotFoundError(template_id)

    def ids(self) -> List[str]:
        """All resolvable ids, earlier indexes first."""
        seen: List[str] = []
        for index in self._indexes:
            seen.extend(i for i in index if i not in seen)
        return seen
