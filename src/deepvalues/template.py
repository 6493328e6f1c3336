"""
Template field matching.

Finds which record fields a display template references. Only placeholder
boundaries are parsed; everything inside ``{{...}}`` is opaque text.

NOTE: membership is a substring test, not a token test. A field named ``name``
is referenced by ``{{username}}``. Existing templates depend on this, so it is
kept as is.
"""

import re
from typing import Iterable, List, Optional

PLACEHOLDER_PATTERN = re.compile(r"{{.*?}}")


def extract_placeholders(template: str) -> List[str]:
    """Return every ``{{...}}`` placeholder in the template, braces included."""
    return PLACEHOLDER_PATTERN.findall(template or "")


def _referenced_in(placeholders: Iterable[str], field_name: str) -> bool:
    return any(field_name in placeholder for placeholder in placeholders)


def field_is_referenced(template: str, field_name: str) -> bool:
    """Check whether field_name occurs inside at least one placeholder.

    Args:
        template: Display template, e.g. ``"{{title}} by {{author.name}}"``
        field_name: Record field to look for

    Returns:
        True if any placeholder contains field_name as a substring
    """
    return _referenced_in(extract_placeholders(template), field_name)


class TemplateFieldMatcher:
    """Field matcher bound to one template, with placeholders extracted once."""

    def __init__(self, template: str):
        self.template = template
        self._placeholders: Optional[List[str]] = None

    @property
    def placeholders(self) -> List[str]:
        if self._placeholders is None:
            self._placeholders = extract_placeholders(self.template)
        return self._placeholders

    def references(self, field_name: str) -> bool:
        return _referenced_in(self.placeholders, field_name)

    def any_referenced(self, field_names: Iterable[str]) -> bool:
        return any(self.references(name) for name in field_names)
