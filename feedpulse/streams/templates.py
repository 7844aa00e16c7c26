"""Prompt template rendering.

Templates use ``{{name}}`` placeholders. Unknown placeholders are left as
they are, so a typo shows up verbatim in the LLM prompt instead of failing
the job.
"""

import re
from typing import Any

from feedpulse.ingestion.schemas import Content

_PLACEHOLDER = re.compile(r"\{\{\s*(\w+)\s*\}\}")


def render_template(template: str, values: dict[str, Any]) -> str:
    """Replace every ``{{key}}`` whose key is in ``values``."""

    def _substitute(match: re.Match[str]) -> str:
        key = match.group(1)
        if key not in values:
            return match.group(0)
        value = values[key]
        return "" if value is None else str(value)

    return _PLACEHOLDER.sub(_substitute, template)


def content_variables(content: Content, source_name: str) -> dict[str, str]:
    """Placeholder values for one content row seen through a named stream."""
    return {
        "content": content.raw_content,
        "title": content.title or "",
        "url": content.url or "",
        "source": source_name,
    }
