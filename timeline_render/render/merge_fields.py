"""Merge-field substitution for timelines.

Replaces named placeholders in every string value of a timeline. Five
delimiter forms are supported and tried in this order:

    {{name}}
    {name}
    ${name}
    [name]
    %name%

Each string is scanned once, left to right, with a single alternation of
every (delimiter, field) pair. At any position the alternatives are tried in
delimiter order, so ``{{name}}`` is consumed whole instead of leaving a stray
``{...}`` behind after ``{name}`` matched inside it. Substituted values are
never rescanned, so a value that itself looks like a placeholder is inserted
literally. Placeholders without a matching field are left untouched.
"""

import logging
import re
from collections.abc import Mapping, Sequence
from typing import Any

from timeline_render.schemas.timeline import Timeline

logger = logging.getLogger(__name__)

MergeFieldValue = str | int | float

DEFAULT_DELIMITERS: tuple[tuple[str, str], ...] = (
    ("{{", "}}"),
    ("{", "}"),
    ("${", "}"),
    ("[", "]"),
    ("%", "%"),
)


class MergeFieldResolver:
    """Substitutes merge fields using an ordered list of (open, close) delimiters."""

    def __init__(self, delimiters: Sequence[tuple[str, str]] = DEFAULT_DELIMITERS):
        if not delimiters:
            raise ValueError("At least one delimiter pair is required")
        self.delimiters = tuple(delimiters)

    def build_pattern(self, fields: Mapping[str, MergeFieldValue]) -> re.Pattern[str] | None:
        """Compile one alternation covering every delimiter form of every field.

        Alternatives are grouped by delimiter (in order); within a delimiter,
        longer names come first so ``{name_full}`` is not shadowed by ``{name}``.
        """
        names = sorted((str(name) for name in fields if str(name)), key=len, reverse=True)
        if not names:
            return None

        alternatives = [
            re.escape(open_) + re.escape(name) + re.escape(close)
            for open_, close in self.delimiters
            for name in names
        ]
        return re.compile("|".join(alternatives))

    def substitute(self, text: str, fields: Mapping[str, MergeFieldValue]) -> str:
        """Replace placeholders in a single string."""
        pattern = self.build_pattern(fields)
        if pattern is None:
            return text
        return self._substitute(text, pattern, self._lookup(fields))

    def resolve_data(self, data: Any, fields: Mapping[str, MergeFieldValue]) -> Any:
        """Return a copy of ``data`` with placeholders replaced in every string value."""
        pattern = self.build_pattern(fields)
        if pattern is None:
            return data
        return self._walk(data, pattern, self._lookup(fields))

    def resolve(self, timeline: Timeline, fields: Mapping[str, MergeFieldValue]) -> Timeline:
        """Apply merge fields to a timeline, returning a new Timeline."""
        if not fields:
            return timeline

        data = timeline.model_dump(by_alias=True, exclude_unset=True)
        resolved = self.resolve_data(data, fields)
        logger.info(f"[MERGE] Applied {len(fields)} merge fields")
        return Timeline.model_validate(resolved)

    # ------------------------------------------------------------------

    def _lookup(self, fields: Mapping[str, MergeFieldValue]) -> dict[str, str]:
        """Map every delimited placeholder to its replacement text."""
        lookup: dict[str, str] = {}
        for name, value in fields.items():
            for open_, close in self.delimiters:
                lookup.setdefault(f"{open_}{name}{close}", str(value))
        return lookup

    def _substitute(self, text: str, pattern: re.Pattern[str], lookup: dict[str, str]) -> str:
        return pattern.sub(lambda match: lookup[match.group(0)], text)

    def _walk(self, value: Any, pattern: re.Pattern[str], lookup: dict[str, str]) -> Any:
        if isinstance(value, str):
            return self._substitute(value, pattern, lookup)
        if isinstance(value, dict):
            return {key: self._walk(item, pattern, lookup) for key, item in value.items()}
        if isinstance(value, list):
            return [self._walk(item, pattern, lookup) for item in value]
        return value


def resolve_merge_fields(timeline: Timeline, fields: Mapping[str, MergeFieldValue]) -> Timeline:
    """Apply merge fields with the default delimiter set."""
    return MergeFieldResolver().resolve(timeline, fields)
