"""Template resolution.

Builds the ordered, line-code-aware list of step definitions for a subject:
the base chain of a document kind, with conditional insert steps spliced in
after the base step they are anchored to.
"""

from __future__ import annotations

import json
from collections import defaultdict
from typing import Any, Iterable, Optional

from approval_chain.core.logging_config import get_logger

from .repos.interfaces import TemplateRepository
from .schemas.domain import ApprovalTemplate, DocumentKind

logger = get_logger(__name__)


def normalize_lines(value: Any) -> frozenset[str]:
    """Normalize a stored line-code set.

    ``applies_to_lines`` may hold a native array or its JSON-encoded text.
    Anything that cannot be read as a list of codes yields an empty set.
    """
    if value is None:
        return frozenset()
    if isinstance(value, (bytes, str)):
        try:
            value = json.loads(value)
        except ValueError:
            return frozenset()
    if not isinstance(value, (list, tuple, set, frozenset)):
        return frozenset()
    return frozenset(str(code).strip() for code in value if code is not None)


def line_applies(applies_to_lines: Any, line_code: str) -> bool:
    """Return whether an insert step applies to ``line_code``."""
    if not line_code:
        return False
    return line_code.strip() in normalize_lines(applies_to_lines)


def _renumber(templates: Iterable[ApprovalTemplate]) -> list[ApprovalTemplate]:
    return [t.model_copy(update={"step_order": i}) for i, t in enumerate(templates, start=1)]


def merge_insert_steps(
    base: list[ApprovalTemplate],
    inserts: list[ApprovalTemplate],
) -> list[ApprovalTemplate]:
    """Splice applicable insert steps into the base chain and renumber 1..N.

    Insert steps are grouped by their ``insert_after_step`` anchor and emitted
    right after the base step whose original ``step_order`` equals the anchor.
    A missing or zero anchor places the insert before the first base step.
    Inserts anchored to a step the base chain does not have are dropped.
    """
    if not base:
        return []
    if not inserts:
        return _renumber(base)

    groups: dict[int, list[ApprovalTemplate]] = defaultdict(list)
    for tpl in sorted(inserts, key=lambda t: (t.step_order, -t.priority)):
        groups[tpl.insert_after_step or 0].append(tpl)

    merged: list[ApprovalTemplate] = list(groups.pop(0, []))
    for step in base:
        merged.append(step)
        merged.extend(groups.pop(step.step_order, []))

    for anchor, orphaned in groups.items():
        logger.warning(
            f"Dropping {len(orphaned)} insert step(s) anchored after missing base step {anchor}: "
            f"{[t.actor_name for t in orphaned]}"
        )
    return _renumber(merged)


class TemplateResolver:
    """Resolve the template chain of a document kind for one line code."""

    def __init__(self, templates: TemplateRepository) -> None:
        self._templates = templates

    async def resolve(self, kind: DocumentKind, line_code: str) -> list[ApprovalTemplate]:
        """
        Build the ordered template chain.

        Args:
            kind: The document kind whose templates apply.
            line_code: The subject's line code (may be empty).

        Returns:
            Template entries renumbered ``1..N``. Empty when no base template exists.
        """
        base = await self._templates.list_base(kind, line_code)
        candidates = await self._templates.list_insert_steps(kind)
        applicable = [t for t in candidates if line_applies(t.applies_to_lines, line_code)]
        logger.debug(
            f"Resolving {kind.value} chain for line '{line_code}': "
            f"{len(base)} base step(s), {len(applicable)}/{len(candidates)} insert step(s) applicable"
        )
        return merge_insert_steps(base, applicable)

    async def highest_priority_insert(self, kind: DocumentKind, line_code: str) -> Optional[ApprovalTemplate]:
        """Return the single highest-priority insert step applicable to ``line_code``."""
        for tpl in await self._templates.list_insert_steps(kind):
            if line_applies(tpl.applies_to_lines, line_code):
                return tpl
        return None
