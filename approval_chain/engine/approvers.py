"""Approver resolution: map template entries to concrete heads of section or department."""

from __future__ import annotations

from typing import Optional

from approval_chain.core.logging_config import get_logger

from .repos.interfaces import DirectoryRepository
from .schemas.domain import ApprovalTemplate, Approver, ModelType, StepDefinition

logger = get_logger(__name__)


class ApproverResolver:
    """Resolve the current head responsible for each template entry.

    A ``section`` template resolves the head of its section, a ``department``
    template the head of its department. With ``use_dynamic_section`` set, the
    subject's own section (or department) replaces the template's fixed one.
    """

    def __init__(self, directory: DirectoryRepository) -> None:
        self._directory = directory

    def _unit_for(
        self,
        template: ApprovalTemplate,
        *,
        section_id: Optional[str],
        department_id: Optional[str],
    ) -> Optional[str]:
        if not template.use_dynamic_section:
            return template.section_id
        if template.model_type == ModelType.department:
            return department_id
        return section_id

    async def resolve(
        self,
        template: ApprovalTemplate,
        *,
        section_id: Optional[str] = None,
        department_id: Optional[str] = None,
    ) -> Optional[Approver]:
        """
        Resolve one template entry.

        Args:
            template: The template entry to resolve.
            section_id: The subject's own section, used for dynamic templates.
            department_id: The subject's own department, used for dynamic templates.

        Returns:
            The first active head of the unit, or None when nothing is configured.
        """
        unit_id = self._unit_for(template, section_id=section_id, department_id=department_id)
        if not unit_id:
            logger.warning(f"Template '{template.actor_name}' ({template.id}) has no {template.model_type.value} id")
            return None

        if template.model_type == ModelType.department:
            heads = await self._directory.department_heads(unit_id)
        else:
            heads = await self._directory.section_heads(unit_id)

        for head in heads:
            if head.is_active:
                return head
        logger.warning(
            f"No active {template.model_type.value} head configured for '{unit_id}' "
            f"(template '{template.actor_name}'); step dropped"
        )
        return None

    async def resolve_all(
        self,
        templates: list[ApprovalTemplate],
        *,
        section_id: Optional[str] = None,
        department_id: Optional[str] = None,
    ) -> list[StepDefinition]:
        """Resolve every entry in order, silently dropping unresolvable ones."""
        definitions: list[StepDefinition] = []
        for template in templates:
            approver = await self.resolve(template, section_id=section_id, department_id=department_id)
            if approver is not None:
                definitions.append(StepDefinition(actor_label=template.actor_name, approver=approver))
        return definitions
