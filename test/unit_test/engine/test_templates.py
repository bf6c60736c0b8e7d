"""Unit tests for template chain resolution."""

from __future__ import annotations

from typing import Optional

import pytest

from approval_chain.engine.schemas import ApprovalTemplate, DocumentKind
from approval_chain.engine.templates import (
    TemplateResolver,
    line_applies,
    merge_insert_steps,
    normalize_lines,
)


def _tpl(
    name: str,
    order: int,
    *,
    insert_after: Optional[int] = None,
    lines=None,
    priority: int = 0,
) -> ApprovalTemplate:
    return ApprovalTemplate(
        id=f"tpl-{name}",
        step_order=order,
        actor_name=name,
        section_id="S1",
        is_insert_step=insert_after is not None or lines is not None,
        insert_after_step=insert_after,
        applies_to_lines=lines,
        priority=priority,
    )


class _FakeTemplates:
    def __init__(self, base, inserts) -> None:
        self.base = base
        self.inserts = inserts

    async def list_base(self, kind, line_code):
        return list(self.base)

    async def list_insert_steps(self, kind):
        return sorted(self.inserts, key=lambda t: (-t.priority, t.step_order))


class TestLineApplicability:
    def test_native_list(self) -> None:
        assert line_applies(["M1", "M2"], "M1")
        assert not line_applies(["M1", "M2"], "Z9")

    def test_json_text(self) -> None:
        assert line_applies('["M1", "M3"]', "M3")

    def test_unparsable_text_is_not_applicable(self) -> None:
        assert normalize_lines("not json [") == frozenset()
        assert not line_applies("not json [", "M1")

    def test_non_list_json_is_not_applicable(self) -> None:
        assert normalize_lines('{"M1": true}') == frozenset()

    def test_none_and_empty_line_code(self) -> None:
        assert not line_applies(None, "M1")
        assert not line_applies(["M1"], "")

    def test_codes_are_stripped(self) -> None:
        assert line_applies([" M1 "], "M1 ")


class TestMergeInsertSteps:
    def test_insert_after_anchor(self) -> None:
        merged = merge_insert_steps([_tpl("A", 1), _tpl("B", 2)], [_tpl("X", 5, insert_after=1)])
        assert [(t.actor_name, t.step_order) for t in merged] == [("A", 1), ("X", 2), ("B", 3)]

    def test_zero_anchor_goes_first(self) -> None:
        merged = merge_insert_steps([_tpl("A", 1), _tpl("B", 2)], [_tpl("X", 5, insert_after=0)])
        assert [t.actor_name for t in merged] == ["X", "A", "B"]

    def test_missing_anchor_is_dropped(self) -> None:
        merged = merge_insert_steps([_tpl("A", 1), _tpl("B", 2)], [_tpl("X", 5, insert_after=7)])
        assert [t.actor_name for t in merged] == ["A", "B"]

    def test_multiple_inserts_on_same_anchor_keep_order(self) -> None:
        inserts = [_tpl("Y", 6, insert_after=1), _tpl("X", 5, insert_after=1)]
        merged = merge_insert_steps([_tpl("A", 1), _tpl("B", 2)], inserts)
        assert [t.actor_name for t in merged] == ["A", "X", "Y", "B"]
        assert [t.step_order for t in merged] == [1, 2, 3, 4]

    def test_empty_base_yields_empty_chain(self) -> None:
        assert merge_insert_steps([], [_tpl("X", 1, insert_after=0)]) == []

    def test_base_is_renumbered(self) -> None:
        merged = merge_insert_steps([_tpl("A", 3), _tpl("B", 8)], [])
        assert [t.step_order for t in merged] == [1, 2]


class TestTemplateResolver:
    @pytest.mark.asyncio
    async def test_insert_applies_only_to_its_lines(self) -> None:
        resolver = TemplateResolver(
            _FakeTemplates([_tpl("A", 1), _tpl("B", 2)], [_tpl("X", 1, insert_after=1, lines=["M1"])])
        )

        on_m1 = await resolver.resolve(DocumentKind.authorization, "M1")
        on_z9 = await resolver.resolve(DocumentKind.authorization, "Z9")

        assert [(t.actor_name, t.step_order) for t in on_m1] == [("A", 1), ("X", 2), ("B", 3)]
        assert [(t.actor_name, t.step_order) for t in on_z9] == [("A", 1), ("B", 2)]

    @pytest.mark.asyncio
    async def test_highest_priority_insert(self) -> None:
        inserts = [
            _tpl("Low", 1, insert_after=1, lines=["M1"], priority=1),
            _tpl("High", 2, insert_after=1, lines=["M1"], priority=9),
            _tpl("Other", 3, insert_after=1, lines=["Z9"], priority=50),
        ]
        resolver = TemplateResolver(_FakeTemplates([], inserts))

        chosen = await resolver.highest_priority_insert(DocumentKind.handover, "M1")

        assert chosen is not None
        assert chosen.actor_name == "High"
        assert await resolver.highest_priority_insert(DocumentKind.handover, "Q7") is None
