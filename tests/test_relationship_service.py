"""
Tests for the relationship graph manager.
"""
from unittest.mock import AsyncMock

import pytest

from hypatia.models.relationship import (
    CONTAINS, LEARNING_PATH_SOURCE, MATERIAL_SOURCE, PREREQUISITE, RELATED,
)
from hypatia.utils.error_handling import NotFoundError, RelationshipError, ValidationError


async def _edge(mongodb, source_id, target_id, relation_kind=CONTAINS, order=None):
    await mongodb.create_edge({
        "source_id": source_id,
        "source_kind": MATERIAL_SOURCE,
        "target_id": target_id,
        "relation_kind": relation_kind,
        "display_order": order,
    })


class TestReconcile:
    @pytest.mark.asyncio
    async def test_reconcile_is_idempotent(self, relationship_service, make_material):
        source = await make_material("Course")
        targets = [await make_material(f"Unit {i}") for i in range(3)]

        first = await relationship_service.reconcile(source, MATERIAL_SOURCE, targets, CONTAINS)
        assert first.added == targets
        assert [edge.display_order for edge in first.edges] == [1, 2, 3]

        second = await relationship_service.reconcile(source, MATERIAL_SOURCE, targets, CONTAINS)
        assert second.added == []
        assert second.removed == []
        assert second.unchanged == targets
        assert not second.changed
        assert [edge.target_id for edge in second.edges] == targets

    @pytest.mark.asyncio
    async def test_reconcile_converges(self, relationship_service, make_material):
        source = await make_material("Course")
        one, two, three = [await make_material(f"Unit {i}") for i in range(3)]

        await relationship_service.reconcile(source, MATERIAL_SOURCE, [one, two], CONTAINS)
        result = await relationship_service.reconcile(source, MATERIAL_SOURCE, [two, three], CONTAINS)

        assert result.removed == [one]
        assert result.added == [three]
        assert result.unchanged == [two]
        assert {edge.target_id for edge in result.edges} == {two, three}

    @pytest.mark.asyncio
    async def test_reconcile_to_empty_removes_everything(self, relationship_service, make_material):
        source = await make_material("Course")
        target = await make_material("Unit")
        await relationship_service.reconcile(source, MATERIAL_SOURCE, [target], CONTAINS)

        result = await relationship_service.reconcile(source, MATERIAL_SOURCE, [], CONTAINS)
        assert result.removed == [target]
        assert result.edges == []

    @pytest.mark.asyncio
    async def test_missing_target_is_reported_not_raised(self, relationship_service, make_material):
        source = await make_material("Course")
        target = await make_material("Unit")

        result = await relationship_service.reconcile(source, MATERIAL_SOURCE, [target, 999], CONTAINS)
        assert result.added == [target]
        assert 999 in result.failed
        assert "not found" in result.failed[999]

    @pytest.mark.asyncio
    async def test_cycle_is_reported_for_contains(self, relationship_service, make_material):
        a = await make_material("A")
        b = await make_material("B")
        await relationship_service.reconcile(a, MATERIAL_SOURCE, [b], CONTAINS)

        result = await relationship_service.reconcile(b, MATERIAL_SOURCE, [a], CONTAINS)
        assert result.added == []
        assert "circular" in result.failed[a]

    @pytest.mark.asyncio
    async def test_edge_already_removed_is_not_reported(self, relationship_service, mock_mongodb_service,
                                                         make_material):
        source = await make_material("Course")
        target = await make_material("Unit")
        await relationship_service.reconcile(source, MATERIAL_SOURCE, [target], CONTAINS)
        mock_mongodb_service.delete_edge = AsyncMock(return_value=False)

        result = await relationship_service.reconcile(source, MATERIAL_SOURCE, [], CONTAINS)
        assert result.removed == []
        assert not result.changed

    @pytest.mark.asyncio
    async def test_edge_inserted_concurrently_is_unchanged(self, relationship_service, mock_mongodb_service,
                                                           make_material):
        source = await make_material("Course")
        target = await make_material("Unit")
        create_edge = mock_mongodb_service.create_edge

        async def insert_after_other_writer(edge):
            await create_edge(edge)
            return await create_edge(edge)

        mock_mongodb_service.create_edge = AsyncMock(side_effect=insert_after_other_writer)
        result = await relationship_service.reconcile(source, MATERIAL_SOURCE, [target], CONTAINS)
        assert result.added == []
        assert result.unchanged == [target]
        assert [edge.target_id for edge in result.edges] == [target]

    @pytest.mark.asyncio
    async def test_relation_kinds_are_independent(self, relationship_service, make_material):
        source = await make_material("Step owner")
        target = await make_material("Reference")
        await relationship_service.reconcile(source, MATERIAL_SOURCE, [target], CONTAINS)

        result = await relationship_service.reconcile(source, MATERIAL_SOURCE, [], RELATED)
        assert result.removed == []
        children = await relationship_service.get_children(source)
        assert [child.id for child in children] == [target]


class TestHierarchy:
    @pytest.mark.asyncio
    async def test_cycle_terminates(self, relationship_service, mock_mongodb_service, make_material):
        a = await make_material("A")
        b = await make_material("B")
        c = await make_material("C")
        await _edge(mock_mongodb_service, a, b)
        await _edge(mock_mongodb_service, b, c)
        await _edge(mock_mongodb_service, c, a)

        hierarchy = await relationship_service.get_hierarchy(a, 10)
        assert hierarchy.total_materials == 3
        assert hierarchy.total_depth == 2
        assert hierarchy.root_material["name"] == "A"
        assert hierarchy.children[0].material["id"] == b
        assert hierarchy.children[0].children[0].material["id"] == c
        assert hierarchy.children[0].children[0].children == []

    @pytest.mark.asyncio
    async def test_diamond_counts_each_path(self, relationship_service, mock_mongodb_service, make_material):
        top = await make_material("Top")
        left = await make_material("Left")
        right = await make_material("Right")
        bottom = await make_material("Bottom")
        for parent, child in [(top, left), (top, right), (left, bottom), (right, bottom)]:
            await _edge(mock_mongodb_service, parent, child)

        hierarchy = await relationship_service.get_hierarchy(top)
        assert hierarchy.total_materials == 5
        assert hierarchy.total_depth == 2
        assert hierarchy.truncated is False

    @pytest.mark.asyncio
    async def test_layered_diamonds_stop_at_node_budget(self, relationship_service, mock_mongodb_service,
                                                        make_material, config):
        config.relationships.max_hierarchy_nodes = 50
        root = await make_material("Root")
        levels = [[await make_material(f"L{level}-{i}") for i in range(2)] for level in range(12)]
        for child in levels[0]:
            await _edge(mock_mongodb_service, root, child)
        for upper, lower in zip(levels, levels[1:]):
            for parent in upper:
                for child in lower:
                    await _edge(mock_mongodb_service, parent, child)
        mock_mongodb_service.list_edges = AsyncMock(wraps=mock_mongodb_service.list_edges)

        hierarchy = await relationship_service.get_hierarchy(root, 20)
        assert hierarchy.truncated is True
        assert hierarchy.total_materials == 51
        assert mock_mongodb_service.list_edges.await_count <= 25

    @pytest.mark.asyncio
    async def test_depth_limit(self, relationship_service, mock_mongodb_service, make_material):
        ids = [await make_material(f"Level {i}") for i in range(4)]
        for parent, child in zip(ids, ids[1:]):
            await _edge(mock_mongodb_service, parent, child)

        hierarchy = await relationship_service.get_hierarchy(ids[0], 2)
        assert hierarchy.total_depth == 2
        assert hierarchy.total_materials == 3

    @pytest.mark.asyncio
    async def test_children_follow_display_order(self, relationship_service, mock_mongodb_service, make_material):
        root = await make_material("Root")
        late = await make_material("Late")
        early = await make_material("Early")
        await _edge(mock_mongodb_service, root, late, order=2)
        await _edge(mock_mongodb_service, root, early, order=1)

        hierarchy = await relationship_service.get_hierarchy(root)
        assert [node.material["name"] for node in hierarchy.children] == ["Early", "Late"]

    @pytest.mark.asyncio
    async def test_leaf_material(self, relationship_service, make_material):
        leaf = await make_material("Leaf")
        hierarchy = await relationship_service.get_hierarchy(leaf)
        assert hierarchy.total_materials == 1
        assert hierarchy.total_depth == 0

    @pytest.mark.asyncio
    @pytest.mark.parametrize("depth", [0, -1, 51])
    async def test_depth_out_of_range(self, relationship_service, make_material, depth):
        root = await make_material("Root")
        with pytest.raises(ValidationError):
            await relationship_service.get_hierarchy(root, depth)

    @pytest.mark.asyncio
    async def test_missing_root(self, relationship_service):
        with pytest.raises(NotFoundError):
            await relationship_service.get_hierarchy(404)


class TestExplicitAssignment:
    @pytest.mark.asyncio
    async def test_assign_child_appends_order(self, relationship_service, make_material):
        parent = await make_material("Parent")
        first = await make_material("First")
        second = await make_material("Second")

        edge_one = await relationship_service.assign_child(parent, first)
        edge_two = await relationship_service.assign_child(parent, second)
        assert (edge_one.display_order, edge_two.display_order) == (1, 2)

        parents = await relationship_service.get_parents(second)
        assert [p.id for p in parents] == [parent]

    @pytest.mark.asyncio
    async def test_assign_child_rejects_cycles_and_duplicates(self, relationship_service, make_material):
        a = await make_material("A")
        b = await make_material("B")
        c = await make_material("C")
        await relationship_service.assign_child(a, b)
        await relationship_service.assign_child(b, c)

        with pytest.raises(RelationshipError):
            await relationship_service.assign_child(c, a)
        with pytest.raises(RelationshipError):
            await relationship_service.assign_child(a, b)
        with pytest.raises(RelationshipError):
            await relationship_service.assign_child(a, a)
        assert await relationship_service.would_create_cycle(c, a) is True
        assert await relationship_service.would_create_cycle(a, c) is False

    @pytest.mark.asyncio
    async def test_assign_child_missing_target(self, relationship_service, make_material):
        parent = await make_material("Parent")
        with pytest.raises(NotFoundError):
            await relationship_service.assign_child(parent, 999)

    @pytest.mark.asyncio
    async def test_reorder_and_remove_children(self, relationship_service, make_material):
        parent = await make_material("Parent")
        first = await make_material("First")
        second = await make_material("Second")
        await relationship_service.assign_child(parent, first)
        await relationship_service.assign_child(parent, second)

        updated = await relationship_service.reorder_children(parent, {first: 5, second: 1, 999: 2})
        assert updated == [first, second]
        children = await relationship_service.get_children(parent)
        assert [child.id for child in children] == [second, first]

        assert await relationship_service.remove_child(parent, first) is True
        assert await relationship_service.remove_child(parent, first) is False

    @pytest.mark.asyncio
    async def test_prerequisites(self, relationship_service, make_material):
        advanced = await make_material("Advanced")
        basics = await make_material("Basics")
        await relationship_service.add_prerequisite(advanced, basics)

        prerequisites = await relationship_service.get_prerequisites(advanced)
        assert [m.id for m in prerequisites] == [basics]
        dependents = await relationship_service.get_dependents(basics)
        assert [m.id for m in dependents] == [advanced]
        with pytest.raises(RelationshipError):
            await relationship_service.add_prerequisite(basics, advanced)

        assert await relationship_service.remove_prerequisite(advanced, basics) is True
        assert await relationship_service.get_children(advanced, PREREQUISITE) == []

    @pytest.mark.asyncio
    async def test_learning_path(self, relationship_service, mock_mongodb_service, make_material):
        first = await make_material("First")
        second = await make_material("Second")
        await relationship_service.assign_to_learning_path(1, first)
        await relationship_service.assign_to_learning_path(1, second)

        materials = await relationship_service.get_learning_path_materials(1)
        assert [m.display_order for m in materials] == [1, 2]

        await relationship_service.reorder_learning_path(1, {first: 3})
        materials = await relationship_service.get_learning_path_materials(1)
        assert [m.id for m in materials] == [second, first]

        edges = await mock_mongodb_service.list_edges(1, LEARNING_PATH_SOURCE)
        assert len(edges) == 2
        assert await relationship_service.remove_from_learning_path(1, first) is True

    @pytest.mark.asyncio
    async def test_training_program(self, relationship_service, make_material):
        material = await make_material("Induction")
        edge = await relationship_service.assign_to_training_program(7, material)
        assert edge.relation_kind == "assigned"
        materials = await relationship_service.get_training_program_materials(7)
        assert [m.name for m in materials] == ["Induction"]
        assert await relationship_service.remove_from_training_program(7, material) is True


class TestSubEntityLinks:
    @pytest.mark.asyncio
    async def test_link_to_workflow_step(self, relationship_service, mock_mongodb_service, make_material):
        workflow = await mock_mongodb_service.create_material(
            {"name": "Flow", "variant": "Workflow", "steps": [{"title": "One"}]}
        )
        step_id = workflow["steps"][0]["id"]
        reference = await make_material("Manual", "PDF")

        await relationship_service.assign_to_sub_entity("WorkflowStep", step_id, reference)
        materials = await relationship_service.get_sub_entity_materials("WorkflowStep", step_id)
        assert [m.id for m in materials] == [reference]
        assert await relationship_service.remove_from_sub_entity("WorkflowStep", step_id, reference) is True

    @pytest.mark.asyncio
    async def test_unknown_kind(self, relationship_service):
        with pytest.raises(ValidationError):
            await relationship_service.get_sub_entity_materials("Paragraph", 1)

    @pytest.mark.asyncio
    async def test_missing_sub_entity(self, relationship_service):
        with pytest.raises(NotFoundError):
            await relationship_service.get_sub_entity_materials("QuizQuestion", 12345)
