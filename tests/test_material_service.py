"""
Tests for the material ingestion pipeline.
"""
from unittest.mock import AsyncMock

import pytest

from hypatia.models.relationship import CONTAINS, MATERIAL_SOURCE, RELATED
from hypatia.utils.error_handling import NotFoundError, PersistenceError, ValidationError


class TestCreateMaterial:
    @pytest.mark.asyncio
    async def test_quiz_question_related_edges(self, material_service, mock_mongodb_service,
                                               make_material, quiz_payload):
        reference = await make_material("Weather basics", "PDF")
        quiz_payload["questions"][0]["related"] = [reference]

        response = await material_service.create_material(quiz_payload)
        assert response.status == "success"
        assert response.type == "Quiz"

        stored = await mock_mongodb_service.get_material(response.id)
        question = stored["questions"][0]
        assert question["type"] == "boolean"
        assert [answer["is_correct"] for answer in question["answers"]] == [True, False]
        assert all(answer["id"] is not None for answer in question["answers"])

        question_edges = await mock_mongodb_service.list_edges(question["id"], "QuizQuestion", RELATED)
        assert [edge["target_id"] for edge in question_edges] == [reference]
        assert await mock_mongodb_service.list_edges(response.id, MATERIAL_SOURCE) == []

    @pytest.mark.asyncio
    async def test_invalid_quiz_stores_nothing(self, material_service, mock_mongodb_service, quiz_payload):
        quiz_payload["questions"][0]["answers"].append({"text": "Maybe"})

        with pytest.raises(ValidationError) as exc_info:
            await material_service.create_material(quiz_payload)
        assert "Is sky blue?" in exc_info.value.message
        assert await mock_mongodb_service.list_materials() == []
        assert mock_mongodb_service.mock_data["edges"] == {}

    @pytest.mark.asyncio
    async def test_material_level_related_becomes_contains(self, material_service, mock_mongodb_service,
                                                           make_material):
        child = await make_material("Child")
        response = await material_service.create_material(
            {"type": "workflow", "name": "Parent", "related": [child, "junk"], "steps": [{"title": "Go"}]}
        )
        edges = await mock_mongodb_service.list_edges(response.id, MATERIAL_SOURCE, CONTAINS)
        assert [edge["target_id"] for edge in edges] == [child]

    @pytest.mark.asyncio
    async def test_unknown_related_target_does_not_fail_creation(self, material_service, mock_mongodb_service):
        response = await material_service.create_material(
            {"type": "checklist", "name": "Checks", "entries": [{"text": "One", "related": [999]}]}
        )
        stored = await mock_mongodb_service.get_material(response.id)
        entry_id = stored["entries"][0]["id"]
        assert await mock_mongodb_service.list_edges(entry_id, "ChecklistEntry") == []

    @pytest.mark.asyncio
    async def test_strict_related_ids(self, material_service, config):
        config.ingestion.skip_invalid_related_ids = False
        with pytest.raises(ValidationError):
            await material_service.create_material({"type": "workflow", "related": ["abc"]})


class TestCreateWithAsset:
    @pytest.mark.asyncio
    async def test_asset_id_is_set(self, material_service, asset_service, mock_mongodb_service):
        response = await material_service.create_material_with_asset(
            {"type": "video", "name": "Welding"}, {"filename": "welding.mp4"}
        )
        assert response.asset_id is not None
        assert await asset_service.get_asset(response.asset_id) is not None
        stored = await mock_mongodb_service.get_material(response.id)
        assert stored["asset_id"] == response.asset_id

    @pytest.mark.asyncio
    async def test_asset_removed_when_material_fails(self, material_service, asset_service, mock_mongodb_service):
        mock_mongodb_service.create_material = AsyncMock(side_effect=PersistenceError("disk full"))

        with pytest.raises(PersistenceError):
            await material_service.create_material_with_asset(
                {"type": "video", "name": "Welding"}, {"filename": "welding.mp4"}
            )
        assert asset_service.mock_data == {}

    @pytest.mark.asyncio
    async def test_cleanup_failure_keeps_original_error(self, material_service, asset_service,
                                                        mock_mongodb_service):
        mock_mongodb_service.create_material = AsyncMock(side_effect=PersistenceError("disk full"))
        asset_service.delete_asset = AsyncMock(side_effect=RuntimeError("blob store down"))

        with pytest.raises(PersistenceError) as exc_info:
            await material_service.create_material_with_asset(
                {"type": "pdf", "name": "Manual"}, {"filename": "manual.pdf"}
            )
        assert exc_info.value.message == "disk full"
        asset_service.delete_asset.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_variant_without_asset_rejected(self, material_service, asset_service, quiz_payload):
        with pytest.raises(ValidationError):
            await material_service.create_material_with_asset(quiz_payload, {"filename": "quiz.bin"})
        assert asset_service.mock_data == {}


class TestUpdateMaterial:
    @pytest.mark.asyncio
    async def test_scalar_update_keeps_collection(self, material_service):
        created = await material_service.create_material(
            {"type": "workflow", "name": "Flow", "steps": [{"title": "One"}, {"title": "Two"}]}
        )
        updated = await material_service.update_material(created.id, {"description": "Revised"})
        assert updated["description"] == "Revised"
        assert updated["name"] == "Flow"
        assert [step["title"] for step in updated["steps"]] == ["One", "Two"]

    @pytest.mark.asyncio
    async def test_collection_replacement_keeps_known_ids(self, material_service, mock_mongodb_service,
                                                          make_material):
        reference = await make_material("Reference")
        created = await material_service.create_material({
            "type": "workflow",
            "name": "Flow",
            "steps": [{"title": "Keep"}, {"title": "Drop", "related": [reference]}],
        })
        stored = await mock_mongodb_service.get_material(created.id)
        keep_id, drop_id = [step["id"] for step in stored["steps"]]
        assert len(await mock_mongodb_service.list_edges(drop_id, "WorkflowStep")) == 1

        updated = await material_service.update_material(created.id, {
            "steps": [{"id": keep_id, "title": "Kept"}, {"id": drop_id + 100, "title": "Fresh"}]
        })
        first, second = updated["steps"]
        assert first["id"] == keep_id
        assert first["title"] == "Kept"
        assert second["id"] not in (keep_id, drop_id, drop_id + 100)
        assert await mock_mongodb_service.list_edges(drop_id, "WorkflowStep") == []

    @pytest.mark.asyncio
    async def test_related_reconciled_on_update(self, material_service, mock_mongodb_service, make_material):
        old = await make_material("Old")
        new = await make_material("New")
        created = await material_service.create_material({"name": "Bundle", "related": [old]})

        await material_service.update_material(created.id, {"related": [new]})
        edges = await mock_mongodb_service.list_edges(created.id, MATERIAL_SOURCE, CONTAINS)
        assert [edge["target_id"] for edge in edges] == [new]

    @pytest.mark.asyncio
    async def test_invalid_update_rejected(self, material_service, quiz_payload):
        created = await material_service.create_material(quiz_payload)
        with pytest.raises(ValidationError):
            await material_service.update_material(created.id, {
                "questions": [{"type": "boolean", "text": "Broken", "answers": [{"text": "Only"}]}]
            })
        stored = await material_service.get_material(created.id)
        assert stored["questions"][0]["text"] == "Is sky blue?"

    @pytest.mark.asyncio
    async def test_id_mismatch(self, material_service):
        created = await material_service.create_material({"name": "Plain"})
        with pytest.raises(ValidationError):
            await material_service.update_material(created.id, {"id": created.id + 1, "name": "Other"})

    @pytest.mark.asyncio
    async def test_missing_material(self, material_service):
        with pytest.raises(NotFoundError):
            await material_service.update_material(404, {"name": "Ghost"})


class TestReads:
    @pytest.mark.asyncio
    async def test_detail_projection(self, material_service, make_material):
        reference = await make_material("Manual")
        child = await make_material("Appendix")
        created = await material_service.create_material({
            "type": "checklist",
            "name": "Pre-flight",
            "related": [child],
            "entries": [{"text": "Fuel", "related": [{"id": reference}]}, {"text": "Flaps"}],
        })

        detail = await material_service.get_material_detail(created.id)
        assert detail["type"] == "Checklist"
        assert detail["entries"][0]["related"] == [{"id": reference, "name": "Manual", "description": None}]
        assert detail["entries"][1]["related"] == []
        assert [item["id"] for item in detail["related"]] == [child]

    @pytest.mark.asyncio
    async def test_delete_cascades_edges(self, material_service, mock_mongodb_service, make_material):
        target = await make_material("Target")
        created = await material_service.create_material(
            {"type": "workflow", "name": "Flow", "related": [target], "steps": [{"title": "A", "related": [target]}]}
        )
        parent = await make_material("Parent")
        await material_service.relationships.assign_child(parent, created.id)

        assert await material_service.delete_material(created.id) is True
        assert mock_mongodb_service.mock_data["edges"] == {}
        with pytest.raises(NotFoundError):
            await material_service.delete_material(created.id)

    @pytest.mark.asyncio
    async def test_list_by_variant(self, material_service, quiz_payload):
        await material_service.create_material(quiz_payload)
        await material_service.create_material({"type": "video", "name": "Clip"})

        quizzes = await material_service.list_materials(variant="Quiz")
        assert [m["name"] for m in quizzes] == ["Q1"]
        assert len(await material_service.list_materials()) == 2
