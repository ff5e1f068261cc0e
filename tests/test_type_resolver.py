"""
Tests for material variant resolution.
"""
import pytest

from hypatia.core.type_resolver import (
    TYPE_CODES, resolve_type_token, resolve_variant, variant_from_token,
)
from hypatia.models.material import MaterialVariant


class TestResolveVariant:
    def test_discriminator_beats_type(self):
        payload = {"discriminator": "VideoMaterial", "type": "quiz", "materialType": 2}
        assert resolve_variant(payload) == MaterialVariant.VIDEO

    def test_discriminator_suffix_is_case_insensitive(self):
        assert resolve_type_token({"discriminator": "QuizMATERIAL"}) == "quiz"
        assert resolve_variant({"Discriminator": "checklistMaterial"}) == MaterialVariant.CHECKLIST

    def test_type_beats_material_type(self):
        assert resolve_variant({"type": "workflow", "materialType": "video"}) == MaterialVariant.WORKFLOW

    def test_material_type_used_last(self):
        assert resolve_variant({"materialType": "pdf"}) == MaterialVariant.PDF

    def test_non_string_discriminator_falls_through(self):
        assert resolve_variant({"discriminator": 5, "type": "image"}) == MaterialVariant.IMAGE
        assert resolve_variant({"discriminator": None, "type": "image"}) == MaterialVariant.IMAGE

    @pytest.mark.parametrize("code,expected", [
        (0, MaterialVariant.IMAGE),
        (1, MaterialVariant.VIDEO),
        (2, MaterialVariant.PDF),
        (3, MaterialVariant.UNITY),
        (4, MaterialVariant.CHATBOT),
        (5, MaterialVariant.QUESTIONNAIRE),
        (6, MaterialVariant.CHECKLIST),
        (7, MaterialVariant.WORKFLOW),
        (8, MaterialVariant.MQTT_TEMPLATE),
        (9, MaterialVariant.DEFAULT),
        (10, MaterialVariant.QUIZ),
        (11, MaterialVariant.DEFAULT),
    ])
    def test_numeric_type_codes(self, code, expected):
        assert resolve_variant({"type": code}) == expected

    def test_integral_float_code(self):
        assert resolve_variant({"materialType": 10.0}) == MaterialVariant.QUIZ

    def test_unknown_code_is_default(self):
        assert resolve_variant({"type": 42}) == MaterialVariant.DEFAULT

    def test_bool_is_not_a_code(self):
        assert resolve_type_token({"type": True}) == "default"
        assert resolve_variant({"type": False, "materialType": "video"}) == MaterialVariant.VIDEO

    def test_numeric_string_is_a_label(self):
        assert resolve_type_token({"type": "1"}) == "1"
        assert resolve_variant({"type": "1"}) == MaterialVariant.DEFAULT

    @pytest.mark.parametrize("label,expected", [
        ("unitydemo", MaterialVariant.UNITY),
        ("UnityDemo", MaterialVariant.UNITY),
        ("answers", MaterialVariant.DEFAULT),
        ("document", MaterialVariant.PDF),
        ("mqtt_template", MaterialVariant.MQTT_TEMPLATE),
        ("MQTTTemplate", MaterialVariant.MQTT_TEMPLATE),
        (" Voice ", MaterialVariant.VOICE),
    ])
    def test_synonyms(self, label, expected):
        assert resolve_variant({"type": label}) == expected

    @pytest.mark.parametrize("payload", [
        {},
        {"type": "hologram"},
        {"type": None},
        {"type": {"nested": 1}},
        None,
        [],
        "video",
    ])
    def test_unresolvable_is_default(self, payload):
        assert resolve_variant(payload) == MaterialVariant.DEFAULT


def test_every_code_maps_to_a_variant():
    for token in TYPE_CODES.values():
        assert isinstance(variant_from_token(token), MaterialVariant)
