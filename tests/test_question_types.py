"""
Tests for quiz question type labels.
"""
import pytest

from hypatia.core.question_types import (
    QuestionKind, is_known_question_type, normalize_question_type, question_type_label,
)


@pytest.mark.parametrize("label,expected", [
    ("open ended", "text"),
    ("Open-Ended", "text"),
    ("true or false", "boolean"),
    ("True/False", "boolean"),
    ("true_or_false", "boolean"),
    ("multiple choice", "choice"),
    ("Multiple Choice", "choice"),
    ("selection checkboxes", "checkboxes"),
    ("likert", "scale"),
    ("Likert Scale", "scale"),
    ("boolean", "boolean"),
])
def test_labels_fold_to_canonical_kind(label, expected):
    assert normalize_question_type(label) == expected


def test_unknown_label_passes_through():
    assert normalize_question_type("drag and drop") == "drag and drop"
    assert is_known_question_type("drag and drop") is False


def test_none_stays_none():
    assert normalize_question_type(None) is None


@pytest.mark.parametrize("kind", list(QuestionKind))
def test_label_round_trip(kind):
    assert normalize_question_type(question_type_label(kind.value)) == kind.value
    assert is_known_question_type(kind.value)


def test_unknown_kind_label():
    assert question_type_label("matrix") == "matrix"
