"""
Material Validation
===================
Structural rules checked after normalization and before anything is
persisted. A failing sub-entity rejects the whole material.
"""

import json
from typing import Callable, Dict, Optional

from hypatia.core.normalizer import NormalizedMaterial
from hypatia.core.question_types import QuestionKind, is_known_question_type
from hypatia.models.material import MaterialBase, MaterialVariant, QuizMaterial, QuizQuestion
from hypatia.utils.error_handling import ValidationError
from hypatia.utils.logging_utils import get_logger

logger = get_logger(__name__)


def _exactly_two_answers(question: QuizQuestion) -> Optional[str]:
    if len(question.answers) != 2:
        return f"a boolean question needs exactly 2 answers, got {len(question.answers)}"
    return None


def _at_least_two_answers(question: QuizQuestion) -> Optional[str]:
    if len(question.answers) < 2:
        return f"a {question.type} question needs at least 2 answers, got {len(question.answers)}"
    return None


def _scale_config_present(question: QuizQuestion) -> Optional[str]:
    text = (question.scale_config or "").strip()
    try:
        parsed = json.loads(text) if text else None
    except ValueError:
        # Plain text configs are accepted as written
        parsed = text
    if parsed is None or parsed in ({}, [], ""):
        return "a scale question needs a non-empty scaleConfig"
    return None


QUESTION_RULES: Dict[str, Callable[[QuizQuestion], Optional[str]]] = {
    QuestionKind.BOOLEAN.value: _exactly_two_answers,
    QuestionKind.CHOICE.value: _at_least_two_answers,
    QuestionKind.CHECKBOXES.value: _at_least_two_answers,
    QuestionKind.SCALE.value: _scale_config_present,
}


def _validate_quiz(quiz: QuizMaterial) -> None:
    field_errors = {}
    first_message = None

    for index, question in enumerate(quiz.questions):
        rule = QUESTION_RULES.get(question.type)
        if rule is None:
            if not is_known_question_type(question.type):
                logger.info(f"Quiz '{quiz.name}' question {index + 1} has unrecognised type '{question.type}'")
            continue
        problem = rule(question)
        if problem is None:
            continue
        message = f"Question {index + 1} ('{question.text}'): {problem}"
        field_errors[f"questions[{index}]"] = message
        if first_message is None:
            first_message = message

    if field_errors:
        logger.warning(f"Rejecting quiz '{quiz.name}': {len(field_errors)} invalid question(s)")
        raise ValidationError(f"Invalid quiz '{quiz.name}'. {first_message}", field_errors=field_errors)


VARIANT_RULES: Dict[MaterialVariant, Callable[[MaterialBase], None]] = {
    MaterialVariant.QUIZ: _validate_quiz,
}


def validate_material(normalized: NormalizedMaterial) -> None:
    """
    Raise ValidationError when the normalized material breaks a rule.

    Variants without rules pass unconditionally.
    """
    rule = VARIANT_RULES.get(normalized.variant)
    if rule is not None:
        rule(normalized.material)
