"""
Quiz Question Types
===================
Maps the human readable question type labels clients send onto five
canonical kinds.
"""

import re
from enum import Enum
from types import MappingProxyType
from typing import Any, Optional

from hypatia.core.coercion import as_str


class QuestionKind(str, Enum):
    TEXT = "text"
    BOOLEAN = "boolean"
    CHOICE = "choice"
    CHECKBOXES = "checkboxes"
    SCALE = "scale"


# Keys are labels folded by _fold()
QUESTION_TYPE_SYNONYMS = MappingProxyType({
    "text": QuestionKind.TEXT,
    "open ended": QuestionKind.TEXT,
    "open": QuestionKind.TEXT,
    "free text": QuestionKind.TEXT,
    "short answer": QuestionKind.TEXT,
    "essay": QuestionKind.TEXT,
    "boolean": QuestionKind.BOOLEAN,
    "bool": QuestionKind.BOOLEAN,
    "true or false": QuestionKind.BOOLEAN,
    "true false": QuestionKind.BOOLEAN,
    "yes no": QuestionKind.BOOLEAN,
    "yes or no": QuestionKind.BOOLEAN,
    "choice": QuestionKind.CHOICE,
    "multiple choice": QuestionKind.CHOICE,
    "single choice": QuestionKind.CHOICE,
    "radio": QuestionKind.CHOICE,
    "checkboxes": QuestionKind.CHECKBOXES,
    "checkbox": QuestionKind.CHECKBOXES,
    "selection checkboxes": QuestionKind.CHECKBOXES,
    "multiple select": QuestionKind.CHECKBOXES,
    "multi select": QuestionKind.CHECKBOXES,
    "scale": QuestionKind.SCALE,
    "likert": QuestionKind.SCALE,
    "likert scale": QuestionKind.SCALE,
    "rating": QuestionKind.SCALE,
})

QUESTION_TYPE_LABELS = MappingProxyType({
    QuestionKind.TEXT: "open ended",
    QuestionKind.BOOLEAN: "true or false",
    QuestionKind.CHOICE: "multiple choice",
    QuestionKind.CHECKBOXES: "selection checkboxes",
    QuestionKind.SCALE: "likert",
})

_SEPARATORS = re.compile(r"[\s_\-/]+")


def _fold(label: str) -> str:
    return _SEPARATORS.sub(" ", label.strip().lower()).strip()


def normalize_question_type(label: Any) -> Optional[str]:
    """
    Return the canonical kind for ``label``.

    "True/False", "true_or_false" and "True or False" all fold to the same
    key. Unknown labels are returned unchanged; ``None`` stays ``None``.
    """
    text = as_str(label)
    if text is None:
        return None
    kind = QUESTION_TYPE_SYNONYMS.get(_fold(text))
    return kind.value if kind is not None else text


def question_type_label(kind: Any) -> str:
    """Human readable label for a canonical kind; unknown kinds pass through."""
    try:
        return QUESTION_TYPE_LABELS[QuestionKind(kind)]
    except ValueError:
        return str(kind)


def is_known_question_type(kind: Any) -> bool:
    return kind in {k.value for k in QuestionKind}
