"""
Type Resolution
===============
Determines which material variant a raw payload describes.

Signals are checked in priority order and the first usable one wins:

1. ``discriminator``: the class-style name, e.g. ``"VideoMaterial"``
2. ``type``: a string label or a numeric type code
3. ``materialType``: same handling as ``type``

Resolution is total. Anything unrecognised becomes ``MaterialVariant.DEFAULT``
so that sloppy clients still get a generic, persistable record.
"""

import re
from types import MappingProxyType
from typing import Any, Optional

from hypatia.core.field_access import get_field
from hypatia.models.material import MaterialVariant
from hypatia.utils.logging_utils import get_logger

logger = get_logger(__name__)

TYPE_CODES = MappingProxyType({
    0: "image",
    1: "video",
    2: "pdf",
    3: "unitydemo",
    4: "chatbot",
    5: "questionnaire",
    6: "checklist",
    7: "workflow",
    8: "mqtt_template",
    9: "answers",
    10: "quiz",
    11: "default",
})

VARIANT_SYNONYMS = MappingProxyType({
    "video": MaterialVariant.VIDEO,
    "image": MaterialVariant.IMAGE,
    "pdf": MaterialVariant.PDF,
    "document": MaterialVariant.PDF,
    "checklist": MaterialVariant.CHECKLIST,
    "workflow": MaterialVariant.WORKFLOW,
    "questionnaire": MaterialVariant.QUESTIONNAIRE,
    "quiz": MaterialVariant.QUIZ,
    "chatbot": MaterialVariant.CHATBOT,
    "mqtt_template": MaterialVariant.MQTT_TEMPLATE,
    "mqtttemplate": MaterialVariant.MQTT_TEMPLATE,
    "mqtt": MaterialVariant.MQTT_TEMPLATE,
    "unity": MaterialVariant.UNITY,
    "unitydemo": MaterialVariant.UNITY,
    "voice": MaterialVariant.VOICE,
    "answers": MaterialVariant.DEFAULT,
    "default": MaterialVariant.DEFAULT,
})

# Variants whose records may point at an uploaded asset
ASSET_VARIANTS = frozenset({
    MaterialVariant.VIDEO,
    MaterialVariant.IMAGE,
    MaterialVariant.PDF,
    MaterialVariant.UNITY,
    MaterialVariant.DEFAULT,
})

_MATERIAL_SUFFIX = re.compile(r"material$", re.IGNORECASE)


def _token_from_type_value(value: Any) -> Optional[str]:
    """Turn a ``type``/``materialType`` value into a lower-case token."""
    # bool is an int subclass but never a type code
    if isinstance(value, bool):
        return None
    if isinstance(value, str):
        return value.strip().lower()
    if isinstance(value, int):
        return TYPE_CODES.get(value, "default")
    if isinstance(value, float) and value.is_integer():
        return TYPE_CODES.get(int(value), "default")
    return None


def resolve_type_token(payload: Any) -> str:
    """Return the raw lower-case variant token before synonym mapping."""
    discriminator = get_field(payload, "discriminator")
    if isinstance(discriminator, str):
        return _MATERIAL_SUFFIX.sub("", discriminator.strip()).lower()

    for field_name in ("type", "materialType"):
        token = _token_from_type_value(get_field(payload, field_name))
        if token is not None:
            return token

    return "default"


def variant_from_token(token: str) -> MaterialVariant:
    """Map a lower-case token to its canonical variant."""
    variant = VARIANT_SYNONYMS.get(token)
    if variant is None:
        logger.debug(f"Unrecognised material type '{token}', using {MaterialVariant.DEFAULT.value}")
        return MaterialVariant.DEFAULT
    return variant


def resolve_variant(payload: Any) -> MaterialVariant:
    """Resolve the material variant of ``payload``; never raises."""
    return variant_from_token(resolve_type_token(payload))
