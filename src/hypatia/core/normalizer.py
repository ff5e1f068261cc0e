"""
Payload Normalization
=====================
Turns a raw material payload into a typed material model, its ordered
sub-entities and the related-material ids each sub-entity carries.

Field extraction is table driven: every variant lists its scalar fields as
``FieldSpec`` entries (target attribute, accepted payload keys, coercion).
Collections may sit at the payload root or under ``config``; ``config`` wins
when both are present.
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

from hypatia.core.coercion import (
    as_bool, as_float, as_int, as_int_list, as_json_text, as_str,
    invalid_related_entries, parse_related_ids,
)
from hypatia.core.field_access import first_field, get_field, has_field
from hypatia.core.question_types import normalize_question_type
from hypatia.models.material import (
    COLLECTIONS, MATERIAL_MODELS, MaterialBase, MaterialVariant,
    ChecklistEntry, ImageAnnotation, QuestionnaireEntry, QuizAnswer,
    QuizQuestion, VideoTimestamp, WorkflowStep,
)
from hypatia.utils.error_handling import ValidationError
from hypatia.utils.logging_utils import get_logger

logger = get_logger(__name__)

ItemPath = Tuple[int, ...]


@dataclass(frozen=True)
class FieldSpec:
    """Target attribute, payload keys tried in order, and coercion."""
    name: str
    keys: Tuple[str, ...]
    coerce: Callable[[Any], Any] = as_str


@dataclass
class NormalizedMaterial:
    """Result of normalizing one payload."""
    variant: MaterialVariant
    material: MaterialBase
    related_by_item: Dict[ItemPath, List[int]] = field(default_factory=dict)
    material_related: Optional[List[int]] = None
    collection_present: bool = False

    @property
    def collection_field(self) -> Optional[str]:
        entry = COLLECTIONS.get(self.variant)
        return entry[0] if entry else None

    @property
    def sub_entities(self) -> List[Any]:
        name = self.collection_field
        return list(getattr(self.material, name)) if name else []


def read_fields(source: Any, specs: Tuple[FieldSpec, ...]) -> Dict[str, Any]:
    """
    Extract every listed field present in ``source``.

    The first key holding a non-null value decides; if that value cannot be
    coerced the field is left unset.
    """
    values = {}
    for spec in specs:
        for key in spec.keys:
            raw = get_field(source, key)
            if raw is None:
                continue
            value = spec.coerce(raw)
            if value is not None:
                values[spec.name] = value
            else:
                logger.debug(f"Leaving '{spec.name}' unset, cannot parse {raw!r}")
            break
    return values


def find_collection(payload: Any, keys: Tuple[str, ...]) -> Tuple[bool, List[Any]]:
    """Locate a collection under ``config`` first, then at the payload root."""
    config = get_field(payload, "config")
    for source in (config, payload):
        if not isinstance(source, Mapping):
            continue
        for key in keys:
            if has_field(source, key):
                value = get_field(source, key)
                if value is None:
                    return True, []
                if not isinstance(value, list):
                    logger.warning(f"Ignoring non-list '{key}' collection: {type(value).__name__}")
                    return True, []
                return True, value
    return False, []


class _RelatedCollector:
    """Parses ``related`` arrays, honouring the strict/lenient switch."""

    def __init__(self, strict: bool):
        self.strict = strict
        self.errors: Dict[str, str] = {}

    def read(self, source: Any, context: str) -> Optional[List[int]]:
        if not has_field(source, "related"):
            return None
        raw = get_field(source, "related")
        if self.strict:
            bad = invalid_related_entries(raw)
            if bad:
                self.errors[f"{context}.related"] = f"Unparseable related ids: {bad!r}"
        return parse_related_ids(raw, context)


COMMON_FIELDS = (
    FieldSpec("name", ("name", "materialName")),
    FieldSpec("description", ("description",)),
    FieldSpec("unique_id", ("uniqueId", "unique_id"), as_int),
)

ASSET_ID = FieldSpec("asset_id", ("assetId", "asset_id"), as_int)

SCALAR_FIELDS: Dict[MaterialVariant, Tuple[FieldSpec, ...]] = {
    MaterialVariant.VIDEO: (
        ASSET_ID,
        FieldSpec("video_path", ("videoPath", "video_path", "path")),
        FieldSpec("video_duration", ("videoDuration", "video_duration", "duration"), as_float),
        FieldSpec("video_resolution", ("videoResolution", "video_resolution", "resolution")),
        FieldSpec("start_time", ("startTime", "start_time"), as_float),
    ),
    MaterialVariant.IMAGE: (
        ASSET_ID,
        FieldSpec("image_path", ("imagePath", "image_path", "path")),
        FieldSpec("image_width", ("imageWidth", "image_width", "width"), as_int),
        FieldSpec("image_height", ("imageHeight", "image_height", "height"), as_int),
        FieldSpec("image_format", ("imageFormat", "image_format", "format")),
    ),
    MaterialVariant.PDF: (
        ASSET_ID,
        FieldSpec("pdf_path", ("pdfPath", "pdf_path", "path")),
        FieldSpec("pdf_page_count", ("pdfPageCount", "pdf_page_count", "pageCount"), as_int),
        FieldSpec("pdf_file_size", ("pdfFileSize", "pdf_file_size", "fileSize"), as_int),
    ),
    MaterialVariant.CHECKLIST: (),
    MaterialVariant.WORKFLOW: (),
    MaterialVariant.QUESTIONNAIRE: (
        FieldSpec("questionnaire_type", ("questionnaireType", "questionnaire_type")),
        FieldSpec("passing_score", ("passingScore", "passing_score"), as_float),
        FieldSpec("questionnaire_config", ("questionnaireConfig", "questionnaire_config"), as_json_text),
    ),
    MaterialVariant.QUIZ: (
        FieldSpec("evaluation_mode", ("evaluationMode", "evaluation_mode")),
        FieldSpec("min_score", ("minScore", "min_score"), as_float),
    ),
    MaterialVariant.CHATBOT: (
        FieldSpec("chatbot_config", ("chatbotConfig", "chatbot_config"), as_json_text),
        FieldSpec("chatbot_model", ("chatbotModel", "chatbot_model")),
        FieldSpec("chatbot_prompt", ("chatbotPrompt", "chatbot_prompt")),
    ),
    MaterialVariant.MQTT_TEMPLATE: (
        FieldSpec("message_type", ("messageType", "message_type")),
        FieldSpec("message_text", ("messageText", "message_text")),
    ),
    MaterialVariant.UNITY: (
        ASSET_ID,
        FieldSpec("unity_version", ("unityVersion", "unity_version")),
        FieldSpec("unity_build_target", ("unityBuildTarget", "unity_build_target")),
        FieldSpec("unity_scene_name", ("unitySceneName", "unity_scene_name")),
        FieldSpec("unity_json", ("unityJson", "unity_json"), as_json_text),
    ),
    MaterialVariant.VOICE: (
        FieldSpec("voice_status", ("voiceStatus", "voice_status")),
        FieldSpec("voice_asset_ids", ("voiceAssetIds", "voice_asset_ids", "assetIds"), as_int_list),
    ),
    MaterialVariant.DEFAULT: (ASSET_ID,),
}

ITEM_ID = FieldSpec("id", ("id",), as_int)

STEP_FIELDS = (
    ITEM_ID,
    FieldSpec("title", ("title", "name")),
    FieldSpec("content", ("content", "description")),
)

ENTRY_FIELDS = (
    ITEM_ID,
    FieldSpec("text", ("text", "title")),
    FieldSpec("description", ("description",)),
)

TIMESTAMP_FIELDS = (
    ITEM_ID,
    FieldSpec("title", ("title",)),
    FieldSpec("start_time", ("startTime", "start_time", "start"), as_float),
    FieldSpec("end_time", ("endTime", "end_time", "end"), as_float),
    FieldSpec("duration", ("duration",), as_float),
    FieldSpec("description", ("description",)),
    FieldSpec("type", ("type",)),
)

ANNOTATION_FIELDS = (
    ITEM_ID,
    FieldSpec("client_id", ("clientId", "client_id")),
    FieldSpec("text", ("text",)),
    FieldSpec("font_size", ("fontSize", "font_size"), as_int),
    FieldSpec("x", ("x",), as_float),
    FieldSpec("y", ("y",), as_float),
)

QUESTION_FIELDS = (
    FieldSpec("number", ("number", "questionNumber", "id"), as_int),
    FieldSpec("type", ("type", "questionType"), normalize_question_type),
    FieldSpec("text", ("text", "questionText", "question")),
    FieldSpec("description", ("description",)),
    FieldSpec("score", ("score", "points"), as_float),
    FieldSpec("help_text", ("helpText", "help_text")),
    FieldSpec("allow_multiple", ("allowMultiple", "allow_multiple"), as_bool),
    FieldSpec("scale_config", ("scaleConfig", "scale_config"), as_json_text),
)

ANSWER_FIELDS = (
    ITEM_ID,
    FieldSpec("text", ("text", "answerText", "answer")),
    FieldSpec("is_correct", ("isCorrect", "correctAnswer", "correct"), as_bool),
    FieldSpec("display_order", ("displayOrder", "display_order", "order"), as_int),
    FieldSpec("extra", ("extra",), as_json_text),
)

# Collection field -> (payload keys, item fields, item model)
ITEM_TABLE = {
    "steps": (("steps", "workflowSteps"), STEP_FIELDS, WorkflowStep),
    "timestamps": (("timestamps", "videoTimestamps"), TIMESTAMP_FIELDS, VideoTimestamp),
    "annotations": (("annotations", "imageAnnotations"), ANNOTATION_FIELDS, ImageAnnotation),
}

ENTRY_MODELS = {
    MaterialVariant.CHECKLIST: ChecklistEntry,
    MaterialVariant.QUESTIONNAIRE: QuestionnaireEntry,
}


def _fill_end_time(values: Dict[str, Any]) -> Dict[str, Any]:
    if "end_time" not in values and "start_time" in values and "duration" in values:
        values["end_time"] = values["start_time"] + values["duration"]
    return values


def _simple_items(payload, keys, specs, model, related, result, label, post=None):
    present, raw_items = find_collection(payload, keys)
    items = []
    for raw in raw_items:
        if not isinstance(raw, Mapping):
            logger.warning(f"Skipping non-object item in '{label}': {raw!r}")
            continue
        values = read_fields(raw, specs)
        if post:
            values = post(values)
        index = len(items)
        ids = related.read(raw, f"{label}[{index}]")
        if ids is not None:
            result.related_by_item[(index,)] = ids
        items.append(model(**values))
    return present, items


def _questions(payload, related, result):
    present, raw_questions = find_collection(payload, ("questions",))
    questions = []
    for raw in raw_questions:
        if not isinstance(raw, Mapping):
            logger.warning(f"Skipping non-object quiz question: {raw!r}")
            continue
        index = len(questions)
        values = read_fields(raw, QUESTION_FIELDS)
        values.setdefault("number", index + 1)
        # Persisted id only when the number came from an explicit number key
        if has_field(raw, "number") or has_field(raw, "questionNumber"):
            persisted = as_int(get_field(raw, "id"))
            if persisted is not None:
                values["id"] = persisted

        ids = related.read(raw, f"questions[{index}]")
        if ids is not None:
            result.related_by_item[(index,)] = ids

        answers = []
        raw_answers = first_field(raw, "answers", "anwsers")
        for raw_answer in raw_answers if isinstance(raw_answers, list) else []:
            if not isinstance(raw_answer, Mapping):
                logger.warning(f"Skipping non-object answer in questions[{index}]: {raw_answer!r}")
                continue
            answer_index = len(answers)
            answer_values = read_fields(raw_answer, ANSWER_FIELDS)
            answer_values.setdefault("display_order", answer_index + 1)
            answer_ids = related.read(raw_answer, f"questions[{index}].answers[{answer_index}]")
            if answer_ids is not None:
                result.related_by_item[(index, answer_index)] = answer_ids
            answers.append(QuizAnswer(**answer_values))

        values["answers"] = answers
        questions.append(QuizQuestion(**values))
    return present, questions


def _collection_values(variant, payload, related, result) -> Dict[str, Any]:
    entry = COLLECTIONS.get(variant)
    if entry is None:
        return {}
    name = entry[0]

    if variant == MaterialVariant.QUIZ:
        present, items = _questions(payload, related, result)
    elif name == "entries":
        present, items = _simple_items(
            payload, ("entries",), ENTRY_FIELDS, ENTRY_MODELS[variant], related, result, "entries"
        )
    else:
        keys, specs, model = ITEM_TABLE[name]
        post = _fill_end_time if name == "timestamps" else None
        present, items = _simple_items(payload, keys, specs, model, related, result, name, post)

    result.collection_present = present
    return {name: items}


def _scalar_values(variant, payload) -> Dict[str, Any]:
    specs = COMMON_FIELDS + SCALAR_FIELDS[variant]
    values = read_fields(get_field(payload, "config"), specs)
    values.update(read_fields(payload, specs))
    return values


def normalize_payload(variant: MaterialVariant, payload: Any, strict_related: bool = False) -> NormalizedMaterial:
    """
    Normalize ``payload`` as ``variant``.

    Args:
        variant: Resolved material variant
        payload: Raw JSON object
        strict_related: Reject unparseable related ids instead of skipping them

    Returns:
        The typed material with its sub-entities and related-id map
    """
    if not isinstance(payload, Mapping):
        raise ValidationError("Material payload must be a JSON object")

    variant = MaterialVariant(variant)
    related = _RelatedCollector(strict_related)
    result = NormalizedMaterial(variant=variant, material=MATERIAL_MODELS[variant]())

    values = _scalar_values(variant, payload)
    values.update(_collection_values(variant, payload, related, result))
    result.material_related = related.read(payload, "material")

    if related.errors:
        raise ValidationError("Related material ids could not be parsed", field_errors=related.errors)

    result.material = MATERIAL_MODELS[variant](**values)
    logger.debug(
        f"Normalized {variant.value} material '{result.material.name}' "
        f"with {len(result.sub_entities)} sub-entities"
    )
    return result
