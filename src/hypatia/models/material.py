"""
Material Models
===============
Pydantic models for the closed set of learning material variants and the
sub-entities each variant owns.
"""

from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Type, Union

from pydantic import BaseModel, Field, TypeAdapter


class MaterialVariant(str, Enum):
    """Closed enumeration of material variants."""
    VIDEO = "Video"
    IMAGE = "Image"
    PDF = "PDF"
    CHECKLIST = "Checklist"
    WORKFLOW = "Workflow"
    QUESTIONNAIRE = "Questionnaire"
    QUIZ = "Quiz"
    CHATBOT = "Chatbot"
    MQTT_TEMPLATE = "MQTTTemplate"
    UNITY = "Unity"
    VOICE = "Voice"
    DEFAULT = "Default"


class SubEntityKind(str, Enum):
    """Kinds of child records owned by a material."""
    WORKFLOW_STEP = "WorkflowStep"
    CHECKLIST_ENTRY = "ChecklistEntry"
    QUESTIONNAIRE_ENTRY = "QuestionnaireEntry"
    QUIZ_QUESTION = "QuizQuestion"
    QUIZ_ANSWER = "QuizAnswer"
    VIDEO_TIMESTAMP = "VideoTimestamp"
    IMAGE_ANNOTATION = "ImageAnnotation"


# Sub-entities

class WorkflowStep(BaseModel):
    id: Optional[int] = None
    title: str = ""
    content: Optional[str] = None


class ChecklistEntry(BaseModel):
    id: Optional[int] = None
    text: str = ""
    description: Optional[str] = None


class QuestionnaireEntry(BaseModel):
    id: Optional[int] = None
    text: str = ""
    description: Optional[str] = None


class QuizAnswer(BaseModel):
    id: Optional[int] = None
    text: str = ""
    is_correct: Optional[bool] = None
    display_order: Optional[int] = None
    extra: Optional[str] = None


class QuizQuestion(BaseModel):
    id: Optional[int] = None
    number: int = Field(1, description="1-based question number")
    type: str = Field("text", description="Canonical question kind or the raw label when unknown")
    text: str = ""
    description: Optional[str] = None
    score: Optional[float] = None
    help_text: Optional[str] = None
    allow_multiple: Optional[bool] = None
    scale_config: Optional[str] = None
    answers: List[QuizAnswer] = Field(default_factory=list)


class VideoTimestamp(BaseModel):
    id: Optional[int] = None
    title: str = ""
    start_time: Optional[float] = Field(None, description="Start offset in seconds")
    end_time: Optional[float] = Field(None, description="End offset in seconds")
    duration: Optional[float] = None
    description: Optional[str] = None
    type: Optional[str] = None


class ImageAnnotation(BaseModel):
    id: Optional[int] = None
    client_id: Optional[str] = Field(None, description="Client generated identifier")
    text: Optional[str] = None
    font_size: Optional[int] = None
    x: float = 0.0
    y: float = 0.0


# Materials

class MaterialBase(BaseModel):
    """Fields shared by every material variant."""
    id: Optional[int] = None
    name: str = ""
    description: Optional[str] = None
    unique_id: Optional[int] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class VideoMaterial(MaterialBase):
    variant: Literal["Video"] = "Video"
    asset_id: Optional[int] = None
    video_path: Optional[str] = None
    video_duration: Optional[float] = Field(None, description="Duration in seconds")
    video_resolution: Optional[str] = None
    start_time: Optional[float] = None
    timestamps: List[VideoTimestamp] = Field(default_factory=list)


class ImageMaterial(MaterialBase):
    variant: Literal["Image"] = "Image"
    asset_id: Optional[int] = None
    image_path: Optional[str] = None
    image_width: Optional[int] = None
    image_height: Optional[int] = None
    image_format: Optional[str] = None
    annotations: List[ImageAnnotation] = Field(default_factory=list)


class PDFMaterial(MaterialBase):
    variant: Literal["PDF"] = "PDF"
    asset_id: Optional[int] = None
    pdf_path: Optional[str] = None
    pdf_page_count: Optional[int] = None
    pdf_file_size: Optional[int] = None


class ChecklistMaterial(MaterialBase):
    variant: Literal["Checklist"] = "Checklist"
    entries: List[ChecklistEntry] = Field(default_factory=list)


class WorkflowMaterial(MaterialBase):
    variant: Literal["Workflow"] = "Workflow"
    steps: List[WorkflowStep] = Field(default_factory=list)


class QuestionnaireMaterial(MaterialBase):
    variant: Literal["Questionnaire"] = "Questionnaire"
    questionnaire_type: Optional[str] = None
    passing_score: Optional[float] = None
    questionnaire_config: Optional[str] = None
    entries: List[QuestionnaireEntry] = Field(default_factory=list)


class QuizMaterial(MaterialBase):
    variant: Literal["Quiz"] = "Quiz"
    evaluation_mode: Optional[str] = None
    min_score: Optional[float] = None
    questions: List[QuizQuestion] = Field(default_factory=list)


class ChatbotMaterial(MaterialBase):
    variant: Literal["Chatbot"] = "Chatbot"
    chatbot_config: Optional[str] = None
    chatbot_model: Optional[str] = None
    chatbot_prompt: Optional[str] = None


class MQTTTemplateMaterial(MaterialBase):
    variant: Literal["MQTTTemplate"] = "MQTTTemplate"
    message_type: Optional[str] = None
    message_text: Optional[str] = None


class UnityMaterial(MaterialBase):
    variant: Literal["Unity"] = "Unity"
    asset_id: Optional[int] = None
    unity_version: Optional[str] = None
    unity_build_target: Optional[str] = None
    unity_scene_name: Optional[str] = None
    unity_json: Optional[str] = None


class VoiceMaterial(MaterialBase):
    variant: Literal["Voice"] = "Voice"
    voice_status: str = "notready"
    voice_asset_ids: List[int] = Field(default_factory=list)


class DefaultMaterial(MaterialBase):
    variant: Literal["Default"] = "Default"
    asset_id: Optional[int] = None


MaterialModel = Annotated[
    Union[
        VideoMaterial,
        ImageMaterial,
        PDFMaterial,
        ChecklistMaterial,
        WorkflowMaterial,
        QuestionnaireMaterial,
        QuizMaterial,
        ChatbotMaterial,
        MQTTTemplateMaterial,
        UnityMaterial,
        VoiceMaterial,
        DefaultMaterial,
    ],
    Field(discriminator="variant"),
]

material_adapter = TypeAdapter(MaterialModel)

MATERIAL_MODELS: Dict[MaterialVariant, Type[MaterialBase]] = {
    MaterialVariant.VIDEO: VideoMaterial,
    MaterialVariant.IMAGE: ImageMaterial,
    MaterialVariant.PDF: PDFMaterial,
    MaterialVariant.CHECKLIST: ChecklistMaterial,
    MaterialVariant.WORKFLOW: WorkflowMaterial,
    MaterialVariant.QUESTIONNAIRE: QuestionnaireMaterial,
    MaterialVariant.QUIZ: QuizMaterial,
    MaterialVariant.CHATBOT: ChatbotMaterial,
    MaterialVariant.MQTT_TEMPLATE: MQTTTemplateMaterial,
    MaterialVariant.UNITY: UnityMaterial,
    MaterialVariant.VOICE: VoiceMaterial,
    MaterialVariant.DEFAULT: DefaultMaterial,
}

# Variant -> (collection field, sub-entity kind of its items)
COLLECTIONS: Dict[MaterialVariant, tuple] = {
    MaterialVariant.VIDEO: ("timestamps", SubEntityKind.VIDEO_TIMESTAMP),
    MaterialVariant.IMAGE: ("annotations", SubEntityKind.IMAGE_ANNOTATION),
    MaterialVariant.CHECKLIST: ("entries", SubEntityKind.CHECKLIST_ENTRY),
    MaterialVariant.WORKFLOW: ("steps", SubEntityKind.WORKFLOW_STEP),
    MaterialVariant.QUESTIONNAIRE: ("entries", SubEntityKind.QUESTIONNAIRE_ENTRY),
    MaterialVariant.QUIZ: ("questions", SubEntityKind.QUIZ_QUESTION),
}


def material_from_document(document: Dict[str, Any]) -> MaterialBase:
    """Rebuild the typed material from a stored document."""
    data = {k: v for k, v in document.items() if k != "_id"}
    return material_adapter.validate_python(data)


class CreateMaterialResponse(BaseModel):
    """Response returned after a material has been created."""
    status: str = "success"
    message: str
    id: int
    name: str
    description: Optional[str] = None
    type: str
    asset_id: Optional[int] = None
    created_at: Optional[datetime] = None
