"""Lesson, level and progress models."""

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator


class FrontendTaskType(str, Enum):
    """Task types the lesson player renders, in lesson order."""

    VOCABULARY = "vocabulary"
    RULES = "rules"
    LISTENING = "listening_comprehension"
    ATTENTION = "attention"
    WRITING = "writing_optional"


# Fixed slot of each task type inside a lesson
TASK_ID_BY_TYPE: dict[str, int] = {
    FrontendTaskType.VOCABULARY.value: 1,
    FrontendTaskType.RULES.value: 2,
    FrontendTaskType.LISTENING.value: 3,
    "listening": 3,
    FrontendTaskType.ATTENTION.value: 4,
    FrontendTaskType.WRITING.value: 5,
    "writing": 5,
}

TASK_TYPE_ALIASES: dict[str, str] = {
    "listening": FrontendTaskType.LISTENING.value,
    "writing": FrontendTaskType.WRITING.value,
}


class ProgressStatus(str, Enum):
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class LessonCreate(BaseModel):
    """Body of ``POST /api/admin/lessons``."""

    day_number: Optional[int] = Field(None, ge=1, description="Course day, unique per lesson")
    level_id: Optional[str] = None
    title_ru: Optional[str] = None
    title_en: Optional[str] = None
    title_pt: Optional[str] = None
    subtitle_ru: Optional[str] = None
    subtitle_en: Optional[str] = None
    subtitle_pt: Optional[str] = None
    estimated_time: Optional[str] = None
    yaml_content: Optional[Any] = Field(
        None, description="Lesson content as an object or a JSON/YAML string"
    )
    is_published: bool = False

    model_config = {
        "json_schema_extra": {
            "example": {
                "day_number": 7,
                "title_ru": "В кафе",
                "title_en": "At the café",
                "yaml_content": {
                    "day": {"title": {"ru": "В кафе", "en": "At the café"}},
                    "estimated_time": "15–25",
                    "tasks": [],
                },
            }
        }
    }


class LessonUpdate(BaseModel):
    """Body of ``PUT /api/admin/lessons/{id}``; only the fields sent are written."""

    yaml_content: Optional[Any] = None
    level_id: Optional[str] = None
    is_published: Optional[bool] = None
    title_ru: Optional[str] = None
    title_en: Optional[str] = None
    title_pt: Optional[str] = None
    subtitle_ru: Optional[str] = None
    subtitle_en: Optional[str] = None
    subtitle_pt: Optional[str] = None
    estimated_time: Optional[str] = None


class LessonGenerateRequest(BaseModel):
    topic_ru: str = Field(..., min_length=1)
    topic_en: str = Field(..., min_length=1)


class GeneratedLesson(BaseModel):
    """Structured output expected from the lesson drafting model."""

    day: dict[str, Any] = Field(default_factory=dict, description="Day header: number, title, subtitle")
    estimated_time: Optional[str] = None
    tasks: list[dict[str, Any]] = Field(
        ..., description="Exactly five tasks: vocabulary, rules, listening, attention, writing"
    )

    @field_validator("tasks")
    @classmethod
    def require_five_tasks(cls, tasks: list[dict[str, Any]]) -> list[dict[str, Any]]:
        if len(tasks) != 5:
            raise ValueError(f"Lesson must have exactly 5 tasks, got {len(tasks)}")
        return tasks


class LevelCreate(BaseModel):
    level_number: Optional[int] = None
    name_ru: Optional[str] = None
    name_en: Optional[str] = None
    description_ru: Optional[str] = None
    description_en: Optional[str] = None
    order_index: Optional[int] = None


class LevelUpdate(BaseModel):
    level_number: Optional[int] = None
    name_ru: Optional[str] = None
    name_en: Optional[str] = None
    description_ru: Optional[str] = None
    description_en: Optional[str] = None
    order_index: Optional[int] = None


class MethodologyUpdate(BaseModel):
    """Body of ``PUT /api/admin/methodologies``."""

    type: Optional[str] = Field(None, description="course, lesson or vocabulary")
    content: Optional[Any] = None


class TaskCompletion(BaseModel):
    task_type: Optional[str] = None
    completion_data: Optional[dict[str, Any]] = None


class AudioGenerateRequest(BaseModel):
    text: Optional[str] = None
    lessonId: Optional[str] = None
    taskId: Optional[Any] = None
    blockId: Optional[str] = None
    itemId: Optional[str] = None
