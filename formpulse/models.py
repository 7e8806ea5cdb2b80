import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

FIELD_TEXT = "text"
FIELD_SINGLE_CHOICE = "single_choice"
FIELD_MULTI_SELECT = "multi_select"
FIELD_RATING = "rating"
CHOICE_TYPES = (FIELD_SINGLE_CHOICE, FIELD_MULTI_SELECT)

DEFAULT_RATING_MIN = 1
DEFAULT_RATING_MAX = 5

FormStatus = Literal["draft", "published"]


def _new_id() -> str:
    return uuid.uuid4().hex


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class WireModel(BaseModel):
    """Base for models exchanged with clients: camelCase on the wire, snake_case in Python."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ShowIf(WireModel):
    field_id: str
    equals: Any = None


class FieldSchema(WireModel):
    id: str
    label: str
    # Unknown tags are allowed and carry no answer constraint.
    type: str = FIELD_TEXT
    required: bool = False
    options: List[str] = Field(default_factory=list)
    min: Optional[float] = None
    max: Optional[float] = None
    is_pii: bool = Field(default=False, alias="isPII")
    show_if: Optional[ShowIf] = None

    def rating_bounds(self) -> tuple[float, float]:
        """Inclusive rating range; zero or unset bounds fall back to 1..5."""
        low = self.min if self.min else DEFAULT_RATING_MIN
        high = self.max if self.max else DEFAULT_RATING_MAX
        return low, high


class FormDefinition(WireModel):
    title: str = ""
    status: FormStatus = "draft"
    fields: List[FieldSchema] = Field(default_factory=list)


class Form(FormDefinition):
    id: str = Field(default_factory=_new_id)
    owner_id: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @property
    def is_published(self) -> bool:
        return self.status == "published"


class SubmissionRequest(WireModel):
    answers: Dict[str, Any] = Field(default_factory=dict)


class Submission(WireModel):
    id: str = Field(default_factory=_new_id)
    form_id: str
    answers: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=utcnow)


class User(WireModel):
    id: str = Field(default_factory=_new_id)
    email: str
    name: str = ""
    password_hash: str = Field(default="", exclude=True)
    created_at: datetime = Field(default_factory=utcnow)


class RegisterRequest(BaseModel):
    email: str = ""
    password: str = ""
    name: str = ""


class LoginRequest(BaseModel):
    email: str = ""
    password: str = ""


class FieldDistribution(WireModel):
    buckets: Dict[str, int] = Field(default_factory=dict)


class TrendPoint(WireModel):
    date: str
    count: int = 0


class SkippedField(WireModel):
    field_id: str
    field_name: str
    skip_count: int = 0
    skip_rate: float = 0.0


class AnalyticsReport(WireModel):
    count: int = 0
    field_breakdown: Dict[str, FieldDistribution] = Field(default_factory=dict)
    average_rating: Dict[str, float] = Field(default_factory=dict)
    response_trends: List[TrendPoint] = Field(default_factory=list)
    most_common_answers: Dict[str, str] = Field(default_factory=dict)
    skipped_fields: List[SkippedField] = Field(default_factory=list)
    completion_rate: float = 0.0
