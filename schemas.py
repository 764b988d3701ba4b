# schemas.py
import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)

logger = logging.getLogger(__name__)

DEFAULT_CAPACITY = 5
DEFAULT_MAX_GRADE = 5
STUDENT_ROLES = {"student", "estudiante"}


class AssignmentMode(str, Enum):
    RANDOM = "random"
    CHOICE = "choice"


# Valores heredados que todavía existen en el almacén
MODE_ALIASES = {
    "aleatorio": AssignmentMode.RANDOM,
    "eleccion": AssignmentMode.CHOICE,
    "elección": AssignmentMode.CHOICE,
}


def normalize_mode(value):
    if value is None or value == "":
        return AssignmentMode.CHOICE
    if isinstance(value, AssignmentMode):
        return value
    text = str(value).strip().lower()
    return MODE_ALIASES.get(text, text)


def parse_due_date(value):
    """Fecha ISO-8601 a datetime con zona; None si falta o no se entiende."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        try:
            parsed = datetime.fromisoformat(str(value).strip().replace("Z", "+00:00"))
        except ValueError:
            logger.warning("Fecha de entrega inválida ignorada: %r", value)
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _as_id(value):
    if value is None:
        return value
    return str(value).strip()


# ---------------------------------------------------------------------------
# Registros del almacén
# ---------------------------------------------------------------------------

class StoredRecord(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str = Field(alias="_id")

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, value):
        return _as_id(value)


class CategoryRecord(StoredRecord):
    course_id: str
    name: str = ""
    mode: AssignmentMode = Field(default=AssignmentMode.CHOICE, alias="type")
    capacity: int = Field(default=DEFAULT_CAPACITY, ge=1)
    description: Optional[str] = None

    @field_validator("course_id", mode="before")
    @classmethod
    def _coerce_course(cls, value):
        return _as_id(value)

    @field_validator("mode", mode="before")
    @classmethod
    def _coerce_mode(cls, value):
        return normalize_mode(value)

    @field_validator("capacity", mode="before")
    @classmethod
    def _default_capacity(cls, value):
        # Capacidad ausente o cero equivale a la capacidad por defecto
        if value is None or value == "" or value == 0:
            return DEFAULT_CAPACITY
        return value


class GroupRecord(StoredRecord):
    category_id: str
    name: str = ""
    description: Optional[str] = None

    @field_validator("category_id", mode="before")
    @classmethod
    def _coerce_category(cls, value):
        return _as_id(value)


class MembershipRecord(StoredRecord):
    group_id: str
    student_id: str

    @field_validator("group_id", "student_id", mode="before")
    @classmethod
    def _coerce_ids(cls, value):
        return _as_id(value)


class ActivityRecord(StoredRecord):
    course_id: str
    category_id: Optional[str] = None
    title: str = ""
    description: Optional[str] = None
    due_date: Optional[datetime] = None

    @field_validator("course_id", "category_id", mode="before")
    @classmethod
    def _coerce_ids(cls, value):
        return _as_id(value) or None

    @field_validator("due_date", mode="before")
    @classmethod
    def _lenient_due_date(cls, value):
        return parse_due_date(value)


class GradeRecord(StoredRecord):
    activity_id: str
    student_id: str
    grade: float
    max_grade: float = DEFAULT_MAX_GRADE
    graded_by: str

    @field_validator("activity_id", "student_id", "graded_by", mode="before")
    @classmethod
    def _coerce_ids(cls, value):
        return _as_id(value)


class EnrollmentRecord(StoredRecord):
    course_id: str
    student_id: str
    role: str = ""

    @field_validator("course_id", "student_id", mode="before")
    @classmethod
    def _coerce_ids(cls, value):
        return _as_id(value)

    @property
    def is_student(self):
        return self.role.strip().lower() in STUDENT_ROLES


def parse_records(model, raw_records, collection=""):
    """Valida los registros crudos; los inválidos se omiten con aviso."""
    parsed = []
    for raw in raw_records:
        try:
            parsed.append(model.model_validate(raw))
        except ValidationError as e:
            logger.warning(
                "Registro inválido omitido en %s (%s): %s",
                collection or model.__name__,
                raw.get("_id") if isinstance(raw, dict) else raw,
                e.errors()[0]["msg"],
            )
    return parsed


# ---------------------------------------------------------------------------
# Vistas derivadas
# ---------------------------------------------------------------------------

class ActivityStats(BaseModel):
    total: int = 0
    pending: int = 0
    overdue: int = 0


class CategoryView(CategoryRecord):
    activity_count: int = 0
    pending_activities: int = 0
    overdue_activities: int = 0
    group_count: int = 0
    total_members: int = 0


class GroupView(GroupRecord):
    members: list[MembershipRecord] = []
    member_count: int = 0
    capacity: int = DEFAULT_CAPACITY
    capacity_percentage: int = 0


class ActivityView(ActivityRecord):
    category_name: Optional[str] = None
    category_mode: Optional[AssignmentMode] = None


class GroupAssignment(BaseModel):
    group_id: str
    name: str
    student_ids: list[str] = []


class PartitionResult(BaseModel):
    category_id: str
    groups: list[GroupAssignment] = []
    unassigned: list[str] = []
    failed_writes: int = 0


class JoinOutcome(str, Enum):
    JOINED = "joined"
    GROUP_NOT_FOUND = "group_not_found"
    CATEGORY_NOT_FOUND = "category_not_found"
    ALREADY_IN_CATEGORY = "already_in_category"
    GROUP_FULL = "group_full"


class JoinResult(BaseModel):
    outcome: JoinOutcome
    group_id: str
    student_id: str

    @property
    def ok(self):
        return self.outcome is JoinOutcome.JOINED


class StudentGradeSummary(BaseModel):
    student_id: str
    average_grade: float
    total_evaluations: int
    grades_list: list[GradeRecord] = []


class StudentStanding(BaseModel):
    summary: StudentGradeSummary
    rank: int
    ranked_students: int


class PeerToEvaluate(BaseModel):
    student_id: str
    my_grade: Optional[float] = None
    max_grade: Optional[float] = None


class CategoryCreated(BaseModel):
    category: CategoryRecord
    partition: Optional[PartitionResult] = None
    # Motivo por el que no se crearon los grupos; None si se crearon
    partition_error: Optional[str] = None


# ---------------------------------------------------------------------------
# Solicitudes
# ---------------------------------------------------------------------------

class CreateCategoryRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    course_id: str
    name: str = Field(min_length=1)
    mode: AssignmentMode = Field(default=AssignmentMode.CHOICE, alias="type")
    capacity: int = Field(default=DEFAULT_CAPACITY, ge=1)
    description: Optional[str] = None

    @field_validator("mode", mode="before")
    @classmethod
    def _coerce_mode(cls, value):
        return normalize_mode(value)


class UpdateCategoryRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: Optional[str] = Field(default=None, min_length=1)
    mode: Optional[AssignmentMode] = Field(default=None, alias="type")
    capacity: Optional[int] = Field(default=None, ge=1)
    description: Optional[str] = None

    @field_validator("mode", mode="before")
    @classmethod
    def _coerce_mode(cls, value):
        return None if value is None else normalize_mode(value)


class CreateGroupRequest(BaseModel):
    name: str = Field(min_length=1)
    description: Optional[str] = None


class UpdateGroupRequest(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None


class JoinGroupRequest(BaseModel):
    student_id: str


class TransferRequest(BaseModel):
    from_group_id: str
    to_group_id: str


class CreateActivityRequest(BaseModel):
    course_id: str
    title: str = Field(min_length=1)
    description: Optional[str] = None
    due_date: Optional[datetime] = None
    category_id: Optional[str] = None


class UpdateActivityRequest(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = None
    due_date: Optional[datetime] = None
    category_id: Optional[str] = None


class SaveGradeRequest(BaseModel):
    student_id: str
    graded_by: str
    grade: float = Field(ge=0)
    max_grade: float = Field(default=DEFAULT_MAX_GRADE, gt=0)

    @model_validator(mode="after")
    def _grade_within_scale(self):
        if self.grade > self.max_grade:
            raise ValueError("La calificación no puede superar la calificación máxima")
        return self
