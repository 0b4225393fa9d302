from datetime import date, datetime
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

# Weekdays are ISO encoded everywhere: 1=Monday .. 7=Sunday
Weekday = Annotated[int, Field(ge=1, le=7)]
ALL_WEEKDAYS = [1, 2, 3, 4, 5, 6, 7]

Unit = Literal["days", "weeks", "months"]
UNIT_DAYS = {"days": 1, "weeks": 7, "months": 30}

TIME_PATTERN = r"^([01]\d|2[0-3]):[0-5]\d$"  # HH:MM, 24-hour


def _check_range(value: int, label: str, low: int = 1, high: int = 365) -> int:
    if value < low:
        raise ValueError(f"{label} must be at least {low}.")
    if value > high:
        raise ValueError(f"{label} cannot exceed {high}.")
    return value


def _normalize_weekdays(days: Optional[list[int]]) -> Optional[list[int]]:
    if days is None:
        return None
    return sorted(set(days))


class CamelModel(BaseModel):
    # snake_case attributes, camelCase on the wire; both accepted on input
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class OneOffSchedule(CamelModel):
    model_config = ConfigDict(extra="forbid")

    kind: Literal["one_off"] = "one_off"
    duration: int
    duration_unit: Unit = "days"
    reminder_frequency: int
    reminder_unit: Unit = "days"

    @field_validator("duration")
    @classmethod
    def check_duration(cls, value: int) -> int:
        return _check_range(value, "Duration")

    @field_validator("reminder_frequency")
    @classmethod
    def check_reminder_frequency(cls, value: int) -> int:
        return _check_range(value, "Reminder frequency")

    @property
    def duration_days(self) -> int:
        return self.duration * UNIT_DAYS[self.duration_unit]

    @property
    def reminder_frequency_days(self) -> int:
        return self.reminder_frequency * UNIT_DAYS[self.reminder_unit]


class RecurringSchedule(CamelModel):
    model_config = ConfigDict(extra="forbid")

    kind: Literal["recurring"] = "recurring"
    recurrence_pattern: Literal["daily", "weekly"] = "weekly"
    days_of_week: list[Weekday] = []
    reminder_time: Optional[str] = Field(default=None, pattern=TIME_PATTERN)
    completion_time: Optional[str] = Field(default=None, pattern=TIME_PATTERN)

    @field_validator("days_of_week")
    @classmethod
    def normalize_days(cls, value: list[int]) -> list[int]:
        return _normalize_weekdays(value)

    @model_validator(mode="after")
    def check_weekly_days(self) -> "RecurringSchedule":
        if self.recurrence_pattern == "weekly" and not self.days_of_week:
            raise ValueError("Select at least one day of the week.")
        return self

    @property
    def weekdays(self) -> list[int]:
        """Weekdays the task occurs on; daily tasks occur every day."""
        if self.recurrence_pattern == "daily":
            return ALL_WEEKDAYS
        return self.days_of_week


Schedule = Annotated[Union[OneOffSchedule, RecurringSchedule], Field(discriminator="kind")]


class Step(CamelModel):
    id: str
    text: str
    completed: bool = False
    completed_at: Optional[datetime] = None


class TaskFields(CamelModel):
    title: str
    description: Optional[str] = ""
    schedule: Schedule
    reminder_days_of_week: Optional[list[Weekday]] = None

    @field_validator("title")
    @classmethod
    def check_title(cls, value: str) -> str:
        if len(value.strip()) < 2:
            raise ValueError("Title must be at least 2 characters.")
        if len(value) > 50:
            raise ValueError("Title must not exceed 50 characters.")
        return value

    @field_validator("description")
    @classmethod
    def check_description(cls, value: Optional[str]) -> str:
        if value is None:
            return ""
        if len(value) > 500:
            raise ValueError("Description must not exceed 500 characters.")
        return value

    @field_validator("reminder_days_of_week")
    @classmethod
    def normalize_reminder_days(cls, value: Optional[list[int]]) -> Optional[list[int]]:
        return _normalize_weekdays(value)


class TaskCreate(TaskFields):
    pass


class Task(TaskFields):
    id: str
    created_at: datetime
    completed: bool = False
    progress_made: Optional[str] = None
    progress_to_go: Optional[str] = None
    steps: list[Step] = []


class TaskView(Task):
    progress: int
    next_reminder: str
    remaining_time: str
    expected_progress: str
    due_date: Optional[date] = None  # one-off tasks only


class TaskUpdate(CamelModel):
    completed: Optional[bool] = None
    progress_made: Optional[str] = None
    progress_to_go: Optional[str] = None

    @field_validator("completed")
    @classmethod
    def check_completed(cls, value: Optional[bool]) -> bool:
        # Narratives may be cleared with null, completion may not
        if value is None:
            raise ValueError("Completed must be true or false.")
        return value


class StepCreate(CamelModel):
    text: str

    @field_validator("text")
    @classmethod
    def check_text(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("Step must not be empty.")
        if len(value) > 200:
            raise ValueError("Step must not exceed 200 characters.")
        return value


class StepUpdate(CamelModel):
    completed: bool


class Narrative(CamelModel):
    progress_made: str
    progress_to_go: str

    @field_validator("progress_made", "progress_to_go")
    @classmethod
    def check_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("Narrative text must not be empty.")
        return value


class NarrativeFailure(Narrative):
    error: str


class NarrativeRequest(CamelModel):
    task: Task
    user_update: Optional[str] = None


class ProgressUpdateRequest(CamelModel):
    user_update: Optional[str] = None


class ProgressResponse(CamelModel):
    task: TaskView
    notice: Optional[str] = None


class RemindersResponse(CamelModel):
    tasks: list[TaskView]
    message: Optional[str] = None
