"""
Progress narratives from the Anthropic API with a local fallback.

The model is asked once per update. Transport errors, timeouts and unusable
answers all degrade to fallback_narrative so callers always get text to show.
"""
import json
import logging
from dataclasses import dataclass
from datetime import date
from typing import Optional

import anthropic
from pydantic import ValidationError

from models import Narrative, NarrativeFailure, RecurringSchedule, Task
from prompts import (
    ONE_OFF_SYSTEM_PROMPT,
    ONE_OFF_USER_PROMPT,
    RECURRING_SYSTEM_PROMPT,
    RECURRING_USER_PROMPT,
    USER_UPDATE_LINE,
)
from schedule import (
    WEEKDAY_NAMES,
    calculate_progress,
    days_since_creation,
    due_date,
    fallback_narrative,
)

logger = logging.getLogger(__name__)

MAX_TOKENS = 300

# Used when there is no readable task to build a schedule-based fallback from
GENERIC_NARRATIVE = Narrative(
    progress_made="Unable to analyze progress right now. Keep pushing forward!",
    progress_to_go="Try again later. Your effort is what matters most.",
)


@dataclass
class NarrativeResult:
    narrative: Narrative
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def as_failure(self) -> NarrativeFailure:
        return NarrativeFailure(
            error=self.error or "",
            progress_made=self.narrative.progress_made,
            progress_to_go=self.narrative.progress_to_go,
        )


def build_prompts(task: Task, today: date, user_update: Optional[str] = None) -> tuple[str, str]:
    """Return (system_prompt, user_prompt) for the task's schedule kind."""
    update_line = USER_UPDATE_LINE.format(user_update=user_update) if user_update else ""
    task_age = max(0, days_since_creation(task, today))
    schedule = task.schedule

    if isinstance(schedule, RecurringSchedule):
        if schedule.recurrence_pattern == "daily":
            scheduled_days = "Daily"
        else:
            scheduled_days = ", ".join(WEEKDAY_NAMES[day - 1] for day in schedule.weekdays)
        user_prompt = RECURRING_USER_PROMPT.format(
            title=task.title,
            description=task.description or "None",
            current_day=WEEKDAY_NAMES[today.isoweekday() - 1],
            scheduled_days=scheduled_days,
            reminder_time=schedule.reminder_time or "not set",
            completion_time=schedule.completion_time or "not set",
            task_age=task_age,
            user_update=update_line,
        )
        return RECURRING_SYSTEM_PROMPT, user_prompt

    if task.steps:
        checklist = "; ".join(
            f"[{'x' if step.completed else ' '}] {step.text}" for step in task.steps
        )
    else:
        checklist = "none"
    user_prompt = ONE_OFF_USER_PROMPT.format(
        title=task.title,
        description=task.description or "None",
        duration_days=schedule.duration_days,
        days_elapsed=task_age,
        days_remaining=max(0, (due_date(task) - today).days),
        progress=calculate_progress(task, today),
        reminder_frequency=schedule.reminder_frequency_days,
        checklist=checklist,
        user_update=update_line,
    )
    return ONE_OFF_SYSTEM_PROMPT, user_prompt


def strip_code_fence(text: str) -> str:
    """Remove a surrounding markdown code block if the model added one."""
    text = text.strip()
    if text.startswith("```"):
        lines = text.split("\n")
        lines = lines[1:]  # Remove first line (```json)
        if lines and lines[-1].strip() == "```":
            lines = lines[:-1]
        text = "\n".join(lines)
    return text


def parse_narrative(text: str) -> Narrative:
    """
    Parse the model's answer into a Narrative.
    Raises json.JSONDecodeError or pydantic.ValidationError on unusable output.
    """
    return Narrative.model_validate(json.loads(strip_code_fence(text)))


class NarrativeGenerator:
    """Wraps a single outbound completion call per narrative update."""

    def __init__(
        self,
        api_key: Optional[str],
        model: str,
        timeout: float = 15.0,
        client=None,
    ):
        self.model = model
        if client is not None:
            self.client = client
        elif api_key and api_key != "your-api-key-here":
            # No retries: a failed call goes straight to the fallback
            self.client = anthropic.AsyncAnthropic(api_key=api_key, timeout=timeout, max_retries=0)
        else:
            self.client = None

    def _fallback(self, task: Task, today: date, error: str) -> NarrativeResult:
        logger.warning("Using fallback narrative for task %s: %s", task.id, error)
        return NarrativeResult(narrative=fallback_narrative(task, today), error=error)

    async def generate(
        self,
        task: Task,
        today: date,
        user_update: Optional[str] = None,
    ) -> NarrativeResult:
        if self.client is None:
            return self._fallback(task, today, "API key not configured")

        system_prompt, user_prompt = build_prompts(task, today, user_update)
        try:
            response = await self.client.messages.create(
                model=self.model,
                max_tokens=MAX_TOKENS,
                system=system_prompt,
                messages=[{"role": "user", "content": user_prompt}],
            )
        except anthropic.APIError as e:
            return self._fallback(task, today, f"API error: {e}")

        ai_text = "".join(block.text for block in response.content if block.type == "text")
        logger.debug("Narrative response for task %s: %s", task.id, ai_text)

        try:
            narrative = parse_narrative(ai_text)
        except (json.JSONDecodeError, ValidationError):
            return self._fallback(task, today, "Failed to parse AI response")

        return NarrativeResult(narrative=narrative)
