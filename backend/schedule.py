"""
Date arithmetic for task progress and reminders.

Every function takes the task and the current date explicitly, so results depend
only on (task, today). Elapsed time is counted in whole calendar days between the
task's creation date and today.
"""
import math
from datetime import date, timedelta
from typing import Optional

from models import Narrative, OneOffSchedule, RecurringSchedule, Task, TaskView

NO_REMINDERS = "No reminders"

# Indexed by ISO weekday - 1
WEEKDAY_NAMES = ["Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday"]


def format_date(day: date) -> str:
    """Format as e.g. 'Jan 5, 2025'."""
    return f"{day:%b} {day.day}, {day.year}"


def _plural(count: int, word: str) -> str:
    return f"{count} {word}" if count == 1 else f"{count} {word}s"


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _percent(days_passed: int, total_days: int) -> int:
    if total_days <= 0:
        return 100
    return max(0, min(100, _round_half_up(100 * days_passed / total_days)))


def days_since_creation(task: Task, today: date) -> int:
    return (today - task.created_at.date()).days


def days_until_weekday(today: date, weekdays: list[int], include_today: bool = False) -> int:
    """
    Days from today until the next date whose ISO weekday (1=Mon..7=Sun) is in weekdays.
    Without include_today the result is in 1..7, so a match on today's weekday
    rolls forward a full week.
    """
    current = today.isoweekday()
    start = 0 if include_today else 1
    for ahead in range(start, start + 7):
        # Wrap back into 1..7 after adding the offset
        if (current - 1 + ahead) % 7 + 1 in weekdays:
            return ahead
    raise ValueError("weekdays must contain at least one day in 1..7")


def due_date(task: Task) -> Optional[date]:
    """Due date of a one-off task; recurring tasks have none."""
    if isinstance(task.schedule, OneOffSchedule):
        return task.created_at.date() + timedelta(days=task.schedule.duration_days)
    return None


def calculate_progress(task: Task, today: date) -> int:
    if task.completed:
        return 100
    schedule = task.schedule
    if isinstance(schedule, RecurringSchedule):
        return 0

    days_passed = days_since_creation(task, today)
    if days_passed >= schedule.duration_days:
        return 100
    return _percent(days_passed, schedule.duration_days)


def next_reminder_date(task: Task, today: date) -> Optional[date]:
    """
    Next date the user should be reminded about the task, always after today.
    Returns None for completed tasks.

    A weekday override wins over the task's own schedule. In frequency mode a task
    on an exact multiple of its frequency is pushed to the following cycle.
    """
    if task.completed:
        return None

    if task.reminder_days_of_week:
        return today + timedelta(days=days_until_weekday(today, task.reminder_days_of_week))

    schedule = task.schedule
    if isinstance(schedule, RecurringSchedule):
        return today + timedelta(days=days_until_weekday(today, schedule.weekdays))

    frequency = schedule.reminder_frequency_days
    offset = frequency - days_since_creation(task, today) % frequency
    return today + timedelta(days=offset)


def get_next_reminder(task: Task, today: date) -> str:
    next_date = next_reminder_date(task, today)
    if next_date is None:
        return NO_REMINDERS
    return format_date(next_date)


def format_remaining_time(task: Task, today: date) -> str:
    schedule = task.schedule
    if isinstance(schedule, RecurringSchedule):
        remaining = days_until_weekday(today, schedule.weekdays, include_today=True)
    else:
        remaining = (due_date(task) - today).days

    if remaining < 0:
        return "Overdue"
    if remaining == 0:
        return "Today"
    if remaining == 1:
        return "Tomorrow"
    return f"{remaining} days"


def get_tasks_due_for_reminder(tasks: list[Task], today: date) -> list[Task]:
    """
    Incomplete tasks that need a reminder today.

    One-off tasks are due on their creation day and every exact multiple of the
    reminder frequency after it. This can disagree with next_reminder_date, which
    never answers today.
    """
    due = []
    for task in tasks:
        if task.completed:
            continue
        schedule = task.schedule
        if isinstance(schedule, RecurringSchedule):
            weekdays = task.reminder_days_of_week or schedule.weekdays
            if today.isoweekday() in weekdays:
                due.append(task)
        elif days_since_creation(task, today) % schedule.reminder_frequency_days == 0:
            due.append(task)
    return due


def get_expected_progress(task: Task, today: date) -> str:
    schedule = task.schedule
    if isinstance(schedule, RecurringSchedule):
        ahead = days_until_weekday(today, schedule.weekdays, include_today=True)
        if ahead == 0:
            return "Scheduled for today"
        return f"Next session on {format_date(today + timedelta(days=ahead))}"

    days_passed = days_since_creation(task, today)
    if days_passed >= schedule.duration_days:
        return "Task should be completed"
    return f"You should be {_percent(days_passed, schedule.duration_days)}% complete"


def reminder_banner(tasks: list[Task], today: date) -> Optional[str]:
    count = len(get_tasks_due_for_reminder(tasks, today))
    if count == 0:
        return None
    noun = "task" if count == 1 else "tasks"
    verb = "needs" if count == 1 else "need"
    return f"You have {count} {noun} that {verb} your attention today."


def describe_task(task: Task, today: date) -> TaskView:
    """Task plus everything the dashboard shows about it for the given day."""
    return TaskView(
        **task.model_dump(),
        progress=calculate_progress(task, today),
        next_reminder=get_next_reminder(task, today),
        remaining_time=format_remaining_time(task, today),
        expected_progress=get_expected_progress(task, today),
        due_date=due_date(task),
    )


def fallback_narrative(task: Task, today: date) -> Narrative:
    """
    Status text built from the schedule alone, used when the language model
    cannot be reached or answers with something unusable.
    """
    if task.completed:
        return Narrative(
            progress_made="Task completed. Nice work!",
            progress_to_go="Nothing left to do here.",
        )

    schedule = task.schedule
    if isinstance(schedule, RecurringSchedule):
        today_name = WEEKDAY_NAMES[today.isoweekday() - 1]
        if schedule.recurrence_pattern == "daily":
            scheduled = "every day"
        else:
            scheduled = "on " + ", ".join(WEEKDAY_NAMES[day - 1] for day in schedule.weekdays)
        ahead = days_until_weekday(today, schedule.weekdays, include_today=True)
        when = "today" if ahead == 0 else f"on {format_date(today + timedelta(days=ahead))}"

        progress_to_go = f"Next session is {when}"
        if schedule.completion_time:
            progress_to_go += f", to be done by {schedule.completion_time}"
        progress_to_go += "."
        if schedule.reminder_time:
            progress_to_go += f" Reminder at {schedule.reminder_time}."
        return Narrative(
            progress_made=f"Today is {today_name}. This task is scheduled {scheduled}.",
            progress_to_go=progress_to_go,
        )

    elapsed = max(0, days_since_creation(task, today))
    total = schedule.duration_days
    progress_made = (
        f"{_plural(elapsed, 'day')} of {total} elapsed "
        f"({calculate_progress(task, today)}% of the timeline)."
    )

    due = due_date(task)
    remaining = (due - today).days
    if remaining < 0:
        progress_to_go = f"Overdue by {_plural(-remaining, 'day')} (was due {format_date(due)})."
    elif remaining == 0:
        progress_to_go = f"Due today ({format_date(due)})."
    else:
        progress_to_go = f"{_plural(remaining, 'day')} left until {format_date(due)}."
    return Narrative(progress_made=progress_made, progress_to_go=progress_to_go)
