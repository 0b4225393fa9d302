"""
Tests for narrative.py - prompt building, response parsing and fallback on failure.
Uses a fake Anthropic client; nothing goes over the network.
"""
import json
import pytest
import sys
import os
from datetime import date, timedelta

import anthropic
import httpx
from pydantic import ValidationError

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from models import Step
from narrative import NarrativeGenerator, build_prompts, parse_narrative, strip_code_fence
from schedule import fallback_narrative

# A Wednesday
DAY_0 = date(2025, 1, 1)

GOOD_RESPONSE = json.dumps({
    "progressMade": "You are on track.",
    "progressToGo": "Draft the outline next.",
})

ANTHROPIC_REQUEST = httpx.Request("POST", "https://api.anthropic.com/v1/messages")


class TestBuildPrompts:

    def test_one_off_prompt(self, make_task):
        task = make_task(title="Write thesis", duration=10, reminder_frequency=2)
        system_prompt, user_prompt = build_prompts(task, DAY_0 + timedelta(days=4))

        assert "project progress" in system_prompt
        assert "Title: Write thesis" in user_prompt
        assert "Duration: 10 days" in user_prompt
        assert "Days Elapsed: 4" in user_prompt
        assert "Days Remaining: 6" in user_prompt
        assert "Progress: 40%" in user_prompt
        assert "Reminder Frequency: Every 2 days" in user_prompt
        assert "Checklist: none" in user_prompt
        assert '{"progressMade": "...", "progressToGo": "..."}' in user_prompt
        assert "latest update" not in user_prompt

    def test_one_off_prompt_lists_steps(self, make_task):
        task = make_task(steps=[
            Step(id="s1", text="Outline", completed=True),
            Step(id="s2", text="Draft"),
        ])
        _, user_prompt = build_prompts(task, DAY_0)
        assert "Checklist: [x] Outline; [ ] Draft" in user_prompt

    def test_recurring_prompt(self, make_task):
        task = make_task(recurring=True, days_of_week=[1, 3], reminder_time="07:30")
        system_prompt, user_prompt = build_prompts(task, DAY_0)

        assert "recurring task" in system_prompt
        assert "Current Day: Wednesday" in user_prompt
        assert "Scheduled Days: Monday, Wednesday" in user_prompt
        assert "Reminder Time: 07:30" in user_prompt
        assert "Completion Time: not set" in user_prompt

    def test_daily_prompt(self, make_task):
        _, user_prompt = build_prompts(make_task(recurring=True, pattern="daily"), DAY_0)
        assert "Scheduled Days: Daily" in user_prompt

    def test_user_update_included(self, make_task):
        _, user_prompt = build_prompts(make_task(), DAY_0, "Finished the survey early")
        assert "User's latest update: Finished the survey early" in user_prompt


class TestParsing:

    def test_strip_code_fence(self):
        assert strip_code_fence("```json\n{\"a\": 1}\n```") == "{\"a\": 1}"

    def test_strip_code_fence_plain_text_untouched(self):
        assert strip_code_fence("  {\"a\": 1} ") == "{\"a\": 1}"

    def test_parse_narrative(self):
        narrative = parse_narrative(GOOD_RESPONSE)
        assert narrative.progress_made == "You are on track."
        assert narrative.progress_to_go == "Draft the outline next."

    def test_parse_invalid_json(self):
        with pytest.raises(json.JSONDecodeError):
            parse_narrative("Sure! Here is your summary.")

    def test_parse_missing_field(self):
        with pytest.raises(ValidationError):
            parse_narrative('{"progressMade": "Good"}')

    def test_parse_blank_field(self):
        with pytest.raises(ValidationError):
            parse_narrative('{"progressMade": "Good", "progressToGo": "  "}')


class TestNarrativeGenerator:

    @pytest.mark.asyncio
    async def test_success(self, make_task, fake_narrator):
        generator = fake_narrator(text=GOOD_RESPONSE)
        result = await generator.generate(make_task(), DAY_0, "Started research")

        assert result.ok
        assert result.narrative.progress_made == "You are on track."

        call = generator.client.messages.calls[0]
        assert call["model"] == "test-model"
        assert call["max_tokens"] == 300
        assert "project progress" in call["system"]
        assert "Started research" in call["messages"][0]["content"]

    @pytest.mark.asyncio
    async def test_fenced_response(self, make_task, fake_narrator):
        generator = fake_narrator(text=f"```json\n{GOOD_RESPONSE}\n```")
        result = await generator.generate(make_task(), DAY_0)
        assert result.ok

    @pytest.mark.asyncio
    async def test_connection_error_falls_back(self, make_task, fake_narrator):
        task = make_task()
        generator = fake_narrator(error=anthropic.APIConnectionError(request=ANTHROPIC_REQUEST))
        result = await generator.generate(task, DAY_0)

        assert not result.ok
        assert result.error.startswith("API error")
        assert result.narrative == fallback_narrative(task, DAY_0)

    @pytest.mark.asyncio
    async def test_timeout_falls_back(self, make_task, fake_narrator):
        task = make_task()
        generator = fake_narrator(error=anthropic.APITimeoutError(request=ANTHROPIC_REQUEST))
        result = await generator.generate(task, DAY_0)

        assert not result.ok
        assert result.narrative == fallback_narrative(task, DAY_0)

    @pytest.mark.asyncio
    async def test_malformed_response_falls_back(self, make_task, fake_narrator):
        task = make_task(recurring=True, days_of_week=[5])
        result = await fake_narrator(text="not json").generate(task, DAY_0)

        assert result.error == "Failed to parse AI response"
        assert result.narrative == fallback_narrative(task, DAY_0)

    @pytest.mark.asyncio
    async def test_wrong_shape_falls_back(self, make_task, fake_narrator):
        result = await fake_narrator(text='["progressMade"]').generate(make_task(), DAY_0)
        assert result.error == "Failed to parse AI response"

    @pytest.mark.asyncio
    async def test_no_api_key_falls_back(self, make_task):
        generator = NarrativeGenerator(api_key=None, model="test-model")
        result = await generator.generate(make_task(), DAY_0)

        assert generator.client is None
        assert result.error == "API key not configured"

    def test_placeholder_key_not_used(self):
        generator = NarrativeGenerator(api_key="your-api-key-here", model="test-model")
        assert generator.client is None

    def test_real_key_builds_client_without_retries(self):
        generator = NarrativeGenerator(api_key="sk-test", model="test-model", timeout=15.0)
        assert isinstance(generator.client, anthropic.AsyncAnthropic)
        assert generator.client.max_retries == 0

    @pytest.mark.asyncio
    async def test_failure_body_keeps_fallback_text(self, make_task):
        task = make_task()
        result = await NarrativeGenerator(api_key=None, model="test-model").generate(task, DAY_0)
        body = result.as_failure().model_dump(by_alias=True)

        assert body["error"] == "API key not configured"
        assert body["progressMade"] == fallback_narrative(task, DAY_0).progress_made
        assert body["progressToGo"]
