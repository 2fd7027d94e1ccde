from __future__ import annotations

import json

from meeting_followup_agent.processing.prompts import (
    FALLBACK_SUBJECT,
    ActionItem,
    FollowUpContext,
    build_user_prompt,
    calculate_cost_usd,
    format_action_items,
    parse_draft_response,
)


def _payload(**overrides) -> dict:
    data = {
        "subject": "Pricing tiers - next steps",
        "body": "Hi Jane,\n\nThanks for the call.",
        "actionItems": [
            {"owner": "Jimmy", "task": "Send proposal", "deadline": "by Friday"},
            "garbage",
        ],
        "meetingTypeDetected": "sales_call",
        "toneUsed": "formal",
        "keyPointsReferenced": ["pricing", 42],
    }
    data.update(overrides)
    return data


def test_parse_plain_json() -> None:
    parsed = parse_draft_response(json.dumps(_payload()))

    assert parsed.parsed_from_json is True
    assert parsed.subject == "Pricing tiers - next steps"
    assert parsed.action_items == [
        ActionItem(owner="Jimmy", task="Send proposal", deadline="by Friday")
    ]
    assert parsed.meeting_type_detected == "sales_call"
    assert parsed.tone_used == "formal"
    assert parsed.key_points_referenced == ["pricing"]


def test_parse_json_inside_code_fence() -> None:
    content = "```json\n" + json.dumps(_payload()) + "\n```"
    parsed = parse_draft_response(content)
    assert parsed.parsed_from_json is True
    assert parsed.body.startswith("Hi Jane")


def test_fallback_on_subject_line() -> None:
    content = "Subject: Redis debugging - next steps\n\n\nHi team,\nhere is the recap."
    parsed = parse_draft_response(content)

    assert parsed.parsed_from_json is False
    assert parsed.subject == "Redis debugging - next steps"
    assert parsed.body == "Hi team,\nhere is the recap."
    assert parsed.action_items == []


def test_fallback_when_required_fields_missing() -> None:
    content = json.dumps({"subject": "", "body": "x"})
    parsed = parse_draft_response(content)

    assert parsed.parsed_from_json is False
    assert parsed.subject == FALLBACK_SUBJECT
    assert parsed.body == content


def test_parse_never_raises_on_empty() -> None:
    parsed = parse_draft_response("")
    assert parsed.subject == FALLBACK_SUBJECT
    assert parsed.body == ""


def test_format_action_items() -> None:
    items = [
        ActionItem(owner="Jimmy", task="Send proposal", deadline="by Friday"),
        ActionItem(owner="Team", task="Schedule demo"),
    ]
    assert format_action_items(items) == (
        "\n\nAction Items:\n[ ] Jimmy: Send proposal (by Friday)\n[ ] Team: Schedule demo"
    )
    assert format_action_items([]) == ""


def test_cost_calculation() -> None:
    assert calculate_cost_usd(1_000_000, 0, price_input_per_m=3.0, price_output_per_m=15.0) == 3.0
    assert calculate_cost_usd(2000, 1000, price_input_per_m=3.0, price_output_per_m=15.0) == 0.021


def test_user_prompt_includes_type_focus_and_transcript() -> None:
    prompt = build_user_prompt(
        FollowUpContext(
            meeting_topic="Q1 pipeline",
            meeting_date="2026-01-15",
            host_name="Jane",
            transcript="Jane: Hello",
            participants=["Jane", "Bob"],
            meeting_type="sales_call",
            detected_tone="formal",
            company_name="Acme",
        )
    )

    assert "- From: Jane (Acme)" in prompt
    assert "- Participants: Jane, Bob" in prompt
    assert "- Detected Type: sales call" in prompt
    assert "Value proposition discussed" in prompt
    assert "---\nJane: Hello\n---" in prompt
