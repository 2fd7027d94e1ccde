from __future__ import annotations

import pytest

from meeting_followup_agent.processing.classifier import (
    classify_meeting,
    count_occurrences,
    detect_tone,
    extract_participants,
)
from meeting_followup_agent.processing.meeting_rules import DEFAULT_RULES, load_rules

SALES_TRANSCRIPT = (
    "Alice: Thanks for joining the demo today.\n"
    "Bob: Sure. Can you walk me through pricing?\n"
    "Alice: Absolutely, I'll send a proposal after we confirm the decision maker.\n"
)


def test_sales_keywords_win_with_positive_confidence() -> None:
    res = classify_meeting(SALES_TRANSCRIPT, "Intro call")
    assert res.meeting_type == "sales_call"
    assert res.confidence > 0
    assert res.scores["sales_call"] == max(res.scores.values())
    assert "pricing" in res.signals


def test_classifier_is_deterministic() -> None:
    a = classify_meeting(SALES_TRANSCRIPT, "Intro call")
    b = classify_meeting(SALES_TRANSCRIPT, "Intro call")
    assert (a.meeting_type, a.confidence, a.tone) == (b.meeting_type, b.confidence, b.tone)


def test_empty_transcript_falls_back_to_default_category() -> None:
    res = classify_meeting("", None)
    assert res.meeting_type == "general"
    assert res.signals == ["default fallback"]
    # базовый score 1 -> round(1 / 15 * 100) = 7
    assert res.confidence == 7


def test_keyword_occurrences_are_capped() -> None:
    assert count_occurrences("demo demo demo demo demo", "demo") == 3
    assert count_occurrences("DEMO", "demo") == 1


def test_confidence_is_capped_at_100() -> None:
    text = " ".join(["pricing proposal quote budget demo contract deal"] * 5)
    res = classify_meeting(text)
    assert res.meeting_type == "sales_call"
    assert res.confidence == 100


def test_detect_tone_needs_margin() -> None:
    tone_rules = DEFAULT_RULES["tone"]
    assert detect_tone("hey yeah cool awesome no worries", tone_rules) == "casual"
    assert detect_tone("kindly regarding hereby respectfully", tone_rules) == "formal"
    assert detect_tone("hey regarding", tone_rules) == "neutral"


def test_custom_rule_table_is_used() -> None:
    rules = load_rules(
        {
            "categories": {
                "support": [{"keywords": ["ticket", "outage"], "weight": 5}],
                "general": [{"keywords": ["meeting"], "weight": 1}],
            }
        }
    )
    res = classify_meeting("The outage ticket is still open", rules=rules)
    assert res.meeting_type == "support"
    assert res.scores["support"] == 10


def test_load_rules_rejects_bad_table() -> None:
    with pytest.raises(ValueError):
        load_rules({"categories": {"x": [{"keywords": "nope", "weight": 1}]}})
    with pytest.raises(ValueError):
        load_rules({"categories": {"x": []}, "default_category": "missing"})


def test_extract_participants_in_order_of_appearance() -> None:
    assert extract_participants(SALES_TRANSCRIPT) == ["Alice", "Bob"]
