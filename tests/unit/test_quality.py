from __future__ import annotations

from meeting_followup_agent.llm.mock import MOCK_BODY
from meeting_followup_agent.processing.prompts import ActionItem, ParsedDraft
from meeting_followup_agent.processing.quality import (
    meets_quality_threshold,
    quality_grade,
    score_draft,
)

TRANSCRIPT = (
    "Alice: We need the integration timeline confirmed before the deployment window.\n"
    "Bob: The pricing tiers are still unclear for our procurement team.\n"
    "Alice: I'll prepare a proposal and share the documentation afterwards.\n"
)


def _draft(**kw) -> ParsedDraft:
    base = {
        "subject": "Integration timeline and proposal next steps",
        "body": MOCK_BODY,
        "action_items": [
            ActionItem(owner="Alice", task="Send proposal with pricing tiers", deadline="Friday")
        ],
    }
    base.update(kw)
    return ParsedDraft(**base)


def test_overall_is_sum_of_breakdown_and_bounded() -> None:
    for draft, transcript in [
        (_draft(), TRANSCRIPT),
        (_draft(subject="", body="", action_items=[]), ""),
        (_draft(subject="x" * 200, body="word " * 500), TRANSCRIPT),
    ]:
        q = score_draft(draft, transcript)
        assert 0 <= q.overall <= 100
        assert q.overall == sum(q.breakdown.values())
        assert set(q.breakdown) == {"subject", "body", "action_items", "structure"}
        assert all(0 <= v <= 25 for v in q.breakdown.values())


def test_short_body_is_penalised() -> None:
    q = score_draft(_draft(body="Hi Bob, thanks for today. Talk soon."), TRANSCRIPT)
    assert any("Body too short" in i for i in q.issues)
    assert q.breakdown["body"] < 25


def test_generic_subject_is_penalised() -> None:
    generic = score_draft(_draft(subject="Follow-up"), TRANSCRIPT)
    specific = score_draft(_draft(), TRANSCRIPT)
    assert any("Generic subject line pattern" in i for i in generic.issues)
    assert generic.breakdown["subject"] < specific.breakdown["subject"]


def test_missing_action_items_scores_ten() -> None:
    q = score_draft(_draft(action_items=[]), TRANSCRIPT)
    assert q.breakdown["action_items"] == 10
    assert "No action items extracted" in q.issues


def test_vague_action_items_lose_points() -> None:
    q = score_draft(
        _draft(action_items=[ActionItem(owner="TBD", task="Do it", deadline="ASAP")]), TRANSCRIPT
    )
    # owner -3, deadline -2, task < 10 символов -2
    assert q.breakdown["action_items"] == 18


def test_generic_phrases_reduce_body_score() -> None:
    body = MOCK_BODY + "\n\nLet me know if you have any questions. Feel free to reach out."
    q = score_draft(_draft(body=body), TRANSCRIPT)
    assert any("generic phrase" in i for i in q.issues)


def test_structure_without_greeting_or_cta() -> None:
    q = score_draft(_draft(body="Notes from today. " * 20), TRANSCRIPT)
    assert "Missing personalized greeting" in q.issues
    assert "Body lacks paragraph structure" in q.issues


def test_grade_and_threshold() -> None:
    assert [quality_grade(s) for s in (90, 85, 70, 55, 40, 39)] == ["A", "A", "B", "C", "D", "F"]
    assert meets_quality_threshold(60) is True
    assert meets_quality_threshold(59) is False
    assert meets_quality_threshold(59, threshold=50) is True
