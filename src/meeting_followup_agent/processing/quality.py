"""
Эвристическая оценка качества follow-up черновика.

Назначение:
- 4 измерения по 0..25: subject, body, action_items, structure
- overall = сумма (0..100)
- issues / suggestions — человекочитаемые причины снижения оценки

Ошибки разбора сюда не доходят: любой ParsedDraft оценивается, плохие поля
просто снижают балл.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field

from .prompts import ActionItem, ParsedDraft

MAX_DIMENSION = 25

# =============================================================================
# ПАТТЕРНЫ
# =============================================================================
GENERIC_SUBJECT_PATTERNS = [
    re.compile(p, re.IGNORECASE)
    for p in (
        r"^follow[- ]?up$",
        r"^quick follow[- ]?up$",
        r"^follow[- ]?up from (our |the )?meeting$",
        r"^great (talking|meeting|chatting)",
        r"^nice to meet",
        r"^thank you for your time$",
        r"^recap$",
        r"^meeting recap$",
        r"^our (call|meeting|conversation)$",
        r"^checking in$",
        r"^touching base$",
    )
]

SPECIFIC_SUBJECT_PATTERNS = [
    re.compile(r"\b(proposal|quote|pricing|demo|poc)\b", re.IGNORECASE),
    re.compile(r"\b(deadline|timeline|by \w+day)\b", re.IGNORECASE),
    re.compile(r"\b(next steps|action items)\b", re.IGNORECASE),
    re.compile(r"\b\d+\b"),
    re.compile(r"\b(api|integration|deployment|bug|issue)\b", re.IGNORECASE),
    re.compile(r"\b(Q[1-4]|Q\d)\b", re.IGNORECASE),
]

GENERIC_BODY_PHRASES = [
    "it was great meeting you",
    "it was nice talking",
    "thanks for your time",
    "hope this email finds you well",
    "just wanted to follow up",
    "as discussed",
    "as we discussed",
    "per our conversation",
    "let me know if you have any questions",
    "feel free to reach out",
    "please don't hesitate",
    "at your earliest convenience",
]

GREETING_RE = re.compile(r"^(hi|hello|hey|dear)\s+\w+", re.IGNORECASE)
CTA_RE = re.compile(
    r"(would you|could you|can we|shall we|let's|please|schedule|book|send)", re.IGNORECASE
)
NEXT_STEP_RE = re.compile(
    r"(next step|moving forward|going forward|I'll|we'll|I will|we will)", re.IGNORECASE
)
PARAGRAPH_SPLIT_RE = re.compile(r"\n\n+")
SENTENCE_SPLIT_RE = re.compile(r"[.!?]+")
WHITESPACE_RE = re.compile(r"\s+")

_VAGUE_OWNERS = {"tbd", "unknown"}
_VAGUE_DEADLINES = {"tbd", "asap"}


@dataclass
class QualityScore:
    overall: int
    breakdown: dict[str, int]
    issues: list[str] = field(default_factory=list)
    suggestions: list[str] = field(default_factory=list)


# =============================================================================
# ИЗМЕРЕНИЯ
# =============================================================================
def _score_subject(
    subject: str, transcript: str, issues: list[str], suggestions: list[str]
) -> int:
    score = MAX_DIMENSION

    if len(subject) > 60:
        score -= 5
        issues.append("Subject line too long (>60 chars)")
        suggestions.append("Shorten subject to under 60 characters")
    elif len(subject) < 15:
        score -= 3
        issues.append("Subject line too short (<15 chars)")

    for pattern in GENERIC_SUBJECT_PATTERNS:
        if pattern.search(subject):
            score -= 8
            issues.append(f'Generic subject line pattern: "{subject}"')
            suggestions.append(
                "Make subject line more specific by referencing a topic from the meeting"
            )
            break

    bonus = sum(2 for pattern in SPECIFIC_SUBJECT_PATTERNS if pattern.search(subject))
    score = min(MAX_DIMENSION, score + bonus)

    transcript_words = set(WHITESPACE_RE.split(transcript.lower()))
    subject_words = [w for w in WHITESPACE_RE.split(subject.lower()) if len(w) > 4]
    if not any(w in transcript_words for w in subject_words):
        score -= 3
        issues.append("Subject doesn't reference transcript content")

    return max(0, score)


def _count_transcript_references(body: str, transcript: str) -> int:
    body_lower = body.lower()
    refs = 0
    for sentence in SENTENCE_SPLIT_RE.split(transcript.lower()):
        if len(sentence.strip()) <= 20:
            continue
        key_words = [w for w in sentence.split() if len(w) > 5][:3]
        if any(w in body_lower for w in key_words):
            refs += 1
    return refs


def _score_body(body: str, transcript: str, issues: list[str], suggestions: list[str]) -> int:
    score = MAX_DIMENSION
    word_count = len(WHITESPACE_RE.split(body))

    if word_count > 300:
        score -= 5
        issues.append(f"Body too long ({word_count} words)")
        suggestions.append("Shorten to under 200 words for better engagement")
    elif word_count < 50:
        score -= 5
        issues.append(f"Body too short ({word_count} words)")
        suggestions.append("Add more context from the meeting discussion")

    body_lower = body.lower()
    generic_count = sum(1 for phrase in GENERIC_BODY_PHRASES if phrase in body_lower)
    if generic_count > 0:
        score -= generic_count * 3
        issues.append(f"Contains {generic_count} generic phrase(s)")
        suggestions.append("Replace generic phrases with specific references to the conversation")

    if _count_transcript_references(body, transcript) < 2:
        score -= 5
        issues.append("Few references to transcript content")
        suggestions.append("Reference 2-3 specific points from the conversation")

    return max(0, score)


def _score_action_items(
    items: list[ActionItem], issues: list[str], suggestions: list[str]
) -> int:
    if not items:
        issues.append("No action items extracted")
        suggestions.append("Extract action items with owner and deadline")
        return 10

    score = MAX_DIMENSION
    for item in items:
        task = item.task or ""
        owner = (item.owner or "").strip().lower()
        deadline = (item.deadline or "").strip().lower()

        if not owner or owner in _VAGUE_OWNERS:
            score -= 3
            issues.append(f'Action item missing owner: "{task[:30]}..."')
        if not deadline or deadline in _VAGUE_DEADLINES:
            score -= 2
            issues.append(f'Action item missing specific deadline: "{task[:30]}..."')
        if len(task) < 10:
            score -= 2
            issues.append(f'Action item too vague: "{task}"')

    if len(items) > 5:
        score -= 3
        issues.append(f"Too many action items ({len(items)})")
        suggestions.append("Limit to 5 most important action items")

    return max(0, score)


def _score_structure(body: str, issues: list[str], suggestions: list[str]) -> int:
    score = MAX_DIMENSION

    if not GREETING_RE.search(body):
        score -= 5
        issues.append("Missing personalized greeting")
        suggestions.append("Start with a personalized greeting (Hi [Name],)")

    if not CTA_RE.search(body):
        score -= 5
        issues.append("Missing clear call-to-action")
        suggestions.append("Add a clear next step or question at the end")

    if not NEXT_STEP_RE.search(body):
        score -= 3
        issues.append("No clear next step mentioned")

    paragraphs = [p for p in PARAGRAPH_SPLIT_RE.split(body) if p.strip()]
    if len(paragraphs) < 2:
        score -= 3
        issues.append("Body lacks paragraph structure")
        suggestions.append("Break content into 2-3 focused paragraphs")

    return max(0, score)


# =============================================================================
# PUBLIC API
# =============================================================================
def score_draft(draft: ParsedDraft, transcript: str) -> QualityScore:
    issues: list[str] = []
    suggestions: list[str] = []
    transcript = transcript or ""

    breakdown = {
        "subject": _score_subject(draft.subject or "", transcript, issues, suggestions),
        "body": _score_body(draft.body or "", transcript, issues, suggestions),
        "action_items": _score_action_items(draft.action_items, issues, suggestions),
        "structure": _score_structure(draft.body or "", issues, suggestions),
    }
    return QualityScore(
        overall=sum(breakdown.values()),
        breakdown=breakdown,
        issues=issues,
        suggestions=suggestions,
    )


def quality_grade(score: int) -> str:
    if score >= 85:
        return "A"
    if score >= 70:
        return "B"
    if score >= 55:
        return "C"
    if score >= 40:
        return "D"
    return "F"


def meets_quality_threshold(score: int, threshold: int = 60) -> bool:
    return score >= threshold
