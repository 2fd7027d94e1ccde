"""
Классификатор контекста встречи (тип + тон).

Назначение:
- определить тип встречи по взвешенным ключевым словам (topic + transcript)
- определить тон (formal / casual / neutral) по фразам-маркерам
- сигналы: какие ключевые слова сработали у победителя

Чистая детерминированная функция над таблицей правил (processing/meeting_rules.py).
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Any

from meeting_followup_agent.common.logging import get_project_logger
from meeting_followup_agent.domain.enums import MeetingType, Tone

from .meeting_rules import DEFAULT_RULES

log = get_project_logger()

MAX_OCCURRENCES_PER_KEYWORD = 3
HIGH_CONFIDENCE_SCORE = 15
MAX_SIGNALS = 5
TONE_MARGIN = 2

PARTICIPANT_RE = re.compile(r"^([A-Z][a-z]+(?:[ \t]+[A-Z][a-z]+)?)[ \t]*:", re.MULTILINE)


@dataclass
class MeetingTypeResult:
    meeting_type: str
    confidence: int
    tone: str
    signals: list[str] = field(default_factory=list)
    scores: dict[str, int] = field(default_factory=dict)


@lru_cache(maxsize=1024)
def _keyword_re(keyword: str) -> re.Pattern[str]:
    return re.compile(re.escape(keyword), re.IGNORECASE)


def count_occurrences(text: str, keyword: str, *, cap: int = MAX_OCCURRENCES_PER_KEYWORD) -> int:
    return min(len(_keyword_re(keyword).findall(text)), cap)


def detect_tone(text: str, tone_rules: dict[str, list[str]]) -> str:
    lowered = text.lower()
    formal = sum(1 for p in tone_rules.get("formal", []) if p in lowered)
    casual = sum(1 for p in tone_rules.get("casual", []) if p in lowered)
    if casual > formal + TONE_MARGIN:
        return Tone.casual.value
    if formal > casual + TONE_MARGIN:
        return Tone.formal.value
    return Tone.neutral.value


def classify_meeting(
    transcript: str, topic: str | None = None, *, rules: dict[str, Any] | None = None
) -> MeetingTypeResult:
    """
    score(категория) = Σ min(вхождения, 3) × вес по всем ключевым словам.
    Побеждает максимальный score; при нуле — категория по умолчанию.
    confidence = min(100, round(score / 15 × 100)).
    """
    rules = rules or DEFAULT_RULES
    combined = f"{(topic or '').lower()} {(transcript or '').lower()}"
    default = rules.get("default_category", MeetingType.general.value)

    scores: dict[str, int] = {}
    signals: dict[str, list[str]] = {}
    for category in rules["categories"]:
        base = int(rules.get("default_base_score", 1)) if category == default else 0
        scores[category] = base
        signals[category] = ["default fallback"] if base else []

    for category, groups in rules["categories"].items():
        for group in groups:
            weight = int(group["weight"])
            for keyword in group["keywords"]:
                n = count_occurrences(combined, keyword)
                if n <= 0:
                    continue
                scores[category] += n * weight
                if keyword not in signals[category]:
                    signals[category].append(keyword)

    best_type, best_score = default, 0
    for category, score in scores.items():
        if score > best_score:
            best_type, best_score = category, score

    confidence = min(100, math.floor(best_score / HIGH_CONFIDENCE_SCORE * 100 + 0.5))
    result = MeetingTypeResult(
        meeting_type=best_type,
        confidence=confidence,
        tone=detect_tone(combined, rules.get("tone") or {}),
        signals=signals.get(best_type, [])[:MAX_SIGNALS],
        scores=scores,
    )
    log.info(
        "meeting_type_detected",
        extra={
            "payload": {
                "meeting_type": result.meeting_type,
                "confidence": result.confidence,
                "tone": result.tone,
                "signals": result.signals,
                "scores": scores,
            }
        },
    )
    return result


def extract_participants(transcript: str) -> list[str]:
    """
    Имена говорящих по префиксам строк "John Smith:" (порядок первого появления).
    """
    seen: list[str] = []
    for m in PARTICIPANT_RE.finditer(transcript or ""):
        name = m.group(1).strip()
        if 1 < len(name) < 50 and name not in seen:
            seen.append(name)
    return seen
