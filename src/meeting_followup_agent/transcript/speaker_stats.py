"""
Статистика по говорящим из уже распарсенных сегментов.

talk time, доля времени, число реплик, вопросы, монологи (>= 60 с).
"""

from __future__ import annotations

from dataclasses import dataclass

from .parser import SpeakerSegment

MONOLOGUE_THRESHOLD_MS = 60_000


@dataclass
class SpeakerStat:
    speaker: str
    talk_time_ms: int = 0
    talk_time_percent: float = 0.0
    segment_count: int = 0
    word_count: int = 0
    question_count: int = 0
    longest_monologue_ms: int = 0
    monologue_count: int = 0


def speaker_stats(segments: list[SpeakerSegment]) -> list[SpeakerStat]:
    """Сортировка по talk time (убывание)."""
    by_speaker: dict[str, SpeakerStat] = {}
    for seg in segments:
        duration = max(0, seg.end_ms - seg.start_ms)
        st = by_speaker.setdefault(seg.speaker, SpeakerStat(speaker=seg.speaker))
        st.talk_time_ms += duration
        st.segment_count += 1
        st.word_count += len(seg.text.split())
        st.question_count += seg.text.count("?")
        st.longest_monologue_ms = max(st.longest_monologue_ms, duration)
        if duration >= MONOLOGUE_THRESHOLD_MS:
            st.monologue_count += 1

    total = sum(s.talk_time_ms for s in by_speaker.values())
    for st in by_speaker.values():
        st.talk_time_percent = round(st.talk_time_ms / total * 100, 1) if total > 0 else 0.0

    return sorted(by_speaker.values(), key=lambda s: s.talk_time_ms, reverse=True)
