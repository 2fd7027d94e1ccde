"""
Парсер транскриптов в формате WebVTT.

Назначение:
- превратить VTT-субтитры платформы в сегменты с говорящими
- склеить соседние реплики одного говорящего (разрыв < 2000 мс)
- собрать полный текст "Speaker: text" и посчитать слова

Парсер никогда не падает: битые таймкоды -> 0, пустые реплики пропускаются.
"""

from __future__ import annotations

import re
from dataclasses import asdict, dataclass, field

TIMESTAMP_RE = re.compile(
    r"(\d{1,2}:\d{2}(?::\d{2})?(?:\.\d{1,3})?)\s*-->\s*(\d{1,2}:\d{2}(?::\d{2})?(?:\.\d{1,3})?)"
)
SPEAKER_RE = re.compile(r"^([^:]+):\s*(.*)$", re.DOTALL)
TAG_RE = re.compile(r"<[^>]*>")
CUE_NUMBER_RE = re.compile(r"^\d+$")

MERGE_GAP_MS = 2000
UNKNOWN_SPEAKER = "Unknown"


@dataclass
class SpeakerSegment:
    speaker: str
    start_ms: int
    end_ms: int
    text: str

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class ParsedTranscript:
    full_text: str = ""
    segments: list[SpeakerSegment] = field(default_factory=list)
    word_count: int = 0


def parse_timestamp(value: str) -> int:
    """
    "HH:MM:SS.mmm" / "MM:SS.mmm" -> миллисекунды. Мусор -> 0.
    """
    parts = (value or "").strip().split(":")
    try:
        if len(parts) == 3:
            hours, minutes, seconds = int(parts[0]), int(parts[1]), float(parts[2])
        elif len(parts) == 2:
            hours, minutes, seconds = 0, int(parts[0]), float(parts[1])
        else:
            return 0
    except ValueError:
        return 0
    return int(round((hours * 3600 + minutes * 60 + seconds) * 1000))


def split_speaker(text: str) -> tuple[str, str]:
    m = SPEAKER_RE.match(text)
    if m:
        speaker = m.group(1).strip()
        if speaker:
            return speaker, m.group(2).strip()
    return UNKNOWN_SPEAKER, text.strip()


def _flush(
    segments: list[SpeakerSegment], bounds: tuple[int, int] | None, buffer: list[str]
) -> None:
    if bounds is None or not buffer:
        return
    speaker, content = split_speaker(" ".join(buffer))
    if not content:
        return
    segments.append(
        SpeakerSegment(speaker=speaker, start_ms=bounds[0], end_ms=bounds[1], text=content)
    )


def merge_segments(
    segments: list[SpeakerSegment], *, gap_ms: int = MERGE_GAP_MS
) -> list[SpeakerSegment]:
    """
    Склеивает подряд идущие сегменты одного говорящего,
    если next.start - cur.end < gap_ms.
    """
    if not segments:
        return []

    merged: list[SpeakerSegment] = []
    cur = SpeakerSegment(**asdict(segments[0]))
    for nxt in segments[1:]:
        if nxt.speaker == cur.speaker and nxt.start_ms - cur.end_ms < gap_ms:
            cur.text = f"{cur.text} {nxt.text}"
            cur.end_ms = nxt.end_ms
        else:
            merged.append(cur)
            cur = SpeakerSegment(**asdict(nxt))
    merged.append(cur)
    return merged


def build_full_text(segments: list[SpeakerSegment]) -> str:
    return "\n\n".join(f"{s.speaker}: {s.text}" for s in segments)


def count_words(text: str) -> int:
    return len(text.split())


def parse_vtt(raw: str | None) -> ParsedTranscript:
    """
    Построчный разбор:
    - строка с "-->" открывает новый блок (предыдущий закрывается)
    - пустая строка / WEBVTT / NOTE закрывают текущий блок
    - номера реплик пропускаются, разметка <v ...>, <c> вырезается
    """
    if not raw:
        return ParsedTranscript()

    segments: list[SpeakerSegment] = []
    bounds: tuple[int, int] | None = None
    buffer: list[str] = []

    for raw_line in raw.replace("\r\n", "\n").split("\n"):
        line = raw_line.strip()

        if not line or line.startswith("WEBVTT") or line.startswith("NOTE"):
            _flush(segments, bounds, buffer)
            bounds, buffer = None, []
            continue

        m = TIMESTAMP_RE.search(line)
        if m:
            _flush(segments, bounds, buffer)
            bounds = (parse_timestamp(m.group(1)), parse_timestamp(m.group(2)))
            buffer = []
            continue

        if CUE_NUMBER_RE.match(line) or "-->" in line:
            continue

        if bounds is not None:
            clean = TAG_RE.sub("", line).strip()
            if clean:
                buffer.append(clean)

    _flush(segments, bounds, buffer)

    merged = merge_segments(segments)
    full_text = build_full_text(merged)
    return ParsedTranscript(full_text=full_text, segments=merged, word_count=count_words(full_text))


def segments_from_dicts(items: list[dict] | None) -> list[SpeakerSegment]:
    out: list[SpeakerSegment] = []
    for item in items or []:
        if not isinstance(item, dict):
            continue
        out.append(
            SpeakerSegment(
                speaker=str(item.get("speaker") or UNKNOWN_SPEAKER),
                start_ms=int(item.get("start_ms") or 0),
                end_ms=int(item.get("end_ms") or 0),
                text=str(item.get("text") or ""),
            )
        )
    return out
