from __future__ import annotations

from meeting_followup_agent.transcript.parser import (
    UNKNOWN_SPEAKER,
    SpeakerSegment,
    merge_segments,
    parse_timestamp,
    parse_vtt,
    segments_from_dicts,
)
from meeting_followup_agent.transcript.speaker_stats import speaker_stats


def test_parse_vtt_merges_close_same_speaker_cues() -> None:
    raw = (
        "00:00:01.000 --> 00:00:03.000\nJane: Hello there\n\n"
        "00:00:03.500 --> 00:00:05.000\nJane: How are you\n"
    )
    parsed = parse_vtt(raw)

    assert len(parsed.segments) == 1
    seg = parsed.segments[0]
    assert seg.speaker == "Jane"
    assert seg.start_ms == 1000
    assert seg.end_ms == 5000
    assert seg.text == "Hello there How are you"
    assert parsed.full_text == "Jane: Hello there How are you"
    assert parsed.word_count == 6


def test_merge_keeps_segments_apart_when_gap_is_large() -> None:
    raw = (
        "00:00:01.000 --> 00:00:03.000\nJane: First\n\n"
        "00:00:05.500 --> 00:00:07.000\nJane: Second\n"
    )
    parsed = parse_vtt(raw)
    assert [s.text for s in parsed.segments] == ["First", "Second"]


def test_merge_does_not_join_different_speakers() -> None:
    segments = [
        SpeakerSegment(speaker="A", start_ms=0, end_ms=1000, text="one"),
        SpeakerSegment(speaker="B", start_ms=1100, end_ms=2000, text="two"),
        SpeakerSegment(speaker="A", start_ms=2100, end_ms=3000, text="three"),
    ]
    merged = merge_segments(segments)
    assert [s.speaker for s in merged] == ["A", "B", "A"]
    # исходные сегменты не мутируются
    assert segments[0].text == "one"


def test_parse_vtt_handles_header_cue_numbers_and_tags() -> None:
    raw = (
        "WEBVTT\n\n"
        "1\n"
        "00:00:00.000 --> 00:00:02.000\n"
        "<v Bob>Bob: Let's talk <c>pricing</c></v>\n\n"
        "NOTE this is a comment\n\n"
        "2\n"
        "00:00:10.000 --> 00:00:12.000\n"
        "no speaker prefix here\n"
    )
    parsed = parse_vtt(raw)

    assert [(s.speaker, s.text) for s in parsed.segments] == [
        ("Bob", "Let's talk pricing"),
        (UNKNOWN_SPEAKER, "no speaker prefix here"),
    ]


def test_parse_vtt_empty_input() -> None:
    parsed = parse_vtt("")
    assert parsed.segments == []
    assert parsed.full_text == ""
    assert parsed.word_count == 0


def test_parse_timestamp_formats() -> None:
    assert parse_timestamp("01:02:03.500") == 3_723_500
    assert parse_timestamp("02:03.250") == 123_250
    assert parse_timestamp("garbage") == 0
    assert parse_timestamp("aa:bb:cc") == 0


def test_segments_from_dicts_and_speaker_stats() -> None:
    segments = segments_from_dicts(
        [
            {
                "speaker": "Jane",
                "start_ms": 0,
                "end_ms": 90_000,
                "text": "Long intro. Any questions?",
            },
            {"speaker": "Bob", "start_ms": 90_000, "end_ms": 120_000, "text": "Yes, one"},
            "not-a-dict",
        ]
    )
    stats = speaker_stats(segments)

    assert [s.speaker for s in stats] == ["Jane", "Bob"]
    jane = stats[0]
    assert jane.talk_time_ms == 90_000
    assert jane.talk_time_percent == 75.0
    assert jane.question_count == 1
    assert jane.monologue_count == 1
    assert stats[1].monologue_count == 0
