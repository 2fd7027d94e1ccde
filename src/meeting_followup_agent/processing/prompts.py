"""
Промпты генерации follow-up письма и разбор ответа модели.

Назначение:
- системный промпт со строгим JSON-форматом ответа
- user-промпт: метаданные встречи, тип/тон, фокус по типу, транскрипт
- разбор ответа (JSON, в т.ч. в ```json```-блоке) с fallback на "Subject:"-строку
- форматирование action items для тела письма, расчёт стоимости
"""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass, field
from typing import Any

from meeting_followup_agent.common.logging import get_project_logger

log = get_project_logger()

FALLBACK_SUBJECT = "Follow-up from our meeting"


# =============================================================================
# ТИПЫ
# =============================================================================
@dataclass
class ActionItem:
    owner: str = ""
    task: str = ""
    deadline: str = ""

    def to_dict(self) -> dict[str, str]:
        return asdict(self)


@dataclass
class ParsedDraft:
    subject: str
    body: str
    action_items: list[ActionItem] = field(default_factory=list)
    meeting_summary: str = ""
    key_topics: list[dict[str, Any]] = field(default_factory=list)
    key_decisions: list[dict[str, Any]] = field(default_factory=list)
    meeting_type_detected: str = "general"
    tone_used: str = "neutral"
    key_points_referenced: list[str] = field(default_factory=list)
    parsed_from_json: bool = True


@dataclass
class FollowUpContext:
    meeting_topic: str
    meeting_date: str
    host_name: str
    transcript: str
    host_email: str | None = None
    participants: list[str] = field(default_factory=list)
    meeting_type: str | None = None
    detected_tone: str | None = None
    sender_name: str | None = None
    company_name: str | None = None
    recipient_name: str | None = None
    additional_context: str | None = None
    template_instructions: str | None = None


# =============================================================================
# ПРОМПТЫ
# =============================================================================
MEETING_TYPE_INSTRUCTIONS: dict[str, str] = {
    "sales_call": (
        "Focus on:\n"
        "- Value proposition discussed and how it solves their pain points\n"
        "- Next steps toward a proposal or demo\n"
        "- Timeline and decision process\n"
        "- Budget or pricing discussions if mentioned"
    ),
    "internal_sync": (
        "Focus on:\n"
        "- Key decisions made during the meeting\n"
        "- Action items assigned to specific people\n"
        "- Blockers identified and owners for resolution\n"
        "- Follow-up meeting if scheduled"
    ),
    "client_review": (
        "Focus on:\n"
        "- Feedback received and how you'll address it\n"
        "- Timeline updates and milestone progress\n"
        "- Any scope changes discussed\n"
        "- Next deliverables and due dates"
    ),
    "technical_discussion": (
        "Focus on:\n"
        "- Technical decisions made\n"
        "- Blockers identified and proposed solutions\n"
        "- Architecture or implementation approach agreed upon\n"
        "- Documentation or follow-up research needed"
    ),
    "general": (
        "Focus on:\n"
        "- Main topics discussed and key takeaways\n"
        "- Any action items mentioned\n"
        "- Next steps if any were proposed\n"
        "- Appreciation for their time and insights"
    ),
}

QUALITY_EXAMPLES = """
## GOOD SUBJECT LINE EXAMPLES:
- "Redis debugging session - next steps" (specific, actionable)
- "Your Q1 pipeline concerns - proposed solution" (references pain point)
- "Demo follow-up: 3 integration options discussed" (concrete details)

## BAD SUBJECT LINE EXAMPLES (avoid these patterns):
- "Follow-up from our meeting" (generic, says nothing)
- "Great talking with you!" (no information value)
- "Quick follow-up" (lazy, unspecific)

## GOOD EMAIL BODY STRUCTURE:
1. Personalized greeting with their name
2. Specific callback to something THEY said (not you)
3. Value statement addressing their concern
4. One clear next step with proposed timing
5. Warm close

## GOOD ACTION ITEMS FORMAT:
[ ] Jimmy: Send proposal with pricing tiers (by Friday)
[ ] Sarah: Review technical requirements doc (before Monday standup)
[ ] Team: Schedule follow-up demo (next week)
"""

SYSTEM_PROMPT = f"""You are an expert at writing follow-up emails that feel personal, specific, and actionable. Your emails reference real details from conversations and propose clear next steps.

## YOUR APPROACH:
1. Read the transcript carefully for specific details, pain points, and commitments
2. Identify the meeting type and adjust tone accordingly
3. Extract concrete action items with owners and deadlines
4. Write a subject line that hooks attention with specificity
5. Structure the body: Greeting -> Context -> Value -> CTA

## OUTPUT FORMAT (STRICT):
You must respond in this exact JSON format:

{{
  "meetingSummary": "A concise 2-4 sentence summary of the meeting, third person past tense.",
  "keyTopics": [{{"topic": "Topic name", "duration": "main focus | discussed at length | discussed briefly | mentioned"}}],
  "keyDecisions": [{{"decision": "What was decided", "context": "Why"}}],
  "subject": "Subject line (max 60 characters, specific and hook-driven)",
  "body": "Full email body with proper formatting",
  "actionItems": [{{"owner": "Person name", "task": "Specific task", "deadline": "e.g. 'by Friday'"}}],
  "meetingTypeDetected": "sales_call | internal_sync | client_review | technical_discussion | general",
  "toneUsed": "formal | casual | neutral",
  "keyPointsReferenced": ["Point 1 from transcript", "Point 2 from transcript"]
}}

## RULES:
1. Subject line MUST be under 60 characters and reference something specific from the meeting
2. Body MUST be under 200 words, warm but professional
3. Action items MUST have an owner and deadline
4. Maximum 5 action items
5. Reference 2-3 SPECIFIC things the other person said
6. One clear CTA at the end
7. Match the tone of the meeting
{QUALITY_EXAMPLES}
## WHAT TO AVOID:
- Generic openers like "It was great meeting you"
- Multiple CTAs
- Action items without owners
- Subject lines that could apply to any meeting"""


def build_user_prompt(ctx: FollowUpContext) -> str:
    instructions = ctx.template_instructions or MEETING_TYPE_INSTRUCTIONS.get(
        ctx.meeting_type or "general", MEETING_TYPE_INSTRUCTIONS["general"]
    )
    sender = ctx.sender_name or ctx.host_name
    lines = [
        "Generate a follow-up email based on this meeting.",
        "",
        "## MEETING DETAILS:",
        f"- Topic: {ctx.meeting_topic}",
        f"- Date: {ctx.meeting_date}",
        f"- From: {sender}" + (f" ({ctx.company_name})" if ctx.company_name else ""),
    ]
    if ctx.recipient_name:
        lines.append(f"- To: {ctx.recipient_name}")
    if ctx.participants:
        lines.append(f"- Participants: {', '.join(ctx.participants)}")
    if ctx.meeting_type:
        lines.append(f"- Detected Type: {ctx.meeting_type.replace('_', ' ')}")
    if ctx.detected_tone:
        lines.append(f"- Tone to use: {ctx.detected_tone}")
    lines += ["", "## MEETING-SPECIFIC FOCUS:", instructions]
    if ctx.additional_context:
        lines += ["", "## ADDITIONAL CONTEXT:", ctx.additional_context]
    lines += [
        "",
        "## TRANSCRIPT:",
        "---",
        ctx.transcript,
        "---",
        "",
        "Now generate the follow-up email in the exact JSON format specified. "
        "Make it specific, actionable, and reference real details from this conversation.",
    ]
    return "\n".join(lines)


# =============================================================================
# РАЗБОР ОТВЕТА
# =============================================================================
def _strip_code_fence(content: str) -> str:
    s = content.strip()
    if s.startswith("```json"):
        s = s[7:]
    elif s.startswith("```"):
        s = s[3:]
    if s.endswith("```"):
        s = s[:-3]
    return s.strip()


def _action_items(raw: Any) -> list[ActionItem]:
    out: list[ActionItem] = []
    if not isinstance(raw, list):
        return out
    for item in raw:
        if not isinstance(item, dict):
            continue
        out.append(
            ActionItem(
                owner=str(item.get("owner") or ""),
                task=str(item.get("task") or ""),
                deadline=str(item.get("deadline") or ""),
            )
        )
    return out


def _list_of(raw: Any, kind: type) -> list:
    return [x for x in raw if isinstance(x, kind)] if isinstance(raw, list) else []


def _fallback_parse(content: str) -> ParsedDraft:
    lines = content.strip().split("\n")
    subject = ""
    body_start = 0
    for i, line in enumerate(lines):
        stripped = line.strip()
        if stripped.lower().startswith("subject:"):
            subject = stripped[len("subject:") :].strip()
            body_start = i + 1
            break
    while body_start < len(lines) and not lines[body_start].strip():
        body_start += 1
    body = "\n".join(lines[body_start:]).strip()
    return ParsedDraft(
        subject=subject or FALLBACK_SUBJECT,
        body=body or content,
        parsed_from_json=False,
    )


def parse_draft_response(content: str) -> ParsedDraft:
    """
    JSON с обязательными subject и body; иначе — fallback на "Subject:"-строку.
    Никогда не бросает исключение.
    """
    try:
        data = json.loads(_strip_code_fence(content or ""))
        if not isinstance(data, dict):
            raise ValueError("response is not a JSON object")
        subject = data.get("subject")
        body = data.get("body")
        if not subject or not body:
            raise ValueError("missing required fields: subject and body")
    except ValueError as e:
        # json.JSONDecodeError тоже ValueError
        log.warning(
            "draft_response_fallback_parse",
            extra={"payload": {"err": str(e)[:200], "content_head": (content or "")[:200]}},
        )
        return _fallback_parse(content or "")

    return ParsedDraft(
        subject=str(subject),
        body=str(body),
        action_items=_action_items(data.get("actionItems")),
        meeting_summary=str(data.get("meetingSummary") or ""),
        key_topics=_list_of(data.get("keyTopics"), dict),
        key_decisions=_list_of(data.get("keyDecisions"), dict),
        meeting_type_detected=str(data.get("meetingTypeDetected") or "general"),
        tone_used=str(data.get("toneUsed") or "neutral"),
        key_points_referenced=[str(x) for x in _list_of(data.get("keyPointsReferenced"), str)],
    )


# =============================================================================
# ФОРМАТИРОВАНИЕ / СТОИМОСТЬ
# =============================================================================
def format_action_items(items: list[ActionItem]) -> str:
    if not items:
        return ""
    rows = [
        f"[ ] {it.owner}: {it.task}" + (f" ({it.deadline})" if it.deadline else "") for it in items
    ]
    return "\n\nAction Items:\n" + "\n".join(rows)


def calculate_cost_usd(
    input_tokens: int, output_tokens: int, *, price_input_per_m: float, price_output_per_m: float
) -> float:
    cost = input_tokens / 1_000_000 * price_input_per_m
    cost += output_tokens / 1_000_000 * price_output_per_m
    return round(cost, 6)
