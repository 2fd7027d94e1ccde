"""
Mock LLM для тестов и dev.

Назначение:
- гонять пайплайн без реальных вызовов LLM (LLM_PROVIDER=mock)
- предсказуемый JSON-ответ в формате системного промпта
"""

from __future__ import annotations

import json

from .base import LLMProvider, LLMResult

MOCK_BODY = (
    "Hi there,\n\n"
    "Thanks for walking me through the integration timeline today. "
    "I noted the concerns about the deployment window and the pricing tiers "
    "you mentioned, and I'll put together a short proposal covering both.\n\n"
    "Could we schedule 30 minutes next week to review it together? "
    "Moving forward, I will also send the API documentation so your team can "
    "start the technical evaluation.\n\n"
    "Best regards"
)


class MockLLMProvider(LLMProvider):
    name = "mock"

    def __init__(self, content: str | None = None) -> None:
        self.content = content
        self.calls = 0

    def generate(self, *, system: str, user: str, max_tokens: int, timeout_s: float) -> LLMResult:
        self.calls += 1
        content = self.content
        if content is None:
            content = json.dumps(
                {
                    "meetingSummary": "mock_summary",
                    "keyTopics": [{"topic": "Integration timeline", "duration": "main focus"}],
                    "keyDecisions": [],
                    "subject": "Integration timeline and proposal next steps",
                    "body": MOCK_BODY,
                    "actionItems": [
                        {
                            "owner": "Host",
                            "task": "Send proposal with pricing tiers",
                            "deadline": "by Friday",
                        }
                    ],
                    "meetingTypeDetected": "general",
                    "toneUsed": "neutral",
                    "keyPointsReferenced": ["integration timeline"],
                },
                ensure_ascii=False,
            )
        return LLMResult(
            content=content,
            input_tokens=len(system + user) // 4,
            output_tokens=len(content) // 4,
            stop_reason="end_turn",
            model="mock",
        )
