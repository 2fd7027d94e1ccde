"""
Таблица правил классификатора встреч.

Формат (данные, не код):
- categories: категория -> список групп {"keywords": [...], "weight": int}
- tone: {"formal": [...], "casual": [...]}

Таблицу можно подменить своей (dict/JSON) через load_rules().
В рантайме таблица берётся из CLASSIFIER_RULES_FILE (JSON), иначе DEFAULT_RULES.
"""

from __future__ import annotations

import json
from functools import lru_cache
from pathlib import Path
from typing import Any

from meeting_followup_agent.common.config import get_settings
from meeting_followup_agent.common.logging import get_project_logger

log = get_project_logger()

DEFAULT_RULES: dict[str, Any] = {
    "categories": {
        "sales_call": [
            {"keywords": ["pricing", "proposal", "quote", "budget", "cost"], "weight": 3},
            {"keywords": ["demo", "presentation", "pitch", "prospect"], "weight": 3},
            {"keywords": ["competitor", "alternative", "comparison"], "weight": 2},
            {"keywords": ["decision maker", "stakeholder", "buying"], "weight": 3},
            {"keywords": ["trial", "pilot", "proof of concept", "poc"], "weight": 2},
            {"keywords": ["contract", "terms", "agreement", "deal"], "weight": 3},
            {"keywords": ["timeline to purchase", "when would you", "next steps"], "weight": 2},
            {"keywords": ["pain point", "challenge", "problem you're facing"], "weight": 2},
            {"keywords": ["roi", "return on investment", "value"], "weight": 2},
        ],
        "internal_sync": [
            {"keywords": ["standup", "sync", "check-in", "status update"], "weight": 3},
            {"keywords": ["sprint", "backlog", "velocity", "story points"], "weight": 3},
            {"keywords": ["team meeting", "all hands", "weekly"], "weight": 2},
            {"keywords": ["blocker", "blocked", "stuck on"], "weight": 2},
            {"keywords": ["hire", "hiring", "interview", "candidate"], "weight": 2},
            {"keywords": ["performance review", "1:1", "one on one"], "weight": 3},
            {"keywords": ["roadmap", "planning", "quarterly"], "weight": 2},
            {"keywords": ["our team", "internally", "between us"], "weight": 2},
        ],
        "client_review": [
            {"keywords": ["feedback", "review", "thoughts on"], "weight": 3},
            {"keywords": ["deliverable", "milestone", "deadline"], "weight": 2},
            {"keywords": ["revision", "change request", "update"], "weight": 2},
            {"keywords": ["scope", "scope creep", "out of scope"], "weight": 2},
            {"keywords": ["sign off", "approval", "approved"], "weight": 3},
            {"keywords": ["invoice", "payment", "billing"], "weight": 2},
            {"keywords": ["project status", "progress update"], "weight": 2},
            {"keywords": ["client", "account", "engagement"], "weight": 2},
        ],
        "technical_discussion": [
            {"keywords": ["architecture", "design", "infrastructure"], "weight": 3},
            {"keywords": ["api", "endpoint", "integration"], "weight": 2},
            {"keywords": ["database", "schema", "migration"], "weight": 2},
            {"keywords": ["bug", "issue", "error", "exception"], "weight": 2},
            {"keywords": ["deploy", "deployment", "release", "ci/cd"], "weight": 2},
            {"keywords": ["code review", "pull request", "pr"], "weight": 3},
            {"keywords": ["performance", "latency", "optimization"], "weight": 2},
            {"keywords": ["security", "authentication", "authorization"], "weight": 2},
            {"keywords": ["debugging", "troubleshooting", "investigating"], "weight": 2},
            {"keywords": ["redis", "postgres", "mongodb", "aws", "vercel"], "weight": 2},
        ],
        "general": [
            {"keywords": ["meeting", "discussion", "conversation"], "weight": 1},
        ],
    },
    "default_category": "general",
    "default_base_score": 1,
    "tone": {
        "formal": [
            "regarding",
            "pursuant",
            "hereby",
            "kindly",
            "please be advised",
            "we would like to",
            "it has come to our attention",
            "at your earliest convenience",
            "dear sir",
            "dear madam",
            "respectfully",
        ],
        "casual": [
            "hey",
            "hi there",
            "cool",
            "awesome",
            "sounds good",
            "no worries",
            "gonna",
            "wanna",
            "yeah",
            "yep",
            "nope",
            "lol",
            "haha",
            "btw",
            "fyi",
            "asap",
            "super",
            "totally",
            "absolutely",
            "quick question",
            "just checking",
            "catch up",
        ],
    },
}


def load_rules(raw: dict[str, Any] | None) -> dict[str, Any]:
    """
    Валидирует внешнюю таблицу правил; пустой ввод -> DEFAULT_RULES.
    """
    if not raw:
        return DEFAULT_RULES

    categories = raw.get("categories")
    if not isinstance(categories, dict) or not categories:
        raise ValueError("rules.categories must be a non-empty mapping")
    for name, groups in categories.items():
        if not isinstance(groups, list):
            raise ValueError(f"rules.categories.{name} must be a list")
        for g in groups:
            if not isinstance(g, dict) or not isinstance(g.get("keywords"), list):
                raise ValueError(f"rules.categories.{name}: group must have keywords list")
            if not isinstance(g.get("weight"), int):
                raise ValueError(f"rules.categories.{name}: group weight must be int")

    default = raw.get("default_category", "general")
    if default not in categories:
        raise ValueError(f"default_category {default!r} is not a category")

    tone = raw.get("tone") or DEFAULT_RULES["tone"]
    return {
        "categories": categories,
        "default_category": default,
        "default_base_score": int(raw.get("default_base_score", 1)),
        "tone": {"formal": list(tone.get("formal", [])), "casual": list(tone.get("casual", []))},
    }


@lru_cache(maxsize=8)
def load_rules_file(path: str) -> dict[str, Any]:
    """Таблица правил из JSON-файла; читается один раз на путь."""
    file_path = Path(path).expanduser().resolve()
    try:
        raw = json.loads(file_path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        raise ValueError(f"Failed to load classifier rules from {file_path}: {e}") from e
    if not isinstance(raw, dict):
        raise ValueError(f"Classifier rules in {file_path} must be a JSON object")

    rules = load_rules(raw)
    log.info(
        "classifier_rules_loaded",
        extra={"payload": {"path": str(file_path), "categories": sorted(rules["categories"])}},
    )
    return rules


def configured_rules() -> dict[str, Any]:
    path = (get_settings().classifier_rules_file or "").strip()
    return load_rules_file(path) if path else DEFAULT_RULES
