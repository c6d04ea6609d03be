"""Keyword classification of free-text replies.

Rules are evaluated top to bottom and the first match wins, so more specific
phrases ("no more") sit above the generic ones they contain ("more").
"""

from __future__ import annotations

import re
from enum import Enum
from typing import Collection, List, Optional, Pattern, Sequence, Tuple, Union

from onboarding import catalog


class ReplyKind(str, Enum):
    START_OVER = "start_over"
    CONFIRMATION = "confirmation"
    ADD_MORE = "add_more"
    PLATFORM = "platform"
    PATH_INBOUND = "path_inbound"
    PATH_LEADS = "path_leads"
    PATH_AUTOMATION = "path_automation"
    PATH_PROFILING = "path_profiling"
    REQUIREMENT = "requirement"


def _words(*phrases: str) -> Pattern[str]:
    return re.compile(r"\b(?:" + "|".join(re.escape(p) for p in phrases) + r")\b", re.IGNORECASE)


CONFIRMATION_KEYWORDS = ("continue", "done", "no more", "that's all", "finish", "proceed", "that's it")
ADD_MORE_KEYWORDS = ("add", "another", "more", "yes")
REQUIREMENT_KEYWORDS = (
    "daily",
    "weekly",
    "schedule",
    "scrape",
    "send",
    "visit",
    "filter",
    "target",
    "limit",
    "per day",
    "every",
)

# the whole reply must be the command; a sentence that merely mentions it is an answer
START_OVER_PATTERN = re.compile(
    r"^(?:let's |please )?(?:start over|start again|restart|reset)(?: please)?[.!]?$", re.IGNORECASE
)

_PLATFORM_PATTERN = re.compile(
    r"\b(?:linkedin|instagram|whatsapp|e-?mail|voice(?: agent)?|all of the above|all platforms)\b|^all$",
    re.IGNORECASE,
)

RULES: Tuple[Tuple[ReplyKind, Pattern[str]], ...] = (
    (ReplyKind.START_OVER, START_OVER_PATTERN),
    (ReplyKind.CONFIRMATION, re.compile(r"^no[.!]?$|" + _words(*CONFIRMATION_KEYWORDS).pattern, re.IGNORECASE)),
    (ReplyKind.PATH_INBOUND, _words("inbound", "upload", "import leads")),
    (ReplyKind.PATH_PROFILING, _words("build my profile", "profiling", "my profile")),
    (ReplyKind.PATH_LEADS, _words("lead generation", "leads", "outbound", "prospecting")),
    (ReplyKind.PATH_AUTOMATION, _words("automation", "automate", "workflow")),
    (ReplyKind.PLATFORM, _PLATFORM_PATTERN),
    (ReplyKind.ADD_MORE, _words(*ADD_MORE_KEYWORDS)),
    (ReplyKind.REQUIREMENT, _words(*REQUIREMENT_KEYWORDS)),
)

PROFILE_COMPLETE_PHRASES = (
    "profile is complete",
    "profile complete",
    "your profile is ready",
    "profiling complete",
    "ready to set up your workflow",
    "let's build your workflow",
)


def _clean(text: str) -> str:
    return " ".join((text or "").replace("’", "'").split()).strip()


def classify_reply(text: str, allowed: Optional[Collection[ReplyKind]] = None) -> Optional[ReplyKind]:
    """Return the first rule kind matching ``text``, restricted to ``allowed``."""
    cleaned = _clean(text)
    if not cleaned:
        return None
    for kind, pattern in RULES:
        if allowed is not None and kind not in allowed:
            continue
        if pattern.search(cleaned):
            return kind
    return None


def extract_platforms(reply: Union[str, Sequence[str]]) -> List[str]:
    """Platform ids named in ``reply``, in the order they appear."""
    if isinstance(reply, str):
        cleaned = _clean(reply)
        found: List[Tuple[int, str]] = []
        for match in _PLATFORM_PATTERN.finditer(cleaned):
            token = match.group(0).lower()
            if token.startswith("all"):
                token = catalog.ALL_PLATFORMS
            elif token.startswith("voice"):
                token = "voice"
            elif token in ("e-mail", "email"):
                token = "email"
            found.append((match.start(), token))
        tokens = [token for _, token in sorted(found)]
    else:
        tokens = list(reply)
    return catalog.expand_platforms(tokens)


def is_profile_complete(text: str) -> bool:
    lowered = _clean(text).casefold()
    return any(phrase in lowered for phrase in PROFILE_COMPLETE_PHRASES)


__all__ = [
    "ADD_MORE_KEYWORDS",
    "CONFIRMATION_KEYWORDS",
    "REQUIREMENT_KEYWORDS",
    "RULES",
    "ReplyKind",
    "classify_reply",
    "extract_platforms",
    "is_profile_complete",
]
