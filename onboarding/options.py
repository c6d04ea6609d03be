"""Recover selectable options from assistant prose and normalise user answers."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, List, Optional, Sequence, Union

from onboarding import catalog

if TYPE_CHECKING:
    from onboarding.session import ConversationTurn


class OptionKind(str, Enum):
    SINGLE_SELECT = "single_select"
    MULTI_SELECT = "multi_select"
    DELAY = "delay"
    CONDITION = "condition"


@dataclass
class ParsedOptions:
    kind: OptionKind
    choices: List[str]
    prechecked: List[str] = field(default_factory=list)
    question: str = ""
    topic: Optional[str] = None
    platform: Optional[str] = None

    @property
    def multi_select(self) -> bool:
        return self.kind == OptionKind.MULTI_SELECT

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "choices": list(self.choices),
            "prechecked": list(self.prechecked),
            "question": self.question,
            "topic": self.topic,
            "platform": self.platform,
        }


_DELIMITER = re.compile(r"options?:", re.IGNORECASE)
_BULLET = re.compile(r"^(?:[•*\-]|\d+\.)\s+")
_MULTI_HINTS = re.compile(r"\b(multiple|one or more|any|select all|all that apply)\b", re.IGNORECASE)
_SINGLE_OVERRIDES = re.compile(r"leads per day|leads do you want per day|connect with daily", re.IGNORECASE)
_PLATFORM_NAME = re.compile(r"\b(linkedin|instagram|whatsapp|email|voice)\b", re.IGNORECASE)
_HELPER_TEXT = "modify your selection"

_TEMPLATE_PREFIXES = (
    "please provide the message template",
    "please provide the call script",
    "please provide the connection note",
    "provide the message template",
    "provide the call script",
)
_TEMPLATE_NOUNS = ("template", "script", "connection note")


def is_template_request(text: str) -> bool:
    """True when ``text`` asks the user to type a template or script."""
    lowered = (text or "").replace("\\n", "\n").casefold()
    if any(prefix in lowered for prefix in _TEMPLATE_PREFIXES):
        return True
    return "you'd like to use" in lowered and any(noun in lowered for noun in _TEMPLATE_NOUNS)


def _classify(lowered: str, multi: bool) -> tuple[OptionKind, Optional[str]]:
    if "which platforms" in lowered or "platforms do you want" in lowered:
        return OptionKind.MULTI_SELECT, "platform_selection"
    if "actions do you want" in lowered or "actions would you like" in lowered or "pre-selected" in lowered:
        return OptionKind.MULTI_SELECT, "platform_actions"
    if "delay" in lowered or "wait time" in lowered:
        return OptionKind.DELAY, None
    if "condition" in lowered or re.search(r"\bif\b.*\b(accepted|replied|opened|clicked)\b", lowered):
        return OptionKind.CONDITION, None
    if _SINGLE_OVERRIDES.search(lowered):
        return OptionKind.SINGLE_SELECT, "leads_per_day"
    return (OptionKind.MULTI_SELECT if multi else OptionKind.SINGLE_SELECT), None


def parse_options(text: str) -> Optional[ParsedOptions]:
    """Extract an option list from assistant prose, or ``None`` for plain text.

    Explicit ``Options:`` lists win over everything else. Without a delimiter a
    template request is never an option list, and a question about a
    platform's actions falls back to that platform's catalog actions.
    """
    if not text:
        return None
    body = text.replace("\\n", "\n")
    lowered = body.casefold()

    match = _DELIMITER.search(body)
    if match:
        question = " ".join(body[: match.start()].split())
        choices = []
        for line in body[match.end():].splitlines():
            line = line.strip()
            if not _BULLET.match(line):
                continue
            choice = _BULLET.sub("", line).strip()
            if choice and _HELPER_TEXT not in choice.casefold():
                choices.append(choice)
        if not choices:
            return None
        kind, topic = _classify(lowered, bool(_MULTI_HINTS.search(body)))
        platform = _platform_in(body) if topic == "platform_actions" else None
        prechecked = list(choices) if topic == "platform_actions" and "pre-selected" in lowered else []
        return ParsedOptions(kind, choices, prechecked, question, topic, platform)

    if is_template_request(body):
        return None

    if "actions" in lowered:
        platform = _platform_in(body)
        choices = catalog.action_labels(platform) if platform else []
        if choices:
            question = re.split(r"\(|e\.g\.", body, maxsplit=1)[0].strip()
            if len(question) < 10:
                question = f"What {catalog.platform_label(platform or '')} actions do you want to include?"
            prechecked = list(choices) if "pre-selected" in lowered else []
            return ParsedOptions(OptionKind.MULTI_SELECT, choices, prechecked, question, "platform_actions", platform)
    return None


def _platform_in(text: str) -> Optional[str]:
    match = _PLATFORM_NAME.search(text)
    return match.group(1).lower() if match else None


def latest_options(turns: Sequence["ConversationTurn"]) -> Optional[ParsedOptions]:
    """Options offered by the most recent assistant turn only."""
    for turn in reversed(turns):
        if turn.role != "assistant":
            continue
        hints = turn.hints
        if hints is not None and hints.options:
            return ParsedOptions(
                OptionKind(hints.option_kind) if hints.option_kind else OptionKind.SINGLE_SELECT,
                list(hints.options),
                list(hints.prechecked),
                turn.text,
                hints.prompt_kind,
                hints.platform,
            )
        if hints is not None and hints.prompt_kind == "template":
            return None
        return parse_options(turn.text)
    return None


def normalize_answer(value: Union[str, Sequence[str], None]) -> List[str]:
    """Coerce a reply into a list of distinct, non-empty strings."""
    if value is None:
        return []
    if isinstance(value, str):
        items: Sequence[Any] = [value]
    else:
        items = value
    result: List[str] = []
    for item in items:
        text = str(item).strip()
        if text and text not in result:
            result.append(text)
    return result


__all__ = [
    "OptionKind",
    "ParsedOptions",
    "is_template_request",
    "latest_options",
    "normalize_answer",
    "parse_options",
]
