"""Static catalog of channels, channel actions and per-action utility questions."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple


@dataclass(frozen=True)
class Option:
    """A selectable choice shown to the user."""

    label: str
    value: str

    def matches(self, token: str) -> bool:
        needle = (token or "").strip().casefold()
        return bool(needle) and needle in (self.label.casefold(), self.value.casefold())


@dataclass(frozen=True)
class Feature:
    """One action a workflow can perform on a platform."""

    id: str
    platform: str
    label: str
    description: str
    rank: int
    step_type: str
    family: Optional[str] = None
    default_variant: bool = False
    template_prompt: Optional[str] = None

    @property
    def title(self) -> str:
        return self.label.split(" (")[0]


@dataclass(frozen=True)
class UtilityQuestion:
    key: str
    question: str
    options: Tuple[Option, ...] = ()
    multi_select: bool = False
    free_text: bool = False


PLATFORM_LABELS: Dict[str, str] = {
    "linkedin": "LinkedIn",
    "instagram": "Instagram",
    "whatsapp": "WhatsApp",
    "email": "Email",
    "voice": "Voice Agent",
}

PLATFORMS: Tuple[str, ...] = tuple(PLATFORM_LABELS)
ALL_PLATFORMS = "all"

CONNECTION_FAMILY = "Send connection request"

_FEATURES: Tuple[Feature, ...] = (
    Feature("linkedin_visit", "linkedin", "Visit profile", "View the lead's LinkedIn profile", 10, "linkedin_visit"),
    Feature("linkedin_follow", "linkedin", "Follow profile", "Follow the lead on LinkedIn", 20, "linkedin_follow"),
    Feature(
        "linkedin_connect",
        "linkedin",
        "Send connection request (without message)",
        "Send a blank connection request",
        30,
        "linkedin_connect",
        family=CONNECTION_FAMILY,
        default_variant=True,
    ),
    Feature(
        "linkedin_connect_message",
        "linkedin",
        "Send connection request (with message)",
        "Send a connection request with a personal note",
        30,
        "linkedin_connect",
        family=CONNECTION_FAMILY,
        template_prompt="connection note",
    ),
    Feature(
        "linkedin_message",
        "linkedin",
        "Send message (after accepted)",
        "Message the lead once the connection is accepted",
        40,
        "linkedin_message",
        template_prompt="message template",
    ),
    Feature("instagram_autopost", "instagram", "Auto-post", "Publish content automatically", 10, "instagram_autopost"),
    Feature(
        "instagram_dm",
        "instagram",
        "Auto-DM",
        "Send automated direct messages",
        20,
        "instagram_dm",
        template_prompt="message template",
    ),
    Feature(
        "instagram_comment_reply",
        "instagram",
        "Reply to comments",
        "Reply to comments automatically",
        30,
        "instagram_comment_reply",
    ),
    Feature(
        "whatsapp_broadcast",
        "whatsapp",
        "Send broadcast",
        "Broadcast a message to many contacts",
        10,
        "whatsapp_send",
        template_prompt="message template",
    ),
    Feature(
        "whatsapp_send",
        "whatsapp",
        "Send 1:1 message",
        "Send an individual WhatsApp message",
        20,
        "whatsapp_send",
        template_prompt="message template",
    ),
    Feature(
        "whatsapp_template",
        "whatsapp",
        "Template message",
        "Send an approved WhatsApp template",
        30,
        "whatsapp_send",
        template_prompt="message template",
    ),
    Feature("whatsapp_followup", "whatsapp", "Follow-up message", "Follow up on an earlier message", 40, "whatsapp_send"),
    Feature("email_send", "email", "Send email", "Send a personalised email", 10, "email_send"),
    Feature("email_followup", "email", "Email follow-up sequence", "Follow up if there is no response", 20, "email_followup"),
    Feature("email_track", "email", "Track opens/clicks", "Track email engagement", 30, "email_send"),
    Feature("email_bounce", "email", "Bounce detection", "Detect and handle bounced emails", 40, "email_send"),
    Feature(
        "voice_call",
        "voice",
        "Trigger call",
        "Call the lead with the AI voice agent",
        10,
        "voice_agent_call",
        template_prompt="call script",
    ),
    Feature("voice_script", "voice", "Use call script", "Use a predefined call script", 20, "voice_agent_call"),
)

PLATFORM_FEATURES: Dict[str, Tuple[Feature, ...]] = {
    platform: tuple(f for f in _FEATURES if f.platform == platform) for platform in PLATFORMS
}

_FEATURES_BY_ID: Dict[str, Feature] = {f.id: f for f in _FEATURES}

SCHEDULE_OPTIONS = (
    Option("Immediately", "immediate"),
    Option("Schedule (one-time)", "schedule"),
    Option("Daily", "daily"),
    Option("Weekly", "weekly"),
    Option("Custom schedule", "custom"),
)

DELAY_OPTIONS = (
    Option("No delay", "none"),
    Option("Hours", "hours"),
    Option("Days", "days"),
)

CONDITION_OPTIONS = (
    Option("No condition", "none"),
    Option("If connection accepted", "if_connected"),
    Option("If email opened", "if_opened"),
    Option("If replied", "if_replied"),
    Option("If link clicked", "if_clicked"),
)

# condition value -> (predicate label, campaign condition type)
CONDITION_PREDICATES: Dict[str, Tuple[str, str]] = {
    "if_connected": ("connection accepted", "connected"),
    "if_opened": ("email opened", "opened"),
    "if_replied": ("replied", "replied"),
    "if_clicked": ("link clicked", "clicked"),
}

VARIABLE_OPTIONS = (
    Option("first_name", "first_name"),
    Option("company_name", "company_name"),
    Option("title", "title"),
    Option("email", "email"),
    Option("None", "none"),
)

STRAIGHT_TO_END = Option("Go straight to end", "end")

UTILITY_QUESTIONS: Dict[str, UtilityQuestion] = {
    "schedule": UtilityQuestion("schedule", "When should this run?", SCHEDULE_OPTIONS),
    "delay": UtilityQuestion("delay", "Add a delay before the next step?", DELAY_OPTIONS),
    "delay_amount": UtilityQuestion("delay_amount", "How many {unit} should I wait?", free_text=True),
    "condition": UtilityQuestion("condition", "Add a condition?", CONDITION_OPTIONS),
    "condition_false": UtilityQuestion(
        "condition_false",
        "If the condition is not met, what should happen? (You can select multiple)",
        multi_select=True,
    ),
    "variables": UtilityQuestion(
        "variables",
        "Personalization variables needed? (Select all that apply)",
        VARIABLE_OPTIONS,
        multi_select=True,
    ),
}

PATH_OPTIONS = (
    Option("Lead generation (outbound)", "leads"),
    Option("Lead generation (inbound upload)", "leads_inbound"),
    Option("Automation", "automation"),
    Option("Build my profile first", "profiling"),
)


def platform_label(platform: str) -> str:
    return PLATFORM_LABELS.get(platform, platform.capitalize())


def normalize_platform(token: str) -> Optional[str]:
    """Return the platform id for ``token`` (id or label), ``"all"``, or ``None``."""
    needle = (token or "").strip().casefold()
    if not needle:
        return None
    if needle in (ALL_PLATFORMS, "all of the above"):
        return ALL_PLATFORMS
    for platform, label in PLATFORM_LABELS.items():
        if needle in (platform, label.casefold()):
            return platform
    return None


def expand_platforms(tokens: Iterable[str]) -> List[str]:
    """Map raw choices to platform ids, expanding ``all`` and dropping unknowns."""
    result: List[str] = []
    for token in tokens:
        platform = normalize_platform(token)
        if platform == ALL_PLATFORMS:
            candidates: Sequence[str] = PLATFORMS
        elif platform:
            candidates = (platform,)
        else:
            continue
        for candidate in candidates:
            if candidate not in result:
                result.append(candidate)
    return result


def platform_options() -> List[Option]:
    options = [Option(label, platform) for platform, label in PLATFORM_LABELS.items()]
    options.append(Option("All of the above", ALL_PLATFORMS))
    return options


def features_for(platform: str) -> Tuple[Feature, ...]:
    return PLATFORM_FEATURES.get(platform, ())


def feature_by_id(feature_id: str) -> Optional[Feature]:
    return _FEATURES_BY_ID.get(feature_id)


def lookup_feature(platform: str, token: str) -> Optional[Feature]:
    """Find a feature of ``platform`` by id or on-screen label."""
    needle = (token or "").strip().casefold()
    for feature in features_for(platform):
        if needle in (feature.id, feature.label.casefold()):
            return feature
    return None


def action_labels(platform: str) -> List[str]:
    return [f.label for f in features_for(platform)]


def family_members(platform: str, family: str) -> List[Feature]:
    return [f for f in features_for(platform) if f.family == family]


def families(platform: str) -> List[str]:
    seen: List[str] = []
    for feature in features_for(platform):
        if feature.family and feature.family not in seen:
            seen.append(feature.family)
    return seen


def match_option(options: Sequence[Option], token: str) -> Optional[Option]:
    for option in options:
        if option.matches(token):
            return option
    return None


def condition_false_options(feature: Feature) -> List[Option]:
    options = [Option(f.label, f.id) for f in features_for(feature.platform) if f.id != feature.id]
    options.append(STRAIGHT_TO_END)
    return options


def utility_plan(feature: Feature, answered: Mapping[str, Sequence[str]]) -> List[str]:
    """Ordered utility question keys for ``feature`` given the answers so far.

    Follow-up questions appear only once the answer that triggers them is known,
    so the plan grows as the user answers.
    """
    plan: List[str] = []
    if feature.template_prompt:
        plan.append("template")
    plan.extend(["schedule", "delay"])
    delay = _first(answered.get("delay"))
    if delay in ("hours", "days"):
        plan.append("delay_amount")
    plan.append("condition")
    condition = _first(answered.get("condition"))
    if condition and condition != "none":
        plan.append("condition_false")
    plan.append("variables")
    return plan


def utility_question(feature: Feature, key: str, answered: Mapping[str, Sequence[str]]) -> UtilityQuestion:
    """Return the concrete question for ``key``, filling in feature-specific parts."""
    if key == "template":
        return UtilityQuestion(
            "template",
            f"Please provide the {feature.template_prompt} you'd like to use for \"{feature.label}\".",
            free_text=True,
        )
    base = UTILITY_QUESTIONS[key]
    if key == "delay_amount":
        unit = _first(answered.get("delay")) or "hours"
        return UtilityQuestion(base.key, base.question.format(unit=unit), free_text=True)
    if key == "condition_false":
        return UtilityQuestion(base.key, base.question, tuple(condition_false_options(feature)), multi_select=True)
    return base


def _first(values: Optional[Sequence[str]]) -> Optional[str]:
    if not values:
        return None
    return values[0]


__all__ = [
    "ALL_PLATFORMS",
    "CONDITION_OPTIONS",
    "CONDITION_PREDICATES",
    "CONNECTION_FAMILY",
    "DELAY_OPTIONS",
    "Feature",
    "Option",
    "PATH_OPTIONS",
    "PLATFORMS",
    "PLATFORM_FEATURES",
    "PLATFORM_LABELS",
    "STRAIGHT_TO_END",
    "UtilityQuestion",
    "action_labels",
    "expand_platforms",
    "families",
    "family_members",
    "feature_by_id",
    "features_for",
    "lookup_feature",
    "match_option",
    "normalize_platform",
    "platform_label",
    "platform_options",
    "utility_plan",
    "utility_question",
]
