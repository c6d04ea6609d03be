import sys
from pathlib import Path

sys.path.append(str(Path(__file__).resolve().parents[1]))

from onboarding import catalog
from onboarding.options import OptionKind, is_template_request, latest_options, normalize_answer, parse_options
from onboarding.session import ConversationTurn, TurnHints


def test_bulleted_options_after_delimiter():
    text = "Which platforms do you want to use? You can select multiple.\nOptions:\n• LinkedIn\n• Email\n• WhatsApp"
    parsed = parse_options(text)

    assert parsed is not None
    assert parsed.choices == ["LinkedIn", "Email", "WhatsApp"]
    assert parsed.kind == OptionKind.MULTI_SELECT
    assert parsed.topic == "platform_selection"
    assert parsed.question.startswith("Which platforms")


def test_numbered_options_and_helper_text_dropped():
    text = "How should we proceed?\nOptions:\n1. Keep going\n2. Stop here\n- Modify your selection above"
    parsed = parse_options(text)

    assert parsed is not None
    assert parsed.choices == ["Keep going", "Stop here"]
    assert parsed.kind == OptionKind.SINGLE_SELECT


def test_escaped_newlines_are_honoured():
    parsed = parse_options("Add a delay?\\nOptions:\\n- No delay\\n- Hours\\n- Days")

    assert parsed is not None
    assert parsed.kind == OptionKind.DELAY
    assert parsed.choices == ["No delay", "Hours", "Days"]


def test_condition_question_is_classified():
    parsed = parse_options("Add a condition?\nOptions:\n- No condition\n- If replied")

    assert parsed is not None
    assert parsed.kind == OptionKind.CONDITION


def test_leads_per_day_stays_single_select():
    parsed = parse_options("How many leads per day? Pick any.\nOptions:\n- 10\n- 25\n- 50")

    assert parsed is not None
    assert parsed.kind == OptionKind.SINGLE_SELECT
    assert parsed.topic == "leads_per_day"


def test_preselected_actions_are_prechecked():
    text = "These LinkedIn actions are pre-selected for you.\nOptions:\n- Visit profile\n- Follow profile"
    parsed = parse_options(text)

    assert parsed is not None
    assert parsed.topic == "platform_actions"
    assert parsed.platform == "linkedin"
    assert parsed.prechecked == ["Visit profile", "Follow profile"]


def test_template_request_never_yields_options():
    text = "Please provide the message template you'd like to use for \"Send email\"."
    assert is_template_request(text)
    assert parse_options(text) is None


def test_action_question_falls_back_to_catalog():
    parsed = parse_options("What Email actions do you want to include? (e.g. send, track)")

    assert parsed is not None
    assert parsed.choices == catalog.action_labels("email")
    assert parsed.kind == OptionKind.MULTI_SELECT
    assert parsed.platform == "email"


def test_plain_prose_has_no_options():
    assert parse_options("Great, thanks for letting me know.") is None
    assert parse_options("") is None


def test_latest_options_only_reads_last_assistant_turn():
    turns = [
        ConversationTurn(role="assistant", text="Pick one.\nOptions:\n- A\n- B"),
        ConversationTurn(role="user", text="A"),
        ConversationTurn(role="assistant", text="Thanks, noted."),
    ]
    assert latest_options(turns) is None

    turns.append(
        ConversationTurn(
            role="assistant",
            text="Continue?",
            hints=TurnHints(options=["Continue", "Add another platform"], option_kind="single_select"),
        )
    )
    parsed = latest_options(turns)
    assert parsed is not None
    assert parsed.choices == ["Continue", "Add another platform"]


def test_template_hint_suppresses_options():
    turns = [
        ConversationTurn(
            role="assistant",
            text="What LinkedIn actions do you want? Please provide the connection note first.",
            hints=TurnHints(prompt_kind="template"),
        )
    ]
    assert latest_options(turns) is None


def test_normalize_answer():
    assert normalize_answer(None) == []
    assert normalize_answer("  LinkedIn ") == ["LinkedIn"]
    assert normalize_answer(["Email", "Email", " ", "Voice Agent"]) == ["Email", "Voice Agent"]
    assert normalize_answer("LinkedIn, Email") == ["LinkedIn, Email"]
