import sys
from pathlib import Path

import pytest

sys.path.append(str(Path(__file__).resolve().parents[1]))

from onboarding import catalog
from onboarding.dependencies import (
    ActionDependencyRule,
    actions_to_auto_select,
    actions_to_remove,
    check_acyclic,
    default_variant,
    needs_template,
    satisfied,
    toggle_action,
)
from onboarding.errors import DependencyCycleError

MESSAGE = "Send message (after accepted)"
CONNECT = "Send connection request (without message)"
CONNECT_NOTE = "Send connection request (with message)"


def test_message_after_accepted_pulls_in_connection_request():
    labels = catalog.action_labels("linkedin")
    result = toggle_action("linkedin", MESSAGE, [], options=labels)

    assert result.selected == [MESSAGE, CONNECT]
    assert result.added == [MESSAGE, CONNECT]
    assert result.warnings == [
        f'"{MESSAGE}" requires "{CONNECT}", so I\'ve selected it for you as well.'
    ]
    assert result.needs_template is True


def test_requirement_already_met_by_other_variant():
    result = toggle_action("linkedin", MESSAGE, [CONNECT_NOTE])

    assert result.selected == [CONNECT_NOTE, MESSAGE]
    assert result.warnings == []


def test_warning_is_only_shown_once_per_pair():
    first = toggle_action("linkedin", MESSAGE, [])
    second = toggle_action("linkedin", MESSAGE, [], warned=set(first.warned_keys))

    assert second.selected == first.selected
    assert second.warnings == []


def test_deselecting_requirement_removes_dependents():
    result = toggle_action("linkedin", CONNECT, [MESSAGE, CONNECT, "Visit profile"])

    assert result.selected == ["Visit profile"]
    assert set(result.removed) == {MESSAGE, CONNECT}


def test_deselecting_dependent_keeps_requirement():
    result = toggle_action("linkedin", MESSAGE, [MESSAGE, CONNECT])

    assert result.selected == [CONNECT]


def test_selecting_variant_replaces_sibling():
    result = toggle_action("linkedin", CONNECT_NOTE, [CONNECT, MESSAGE])

    assert result.selected == [MESSAGE, CONNECT_NOTE]
    assert result.removed == [CONNECT]
    assert result.needs_template is True


def test_family_name_picks_default_variant_then_toggles_off():
    on = toggle_action("linkedin", catalog.CONNECTION_FAMILY, [])
    assert on.selected == [CONNECT]

    off = toggle_action("linkedin", catalog.CONNECTION_FAMILY, on.selected)
    assert off.selected == []


def test_default_variant_prefers_on_screen_spelling():
    options = [label.upper() for label in catalog.action_labels("linkedin")]
    assert default_variant("linkedin", catalog.CONNECTION_FAMILY, options) == CONNECT.upper()


def test_plain_requirements_on_other_platforms():
    assert actions_to_auto_select("email", "Email follow-up sequence", []) == ["Send email"]
    assert actions_to_auto_select("email", "Email follow-up sequence", ["Send email"]) == []
    assert actions_to_auto_select("whatsapp", "Follow-up message", []) == ["Send 1:1 message"]


def test_satisfied_accepts_family_members():
    assert satisfied("linkedin", catalog.CONNECTION_FAMILY, [CONNECT_NOTE])
    assert not satisfied("linkedin", catalog.CONNECTION_FAMILY, ["Visit profile"])


def test_cascade_is_one_level_unless_transitive():
    rules = [
        ActionDependencyRule("demo", "B", ("A",)),
        ActionDependencyRule("demo", "C", ("B",)),
    ]
    selected = ["A", "B", "C"]

    assert actions_to_remove("demo", "A", selected, rules=rules) == ["B"]
    assert actions_to_remove("demo", "A", selected, transitive=True, rules=rules) == ["B", "C"]


def test_cycle_in_rules_is_rejected():
    rules = [
        ActionDependencyRule("demo", "A", ("B",)),
        ActionDependencyRule("demo", "B", ("A",)),
    ]
    with pytest.raises(DependencyCycleError):
        check_acyclic(rules)


def test_needs_template_markers():
    assert needs_template("Send connection request (with message)")
    assert needs_template(MESSAGE)
    assert not needs_template("Visit profile")
