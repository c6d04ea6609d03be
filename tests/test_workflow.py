import sys
from pathlib import Path

import pytest

sys.path.append(str(Path(__file__).resolve().parents[1]))

from onboarding.errors import GraphInvariantError
from onboarding.workflow import (
    END,
    START,
    NodeKind,
    WorkflowGraph,
    append_step,
    apply_workflow_updates,
    parse_delay,
    regenerate,
)


def linkedin_email_answers():
    return {
        "platforms": ["linkedin", "email"],
        "features_linkedin": ["linkedin_message", "linkedin_visit", "linkedin_connect"],
        "features_email": ["email_send"],
        "linkedin_message.template": ["Thanks for connecting, {{first_name}}!"],
        "linkedin_connect.delay": ["days"],
        "linkedin_connect.delay_amount": ["2"],
        "linkedin_connect.condition": ["if_connected"],
        "linkedin_connect.condition_false": ["linkedin_follow"],
        "email_send.variables": ["first_name", "none"],
    }


def test_empty_graph_is_start_to_end():
    graph = WorkflowGraph.empty()
    graph.validate_structure()

    assert [n.id for n in graph.nodes] == [START, END]
    assert [(e.source, e.target) for e in graph.edges] == [(START, END)]


def test_regenerate_orders_by_platform_then_rank():
    graph = regenerate(linkedin_email_answers())
    graph.validate_structure()

    assert [n.id for n in graph.main_path()] == [
        START,
        "linkedin:linkedin_visit",
        "linkedin:linkedin_connect",
        "linkedin_connect:delay",
        "linkedin_connect:condition",
        "linkedin:linkedin_message",
        "email:email_send",
        END,
    ]


def test_regenerate_is_deterministic():
    first = regenerate(linkedin_email_answers(), cursor=2)
    second = regenerate(linkedin_email_answers(), cursor=2)

    assert first.to_payload() == second.to_payload()


def test_delay_and_condition_nodes():
    graph = regenerate(linkedin_email_answers())

    delay = graph.node("linkedin_connect:delay")
    assert delay is not None
    assert delay.kind == NodeKind.DELAY
    assert delay.configuration == {"unit": "days", "amount": 2}
    assert delay.title == "Wait 2 days"

    condition = graph.node("linkedin_connect:condition")
    assert condition is not None
    assert condition.configuration["condition"] == "connected"
    branches = {e.branch_label: e.target for e in graph.outgoing(condition.id)}
    assert branches["true"] == "linkedin:linkedin_message"
    assert branches["false"] == "linkedin_connect:condition:false:linkedin_follow"
    assert [e.target for e in graph.outgoing(branches["false"])] == [END]


def test_action_configuration_carries_answers():
    graph = regenerate(linkedin_email_answers())

    message = graph.node("linkedin:linkedin_message")
    assert message.configuration["template"] == "Thanks for connecting, {{first_name}}!"
    email = graph.node("email:email_send")
    assert email.configuration["variables"] == ["first_name"]


def test_cursor_marks_confirmed_prefix():
    graph = regenerate(linkedin_email_answers(), cursor=2)
    confirmed = {n.id: n.confirmed for n in graph.nodes if n.kind == NodeKind.CHANNEL_ACTION and n.feature}

    assert confirmed["linkedin:linkedin_visit"] is True
    assert confirmed["linkedin:linkedin_connect"] is True
    assert confirmed["linkedin:linkedin_message"] is False
    assert confirmed["email:email_send"] is False


def test_unknown_platforms_and_features_are_skipped():
    graph = regenerate({"platforms": ["fax", "email"], "features_email": ["email_send", "carrier_pigeon"]})
    graph.validate_structure()

    assert [n.id for n in graph.steps()] == ["email:email_send"]


def test_append_step_relinks_tail_and_leaves_input_untouched():
    graph = WorkflowGraph.empty()
    updated = append_step(graph, {"type": "delay", "config": {"unit": "hours", "amount": 3}, "id": "wait"})
    updated = append_step(updated, {"type": "webhook", "id": "ping", "title": "Notify CRM"})
    updated.validate_structure()

    assert [n.id for n in graph.nodes] == [START, END]
    assert [n.id for n in updated.main_path()] == [START, "wait", "ping", END]
    assert updated.node("ping").configuration["step_type"] == "webhook"
    assert updated.tail == "ping"


def test_append_after_condition_keeps_true_label():
    graph = append_step(WorkflowGraph.empty(), {"type": "condition", "id": "check"})
    graph = append_step(graph, {"type": "email_send", "id": "mail"})
    graph.validate_structure()

    labels = {e.target: e.branch_label for e in graph.outgoing("check")}
    assert labels == {"mail": "true", END: "false"}


def test_append_step_deduplicates_ids():
    graph = append_step(WorkflowGraph.empty(), {"type": "email_send", "id": "mail"})
    graph = append_step(graph, {"type": "email_send", "id": "mail"})

    assert [n.id for n in graph.steps()] == ["mail", "mail~2"]


def test_append_start_node_is_rejected():
    with pytest.raises(GraphInvariantError):
        append_step(WorkflowGraph.empty(), {"type": "start"})


def test_validate_structure_catches_dangling_nodes():
    graph = append_step(WorkflowGraph.empty(), {"type": "email_send", "id": "mail"})
    graph.edges = [e for e in graph.edges if e.target != "mail"]

    with pytest.raises(GraphInvariantError):
        graph.validate_structure()


def test_service_updates_survive_regeneration():
    original = linkedin_email_answers()
    answers = apply_workflow_updates(
        original,
        [
            {"action": "add", "node": {"id": "crm", "type": "webhook", "title": "Push to CRM"}},
            {"action": "update", "node": {"id": "email:email_send", "config": {"subject": "Hello"}}},
            {"action": "remove", "nodeId": "linkedin_connect:condition"},
            {"action": "explode"},
        ],
    )
    graph = regenerate(answers)
    graph.validate_structure()

    ids = [n.id for n in graph.main_path()]
    assert "linkedin_connect:condition" not in ids
    assert graph.node("linkedin_connect:condition:false:linkedin_follow") is None
    assert ids[-2:] == ["crm", END]
    assert graph.node("email:email_send").configuration["subject"] == "Hello"
    assert "extra_steps" not in original


def test_removing_unknown_node_is_a_no_op():
    answers = apply_workflow_updates(
        {"platforms": ["email"], "features_email": ["email_send"]},
        [{"action": "remove", "nodeId": "nope"}],
    )
    graph = regenerate(answers)

    assert [n.id for n in graph.steps()] == ["email:email_send"]


@pytest.mark.parametrize(
    "text, unit, expected",
    [
        ("2 days", "hours", (2, "days")),
        ("wait 5 hours", "days", (5, "hours")),
        ("3", "days", (3, "days")),
        ("soon", "hours", (1, "hours")),
    ],
)
def test_parse_delay(text, unit, expected):
    assert parse_delay(text, default_unit=unit) == expected
