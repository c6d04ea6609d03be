import sys
from pathlib import Path

sys.path.append(str(Path(__file__).resolve().parents[1]))

from onboarding.campaign import DEFAULT_CONNECTION_MESSAGE, build_campaign_payload, campaign_steps
from onboarding.workflow import WorkflowGraph, regenerate


def sample_graph():
    return regenerate(
        {
            "platforms": ["linkedin"],
            "features_linkedin": ["linkedin_connect_message", "linkedin_message"],
            "linkedin_connect_message.template": ["Hi {{first_name}}, let's connect."],
            "linkedin_connect_message.delay": ["days"],
            "linkedin_connect_message.delay_amount": ["3"],
            "linkedin_connect_message.condition": ["if_connected"],
            "linkedin_message.template": ["Thanks for accepting!"],
        }
    )


def test_steps_follow_graph_order():
    steps = campaign_steps(sample_graph())

    assert [s["type"] for s in steps] == ["linkedin_connect", "delay", "condition", "linkedin_message"]
    assert [s["order"] for s in steps] == [0, 1, 2, 3]


def test_delay_and_condition_configs():
    steps = campaign_steps(sample_graph())

    assert steps[1]["config"] == {"delayDays": 3, "delayHours": 0, "delayMinutes": 0}
    assert steps[2]["config"] == {
        "condition": "connected",
        "conditionTrueStep": 3,
        "conditionFalseStep": None,
    }


def test_action_template_becomes_message():
    steps = campaign_steps(sample_graph())

    assert steps[3]["config"]["message"] == "Thanks for accepting!"
    assert steps[3]["description"] == "Thanks for accepting!"
    assert "step_type" not in steps[3]["config"]


def test_payload_uses_connection_note_and_defaults():
    payload = build_campaign_payload(sample_graph(), leads_per_day=25, campaign_days=14)

    assert payload["name"] == "My Campaign"
    assert payload["status"] == "draft"
    assert payload["leads_per_day"] == 25
    assert payload["config"]["connection_message"] == "Hi {{first_name}}, let's connect."
    assert payload["config"]["campaign_days"] == 14
    assert len(payload["steps"]) == 4


def test_payload_for_empty_graph():
    payload = build_campaign_payload(WorkflowGraph.empty(), name="Spring push")

    assert payload["name"] == "Spring push"
    assert payload["steps"] == []
    assert payload["config"]["connection_message"] == DEFAULT_CONNECTION_MESSAGE
    assert "campaign_days" not in payload["config"]
