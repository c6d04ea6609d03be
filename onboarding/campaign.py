"""Translate a workflow graph into the campaign service's linear step list."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from onboarding.workflow import END, NodeKind, WorkflowGraph, WorkflowNode

DEFAULT_CAMPAIGN_NAME = "My Campaign"
DEFAULT_CONNECTION_MESSAGE = "Hi {{first_name}}, I'd love to connect with you."


def _delay_config(node: WorkflowNode) -> Dict[str, int]:
    amount = int(node.configuration.get("amount", 1))
    unit = str(node.configuration.get("unit", "hours"))
    return {
        "delayDays": amount if unit.startswith("day") else 0,
        "delayHours": amount if unit.startswith("hour") else 0,
        "delayMinutes": amount if unit.startswith("minute") else 0,
    }


def campaign_steps(graph: WorkflowGraph) -> List[Dict[str, Any]]:
    """Linear steps in graph order; condition steps point at their branch targets by order."""
    nodes = graph.steps()
    order = {node.id: index for index, node in enumerate(nodes)}
    steps: List[Dict[str, Any]] = []
    for index, node in enumerate(nodes):
        config: Dict[str, Any]
        if node.kind == NodeKind.DELAY:
            step_type = "delay"
            config = _delay_config(node)
            description = node.title
        elif node.kind == NodeKind.CONDITION:
            step_type = "condition"
            branches = {edge.branch_label: edge.target for edge in graph.outgoing(node.id)}
            config = {
                "condition": node.configuration.get("condition"),
                "conditionTrueStep": _target(order, branches.get("true")),
                "conditionFalseStep": _target(order, branches.get("false")),
            }
            description = node.title
        else:
            step_type = str(node.configuration.get("step_type") or node.kind.value)
            template = node.configuration.get("template")
            config = {key: value for key, value in node.configuration.items() if key not in ("step_type", "action")}
            if template:
                config["message"] = template
            description = template or node.title
        steps.append(
            {
                "type": step_type,
                "order": index,
                "title": node.title,
                "description": description,
                "config": config,
            }
        )
    return steps


def _target(order: Dict[str, int], node_id: Optional[str]) -> Optional[int]:
    if node_id is None or node_id == END:
        return None
    return order.get(node_id)


def connection_message(graph: WorkflowGraph) -> str:
    for node in graph.steps():
        if node.feature == "linkedin_connect_message" and node.configuration.get("template"):
            return str(node.configuration["template"])
    return DEFAULT_CONNECTION_MESSAGE


def build_campaign_payload(
    graph: WorkflowGraph,
    *,
    name: Optional[str] = None,
    leads_per_day: int = 10,
    campaign_days: Optional[int] = None,
) -> Dict[str, Any]:
    config: Dict[str, Any] = {
        "leads_per_day": leads_per_day,
        "lead_gen_offset": 0,
        "last_lead_gen_date": None,
        "connection_message": connection_message(graph),
    }
    if campaign_days:
        config["campaign_days"] = campaign_days
    return {
        "name": name or DEFAULT_CAMPAIGN_NAME,
        "status": "draft",
        "steps": campaign_steps(graph),
        "config": config,
        "leads_per_day": leads_per_day,
    }


__all__ = ["DEFAULT_CAMPAIGN_NAME", "DEFAULT_CONNECTION_MESSAGE", "build_campaign_payload", "campaign_steps"]
