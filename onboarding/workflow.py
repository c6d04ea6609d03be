"""Workflow graph model and the assembler that derives it from an answer map."""

from __future__ import annotations

import copy
import logging
import re
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field

from onboarding import catalog
from onboarding.errors import GraphInvariantError

logger = logging.getLogger("outreach.workflow")

START = "start"
END = "end"

_DELAY_RE = re.compile(r"(\d+)\s*(hour|day|minute)s?", re.IGNORECASE)
_NUMBER_RE = re.compile(r"\d+")


class NodeKind(str, Enum):
    START = "start"
    END = "end"
    CHANNEL_ACTION = "channel_action"
    DELAY = "delay"
    CONDITION = "condition"


class WorkflowNode(BaseModel):
    id: str
    kind: NodeKind
    title: str = ""
    platform: Optional[str] = None
    feature: Optional[str] = None
    configuration: Dict[str, Any] = Field(default_factory=dict)
    confirmed: bool = False


class WorkflowEdge(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    source: str = Field(alias="from")
    target: str = Field(alias="to")
    branch_label: Optional[str] = Field(default=None, alias="branchLabel")


class WorkflowGraph(BaseModel):
    """Nodes and edges of one automation, plus the node the main path ends on."""

    nodes: List[WorkflowNode] = Field(default_factory=list)
    edges: List[WorkflowEdge] = Field(default_factory=list)
    tail: str = START

    @classmethod
    def empty(cls) -> "WorkflowGraph":
        return cls(
            nodes=[
                WorkflowNode(id=START, kind=NodeKind.START, title="Start"),
                WorkflowNode(id=END, kind=NodeKind.END, title="End"),
            ],
            edges=[_edge(START, END)],
        )

    def node(self, node_id: str) -> Optional[WorkflowNode]:
        for node in self.nodes:
            if node.id == node_id:
                return node
        return None

    def outgoing(self, node_id: str) -> List[WorkflowEdge]:
        return [edge for edge in self.edges if edge.source == node_id]

    def incoming(self, node_id: str) -> List[WorkflowEdge]:
        return [edge for edge in self.edges if edge.target == node_id]

    def steps(self) -> List[WorkflowNode]:
        return [n for n in self.nodes if n.kind not in (NodeKind.START, NodeKind.END)]

    def main_path(self) -> List[WorkflowNode]:
        """Nodes from start to end following unlabelled and ``true`` edges."""
        path: List[WorkflowNode] = []
        current = self.node(START)
        seen = set()
        while current is not None and current.id not in seen:
            seen.add(current.id)
            path.append(current)
            follow = [e for e in self.outgoing(current.id) if e.branch_label in (None, "true")]
            current = self.node(follow[0].target) if follow else None
        return path

    def validate_structure(self) -> None:
        """Raise :class:`GraphInvariantError` if the graph is not a well-formed path."""
        ids = [n.id for n in self.nodes]
        if len(ids) != len(set(ids)):
            raise GraphInvariantError("duplicate node ids")
        if sum(1 for n in self.nodes if n.kind == NodeKind.START) != 1:
            raise GraphInvariantError("exactly one start node required")
        if sum(1 for n in self.nodes if n.kind == NodeKind.END) != 1:
            raise GraphInvariantError("exactly one end node required")
        for node in self.nodes:
            inbound = len(self.incoming(node.id))
            outbound = self.outgoing(node.id)
            if node.kind == NodeKind.START:
                expected_in, expected_out = 0, 1
            elif node.kind == NodeKind.END:
                if inbound < 1 or outbound:
                    raise GraphInvariantError("end must have incoming edges and no outgoing edges")
                continue
            elif node.kind == NodeKind.CONDITION:
                expected_in, expected_out = 1, 2
                labels = sorted(e.branch_label or "" for e in outbound)
                if labels != ["false", "true"]:
                    raise GraphInvariantError(f"condition {node.id} needs true and false branches")
            else:
                expected_in, expected_out = 1, 1
            if inbound != expected_in or len(outbound) != expected_out:
                raise GraphInvariantError(
                    f"{node.id}: in={inbound} out={len(outbound)}, expected {expected_in}/{expected_out}"
                )
        reachable = {START}
        frontier = [START]
        while frontier:
            for edge in self.outgoing(frontier.pop()):
                if edge.target not in reachable:
                    reachable.add(edge.target)
                    frontier.append(edge.target)
        if reachable != set(ids):
            raise GraphInvariantError(f"unreachable nodes: {sorted(set(ids) - reachable)}")

    def to_payload(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


def _edge(source: str, target: str, label: Optional[str] = None) -> WorkflowEdge:
    edge_id = f"{source}->{target}" + (f":{label}" if label else "")
    return WorkflowEdge(id=edge_id, source=source, target=target, branch_label=label)


def _unique_id(graph: WorkflowGraph, wanted: str) -> str:
    if graph.node(wanted) is None:
        return wanted
    suffix = 2
    while graph.node(f"{wanted}~{suffix}") is not None:
        suffix += 1
    return f"{wanted}~{suffix}"


def _coerce_node(graph: WorkflowGraph, step: Union[WorkflowNode, Mapping[str, Any]]) -> WorkflowNode:
    if isinstance(step, WorkflowNode):
        node = step.model_copy(deep=True)
    else:
        raw_kind = str(step.get("kind") or step.get("type") or NodeKind.CHANNEL_ACTION.value)
        configuration = dict(step.get("configuration") or step.get("config") or {})
        if raw_kind in {k.value for k in NodeKind}:
            kind = NodeKind(raw_kind)
        else:
            kind = NodeKind.CHANNEL_ACTION
            configuration.setdefault("step_type", raw_kind)
        node = WorkflowNode(
            id=str(step.get("id") or f"step:{len(graph.nodes) - 1}"),
            kind=kind,
            title=str(step.get("title") or raw_kind),
            platform=step.get("platform") or step.get("channel"),
            configuration=configuration,
        )
    if node.kind in (NodeKind.START, NodeKind.END):
        raise GraphInvariantError(f"cannot append a {node.kind.value} node")
    node.id = _unique_id(graph, node.id)
    return node


def append_step(graph: WorkflowGraph, step: Union[WorkflowNode, Mapping[str, Any]]) -> WorkflowGraph:
    """Return a copy of ``graph`` with ``step`` linked after the current tail.

    The tail's edge into ``end`` is detached and re-attached after the new node,
    keeping whatever branch label it carried.
    """
    result = graph.model_copy(deep=True)
    node = _coerce_node(result, step)
    into_end = [
        e for e in result.outgoing(result.tail) if e.target == END and e.branch_label in (None, "true")
    ]
    label = into_end[0].branch_label if into_end else None
    result.edges = [e for e in result.edges if not any(e is d for d in into_end)]
    result.nodes.insert(len(result.nodes) - 1, node)
    result.edges.append(_edge(result.tail, node.id, label))
    if node.kind == NodeKind.CONDITION:
        result.edges.append(_edge(node.id, END, "true"))
        result.edges.append(_edge(node.id, END, "false"))
    else:
        result.edges.append(_edge(node.id, END))
    result.tail = node.id
    return result


def parse_delay(text: str, default_unit: str = "hours") -> Tuple[int, str]:
    """Parse "2 days" style text into ``(amount, unit)``; bare numbers use ``default_unit``."""
    match = _DELAY_RE.search(text or "")
    if match:
        return max(int(match.group(1)), 1), match.group(2).lower() + "s"
    number = _NUMBER_RE.search(text or "")
    if number:
        return max(int(number.group(0)), 1), default_unit
    return 1, default_unit


def utility_key(feature_id: str, key: str) -> str:
    return f"{feature_id}.{key}"


def _answer(answers: Mapping[str, Any], feature_id: str, key: str) -> List[str]:
    value = answers.get(utility_key(feature_id, key))
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    return [str(v) for v in value]


def _first(values: Sequence[str]) -> Optional[str]:
    return values[0] if values else None


def _action_node(feature: catalog.Feature, answers: Mapping[str, Any], confirmed: bool) -> WorkflowNode:
    configuration: Dict[str, Any] = {"step_type": feature.step_type, "action": feature.label}
    template = _first(_answer(answers, feature.id, "template"))
    if template:
        configuration["template"] = template
    schedule = _first(_answer(answers, feature.id, "schedule"))
    if schedule:
        configuration["schedule"] = schedule
    variables = [v for v in _answer(answers, feature.id, "variables") if v != "none"]
    if variables:
        configuration["variables"] = variables
    return WorkflowNode(
        id=f"{feature.platform}:{feature.id}",
        kind=NodeKind.CHANNEL_ACTION,
        title=feature.label,
        platform=feature.platform,
        feature=feature.id,
        configuration=configuration,
        confirmed=confirmed,
    )


def _append_feature(
    graph: WorkflowGraph,
    feature: catalog.Feature,
    answers: Mapping[str, Any],
    confirmed: bool,
) -> WorkflowGraph:
    graph = append_step(graph, _action_node(feature, answers, confirmed))

    delay = _first(_answer(answers, feature.id, "delay"))
    if delay in ("hours", "days"):
        amount_text = _first(_answer(answers, feature.id, "delay_amount")) or "1"
        amount, unit = parse_delay(amount_text, default_unit=delay)
        graph = append_step(
            graph,
            WorkflowNode(
                id=f"{feature.id}:delay",
                kind=NodeKind.DELAY,
                title=f"Wait {amount} {unit}",
                platform=feature.platform,
                feature=feature.id,
                configuration={"unit": unit, "amount": amount},
            ),
        )

    condition = _first(_answer(answers, feature.id, "condition"))
    if condition and condition in catalog.CONDITION_PREDICATES:
        predicate, condition_type = catalog.CONDITION_PREDICATES[condition]
        node_id = f"{feature.id}:condition"
        graph = append_step(
            graph,
            WorkflowNode(
                id=node_id,
                kind=NodeKind.CONDITION,
                title=f"If {predicate}",
                platform=feature.platform,
                feature=feature.id,
                configuration={"predicate": predicate, "condition": condition_type},
            ),
        )
        graph = _attach_false_branch(graph, node_id, feature, _answer(answers, feature.id, "condition_false"))
    elif condition and condition != "none":
        logger.warning("Unknown condition %r for %s; skipped", condition, feature.id)
    return graph


def _attach_false_branch(
    graph: WorkflowGraph,
    condition_id: str,
    feature: catalog.Feature,
    choices: Sequence[str],
) -> WorkflowGraph:
    branch: List[catalog.Feature] = []
    for choice in choices:
        if choice in (catalog.STRAIGHT_TO_END.value, catalog.STRAIGHT_TO_END.label):
            continue
        target = catalog.lookup_feature(feature.platform, choice)
        if target is None:
            logger.warning("Unknown false-branch action %r for %s; skipped", choice, feature.id)
            continue
        if target not in branch:
            branch.append(target)
    if not branch:
        return graph

    graph.edges = [e for e in graph.edges if not (e.source == condition_id and e.branch_label == "false")]
    previous, label = condition_id, "false"
    for target in sorted(branch, key=lambda f: f.rank):
        node = WorkflowNode(
            id=_unique_id(graph, f"{condition_id}:false:{target.id}"),
            kind=NodeKind.CHANNEL_ACTION,
            title=target.label,
            platform=target.platform,
            feature=target.id,
            configuration={"step_type": target.step_type, "action": target.label, "branch": "false"},
        )
        graph.nodes.insert(len(graph.nodes) - 1, node)
        graph.edges.append(_edge(previous, node.id, label))
        previous, label = node.id, None
    graph.edges.append(_edge(previous, END))
    return graph


def _remove_node(graph: WorkflowGraph, node_id: str) -> WorkflowGraph:
    node = graph.node(node_id)
    if node is None:
        return graph
    if node.kind in (NodeKind.START, NodeKind.END):
        logger.warning("Cannot remove the %s node; skipped", node_id)
        return graph
    inbound = graph.incoming(node_id)
    outbound = graph.outgoing(node_id)
    successor = [e for e in outbound if e.branch_label in (None, "true")]
    dropped = {node_id}
    if node.kind == NodeKind.CONDITION:
        # the false branch only exists because of this condition
        frontier = [e.target for e in outbound if e.branch_label == "false" and e.target != END]
        while frontier:
            current = frontier.pop()
            dropped.add(current)
            frontier.extend(e.target for e in graph.outgoing(current) if e.target != END)
    graph.nodes = [n for n in graph.nodes if n.id not in dropped]
    graph.edges = [e for e in graph.edges if e.source not in dropped and e.target not in dropped]
    if inbound and successor:
        incoming = inbound[0]
        graph.edges.append(_edge(incoming.source, successor[0].target, incoming.branch_label))
    if graph.tail == node_id:
        graph.tail = inbound[0].source if inbound else START
    return graph


def regenerate(answers: Mapping[str, Any], cursor: int = 0) -> WorkflowGraph:
    """Build the whole graph from ``answers``.

    The result depends only on ``answers`` and ``cursor``: steps follow the
    platform selection order, and within a platform the catalog rank, no
    matter in which order features were picked. The first ``cursor``
    channel actions are marked confirmed.
    """
    graph = WorkflowGraph.empty()
    position = 0
    for platform in answers.get("platforms") or []:
        if platform not in catalog.PLATFORMS:
            logger.warning("Unknown platform %r in answers; skipped", platform)
            continue
        features: List[catalog.Feature] = []
        for token in answers.get(f"features_{platform}") or []:
            feature = catalog.lookup_feature(platform, token)
            if feature is None:
                logger.warning("Unknown feature %r for %s; skipped", token, platform)
                continue
            if feature not in features:
                features.append(feature)
        for feature in sorted(features, key=lambda f: f.rank):
            graph = _append_feature(graph, feature, answers, position < cursor)
            position += 1

    for step in answers.get("extra_steps") or []:
        try:
            graph = append_step(graph, step)
        except (GraphInvariantError, ValueError) as exc:
            logger.warning("Skipping invalid extra step %r: %s", step, exc)

    for node_id, patch in (answers.get("node_overrides") or {}).items():
        node = graph.node(node_id)
        if node is None:
            logger.warning("Override for unknown node %r; skipped", node_id)
            continue
        node.configuration.update(patch or {})

    for node_id in answers.get("removed_nodes") or []:
        graph = _remove_node(graph, node_id)
    return graph


def apply_workflow_updates(answers: Mapping[str, Any], updates: Iterable[Mapping[str, Any]]) -> Dict[str, Any]:
    """Record service-issued ``add``/``update``/``remove`` updates into a new answer map."""
    result = copy.deepcopy(dict(answers))
    extra: List[Dict[str, Any]] = list(result.get("extra_steps") or [])
    overrides: Dict[str, Dict[str, Any]] = dict(result.get("node_overrides") or {})
    removed: List[str] = list(result.get("removed_nodes") or [])
    for update in updates:
        action = update.get("action")
        node = dict(update.get("node") or {})
        node_id = node.get("id") or update.get("nodeId")
        if action == "add" and node:
            extra.append(node)
        elif action == "update" and node_id:
            patch = dict(node.get("config") or node.get("configuration") or {})
            overrides.setdefault(node_id, {}).update(patch)
        elif action == "remove" and node_id:
            extra = [step for step in extra if step.get("id") != node_id]
            if node_id not in removed:
                removed.append(node_id)
        else:
            logger.warning("Ignoring malformed workflow update %r", update)
    result["extra_steps"] = extra
    result["node_overrides"] = overrides
    result["removed_nodes"] = removed
    return result


__all__ = [
    "END",
    "NodeKind",
    "START",
    "WorkflowEdge",
    "WorkflowGraph",
    "WorkflowNode",
    "append_step",
    "apply_workflow_updates",
    "parse_delay",
    "regenerate",
    "utility_key",
]
