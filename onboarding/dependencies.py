"""Action dependency rules and the resolver that keeps selections consistent.

The resolver works on the action labels shown to the user. Every operation is
pure: callers pass the current selection and get a new one back.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Collection, Dict, Iterable, List, Optional, Sequence, Set, Tuple

from onboarding import catalog
from onboarding.errors import DependencyCycleError

logger = logging.getLogger("outreach.dependencies")

TEMPLATE_MARKERS = ("with message", "after accepted")


@dataclass(frozen=True)
class ActionDependencyRule:
    platform: str
    action: str
    requires: Tuple[str, ...] = ()
    variants_of: Optional[str] = None


def _variant_rules() -> List[ActionDependencyRule]:
    rules: List[ActionDependencyRule] = []
    for platform in catalog.PLATFORMS:
        for feature in catalog.features_for(platform):
            if feature.family:
                rules.append(ActionDependencyRule(platform, feature.label, variants_of=feature.family))
    return rules


DEPENDENCY_RULES: Tuple[ActionDependencyRule, ...] = tuple(
    _variant_rules()
    + [
        ActionDependencyRule("linkedin", "Send message (after accepted)", (catalog.CONNECTION_FAMILY,)),
        ActionDependencyRule("whatsapp", "Follow-up message", ("Send 1:1 message",)),
        ActionDependencyRule("email", "Email follow-up sequence", ("Send email",)),
    ]
)


@dataclass
class ToggleResult:
    """Outcome of toggling one action on or off."""

    selected: List[str]
    added: List[str] = field(default_factory=list)
    removed: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    warned_keys: List[Tuple[str, str, str]] = field(default_factory=list)
    needs_template: bool = False


def _same(left: str, right: str) -> bool:
    return left.strip().casefold() == right.strip().casefold()


def _contains(values: Iterable[str], needle: str) -> bool:
    return any(_same(value, needle) for value in values)


def rules_for(platform: str, rules: Sequence[ActionDependencyRule] = DEPENDENCY_RULES) -> List[ActionDependencyRule]:
    return [rule for rule in rules if rule.platform == platform]


def check_acyclic(rules: Sequence[ActionDependencyRule]) -> None:
    """Raise :class:`DependencyCycleError` if any action transitively requires itself."""
    for platform in sorted({rule.platform for rule in rules}):
        graph: Dict[str, Set[str]] = {}
        for rule in rules_for(platform, rules):
            graph.setdefault(rule.action.casefold(), set()).update(r.casefold() for r in rule.requires)
            if rule.variants_of:
                # requiring a family means requiring one of its members
                graph.setdefault(rule.variants_of.casefold(), set()).add(rule.action.casefold())
        visiting: Set[str] = set()
        done: Set[str] = set()

        def visit(node: str, trail: Tuple[str, ...]) -> None:
            if node in done:
                return
            if node in visiting:
                raise DependencyCycleError(f"{platform}: {' -> '.join(trail + (node,))}")
            visiting.add(node)
            for target in sorted(graph.get(node, ())):
                visit(target, trail + (node,))
            visiting.discard(node)
            done.add(node)

        for node in sorted(graph):
            visit(node, ())


def variant_family(platform: str, action: str) -> Optional[str]:
    """Return the family ``action`` belongs to, or the action itself if it names a family."""
    for rule in rules_for(platform):
        if rule.variants_of and _same(rule.action, action):
            return rule.variants_of
        if rule.variants_of and _same(rule.variants_of, action):
            return rule.variants_of
    return None


def is_family(platform: str, action: str) -> bool:
    return any(rule.variants_of and _same(rule.variants_of, action) for rule in rules_for(platform))


def family_variants(platform: str, family: str) -> List[str]:
    return [rule.action for rule in rules_for(platform) if rule.variants_of and _same(rule.variants_of, family)]


def default_variant(platform: str, family: str, options: Optional[Sequence[str]] = None) -> str:
    """Pick the concrete action that stands in for a bare ``family`` requirement."""
    members = catalog.family_members(platform, family)
    preferred = [m.label for m in members if m.default_variant] + [m.label for m in members]
    if options:
        for label in preferred:
            for option in options:
                if _same(option, label):
                    return option
    if preferred:
        return preferred[0]
    return family


def satisfied(platform: str, requirement: str, selected: Iterable[str]) -> bool:
    for action in selected:
        if _same(action, requirement):
            return True
        family = variant_family(platform, action)
        if family and _same(family, requirement):
            return True
    return False


def actions_to_auto_select(
    platform: str,
    candidate: str,
    selected: Sequence[str],
    options: Optional[Sequence[str]] = None,
) -> List[str]:
    """Actions that must be added when ``candidate`` is selected."""
    additions: List[str] = []
    for rule in rules_for(platform):
        if not _same(rule.action, candidate):
            continue
        for requirement in rule.requires:
            if satisfied(platform, requirement, list(selected) + additions):
                continue
            if is_family(platform, requirement):
                additions.append(default_variant(platform, requirement, options))
            else:
                additions.append(_on_screen(requirement, options))
    return additions


def actions_to_remove(
    platform: str,
    candidate: str,
    selected: Sequence[str],
    *,
    transitive: bool = False,
    rules: Sequence[ActionDependencyRule] = DEPENDENCY_RULES,
) -> List[str]:
    """Selected actions that depend on ``candidate`` and must go with it.

    Only direct dependents are returned unless ``transitive`` is set.
    """
    removals: List[str] = []
    frontier = [candidate]
    while frontier:
        current = frontier.pop(0)
        names = [current]
        family = variant_family(platform, current)
        if family:
            names.append(family)
        for rule in rules_for(platform, rules):
            if not any(_contains(names, requirement) for requirement in rule.requires):
                continue
            for action in selected:
                if _same(action, rule.action) and not _contains(removals, action) and not _same(action, candidate):
                    removals.append(action)
                    if transitive:
                        frontier.append(action)
    return removals


def needs_template(action: str) -> bool:
    label = action.casefold()
    return any(marker in label for marker in TEMPLATE_MARKERS)


def toggle_action(
    platform: str,
    action: str,
    selected: Sequence[str],
    *,
    options: Optional[Sequence[str]] = None,
    warned: Collection[Tuple[str, str, str]] = (),
    transitive: bool = False,
) -> ToggleResult:
    """Toggle ``action`` in ``selected`` applying variant and dependency rules."""
    current = list(selected)
    if is_family(platform, action):
        active = [a for a in current if variant_family(platform, a) and _same(variant_family(platform, a) or "", action)]
        if active:
            return _deselect(platform, active, current, transitive)
        action = default_variant(platform, action, options)

    if _contains(current, action):
        return _deselect(platform, [action], current, transitive)

    result = ToggleResult(selected=current)
    family = variant_family(platform, action)
    if family:
        siblings = [a for a in current if not _same(a, action) and _same(variant_family(platform, a) or "", family)]
        for sibling in siblings:
            current.remove(sibling)
            result.removed.append(sibling)

    current.append(action)
    result.added.append(action)
    for requirement in actions_to_auto_select(platform, action, current, options):
        current.append(requirement)
        result.added.append(requirement)
        key = (platform, action.casefold(), requirement.casefold())
        if key not in warned and key not in result.warned_keys:
            result.warned_keys.append(key)
            result.warnings.append(
                f'"{action}" requires "{requirement}", so I\'ve selected it for you as well.'
            )
            logger.info("Auto-selected %s for %s on %s", requirement, action, platform)

    result.needs_template = any(needs_template(a) for a in result.added)
    result.selected = current
    return result


def _deselect(platform: str, actions: List[str], current: List[str], transitive: bool) -> ToggleResult:
    result = ToggleResult(selected=current)
    for action in actions:
        for dependent in actions_to_remove(platform, action, current, transitive=transitive):
            if dependent not in result.removed:
                result.removed.append(dependent)
        result.removed.append(action)
    result.selected = [a for a in current if not _contains(result.removed, a)]
    return result


def _on_screen(label: str, options: Optional[Sequence[str]]) -> str:
    for option in options or ():
        if _same(option, label):
            return option
    return label


check_acyclic(DEPENDENCY_RULES)


__all__ = [
    "ActionDependencyRule",
    "DEPENDENCY_RULES",
    "ToggleResult",
    "actions_to_auto_select",
    "actions_to_remove",
    "check_acyclic",
    "default_variant",
    "family_variants",
    "is_family",
    "needs_template",
    "rules_for",
    "satisfied",
    "toggle_action",
    "variant_family",
]
