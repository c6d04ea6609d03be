"""Exception types raised by the onboarding engine."""

from __future__ import annotations


class OnboardingError(RuntimeError):
    """Base class for engine failures."""


class GenerationServiceError(OnboardingError):
    """The external text-generation call failed or returned garbage."""


class CollaboratorError(OnboardingError):
    """A lead, booking or campaign collaborator call failed."""


class CampaignLaunchError(OnboardingError):
    """Campaign creation or start failed after configuration was complete."""


class FlowCancelled(OnboardingError):
    """An in-flight delegated call was aborted by a session reset."""


class DependencyCycleError(OnboardingError):
    """An action transitively requires itself."""


class GraphInvariantError(OnboardingError):
    """A workflow graph is not a single start-to-end path with binary conditions."""


__all__ = [
    "CampaignLaunchError",
    "CollaboratorError",
    "DependencyCycleError",
    "FlowCancelled",
    "GenerationServiceError",
    "GraphInvariantError",
    "OnboardingError",
]
