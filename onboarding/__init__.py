"""Conversational onboarding engine for outreach automation workflows."""

from onboarding.flow import FlowController, TurnResult
from onboarding.session import FlowState, OnboardingSession
from onboarding.workflow import WorkflowGraph, append_step, regenerate

__all__ = [
    "FlowController",
    "FlowState",
    "OnboardingSession",
    "TurnResult",
    "WorkflowGraph",
    "append_step",
    "regenerate",
]
