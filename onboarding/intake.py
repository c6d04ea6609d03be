"""Inbound lead intake and the duplicate-lead checkpoint."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, Field

from onboarding.catalog import Option
from onboarding.collaborators import BookingService, DuplicateMatch, LeadStore, SaveLeadsResult
from onboarding.errors import CollaboratorError

logger = logging.getLogger("outreach.intake")


class Resolution(str, Enum):
    SKIP_DUPLICATES = "skip_duplicates"
    INCLUDE_ALL = "include_all"
    SCHEDULE_FOLLOWUP = "schedule_followup"
    CONFIRM_CANCEL = "confirm_cancel"
    KEEP_BOOKINGS = "keep_bookings"


class DuplicateCheckpoint(BaseModel):
    """A lead batch held back until the user decides what to do with duplicates."""

    leads: List[Dict[str, Any]]
    duplicates: List[DuplicateMatch] = Field(default_factory=list)
    new_leads_count: int = 0
    awaiting_confirmation: bool = False
    resolved: bool = False
    resolution: Optional[Resolution] = None

    def menu(self) -> List[Option]:
        if self.awaiting_confirmation:
            return [
                Option("Yes, cancel existing bookings", Resolution.CONFIRM_CANCEL.value),
                Option("No, go back", Resolution.KEEP_BOOKINGS.value),
            ]
        return [
            Option(f"Skip duplicates (upload {self.new_leads_count} new leads)", Resolution.SKIP_DUPLICATES.value),
            Option(f"Include all {len(self.leads)} leads", Resolution.INCLUDE_ALL.value),
            Option("Schedule immediate follow-up", Resolution.SCHEDULE_FOLLOWUP.value),
        ]

    def prompt(self) -> str:
        if self.awaiting_confirmation:
            bookings = sum(len(match.bookings) for match in self.duplicates)
            return (
                f"Scheduling an immediate follow-up cancels {bookings} existing booking(s) "
                "for the duplicate leads. Are you sure?"
            )
        return (
            f"I found {len(self.duplicates)} lead(s) that already exist and {self.new_leads_count} new lead(s). "
            "How would you like to handle the duplicates?"
        )

    def choice(self, reply: str) -> Optional[Resolution]:
        needle = (reply or "").strip().casefold()
        for option in self.menu():
            if needle in (option.value, option.label.casefold()):
                return Resolution(option.value)
        return None

    def existing_lead_ids(self) -> List[str]:
        ids: List[str] = []
        for match in self.duplicates:
            lead_id = match.existing_lead.get("id")
            if lead_id is not None and str(lead_id) not in ids:
                ids.append(str(lead_id))
        return ids


@dataclass
class CheckpointOutcome:
    message: str
    options: List[Option] = field(default_factory=list)
    done: bool = False
    result: Optional[SaveLeadsResult] = None


async def submit_leads(
    leads: List[Dict[str, Any]], store: LeadStore
) -> Tuple[SaveLeadsResult, Optional[DuplicateCheckpoint]]:
    """Save ``leads``; return a checkpoint when the store reports duplicates."""
    result = await store.save_leads(leads, skip_duplicates=False)
    data = result.data
    if data.duplicates_found and data.duplicates:
        logger.info("Duplicate checkpoint opened: %s duplicates, %s new", len(data.duplicates), data.new_leads_count)
        checkpoint = DuplicateCheckpoint(
            leads=[dict(lead) for lead in leads],
            duplicates=list(data.duplicates),
            new_leads_count=data.new_leads_count,
        )
        return result, checkpoint
    return result, None


async def resolve_checkpoint(
    checkpoint: DuplicateCheckpoint,
    choice: Resolution,
    *,
    store: LeadStore,
    bookings: Optional[BookingService] = None,
) -> CheckpointOutcome:
    """Apply one user decision to ``checkpoint``.

    The original batch is resubmitted at most once per checkpoint; further
    choices after that are acknowledged without another save.
    """
    if checkpoint.resolved:
        return CheckpointOutcome("Those leads have already been submitted.", done=True)

    if checkpoint.awaiting_confirmation:
        if choice == Resolution.KEEP_BOOKINGS:
            checkpoint.awaiting_confirmation = False
            return CheckpointOutcome(checkpoint.prompt(), checkpoint.menu())
        if choice != Resolution.CONFIRM_CANCEL:
            return CheckpointOutcome(checkpoint.prompt(), checkpoint.menu())
        lead_ids = checkpoint.existing_lead_ids()
        if lead_ids:
            if bookings is None:
                raise CollaboratorError("No booking service available to cancel existing bookings")
            cancelled = await bookings.cancel_bookings(lead_ids)
            logger.info("Cancelled %s bookings before follow-up", cancelled.data.cancelled_bookings)
        return await _resubmit(checkpoint, Resolution.SCHEDULE_FOLLOWUP, store, skip_duplicates=False)

    if choice == Resolution.SCHEDULE_FOLLOWUP:
        checkpoint.awaiting_confirmation = True
        return CheckpointOutcome(checkpoint.prompt(), checkpoint.menu())
    if choice == Resolution.SKIP_DUPLICATES:
        return await _resubmit(checkpoint, choice, store, skip_duplicates=True)
    if choice == Resolution.INCLUDE_ALL:
        return await _resubmit(checkpoint, choice, store, skip_duplicates=False)
    return CheckpointOutcome(checkpoint.prompt(), checkpoint.menu())


async def _resubmit(
    checkpoint: DuplicateCheckpoint,
    resolution: Resolution,
    store: LeadStore,
    *,
    skip_duplicates: bool,
) -> CheckpointOutcome:
    result = await store.save_leads(checkpoint.leads, skip_duplicates=skip_duplicates)
    checkpoint.resolved = True
    checkpoint.resolution = resolution
    data = result.data
    message = f"Saved {data.saved} of {data.total} leads."
    if data.skipped_duplicates:
        message += f" Skipped {data.skipped_duplicates} duplicate(s)."
    return CheckpointOutcome(message, done=True, result=result)


__all__ = [
    "CheckpointOutcome",
    "DuplicateCheckpoint",
    "Resolution",
    "resolve_checkpoint",
    "submit_leads",
]
