"""The onboarding state machine.

One :class:`FlowController` owns one :class:`OnboardingSession`. Every user
action runs as a single turn: the session is snapshotted, the handler for the
active state runs, and any failure restores the snapshot before a single
fallback message is appended.
"""

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, TypeVar, Union

from onboarding import catalog, dependencies
from onboarding.campaign import build_campaign_payload
from onboarding.classifier import ReplyKind, classify_reply, extract_platforms, is_profile_complete
from onboarding.collaborators import BookingService, CampaignService, LeadStore
from onboarding.errors import (
    CampaignLaunchError,
    CollaboratorError,
    FlowCancelled,
    GenerationServiceError,
)
from onboarding.generation import GenerationContext, GenerationReply, GenerationRequest, GenerationService
from onboarding.intake import Resolution, resolve_checkpoint, submit_leads
from onboarding.options import OptionKind, ParsedOptions, latest_options, normalize_answer, parse_options
from onboarding.session import (
    CancellationToken,
    ConversationTurn,
    FlowState,
    OnboardingSession,
    TurnHints,
)
from onboarding.workflow import WorkflowGraph, apply_workflow_updates, parse_delay, regenerate, utility_key

logger = logging.getLogger("outreach.flow")

T = TypeVar("T")

GREETING = "Hi! I'll help you set up your outreach automation. What would you like to do?"
FALLBACK_MESSAGE = "Sorry, something went wrong while processing that. Please try again."
LAUNCH_FAILURE = "I couldn't create your campaign ({error}). Please try again from the campaigns page."
HISTORY_LIMIT = 20

DEFAULT_INBOUND_LEADS_PER_DAY = 25
DEFAULT_CAMPAIGN_DAYS = 30
DEFAULT_INBOUND_CAMPAIGN_NAME = "Inbound Campaign"

_NUMBER = re.compile(r"\d+")

# answers here are stored verbatim, so "restart" inside them is content
FREE_TEXT_STATES = frozenset(
    {FlowState.INBOUND_CAMPAIGN_NAME, FlowState.PROFILING_MODE, FlowState.REQUIREMENTS_COLLECTION}
)
FREE_TEXT_KEYS = frozenset({"template", "delay_amount", "campaign_name", "profiling", "requirements"})


@dataclass
class TurnResult:
    """What the rendering layer needs after each user action."""

    accepted: bool
    state: FlowState
    turns: List[ConversationTurn]
    options: Optional[ParsedOptions]
    graph: WorkflowGraph
    session_id: str = ""

    def to_payload(self) -> Dict[str, Any]:
        return {
            "session_id": self.session_id,
            "accepted": self.accepted,
            "state": self.state.value,
            "turns": [turn.model_dump(mode="json") for turn in self.turns],
            "options": self.options.to_dict() if self.options else None,
            "graph": self.graph.to_payload(),
        }


def _parse_int(text: str, default: int) -> int:
    match = _NUMBER.search(text or "")
    if not match:
        return default
    return max(int(match.group(0)), 1)


class FlowController:
    def __init__(
        self,
        session: Optional[OnboardingSession] = None,
        *,
        generator: Optional[GenerationService] = None,
        leads: Optional[LeadStore] = None,
        bookings: Optional[BookingService] = None,
        campaigns: Optional[CampaignService] = None,
        pacing: float = 0.0,
        transitive: bool = False,
        default_leads_per_day: int = 10,
    ):
        self.session = session or OnboardingSession()
        self.generator = generator
        self.leads = leads
        self.bookings = bookings
        self.campaigns = campaigns
        self.pacing = pacing
        self.transitive = transitive
        self.default_leads_per_day = default_leads_per_day
        self._lock = asyncio.Lock()
        self._token = CancellationToken()
        self._turn_token = self._token
        self._handlers: Dict[FlowState, Callable[[List[str], str, Optional[str]], Awaitable[None]]] = {
            FlowState.INITIAL: self._on_initial,
            FlowState.PLATFORM_SELECTION: self._on_platform_selection,
            FlowState.PLATFORM_CONFIRMATION: self._on_platform_confirmation,
            FlowState.PLATFORM_FEATURES: self._on_platform_features,
            FlowState.FEATURE_UTILITIES: self._on_feature_utilities,
            FlowState.REQUIREMENTS_COLLECTION: self._on_requirements,
            FlowState.INBOUND_LEADS_PER_DAY: self._on_inbound_leads_per_day,
            FlowState.INBOUND_CAMPAIGN_DAYS: self._on_inbound_campaign_days,
            FlowState.INBOUND_CAMPAIGN_NAME: self._on_inbound_campaign_name,
            FlowState.PROFILING_MODE: self._on_profiling,
            FlowState.COMPLETE: self._on_complete,
        }

    # ------------------------------------------------------------------ public

    @property
    def busy(self) -> bool:
        return self._lock.locked()

    def result(self, accepted: bool = True) -> TurnResult:
        s = self.session
        return TurnResult(
            accepted=accepted,
            state=s.state,
            turns=list(s.turns),
            options=latest_options(s.turns),
            graph=s.graph,
            session_id=s.id,
        )

    def start(self) -> TurnResult:
        if not self.session.turns:
            self._greet()
        return self.result()

    def reset(self) -> TurnResult:
        """Discard the whole session and abort any call still in flight."""
        self._token.cancel()
        self.session.reset()
        self._token = CancellationToken()
        logger.info("Session %s reset", self.session.id)
        self._greet()
        return self.result()

    async def handle_reply(self, reply: Union[str, Sequence[str], None], question_key: Optional[str] = None) -> TurnResult:
        answer = normalize_answer(reply)
        text = ", ".join(answer)
        if (
            isinstance(reply, str)
            and not self._expects_free_text(question_key)
            and classify_reply(text, {ReplyKind.START_OVER}) is not None
        ):
            # honoured even while busy; the turn in flight is cancelled
            return self.reset()

        async def turn() -> None:
            self.session.add_turn("user", text)
            await self._dispatch(answer, text, question_key)

        return await self._run_turn(turn, user_text=text)

    async def toggle_action(self, action: str) -> TurnResult:
        """Live multi-select toggle for the platform whose actions are on screen."""

        async def turn() -> None:
            s = self.session
            platform = s.current_platform
            if s.state != FlowState.PLATFORM_FEATURES or platform is None:
                raise ValueError("actions can only be toggled while choosing platform actions")
            labels = catalog.action_labels(platform)
            outcome = dependencies.toggle_action(
                platform,
                action,
                s.action_drafts.get(platform, []),
                options=labels,
                warned=self._warned_keys(),
                transitive=self.transitive,
            )
            s.action_drafts[platform] = outcome.selected
            self._remember_warnings(outcome.warned_keys)
            if outcome.warnings:
                self._say(
                    " ".join(outcome.warnings),
                    options=labels,
                    option_kind=OptionKind.MULTI_SELECT,
                    prechecked=outcome.selected,
                    prompt_kind="platform_actions",
                    platform=platform,
                )

        return await self._run_turn(turn, user_text=None)

    async def submit_inbound_leads(self, leads: List[Dict[str, Any]]) -> TurnResult:
        async def turn() -> None:
            if self.leads is None:
                raise CollaboratorError("No lead service configured")
            result, checkpoint = await self._call(submit_leads(leads, self.leads))
            if checkpoint is not None:
                self.session.checkpoint = checkpoint
                self._say_checkpoint()
                return
            data = result.data
            self._say(f"Saved {data.saved} of {data.total} leads.")

        return await self._run_turn(turn, user_text=None)

    async def resolve_duplicates(self, choice: str) -> TurnResult:
        async def turn() -> None:
            await self._resolve(choice)

        return await self._run_turn(turn, user_text=None)

    async def launch(self) -> TurnResult:
        async def turn() -> None:
            if self.session.state != FlowState.COMPLETE:
                self._say("The workflow isn't finished yet, so there's nothing to launch.")
                return
            await self._launch()

        return await self._run_turn(turn, user_text=None)

    # ------------------------------------------------------------ turn control

    async def _run_turn(self, turn: Callable[[], Awaitable[None]], *, user_text: Optional[str]) -> TurnResult:
        if self._lock.locked():
            logger.info("Session %s busy; input ignored", self.session.id)
            return self.result(accepted=False)
        async with self._lock:
            snapshot = self.session.snapshot()
            self._turn_token = self._token
            try:
                await turn()
            except FlowCancelled:
                logger.info("Turn for session %s cancelled by reset", self.session.id)
            except Exception:
                logger.exception("Turn failed in state %s", self.session.state.value)
                self.session.restore(snapshot)
                if user_text is not None:
                    self.session.add_turn("user", user_text)
                self._say(FALLBACK_MESSAGE)
            return self.result()

    async def _call(self, awaitable: Awaitable[T]) -> T:
        return await self._turn_token.run(awaitable)

    async def _pause(self) -> None:
        if self.pacing > 0:
            await self._call(asyncio.sleep(self.pacing))

    def _expects_free_text(self, question_key: Optional[str]) -> bool:
        s = self.session
        if question_key in FREE_TEXT_KEYS or s.state in FREE_TEXT_STATES:
            return True
        if s.state != FlowState.FEATURE_UTILITIES:
            return False
        feature = catalog.lookup_feature(s.current_platform or "", s.current_feature or "")
        key = self._pending_utility()
        if feature is None or key is None:
            return False
        return catalog.utility_question(feature, key, s.utility_answers).free_text

    async def _dispatch(self, answer: List[str], text: str, question_key: Optional[str]) -> None:
        s = self.session
        if s.checkpoint is not None and not s.checkpoint.resolved and s.checkpoint.choice(text) is not None:
            await self._resolve(text)
            return
        await self._handlers[s.state](answer, text, question_key)

    # --------------------------------------------------------------- messages

    def _say(
        self,
        text: str,
        *,
        options: Optional[Sequence[str]] = None,
        option_kind: Optional[OptionKind] = None,
        prechecked: Optional[Sequence[str]] = None,
        prompt_kind: Optional[str] = None,
        platform: Optional[str] = None,
        question_key: Optional[str] = None,
        status: Optional[str] = None,
        missing: Optional[Sequence[str]] = None,
        workflow: Optional[Dict[str, Any]] = None,
        search_results: Optional[List[Any]] = None,
    ) -> ConversationTurn:
        hints = None
        if any((options, prompt_kind, question_key, status, missing, workflow, search_results)):
            hints = TurnHints(
                options=list(options or []),
                option_kind=(option_kind or OptionKind.SINGLE_SELECT).value if options else None,
                prechecked=list(prechecked or []),
                status=status,  # type: ignore[arg-type]
                missing=list(missing or []),
                workflow=workflow,
                search_results=search_results,
                prompt_kind=prompt_kind,
                platform=platform,
                question_key=question_key,
            )
        return self.session.add_turn("assistant", text, hints)

    def _greet(self) -> None:
        self._say(
            GREETING,
            options=[o.label for o in catalog.PATH_OPTIONS],
            prompt_kind="path",
            question_key="path",
        )

    def _ask_platforms(self) -> None:
        self._say(
            "Which platforms do you want to use? You can select multiple.",
            options=[o.label for o in catalog.platform_options()],
            option_kind=OptionKind.MULTI_SELECT,
            prompt_kind="platform_selection",
            question_key="platforms",
        )

    def _ask_confirmation(self, prefix: str = "") -> None:
        labels = ", ".join(catalog.platform_label(p) for p in self.session.selected_platforms)
        self._say(
            f"{prefix}Your selected platforms: {labels}. Would you like to add another platform, or continue?",
            options=["Continue", "Add another platform"],
            prompt_kind="platform_confirmation",
            question_key="platform_confirmation",
        )

    def _ask_features(self, prefix: str = "") -> None:
        s = self.session
        platform = s.current_platform
        if platform is None:
            return
        label = catalog.platform_label(platform)
        self._say(
            f"{prefix}What {label} actions do you want to include? "
            f"(Platform {s.platform_index + 1} of {len(s.selected_platforms)}, you can select multiple)",
            options=catalog.action_labels(platform),
            option_kind=OptionKind.MULTI_SELECT,
            prechecked=s.action_drafts.get(platform, []),
            prompt_kind="platform_actions",
            platform=platform,
            question_key=f"features_{platform}",
        )

    def _say_checkpoint(self) -> None:
        checkpoint = self.session.checkpoint
        if checkpoint is None:
            return
        self._say(
            checkpoint.prompt(),
            options=[o.label for o in checkpoint.menu()],
            prompt_kind="duplicates",
            question_key="duplicates",
        )

    # ------------------------------------------------------------- delegation

    def _context(self) -> GenerationContext:
        s = self.session
        return GenerationContext(
            selected_path=s.path,
            selected_category=s.intake_mode,
            selected_platforms=list(s.selected_platforms),
            platforms_confirmed=s.platforms_confirmed,
            platform_features={k: list(v) for k, v in s.platform_features.items()},
            current_platform=s.current_platform,
            current_feature=s.current_feature,
            workflow_nodes=[node.model_dump(mode="json") for node in s.graph.nodes],
            current_flow_state=s.state.value,
        )

    async def _delegate(self, text: str, question_key: Optional[str]) -> None:
        if self.generator is None:
            raise GenerationServiceError("No generation service configured")
        s = self.session
        history = [{"role": t.role, "content": t.text} for t in s.turns[:-1]][-HISTORY_LIMIT:]
        request = GenerationRequest(
            message=text,
            conversation_history=history,
            question_key=question_key,
            selected_path=s.path,
            extras={"cursor": s.cursor, "answers": s.answers},
            context=self._context(),
        )
        reply = await self._call(self.generator.generate(request))
        self._merge_reply(reply)

    def _merge_reply(self, reply: GenerationReply) -> None:
        s = self.session
        if reply.workflow_updates:
            s.answers = apply_workflow_updates(s.answers, reply.workflow_updates)
            s.graph = regenerate(s.answers, s.cursor)

        if reply.current_state:
            try:
                target = FlowState(reply.current_state)
            except ValueError:
                logger.warning("Ignoring unknown state %r from generation service", reply.current_state)
            else:
                needs_platform = target in (FlowState.PLATFORM_FEATURES, FlowState.FEATURE_UTILITIES)
                if not (needs_platform and s.current_platform is None):
                    s.state = target

        missing = reply.missing or []
        if reply.status == "needs_input" and missing and s.state != FlowState.REQUIREMENTS_COLLECTION:
            s.resume_state = s.state
            s.state = FlowState.REQUIREMENTS_COLLECTION
        elif reply.status == "ready" and s.state == FlowState.REQUIREMENTS_COLLECTION:
            s.state = s.resume_state or FlowState.INITIAL
            s.resume_state = None

        parsed = parse_options(reply.text)
        options = reply.options or (parsed.choices if parsed else None)
        kind = parsed.kind if parsed else None
        self._say(
            reply.text,
            options=options,
            option_kind=kind,
            prechecked=parsed.prechecked if parsed else None,
            prompt_kind=parsed.topic if parsed else None,
            platform=parsed.platform if parsed else None,
            status=reply.status if reply.status in ("needs_input", "ready") else None,
            missing=missing,
            workflow=reply.workflow,
            search_results=reply.search_results,
        )

        if s.state == FlowState.PROFILING_MODE and is_profile_complete(reply.text):
            logger.info("Profiling finished for session %s", s.id)
            s.state = FlowState.INITIAL
            self._greet()

    # --------------------------------------------------------------- handlers

    async def _on_initial(self, answer: List[str], text: str, question_key: Optional[str]) -> None:
        s = self.session
        option = catalog.match_option(catalog.PATH_OPTIONS, text)
        if option is not None:
            choice = option.value
        else:
            kind = classify_reply(
                text,
                {ReplyKind.PATH_INBOUND, ReplyKind.PATH_LEADS, ReplyKind.PATH_AUTOMATION, ReplyKind.PATH_PROFILING},
            )
            choice = {
                ReplyKind.PATH_INBOUND: "leads_inbound",
                ReplyKind.PATH_LEADS: "leads",
                ReplyKind.PATH_AUTOMATION: "automation",
                ReplyKind.PATH_PROFILING: "profiling",
            }.get(kind) if kind else None

        if choice is None:
            await self._delegate(text, question_key)
            return
        if choice == "profiling":
            s.path = "profiling"
            s.answers["path"] = "profiling"
            s.state = FlowState.PROFILING_MODE
            await self._delegate(text, "profiling")
            return

        s.path = "automation" if choice == "automation" else "leads"
        s.intake_mode = "inbound" if choice == "leads_inbound" else "outbound"
        s.answers["path"] = s.path
        s.answers["intake_mode"] = s.intake_mode
        s.state = FlowState.PLATFORM_SELECTION
        await self._pause()
        self._ask_platforms()

    async def _on_platform_selection(self, answer: List[str], text: str, question_key: Optional[str]) -> None:
        s = self.session
        platforms = extract_platforms(answer) or extract_platforms(text)
        if not platforms:
            if s.selected_platforms and classify_reply(text, {ReplyKind.CONFIRMATION}):
                s.state = FlowState.PLATFORM_CONFIRMATION
                self._ask_confirmation()
                return
            await self._delegate(text, question_key or "platforms")
            return
        for platform in platforms:
            s.select_platform(platform)
        s.state = FlowState.PLATFORM_CONFIRMATION
        await self._pause()
        self._ask_confirmation()

    async def _on_platform_confirmation(self, answer: List[str], text: str, question_key: Optional[str]) -> None:
        s = self.session
        kind = classify_reply(text, {ReplyKind.CONFIRMATION, ReplyKind.PLATFORM, ReplyKind.ADD_MORE})
        if kind == ReplyKind.CONFIRMATION:
            s.platforms_confirmed = True
            s.platform_index = 0
            s.feature_index = 0
            s.state = FlowState.PLATFORM_FEATURES
            await self._pause()
            self._ask_features()
        elif kind == ReplyKind.PLATFORM:
            for platform in extract_platforms(answer) or extract_platforms(text):
                s.select_platform(platform)
            self._ask_confirmation()
        elif kind == ReplyKind.ADD_MORE:
            s.state = FlowState.PLATFORM_SELECTION
            self._ask_platforms()
        else:
            self._ask_confirmation("I didn't quite get that. ")

    def _match_actions(self, platform: str, answer: List[str], text: str) -> List[str]:
        matched: List[str] = []
        for token in answer:
            feature = catalog.lookup_feature(platform, token)
            if feature is not None:
                matched.append(feature.label)
            elif dependencies.is_family(platform, token):
                matched.append(token)
        if matched:
            return matched
        lowered = text.casefold()
        for label in catalog.action_labels(platform):
            if label.casefold() in lowered:
                matched.append(label)
        for family in catalog.families(platform):
            variants = dependencies.family_variants(platform, family)
            if family.casefold() in lowered and not any(v in matched for v in variants):
                matched.append(family)
        return matched

    async def _on_platform_features(self, answer: List[str], text: str, question_key: Optional[str]) -> None:
        s = self.session
        platform = s.current_platform
        if platform is None:
            await self._finish_platforms()
            return
        labels = catalog.action_labels(platform)
        if answer:
            tokens = self._match_actions(platform, answer, text)
            if not tokens:
                await self._delegate(text, question_key or f"features_{platform}")
                return
            selected: List[str] = []
            warnings: List[str] = []
            # explicit picks land first so a requirement they already meet is never auto-added
            tokens.sort(key=lambda t: bool(dependencies.actions_to_auto_select(platform, t, [], labels)))
            for token in tokens:
                if dependencies.satisfied(platform, token, selected):
                    continue
                outcome = dependencies.toggle_action(
                    platform,
                    token,
                    selected,
                    options=labels,
                    warned=self._warned_keys(),
                    transitive=self.transitive,
                )
                selected = outcome.selected
                warnings.extend(outcome.warnings)
                self._remember_warnings(outcome.warned_keys)
        else:
            selected = list(s.action_drafts.get(platform, []))
            warnings = []
            if not selected:
                self._ask_features("Please pick at least one action. ")
                return

        features: List[catalog.Feature] = []
        for label in selected:
            feature = catalog.lookup_feature(platform, label)
            if feature is not None and feature not in features:
                features.append(feature)
        # questions follow graph order so the cursor lines up with confirmed nodes
        feature_ids = [f.id for f in sorted(features, key=lambda f: f.rank)]
        s.action_drafts[platform] = list(selected)
        s.platform_features[platform] = feature_ids
        s.answers[f"features_{platform}"] = list(feature_ids)
        s.feature_index = 0
        s.utility_answers = {}
        s.state = FlowState.FEATURE_UTILITIES
        s.graph = regenerate(s.answers, s.cursor)
        if warnings:
            self._say(" ".join(warnings))
        await self._pause()
        self._ask_utility()

    def _pending_utility(self) -> Optional[str]:
        s = self.session
        feature = catalog.lookup_feature(s.current_platform or "", s.current_feature or "")
        if feature is None:
            return None
        for key in catalog.utility_plan(feature, s.utility_answers):
            if key not in s.utility_answers:
                return key
        return None

    def _ask_utility(self, prefix: str = "") -> None:
        s = self.session
        feature = catalog.lookup_feature(s.current_platform or "", s.current_feature or "")
        key = self._pending_utility()
        if feature is None or key is None:
            return
        question = catalog.utility_question(feature, key, s.utility_answers)
        if question.free_text:
            self._say(
                f"{prefix}{feature.label}: {question.question}",
                prompt_kind="template" if key == "template" else "free_text",
                platform=feature.platform,
                question_key=key,
            )
            return
        if key == "delay":
            kind = OptionKind.DELAY
        elif key == "condition":
            kind = OptionKind.CONDITION
        elif question.multi_select:
            kind = OptionKind.MULTI_SELECT
        else:
            kind = OptionKind.SINGLE_SELECT
        self._say(
            f"{prefix}{feature.label}: {question.question}",
            options=[o.label for o in question.options],
            option_kind=kind,
            prompt_kind="utility",
            platform=feature.platform,
            question_key=key,
        )

    async def _on_feature_utilities(self, answer: List[str], text: str, question_key: Optional[str]) -> None:
        s = self.session
        feature = catalog.lookup_feature(s.current_platform or "", s.current_feature or "")
        key = self._pending_utility()
        if feature is None or key is None:
            await self._advance_feature()
            return
        question = catalog.utility_question(feature, key, s.utility_answers)
        if key == "template":
            if not text.strip():
                self._ask_utility("I need the text to use. ")
                return
            values = [text.strip()]
        elif question.free_text:
            unit = (s.utility_answers.get("delay") or ["hours"])[0]
            amount, _ = parse_delay(text, default_unit=unit)
            values = [str(amount)]
        else:
            values = []
            for token in answer:
                option = catalog.match_option(question.options, token)
                if option is not None and option.value not in values:
                    values.append(option.value)
            if not values:
                self._ask_utility("Please choose one of the options. ")
                return
            if not question.multi_select:
                values = values[:1]

        s.utility_answers[key] = values
        s.answers[utility_key(feature.id, key)] = list(values)
        s.graph = regenerate(s.answers, s.cursor)
        if self._pending_utility() is not None:
            await self._pause()
            self._ask_utility()
            return
        await self._advance_feature()

    async def _advance_feature(self) -> None:
        s = self.session
        s.cursor += 1
        s.utility_answers = {}
        s.feature_index += 1
        s.graph = regenerate(s.answers, s.cursor)
        await self._pause()
        if s.feature_index < len(s.current_features):
            self._ask_utility()
            return
        s.platform_index += 1
        s.feature_index = 0
        if s.current_platform is not None:
            s.state = FlowState.PLATFORM_FEATURES
            self._ask_features()
            return
        await self._finish_platforms()

    async def _finish_platforms(self) -> None:
        s = self.session
        if s.intake_mode == "inbound":
            s.state = FlowState.INBOUND_LEADS_PER_DAY
            self._say(
                "How many leads per day should this campaign contact?",
                options=["10", "25", "50", "100"],
                prompt_kind="leads_per_day",
                question_key="leads_per_day",
            )
            return
        s.answers.setdefault("leads_per_day", self.default_leads_per_day)
        self._complete()

    def _complete(self) -> None:
        s = self.session
        s.state = FlowState.COMPLETE
        steps = len(s.graph.steps())
        platforms = ", ".join(catalog.platform_label(p) for p in s.selected_platforms)
        self._say(
            f"Your workflow is ready with {steps} step(s) across {platforms}. "
            "Shall I create and start the campaign?",
            options=["Launch campaign"],
            prompt_kind="launch",
            question_key="launch",
            workflow=s.graph.to_payload(),
        )

    async def _on_inbound_leads_per_day(self, answer: List[str], text: str, question_key: Optional[str]) -> None:
        s = self.session
        s.answers["leads_per_day"] = _parse_int(text, DEFAULT_INBOUND_LEADS_PER_DAY)
        s.state = FlowState.INBOUND_CAMPAIGN_DAYS
        await self._pause()
        self._say(
            "How many days should this campaign run?",
            options=["7", "14", "30"],
            prompt_kind="campaign_days",
            question_key="campaign_days",
        )

    async def _on_inbound_campaign_days(self, answer: List[str], text: str, question_key: Optional[str]) -> None:
        s = self.session
        s.answers["campaign_days"] = _parse_int(text, DEFAULT_CAMPAIGN_DAYS)
        s.state = FlowState.INBOUND_CAMPAIGN_NAME
        await self._pause()
        self._say("What should we call this campaign?", prompt_kind="free_text", question_key="campaign_name")

    async def _on_inbound_campaign_name(self, answer: List[str], text: str, question_key: Optional[str]) -> None:
        s = self.session
        s.answers["campaign_name"] = text.strip() or DEFAULT_INBOUND_CAMPAIGN_NAME
        await self._pause()
        self._complete()

    async def _on_requirements(self, answer: List[str], text: str, question_key: Optional[str]) -> None:
        await self._delegate(text, "requirements")

    async def _on_profiling(self, answer: List[str], text: str, question_key: Optional[str]) -> None:
        await self._delegate(text, question_key or "profiling")

    async def _on_complete(self, answer: List[str], text: str, question_key: Optional[str]) -> None:
        if "launch" in text.casefold() or classify_reply(text, {ReplyKind.CONFIRMATION}) is not None:
            await self._launch()
            return
        await self._delegate(text, question_key)

    # ------------------------------------------------------ leads & campaigns

    async def _resolve(self, reply: str) -> None:
        s = self.session
        checkpoint = s.checkpoint
        if checkpoint is None:
            self._say("There are no duplicate leads waiting for a decision.")
            return
        choice = checkpoint.choice(reply)
        if choice is None and not checkpoint.resolved:
            self._say_checkpoint()
            return
        if self.leads is None:
            raise CollaboratorError("No lead service configured")
        outcome = await self._call(
            resolve_checkpoint(
                checkpoint,
                choice or Resolution.SKIP_DUPLICATES,
                store=self.leads,
                bookings=self.bookings,
            )
        )
        self._say(
            outcome.message,
            options=[o.label for o in outcome.options] or None,
            prompt_kind=None if outcome.done else "duplicates",
            question_key=None if outcome.done else "duplicates",
        )

    async def _launch(self) -> None:
        s = self.session
        if s.launched:
            self._say("Your campaign is already running.")
            return
        self._say("Perfect! Creating and starting your campaign now...")
        try:
            if self.campaigns is None:
                raise CampaignLaunchError("no campaign service configured")
            campaign_id = s.campaign_id
            if campaign_id is None:
                payload = build_campaign_payload(
                    s.graph,
                    name=s.answers.get("campaign_name"),
                    leads_per_day=int(s.answers.get("leads_per_day") or self.default_leads_per_day),
                    campaign_days=s.answers.get("campaign_days"),
                )
                created = await self._call(self.campaigns.create_campaign(payload))
                campaign_id = created.data.id
                if not created.success or not campaign_id:
                    raise CampaignLaunchError("the campaign service did not return a campaign")
                # kept even if starting fails so a retry never creates a second campaign
                s.campaign_id = campaign_id
            else:
                logger.info("Retrying start of existing campaign %s", campaign_id)
            started = await self._call(self.campaigns.start_campaign(campaign_id))
            if not started:
                raise CampaignLaunchError(f"campaign {campaign_id} could not be started")
        except (CampaignLaunchError, CollaboratorError) as exc:
            logger.exception("Campaign launch failed for session %s", s.id)
            self._say(LAUNCH_FAILURE.format(error=exc))
            return
        s.launched = True
        logger.info("Campaign %s started for session %s", campaign_id, s.id)
        self._say("Campaign created and started successfully!")

    # ---------------------------------------------------------------- helpers

    def _warned_keys(self) -> set:
        return {tuple(key.split("|")) for key in self.session.warnings_shown}

    def _remember_warnings(self, keys: Sequence[Sequence[str]]) -> None:
        for key in keys:
            joined = "|".join(key)
            if joined not in self.session.warnings_shown:
                self.session.warnings_shown.append(joined)


__all__ = ["FlowController", "TurnResult"]
