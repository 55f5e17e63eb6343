"""Completion orchestrator: drives one turn from request validation to the final event."""

import asyncio
from enum import Enum
from typing import Any, AsyncIterator, Dict, List, Optional, Union

from langchain_core.messages import BaseMessage
from pydantic import ValidationError

from agents.dispatcher import DispatchContext, ModelDispatcher, TargetRun
from agents.exceptions import ModelAccessError
from agents.mention_resolver import MentionCatalog, MentionResolver
from agents.stream_merger import StreamMerger
from api.exceptions import CompletionError, CompletionValidationError, ConversationForbiddenError, TargetAccessError
from api.models import ChunkType, CompletionChunk, CompletionRequest
from api.services.conversation_service import ConversationService
from api.services.finalization_service import FinalizationService
from api.services.streaming import StreamingService
from api.services.usage_service import UsageService
from database.catalog_store.catalog_manager import CatalogManager
from database.catalog_store.exceptions import CatalogStoreError
from database.conversation_store.exceptions import ConversationStoreError
from database.conversation_store.models.conversation import Conversation, DebateMetadata, DebateParticipant
from models.caller import Caller
from models.catalog import AppRef, ModelCatalog, ModelSpec
from models.events import EventKind, StreamEvent
from models.targets import ResolvedMentions, Target, TargetKind
from settings import Settings, settings
from utils.logging import logger

SAVE_FAILED_WARNING = "This conversation may not have been saved."


class TurnState(str, Enum):
    VALIDATING = "validating"
    RESOLVING_CONVERSATION = "resolving-conversation"
    RESOLVING_MENTIONS = "resolving-mentions"
    DISPATCHING = "dispatching"
    STREAMING = "streaming"
    PERSISTING = "persisting"
    FINALIZING = "finalizing"
    DONE = "done"
    ERRORED = "errored"


class TargetOutcome:
    """What one target produced during the turn, folded from its events."""

    def __init__(self, target: Target, run: Optional[TargetRun] = None):
        self.target = target
        self.run = run
        self.parts: List[str] = []
        self.error: Optional[str] = None
        self.finished = False

    def apply(self, event: StreamEvent) -> None:
        if event.kind == EventKind.TEXT_DELTA:
            self.parts.append(event.text)
        elif event.kind == EventKind.ERROR:
            self.error = event.payload.get("error") or "Unknown error"
            self.finished = True
        elif event.kind == EventKind.DONE:
            self.finished = True

    @property
    def text(self) -> str:
        return "".join(self.parts)

    @property
    def succeeded(self) -> bool:
        return self.finished and self.error is None

    @property
    def tool_results(self) -> list:
        return self.run.buffer.snapshot() if self.run is not None else []


class Turn:
    """State of one completion turn."""

    def __init__(self, request: CompletionRequest, caller: Caller):
        self.request = request
        self.caller = caller
        self.state = TurnState.VALIDATING
        self.conversation: Optional[Conversation] = None
        self.is_new_conversation = False
        self.mentions: Optional[ResolvedMentions] = None
        self.targets: List[Target] = []
        self.outcomes: Dict[str, TargetOutcome] = {}
        self.persisted = False

    @property
    def is_debate(self) -> bool:
        return len(self.targets) > 1

    @property
    def user_text(self) -> str:
        return self.request.last_message.content

    @property
    def prompt_text(self) -> str:
        """The user message as models see it: resolved mentions removed, unless nothing else is left."""
        if self.mentions is not None and self.mentions.cleaned_text.strip():
            return self.mentions.cleaned_text
        return self.user_text

    @property
    def should_persist(self) -> bool:
        """Logged-in callers and explicitly anonymous conversations are stored."""
        return self.caller.user_id is not None or self.request.is_anonymous


class CompletionService:
    """Runs completion turns.

    ``prepare`` covers validation and resolution and has no side effects, so the API can
    reject a request with a proper status code. ``stream`` then dispatches, streams,
    persists and finalizes, yielding client chunks as it goes.
    """

    def __init__(
        self,
        conversations: ConversationService,
        catalog: CatalogManager,
        dispatcher: ModelDispatcher,
        merger: Optional[StreamMerger] = None,
        finalizer: Optional[FinalizationService] = None,
        usage: Optional[UsageService] = None,
        resolver: Optional[MentionResolver] = None,
        model_catalog: Optional[ModelCatalog] = None,
        config: Optional[Settings] = None,
    ):
        self.conversations = conversations
        self.catalog = catalog
        self.dispatcher = dispatcher
        self.merger = merger or StreamMerger()
        self.finalizer = finalizer
        self.usage = usage or UsageService(catalog)
        self.resolver = resolver or MentionResolver()
        self.model_catalog = model_catalog or catalog.model_catalog
        self.config = config or settings

    async def run(self, payload: Union[CompletionRequest, Dict[str, Any]], caller: Caller) -> AsyncIterator[CompletionChunk]:
        turn = await self.prepare(payload, caller)
        async for chunk in self.stream(turn):
            yield chunk

    async def prepare(self, payload: Union[CompletionRequest, Dict[str, Any]], caller: Caller) -> Turn:
        """Validate the request and resolve its conversation and targets.

        Args:
            payload: The raw request body or an already built request
            caller: The caller the turn runs for

        Returns:
            A turn ready to be streamed

        Raises:
            CompletionError: If the turn must be rejected before any generation starts
        """
        request = self._validate(payload)
        turn = Turn(request, caller)
        try:
            turn.state = TurnState.RESOLVING_CONVERSATION
            turn.conversation, turn.is_new_conversation = await self.conversations.resolve(request, caller)

            turn.state = TurnState.RESOLVING_MENTIONS
            turn.mentions = await self._resolve_mentions(turn.user_text, caller)
            turn.targets = await self._select_targets(turn)
            self._authorize(turn)
        except CompletionError:
            turn.state = TurnState.ERRORED
            raise
        except ConversationStoreError as e:
            turn.state = TurnState.ERRORED
            logger.error(f"Failed to resolve conversation: {str(e)}", exc_info=True)
            raise

        logger.info(
            f"Turn {request.message_id} in conversation {turn.conversation.unique_id}: "
            f"{len(turn.targets)} target(s), debate={turn.is_debate}, deep_think={request.is_deep_think_mode}"
        )
        return turn

    async def stream(self, turn: Turn) -> AsyncIterator[CompletionChunk]:
        """Dispatch the turn's targets and yield chunks until the turn is done."""
        unique_id = turn.conversation.unique_id

        turn.state = TurnState.DISPATCHING
        context = DispatchContext(
            messages=self._history(turn),
            caller=turn.caller,
            participants=turn.targets,
            conversation_unique_id=unique_id,
            deep_think=turn.request.is_deep_think_mode,
            query=turn.prompt_text,
        )
        runs = self.dispatcher.dispatch(context, turn.targets)
        turn.outcomes = {run.target.id: TargetOutcome(run.target, run) for run in runs}

        turn.state = TurnState.STREAMING
        merged = self.merger.merge(runs)
        try:
            async for event in merged:
                turn.outcomes[event.source_id].apply(event)
                yield StreamingService.to_chunk(event, unique_id)
        finally:
            await merged.aclose()

        turn.state = TurnState.PERSISTING
        if turn.should_persist:
            # Once writing starts it completes even if the client goes away
            warnings = await asyncio.shield(self._persist(turn))
            for warning in warnings:
                yield CompletionChunk(type=ChunkType.WARNING, content=warning, conversation_unique_id=unique_id)

        turn.state = TurnState.FINALIZING
        async for chunk in self._finalize(turn):
            yield chunk

        turn.state = TurnState.DONE
        yield CompletionChunk(type=ChunkType.DONE, conversation_unique_id=unique_id)

    def _validate(self, payload: Union[CompletionRequest, Dict[str, Any]]) -> CompletionRequest:
        if isinstance(payload, CompletionRequest):
            return payload
        try:
            return CompletionRequest.model_validate(payload)
        except ValidationError as e:
            details = "; ".join(f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}" for error in e.errors())
            raise CompletionValidationError(f"Invalid completion request: {details}")

    async def _resolve_mentions(self, text: str, caller: Caller) -> ResolvedMentions:
        names = [name for name in self.resolver.candidates(text) if name not in self.model_catalog]
        apps: Dict[str, AppRef] = {}
        if names:
            found = await asyncio.gather(*(self._find_app(name) for name in names))
            apps = {name: app for name, app in zip(names, found) if app is not None}
        snapshot = MentionCatalog(self.model_catalog, apps, own_app=caller.own_app)
        return self.resolver.resolve(text, snapshot)

    async def _find_app(self, name: str) -> Optional[AppRef]:
        try:
            return await self.catalog.resolve_app(name)
        except CatalogStoreError as e:
            # Unresolvable mentions stay literal text
            logger.warning(f"App lookup for '{name}' failed: {str(e)}")
            return None

    async def _select_targets(self, turn: Turn) -> List[Target]:
        """Mentions first, then explicit request fields, then the conversation's default."""
        request = turn.request
        targets: List[Target] = list(turn.mentions.targets)

        for name in request.models:
            targets.append(Target.for_model(self._require_model(name)))
        for name in request.apps:
            targets.append(Target.for_app(await self._require_app(name)))

        if not targets:
            targets.append(await self._default_target(turn))

        unique: Dict[str, Target] = {}
        for target in targets:
            unique.setdefault(target.id, target)
        return [self._bind_model(target, turn.caller) for target in unique.values()]

    async def _default_target(self, turn: Turn) -> Target:
        request = turn.request
        app_name = request.app or turn.conversation.app_id
        if app_name:
            return Target.for_app(await self._require_app(app_name))
        if request.model:
            return Target.for_model(self._require_model(request.model))
        return Target.for_model(self._default_model(turn.caller))

    def _bind_model(self, target: Target, caller: Caller) -> Target:
        if target.model is not None:
            return target
        model = self.model_catalog.get(target.app.base_model) or self._default_model(caller)
        return target.bind_model(model)

    def _default_model(self, caller: Caller) -> ModelSpec:
        fallback = self.config.anonymous_default_model if caller.is_anonymous else self.config.default_model
        model = self.model_catalog.get(caller.default_text_model) or self.model_catalog.get(fallback)
        if model is None:
            raise CompletionValidationError(f"Default model {fallback} is not available")
        return model

    def _require_model(self, name: str) -> ModelSpec:
        model = self.model_catalog.get(name)
        if model is None:
            raise CompletionValidationError(f"Unknown model: {name}")
        return model

    async def _require_app(self, name: str) -> AppRef:
        app = await self._find_app(name)
        if app is None:
            raise CompletionValidationError(f"Unknown app: {name}")
        return app

    def _authorize(self, turn: Turn) -> None:
        for target in turn.targets:
            if target.app is not None and not target.app.is_accessible_by(turn.caller.user_id):
                raise TargetAccessError(f"{target.display_name} is not available")
        try:
            self.dispatcher.authorize(turn.targets, turn.caller)
        except ModelAccessError as e:
            raise TargetAccessError(str(e))
        self.usage.check(turn.caller, turn.targets)

    def _history(self, turn: Turn) -> List[BaseMessage]:
        messages = turn.request.messages
        history = [message.to_langchain() for message in messages[:-1] if message.role != "system"]
        history.append(messages[-1].to_langchain(turn.prompt_text))
        return history

    async def _persist(self, turn: Turn) -> List[str]:
        """Write the conversation, the user message and one reply per target."""
        request = turn.request
        warnings: List[str] = []
        try:
            if turn.is_new_conversation:
                if turn.targets[0].kind == TargetKind.APP and not turn.is_debate:
                    turn.conversation.app_id = turn.targets[0].app_id
                turn.conversation = await self.conversations.create(turn.conversation, turn.caller)
            await self.conversations.save_user_message(turn.conversation, request, turn.caller)
        except ConversationForbiddenError as e:
            logger.error(f"Turn {request.message_id} not saved: {str(e)}")
            return [SAVE_FAILED_WARNING]
        except ConversationStoreError as e:
            logger.error(f"Failed to save turn {request.message_id}: {str(e)}", exc_info=True)
            return [SAVE_FAILED_WARNING]

        for target in turn.targets:
            outcome = turn.outcomes[target.id]
            stored = True
            try:
                _, stored = await self.conversations.save_assistant_message(
                    turn.conversation, request, target, outcome.text, outcome.tool_results, error=outcome.error
                )
            except ConversationStoreError as e:
                logger.error(f"Failed to save reply of {target.id}: {str(e)}", exc_info=True)
                warnings.append(f"The reply from {target.display_name} may not have been saved.")
            # A retried turn whose reply is already stored was counted the first time
            if outcome.succeeded and stored:
                await self.usage.record(turn.caller, target)

        try:
            await self.conversations.update_metadata(turn.conversation.unique_id, self._metadata_patch(turn))
        except ConversationStoreError as e:
            logger.error(f"Failed to update conversation {turn.conversation.unique_id}: {str(e)}")

        turn.persisted = True
        return warnings

    @staticmethod
    def _metadata_patch(turn: Turn) -> Dict[str, Any]:
        models = list(turn.conversation.models)
        for target in turn.targets:
            if target.model_name and target.model_name not in models:
                models.append(target.model_name)
        patch: Dict[str, Any] = {"models": models}

        if turn.is_debate:
            roster = DebateMetadata(
                participants=[DebateParticipant(type=target.kind, id=target.id, display_name=target.display_name) for target in turn.targets]
            )
            patch["is_debate"] = True
            patch["debate_metadata"] = roster.model_dump(mode="json")
        return patch

    async def _finalize(self, turn: Turn) -> AsyncIterator[CompletionChunk]:
        """Generate the title (first turn only) and follow-up questions. Never fails the turn."""
        if self.finalizer is None:
            return
        answer = next((outcome.text for outcome in turn.outcomes.values() if outcome.succeeded and outcome.text), "")
        if not answer:
            return

        unique_id = turn.conversation.unique_id
        wants_title = turn.persisted and turn.is_new_conversation
        title, questions = await asyncio.gather(
            self.finalizer.generate_title(turn.prompt_text) if wants_title else _none(),
            self.finalizer.generate_follow_up_questions(turn.prompt_text, answer),
        )

        patch: Dict[str, Any] = {}
        if title:
            patch["title"] = title
            yield CompletionChunk(type=ChunkType.CONVERSATION_TITLE, conversation_title=title, conversation_unique_id=unique_id)
        if questions:
            patch["follow_up_questions"] = questions
            yield CompletionChunk(type=ChunkType.FOLLOW_UP_QUESTIONS, follow_up_questions=questions, conversation_unique_id=unique_id)

        if patch and turn.persisted:
            try:
                await self.conversations.update_metadata(unique_id, patch)
            except ConversationStoreError as e:
                logger.warning(f"Failed to store title/follow-ups for {unique_id}: {str(e)}")


async def _none() -> None:
    return None
