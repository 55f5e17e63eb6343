"""Shared data structures: catalog entries, callers, targets and stream events."""

from .caller import Caller, SubscriptionPlan, TextModelUsage
from .catalog import AVAILABLE_MODELS, AppRef, ModelCatalog, ModelSpec, ModelType, ProviderFamily
from .events import EventKind, StreamChunk, StreamEvent, ToolInvocation
from .targets import Mention, ResolvedMentions, Target, TargetKind

__all__ = [
    "AVAILABLE_MODELS",
    "AppRef",
    "Caller",
    "EventKind",
    "Mention",
    "ModelCatalog",
    "ModelSpec",
    "ModelType",
    "ProviderFamily",
    "ResolvedMentions",
    "StreamChunk",
    "StreamEvent",
    "SubscriptionPlan",
    "Target",
    "TargetKind",
    "TextModelUsage",
    "ToolInvocation",
]
