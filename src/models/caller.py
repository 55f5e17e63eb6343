"""Caller identity and plan information attached to a completion turn."""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from models.catalog import AppRef


class SubscriptionPlan(str, Enum):
    FREE = "free"
    PLUS = "plus"


class TextModelUsage(BaseModel):
    """Messages sent this month, per model tier."""

    tier_one: int = 0
    tier_two: int = 0
    tier_three: int = 0

    def for_tier(self, tier: int) -> int:
        return {1: self.tier_one, 2: self.tier_two, 3: self.tier_three}.get(tier, 0)


class Caller(BaseModel):
    """The user on whose behalf a turn runs. ``user_id`` is ``None`` for anonymous callers."""

    user_id: Optional[str] = None
    name: Optional[str] = None
    subscription_plan: SubscriptionPlan = SubscriptionPlan.FREE
    default_text_model: Optional[str] = None
    own_app: Optional[AppRef] = Field(default=None, description="The caller's own persona, target of @me")
    text_model_usage: TextModelUsage = Field(default_factory=TextModelUsage)

    @property
    def is_anonymous(self) -> bool:
        return self.user_id is None

    @property
    def is_free(self) -> bool:
        return self.subscription_plan == SubscriptionPlan.FREE


ANONYMOUS_CALLER = Caller()
