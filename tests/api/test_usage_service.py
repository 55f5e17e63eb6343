"""Tests for monthly usage limits."""

import pytest

from api.exceptions import UsageLimitExceededError
from api.services.usage_service import UsageService
from models.caller import Caller, SubscriptionPlan, TextModelUsage
from models.targets import Target
from settings import Settings


@pytest.fixture
def usage(fake_catalog) -> UsageService:
    return UsageService(fake_catalog, Settings(free_tier_two_monthly_limit=2, tier_two_monthly_limit=5, tier_three_monthly_limit=1))


def test_tier_one_is_unlimited(usage, model_catalog):
    caller = Caller(user_id="user-1", text_model_usage=TextModelUsage(tier_one=10_000))

    usage.check(caller, [Target.for_model(model_catalog.get("gpt-4o-mini"))])


def test_free_plan_has_lower_tier_two_limit(usage, model_catalog):
    target = Target.for_model(model_catalog.get("gpt-4o"))
    used = TextModelUsage(tier_two=2)

    with pytest.raises(UsageLimitExceededError):
        usage.check(Caller(user_id="user-1", text_model_usage=used), [target])
    usage.check(Caller(user_id="user-1", subscription_plan=SubscriptionPlan.PLUS, text_model_usage=used), [target])


def test_anonymous_callers_are_not_metered(usage, model_catalog):
    usage.check(Caller(), [Target.for_model(model_catalog.get("gpt-4o"))])


@pytest.mark.asyncio
async def test_record_increments_tier(usage, fake_catalog, model_catalog):
    await usage.record(Caller(user_id="user-1"), Target.for_model(model_catalog.get("claude-4-opus")))

    assert fake_catalog.usage == [("user-1", 3)]


@pytest.mark.asyncio
async def test_record_failure_is_logged_not_raised(usage, model_catalog):
    await usage.record(Caller(user_id="broken-usage"), Target.for_model(model_catalog.get("gpt-4o")))
