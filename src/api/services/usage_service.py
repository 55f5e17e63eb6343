"""Monthly usage limits per model tier."""

from typing import Optional, Sequence

from api.exceptions import UsageLimitExceededError
from database.catalog_store.catalog_manager import CatalogManager
from database.catalog_store.exceptions import CatalogStoreError
from models.caller import Caller
from models.targets import Target
from settings import Settings, settings
from utils.logging import logger


class UsageService:
    """Checks and records text-model usage for logged-in callers."""

    def __init__(self, catalog: CatalogManager, config: Optional[Settings] = None):
        self.catalog = catalog
        self.config = config or settings

    def limit_for(self, caller: Caller, tier: int) -> Optional[int]:
        if tier == 2:
            return self.config.free_tier_two_monthly_limit if caller.is_free else self.config.tier_two_monthly_limit
        if tier == 3:
            return self.config.tier_three_monthly_limit
        return None

    def check(self, caller: Caller, targets: Sequence[Target]) -> None:
        """Raise if any target's tier allowance is used up.

        Raises:
            UsageLimitExceededError: If the caller reached a monthly limit
        """
        if caller.is_anonymous:
            return
        for target in targets:
            if target.model is None:
                continue
            tier = target.model.tier
            limit = self.limit_for(caller, tier)
            if limit is not None and caller.text_model_usage.for_tier(tier) >= limit:
                raise UsageLimitExceededError(f"Monthly limit reached for {target.model.display_name} (tier {tier})")

    async def record(self, caller: Caller, target: Target) -> None:
        if caller.is_anonymous or target.model is None:
            return
        try:
            await self.catalog.increment_text_usage(caller.user_id, target.model.tier)
        except CatalogStoreError as e:
            logger.error(f"Failed to record usage for {caller.user_id}: {str(e)}")
