"""Catalog lookups for mention resolution: models, apps (personas) and caller profiles."""

import re
from typing import Any, Dict, List, Optional

import pymongo
from motor.motor_asyncio import (
    AsyncIOMotorClient,
    AsyncIOMotorCollection,
    AsyncIOMotorDatabase,
)

from database.catalog_store.exceptions import CatalogStoreError, UserNotFoundError
from models.caller import Caller, SubscriptionPlan, TextModelUsage
from models.catalog import AppRef, ModelCatalog, default_model_catalog
from settings import settings
from utils.logging import logger

_TIER_FIELDS = {1: "tier_one", 2: "tier_two", 3: "tier_three"}


class CatalogManager:
    """Read access to the app and user collections plus the static model catalog."""

    COLLECTION_APPS: str = "apps"
    COLLECTION_USERS: str = "users"

    def __init__(
        self,
        mongodb_client: AsyncIOMotorClient,
        database_name: Optional[str] = None,
        model_catalog: Optional[ModelCatalog] = None,
    ) -> None:
        self.client = mongodb_client
        self.model_catalog = model_catalog or default_model_catalog()
        self._db: AsyncIOMotorDatabase = self.client.get_database(database_name or settings.database_name)
        self._apps: AsyncIOMotorCollection = self._db.get_collection(self.COLLECTION_APPS)
        self._users: AsyncIOMotorCollection = self._db.get_collection(self.COLLECTION_USERS)

    @classmethod
    async def setup(cls, mongodb_client: AsyncIOMotorClient, database_name: Optional[str] = None) -> "CatalogManager":
        """Factory method to create a CatalogManager with its indexes."""
        try:
            manager = cls(mongodb_client, database_name)
            await manager._apps.create_indexes(
                [
                    pymongo.IndexModel([("unique_id", 1)], unique=True, background=True),
                    pymongo.IndexModel([("name", 1)], background=True),
                    pymongo.IndexModel([("user_id", 1), ("is_me", 1)], background=True),
                ]
            )
            return manager

        except Exception as e:
            raise CatalogStoreError(f"Failed to setup indexes: {str(e)}")

    def list_available_models(self) -> List[str]:
        return self.model_catalog.names()

    async def resolve_app(self, name_or_id: str) -> Optional[AppRef]:
        """Find an app by case-insensitive name, then by unique id."""
        try:
            pattern = {"$regex": f"^{re.escape(name_or_id)}$", "$options": "i"}
            doc = await self._apps.find_one({"name": pattern})
            if doc is None:
                doc = await self._apps.find_one({"unique_id": name_or_id})
            return self._to_app(doc) if doc else None

        except Exception as e:
            raise CatalogStoreError(f"Failed to resolve app '{name_or_id}': {str(e)}")

    async def get_own_app(self, user_id: str) -> Optional[AppRef]:
        """Return the caller's own persona (the target of @me), if they have one."""
        try:
            doc = await self._apps.find_one({"user_id": user_id, "is_me": True})
            return self._to_app(doc) if doc else None

        except Exception as e:
            raise CatalogStoreError(f"Failed to load own app for {user_id}: {str(e)}")

    async def get_caller(self, user_id: str) -> Caller:
        """Build the caller profile used for tier checks and default model selection."""
        try:
            doc = await self._users.find_one({"_id": user_id})
        except Exception as e:
            raise CatalogStoreError(f"Failed to load user {user_id}: {str(e)}")

        if not doc:
            raise UserNotFoundError(f"User {user_id} not found")

        usage = (doc.get("model_usage") or {}).get("text_model_usage") or {}
        return Caller(
            user_id=user_id,
            name=doc.get("name"),
            subscription_plan=doc.get("subscription_plan") or SubscriptionPlan.FREE,
            default_text_model=doc.get("default_text_model"),
            own_app=await self.get_own_app(user_id),
            text_model_usage=TextModelUsage.model_validate(usage),
        )

    async def increment_text_usage(self, user_id: str, tier: int) -> None:
        field = _TIER_FIELDS.get(tier)
        if field is None:
            raise CatalogStoreError(f"Unknown model tier {tier}")
        try:
            await self._users.update_one({"_id": user_id}, {"$inc": {f"model_usage.text_model_usage.{field}": 1}})
        except Exception as e:
            raise CatalogStoreError(f"Failed to record usage for {user_id}: {str(e)}")

    @staticmethod
    def _to_app(doc: Dict[str, Any]) -> AppRef:
        return AppRef(
            id=doc["unique_id"],
            name=doc["name"],
            display_name=doc.get("display_name") or doc["name"],
            user_id=doc.get("user_id"),
            instruction=doc.get("instruction") or "",
            base_model=doc.get("base_model"),
            is_me=bool(doc.get("is_me")),
            is_official=bool(doc.get("is_official")),
            is_published=bool(doc.get("is_published")),
        )
