"""Database setup and initialization using a singleton pattern."""

import asyncio
from typing import Optional

from motor.motor_asyncio import AsyncIOMotorClient

from database.catalog_store.catalog_manager import CatalogManager
from database.conversation_store.conversation_manager import ConversationManager
from settings import settings
from utils.logging import logger
from utils.singleton import Singleton


class DatabaseManager(metaclass=Singleton):
    """Singleton database manager class for handling MongoDB connections and managers."""

    def __init__(self):
        """Initialize the database manager."""
        logger.info("Initializing DatabaseManager")
        self._client = AsyncIOMotorClient(settings.database_url)
        self._client.get_io_loop = asyncio.get_running_loop
        self._conversation_manager: Optional[ConversationManager] = None
        self._catalog_manager: Optional[CatalogManager] = None

    async def setup_conversation_manager(self) -> ConversationManager:
        """Initialize and return the conversation manager."""
        if self._conversation_manager is None:
            logger.info("Setting up conversation manager")
            self._conversation_manager = await ConversationManager.setup(self._client, settings.database_name)
        return self._conversation_manager

    async def setup_catalog_manager(self) -> CatalogManager:
        """Initialize and return the catalog manager."""
        if self._catalog_manager is None:
            logger.info("Setting up catalog manager")
            self._catalog_manager = await CatalogManager.setup(self._client, settings.database_name)
        return self._catalog_manager

    def close(self):
        """Close database connection."""
        logger.info("Closing database connection")
        if self._client:
            self._client.close()
