"""Dependencies for the completion router."""

from typing import Optional

from fastapi import Depends, Header, HTTPException, Request, status

from agents.dispatcher import ModelDispatcher
from agents.stream_merger import StreamMerger
from api.services.completion_service import CompletionService
from api.services.conversation_service import ConversationService
from api.services.usage_service import UsageService
from database.catalog_store.catalog_manager import CatalogManager
from database.catalog_store.exceptions import UserNotFoundError
from database.manager import DatabaseManager
from models.caller import ANONYMOUS_CALLER, Caller
from utils.logging import logger


async def get_database_manager():
    """Dependency for database manager."""
    database_manager = DatabaseManager()
    return database_manager


async def get_catalog_manager(db_manager: DatabaseManager = Depends(get_database_manager)) -> CatalogManager:
    return await db_manager.setup_catalog_manager()


async def get_caller(
    x_user_id: Optional[str] = Header(None, alias="X-User-Id"),
    catalog: CatalogManager = Depends(get_catalog_manager),
) -> Caller:
    """Resolve the caller from the identity header set by the upstream gateway.

    Requests without the header run as anonymous callers.
    """
    if not x_user_id:
        return ANONYMOUS_CALLER
    try:
        return await catalog.get_caller(x_user_id)
    except UserNotFoundError:
        logger.warning(f"Unknown caller id {x_user_id}")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unknown user")


async def get_completion_service(
    request: Request,
    db_manager: DatabaseManager = Depends(get_database_manager),
    catalog: CatalogManager = Depends(get_catalog_manager),
) -> CompletionService:
    """Assemble the orchestrator from per-process components created at startup."""
    state = request.app.state
    conversation_db = await db_manager.setup_conversation_manager()
    return CompletionService(
        conversations=ConversationService(conversation_db),
        catalog=catalog,
        dispatcher=ModelDispatcher(state.provider_registry, state.tool_factory),
        merger=StreamMerger(),
        finalizer=state.finalizer,
        usage=UsageService(catalog),
    )
