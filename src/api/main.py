"""Main FastAPI application."""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from agents.exceptions import ProviderNotConfiguredError, UnknownModelError
from agents.providers import ProviderRegistry
from agents.tools.registry import ToolFactory
from api.routers import completions
from api.services.finalization_service import FinalizationService
from database.manager import DatabaseManager
from settings import settings
from utils.logging import logger
from utils.memory_client import Mem0Client
from utils.web_search_cache import create_web_search_cache
from utils.web_search_client import ExaSearchClient


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Per-process components shared by every turn
    search_client = ExaSearchClient()
    memory_client = Mem0Client()
    cache = create_web_search_cache()
    registry = ProviderRegistry()

    app.state.provider_registry = registry
    app.state.tool_factory = ToolFactory(search_client, cache, memory_client=memory_client)
    app.state.finalizer = None
    try:
        app.state.finalizer = FinalizationService(registry.chat_model_named(settings.title_model))
    except (UnknownModelError, ProviderNotConfiguredError) as e:
        logger.warning(f"Title generation disabled: {str(e)}")

    yield

    # Close connections
    await search_client.close()
    await memory_client.close()
    await cache.close()
    if DatabaseManager.exists():
        DatabaseManager().close()
        DatabaseManager.drop()


def create_app() -> FastAPI:
    """Create FastAPI application."""
    app = FastAPI(title=settings.api_title, version=settings.api_version, description=settings.api_description, lifespan=lifespan)

    # Add CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # Allows all origins
        allow_credentials=True,
        allow_methods=["*"],  # Allows all methods
        allow_headers=["*"],  # Allows all headers
    )

    # Add routers
    app.include_router(completions.router)

    return app


app = create_app()
