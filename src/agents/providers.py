"""Provider adapters: one chat-model builder per backend family, selected from a dispatch table."""

from typing import AsyncIterator, Callable, Dict, List, Optional, Sequence

from langchain_anthropic import ChatAnthropic
from langchain_core.language_models.chat_models import BaseChatModel
from langchain_core.messages import AIMessageChunk, BaseMessage
from langchain_core.tools import BaseTool
from langchain_groq import ChatGroq
from langchain_openai import ChatOpenAI

from agents.exceptions import ProviderNotConfiguredError, UnknownModelError
from constants import OPENROUTER_BASE_URL, PERPLEXITY_BASE_URL
from models.catalog import ModelCatalog, ModelSpec, ProviderFamily, default_model_catalog
from settings import Settings, settings
from utils.logging import logger


class ProviderAdapter:
    """Streams one generation round for a single model."""

    def __init__(self, model: BaseChatModel, spec: ModelSpec):
        self.model = model
        self.spec = spec

    @property
    def supports_tools(self) -> bool:
        return self.spec.supports_tools

    async def stream(self, messages: List[BaseMessage], tools: Sequence[BaseTool] = ()) -> AsyncIterator[AIMessageChunk]:
        runnable = self.model.bind_tools(list(tools)) if tools and self.supports_tools else self.model
        async for chunk in runnable.astream(messages):
            yield chunk


def _temperature(spec: ModelSpec, config: Settings) -> Dict[str, float]:
    return {"temperature": config.temperature} if spec.supports_temperature else {}


def _require(key: Optional[str], spec: ModelSpec) -> str:
    if not key:
        raise ProviderNotConfiguredError(f"No API key configured for {spec.provider.value} (model {spec.name})", spec.name)
    return key


def _build_openai(spec: ModelSpec, config: Settings) -> BaseChatModel:
    return ChatOpenAI(
        model=spec.provider_model,
        api_key=_require(config.openai_api_key, spec),
        max_retries=config.max_retries,
        streaming=True,
        **_temperature(spec, config),
    )


def _build_anthropic(spec: ModelSpec, config: Settings) -> BaseChatModel:
    return ChatAnthropic(
        model=spec.provider_model,
        api_key=_require(config.anthropic_api_key, spec),
        max_retries=config.max_retries,
        streaming=True,
        **_temperature(spec, config),
    )


def _build_openrouter(spec: ModelSpec, config: Settings) -> BaseChatModel:
    return ChatOpenAI(
        model=spec.provider_model,
        api_key=_require(config.openrouter_api_key, spec),
        base_url=OPENROUTER_BASE_URL,
        max_retries=config.max_retries,
        streaming=True,
        **_temperature(spec, config),
    )


def _build_groq(spec: ModelSpec, config: Settings) -> BaseChatModel:
    return ChatGroq(
        model=spec.provider_model,
        api_key=_require(config.groq_api_key, spec),
        max_retries=config.max_retries,
        streaming=True,
        **_temperature(spec, config),
    )


def _build_perplexity(spec: ModelSpec, config: Settings) -> BaseChatModel:
    return ChatOpenAI(
        model=spec.provider_model,
        api_key=_require(config.perplexity_api_key, spec),
        base_url=PERPLEXITY_BASE_URL,
        max_retries=config.max_retries,
        streaming=True,
        **_temperature(spec, config),
    )


ModelBuilder = Callable[[ModelSpec, Settings], BaseChatModel]

PROVIDER_BUILDERS: Dict[ProviderFamily, ModelBuilder] = {
    ProviderFamily.OPENAI: _build_openai,
    ProviderFamily.ANTHROPIC: _build_anthropic,
    ProviderFamily.OPENROUTER: _build_openrouter,
    ProviderFamily.GROQ: _build_groq,
    ProviderFamily.PERPLEXITY: _build_perplexity,
}


class ProviderRegistry:
    """Builds adapters for targets; chat models are reused per model name."""

    def __init__(
        self,
        builders: Optional[Dict[ProviderFamily, ModelBuilder]] = None,
        config: Optional[Settings] = None,
        catalog: Optional[ModelCatalog] = None,
    ):
        self.builders = builders if builders is not None else PROVIDER_BUILDERS
        self.config = config or settings
        self.catalog = catalog or default_model_catalog()
        self._models: Dict[str, BaseChatModel] = {}

    def chat_model(self, spec: ModelSpec) -> BaseChatModel:
        if spec.name not in self._models:
            builder = self.builders.get(spec.provider)
            if builder is None:
                raise ProviderNotConfiguredError(f"No adapter for provider {spec.provider.value}", spec.name)
            logger.debug(f"Building {spec.provider.value} chat model for {spec.name}")
            self._models[spec.name] = builder(spec, self.config)
        return self._models[spec.name]

    def adapter_for(self, spec: ModelSpec) -> ProviderAdapter:
        return ProviderAdapter(self.chat_model(spec), spec)

    def chat_model_named(self, name: str) -> BaseChatModel:
        """Chat model for a catalog name, for calls made outside a dispatched turn."""
        spec = self.catalog.get(name)
        if spec is None:
            raise UnknownModelError(f"Model {name} is not in the catalog")
        return self.chat_model(spec)
