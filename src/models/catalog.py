"""Model catalog and app (persona) references used for mention resolution and dispatch."""

from enum import Enum
from typing import Dict, Iterable, Iterator, List, Optional

from pydantic import BaseModel, Field


class ModelType(str, Enum):
    TEXT = "text"
    IMAGE = "image"
    VIDEO = "video"


class ProviderFamily(str, Enum):
    """Backend families; each maps to one adapter builder."""

    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    OPENROUTER = "openrouter"
    GROQ = "groq"
    PERPLEXITY = "perplexity"


class ModelSpec(BaseModel):
    """A model that can be mentioned and dispatched to."""

    name: str = Field(..., description="Public identifier used in @mentions")
    display_name: str
    provider: ProviderFamily
    provider_model: str = Field(..., description="Identifier sent to the provider")
    tier: int = Field(default=1, ge=1, le=3)
    is_pro_model: bool = False
    is_login_required: bool = False
    model_type: ModelType = ModelType.TEXT
    supports_tools: bool = True
    supports_temperature: bool = True

    model_config = {"frozen": True}


class AppRef(BaseModel):
    """A persona (app) that wraps a base model with its own instruction."""

    id: str = Field(..., description="Unique id of the app")
    name: str
    display_name: str
    user_id: Optional[str] = Field(default=None, description="Creator of the app")
    instruction: str = ""
    base_model: Optional[str] = None
    is_me: bool = False
    is_official: bool = False
    is_published: bool = False

    model_config = {"frozen": True}

    def is_accessible_by(self, user_id: Optional[str]) -> bool:
        return self.is_official or self.is_published or (user_id is not None and self.user_id == user_id)


class ModelCatalog:
    """Case-insensitive lookup over a fixed set of models."""

    def __init__(self, models: Iterable[ModelSpec]):
        self._models: Dict[str, ModelSpec] = {}
        for model in models:
            self._models[model.name.lower()] = model

    def get(self, name: Optional[str]) -> Optional[ModelSpec]:
        if not name:
            return None
        return self._models.get(name.lower())

    def names(self) -> List[str]:
        return [model.name for model in self._models.values()]

    def __contains__(self, name: str) -> bool:
        return self.get(name) is not None

    def __iter__(self) -> Iterator[ModelSpec]:
        return iter(self._models.values())

    def __len__(self) -> int:
        return len(self._models)


AVAILABLE_MODELS: List[ModelSpec] = [
    ModelSpec(name="gpt-4o-mini", display_name="GPT-4o mini", provider=ProviderFamily.OPENAI, provider_model="gpt-4o-mini"),
    ModelSpec(name="gpt-4o", display_name="GPT-4o", provider=ProviderFamily.OPENAI, provider_model="gpt-4o", tier=2),
    ModelSpec(name="gpt-4.1-nano", display_name="GPT-4.1 nano", provider=ProviderFamily.OPENAI, provider_model="gpt-4.1-nano"),
    ModelSpec(name="gpt-4.1-mini", display_name="GPT-4.1 mini", provider=ProviderFamily.OPENAI, provider_model="gpt-4.1-mini"),
    ModelSpec(name="gpt-4.1", display_name="GPT-4.1", provider=ProviderFamily.OPENAI, provider_model="gpt-4.1", tier=2),
    ModelSpec(
        name="o3-mini",
        display_name="o3-mini",
        provider=ProviderFamily.OPENAI,
        provider_model="o3-mini",
        tier=2,
        is_login_required=True,
        supports_temperature=False,
    ),
    ModelSpec(
        name="o3",
        display_name="o3",
        provider=ProviderFamily.OPENAI,
        provider_model="o3",
        tier=3,
        is_pro_model=True,
        is_login_required=True,
        supports_temperature=False,
    ),
    ModelSpec(
        name="claude-3-5-haiku",
        display_name="Claude 3.5 Haiku",
        provider=ProviderFamily.ANTHROPIC,
        provider_model="claude-3-5-haiku-latest",
    ),
    ModelSpec(
        name="claude-3-5-sonnet",
        display_name="Claude 3.5 Sonnet",
        provider=ProviderFamily.ANTHROPIC,
        provider_model="claude-3-5-sonnet-latest",
        tier=2,
    ),
    ModelSpec(
        name="claude-3-7-sonnet",
        display_name="Claude 3.7 Sonnet",
        provider=ProviderFamily.ANTHROPIC,
        provider_model="claude-3-7-sonnet-latest",
        tier=2,
        is_login_required=True,
    ),
    ModelSpec(
        name="claude-4-opus",
        display_name="Claude Opus 4",
        provider=ProviderFamily.ANTHROPIC,
        provider_model="claude-opus-4-0",
        tier=3,
        is_pro_model=True,
        is_login_required=True,
    ),
    ModelSpec(
        name="deepseek-r1",
        display_name="DeepSeek R1",
        provider=ProviderFamily.OPENROUTER,
        provider_model="deepseek/deepseek-r1",
        tier=2,
        supports_tools=False,
    ),
    ModelSpec(name="deepseek-v3", display_name="DeepSeek V3", provider=ProviderFamily.OPENROUTER, provider_model="deepseek/deepseek-chat"),
    ModelSpec(
        name="gemini-2.5-pro",
        display_name="Gemini 2.5 Pro",
        provider=ProviderFamily.OPENROUTER,
        provider_model="google/gemini-2.5-pro",
        tier=3,
        is_pro_model=True,
        is_login_required=True,
    ),
    ModelSpec(name="llama-3.3-70b", display_name="Llama 3.3 70B", provider=ProviderFamily.GROQ, provider_model="llama-3.3-70b-versatile"),
    ModelSpec(name="llama-3.1-8b", display_name="Llama 3.1 8B", provider=ProviderFamily.GROQ, provider_model="llama-3.1-8b-instant"),
    ModelSpec(
        name="sonar",
        display_name="Perplexity Sonar",
        provider=ProviderFamily.PERPLEXITY,
        provider_model="sonar",
        supports_tools=False,
    ),
    ModelSpec(
        name="sonar-pro",
        display_name="Perplexity Sonar Pro",
        provider=ProviderFamily.PERPLEXITY,
        provider_model="sonar-pro",
        tier=2,
        supports_tools=False,
        is_login_required=True,
    ),
]


def default_model_catalog() -> ModelCatalog:
    return ModelCatalog(AVAILABLE_MODELS)
