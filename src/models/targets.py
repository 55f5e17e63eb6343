"""Dispatch targets and mention records."""

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field

from models.catalog import AppRef, ModelSpec


class TargetKind(str, Enum):
    MODEL = "model"
    APP = "app"


class Target(BaseModel):
    """A model or a persona that receives one stream of the turn.

    ``model`` is unset for app targets until the orchestrator binds the app to its base model.
    """

    kind: TargetKind
    id: str
    display_name: str
    model: Optional[ModelSpec] = None
    app: Optional[AppRef] = None

    model_config = {"frozen": True}

    @classmethod
    def for_model(cls, model: ModelSpec) -> "Target":
        return cls(kind=TargetKind.MODEL, id=model.name, display_name=model.display_name, model=model)

    @classmethod
    def for_app(cls, app: AppRef, model: Optional[ModelSpec] = None) -> "Target":
        return cls(kind=TargetKind.APP, id=app.id, display_name=app.display_name, app=app, model=model)

    def bind_model(self, model: ModelSpec) -> "Target":
        return self.model_copy(update={"model": model})

    @property
    def model_name(self) -> Optional[str]:
        return self.model.name if self.model else None

    @property
    def app_id(self) -> Optional[str]:
        return self.app.id if self.app else None

    @property
    def models(self) -> List[str]:
        return [self.model.name] if self.model else []


class Mention(BaseModel):
    """One @token found in a message."""

    raw: str = Field(..., description="Token text without the leading @")
    start: int
    end: int
    target: Optional[Target] = None

    @property
    def resolved(self) -> bool:
        return self.target is not None


class ResolvedMentions(BaseModel):
    cleaned_text: str
    targets: List[Target] = Field(default_factory=list)
    mentions: List[Mention] = Field(default_factory=list)
