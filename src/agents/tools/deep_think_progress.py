"""Progress reporting tool used by deep-think turns."""

from enum import Enum
from typing import Any, ClassVar, Dict, Type

from pydantic import BaseModel, Field

from agents.tools.base import ToolAgent


class ProgressStage(str, Enum):
    PLANNING = "planning"
    RESEARCH = "research"
    ANALYSIS = "analysis"
    SYNTHESIS = "synthesis"
    REFLECTION = "reflection"
    NOTE = "note"


class DeepThinkProgressArgs(BaseModel):
    stage: ProgressStage = Field(description="Which phase of the thinking process this update belongs to.")
    message: str = Field(description="A short, human-friendly update shown to the user.", min_length=1, max_length=500)


DEEP_THINK_PROGRESS_TOOL = "deep_think_progress"


class DeepThinkProgressTool(ToolAgent):
    """Lets the model narrate its plan; each call is forwarded to the client as a progress event."""

    name: str = DEEP_THINK_PROGRESS_TOOL
    description: str = (
        "Share a brief progress update with the user while thinking deeply. "
        "Call it with stage='planning' first, 'research' or 'analysis' after gathering information, "
        "and 'synthesis' right before writing the answer."
    )
    args_schema: Type[BaseModel] = DeepThinkProgressArgs

    records_results: ClassVar[bool] = False

    async def _execute(self, args: DeepThinkProgressArgs) -> Dict[str, Any]:
        return {"acknowledged": True, "stage": args.stage.value, "message": args.message}
