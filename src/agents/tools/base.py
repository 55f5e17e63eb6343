"""Base class for tool agents."""

import asyncio
from typing import Any, ClassVar, Dict, Iterator, List, Optional, Type

from langchain_core.tools import BaseTool
from langchain_core.utils.function_calling import convert_to_openai_tool
from pydantic import BaseModel, ValidationError

from models.events import ToolInvocation
from settings import settings
from utils.logging import logger
from utils.metrics import record_tool_failure


class ToolResultBuffer:
    """Append-only record of the tool calls made by one target during one turn."""

    def __init__(self) -> None:
        self._items: List[ToolInvocation] = []

    def append(self, invocation: ToolInvocation) -> None:
        self._items.append(invocation)

    def snapshot(self) -> List[ToolInvocation]:
        return list(self._items)

    @property
    def last_tool_name(self) -> Optional[str]:
        return self._items[-1].tool_name if self._items else None

    def __iter__(self) -> Iterator[ToolInvocation]:
        return iter(self._items)

    def __len__(self) -> int:
        return len(self._items)


class ToolAgent(BaseTool):
    """A tool a model may call mid-generation.

    ``execute`` never raises: invalid input, timeouts and backend failures come back as
    an error result so the calling target can keep generating.
    """

    args_schema: Type[BaseModel]
    buffer: ToolResultBuffer
    timeout: float = settings.tool_timeout

    # Bookkeeping tools are not folded into persisted results
    records_results: ClassVar[bool] = True

    def describe(self) -> Dict[str, Any]:
        """Schema advertised to the model."""
        return convert_to_openai_tool(self)

    async def execute(self, tool_input: Optional[Dict[str, Any]], call_id: Optional[str] = None) -> Dict[str, Any]:
        is_error = True
        try:
            args = self.args_schema.model_validate(tool_input or {})
            result = await asyncio.wait_for(self._execute(args), timeout=self.timeout)
            is_error = False
        except asyncio.TimeoutError:
            logger.warning(f"Tool {self.name} timed out after {self.timeout}s")
            result = self.error_result(f"{self.name} timed out")
        except ValidationError as e:
            logger.warning(f"Tool {self.name} received invalid input: {str(e)}")
            result = self.error_result(f"Invalid input for {self.name}: {e.errors(include_url=False)}")
        except Exception as e:
            logger.error(f"Tool {self.name} failed: {str(e)}", exc_info=True)
            result = self.error_result(str(e))

        if is_error:
            record_tool_failure(self.name)

        if self.records_results:
            self.buffer.append(
                ToolInvocation(tool_name=self.name, call_id=call_id, input=dict(tool_input or {}), result=result, is_error=is_error)
            )
        return result

    def error_result(self, message: str) -> Dict[str, Any]:
        return {"error": True, "message": message, "tool_name": self.name}

    async def _execute(self, args: BaseModel) -> Dict[str, Any]:
        raise NotImplementedError

    def _run(self, **kwargs):
        return asyncio.run(self._arun(**kwargs))

    async def _arun(self, **kwargs):
        return await self.execute(kwargs)
