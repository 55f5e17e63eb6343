"""Best-effort conversation title and follow-up question generation."""

import asyncio
import re
from typing import List, Optional

from langchain_core.language_models.chat_models import BaseChatModel
from langchain_core.messages import HumanMessage

from agents.dispatcher import chunk_text
from settings import settings
from utils.logging import logger

TITLE_PROMPT = (
    "Create a short title with less than 8 words without any prefix or suffix for the conversation. "
    "Ignore the model names mentioned with '@' in the conversation: {message}"
)

FOLLOW_UP_PROMPT = """
Suggest {count} short follow-up questions the user might ask next.
Write one question per line, without numbering or any other text.

User message:
{message}

Answer:
{answer}
"""

MAX_TITLE_LENGTH = 100
_LIST_MARKER = re.compile(r"^\s*(?:[-*•]|\d+[.)])\s*")


class FinalizationService:
    """Generates conversation metadata after a turn; failures only cost the metadata."""

    def __init__(self, chat_model: BaseChatModel, timeout: Optional[float] = None, follow_up_count: int = 3):
        self.chat_model = chat_model
        self.timeout = timeout or settings.finalization_timeout
        self.follow_up_count = follow_up_count

    async def generate_title(self, message: str) -> Optional[str]:
        text = await self._complete(TITLE_PROMPT.format(message=message), "title")
        if not text:
            return None
        title = text.strip().splitlines()[0].strip().strip("\"'").strip()
        return title[:MAX_TITLE_LENGTH] or None

    async def generate_follow_up_questions(self, message: str, answer: str) -> List[str]:
        prompt = FOLLOW_UP_PROMPT.format(count=self.follow_up_count, message=message, answer=answer).strip()
        text = await self._complete(prompt, "follow-up questions")
        if not text:
            return []
        questions = [_LIST_MARKER.sub("", line).strip() for line in text.splitlines()]
        return [question for question in questions if question][: self.follow_up_count]

    async def _complete(self, prompt: str, purpose: str) -> Optional[str]:
        try:
            response = await asyncio.wait_for(self.chat_model.ainvoke([HumanMessage(prompt)]), timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Generating {purpose} timed out")
            return None
        except Exception as e:
            logger.warning(f"Generating {purpose} failed: {str(e)}")
            return None
        return chunk_text(response)
