"""Constants for the application."""

import os

from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

# Logging
LOGGER_NAME = "mention"
LOGGING_LEVEL = os.environ.get("LOGGING_LEVEL", "INFO").upper()
APPLICATIONINSIGHTS_CONNECTION_STRING = os.environ.get("APPLICATIONINSIGHTS_CONNECTION_STRING")

# Conversations
DEFAULT_CONVERSATION_TITLE = "New Conversation"
UUID_V4_PATTERN = r"^[0-9a-f]{8}-[0-9a-f]{4}-4[0-9a-f]{3}-[89ab][0-9a-f]{3}-[0-9a-f]{12}$"

# Mentions
MENTION_ME_ALIAS = "me"
MENTION_MAX_WORDS = 5

# Web search
WEB_SEARCH_HISTORY_LIMIT = 10
EXA_SEARCH_URL = "https://api.exa.ai/search"

# Memory search
MEM0_SEARCH_URL = "https://api.mem0.ai/v2/memories/search/"
PROACTIVE_MEMORY_LIMIT = 10

# Provider base URLs for OpenAI-compatible backends
OPENROUTER_BASE_URL = "https://openrouter.ai/api/v1"
PERPLEXITY_BASE_URL = "https://api.perplexity.ai/"
