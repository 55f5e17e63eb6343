"""OpenTelemetry counters for the completion pipeline.

Counters are no-ops until a meter provider is installed (see utils.logging).
"""

from typing import Optional

from opentelemetry import metrics

from constants import LOGGER_NAME

meter = metrics.get_meter(LOGGER_NAME)

web_search_cache_hits = meter.create_counter(
    "web_search.cache.hits",
    description="Web searches answered from the conversation cache",
)
web_search_cache_misses = meter.create_counter(
    "web_search.cache.misses",
    description="Web searches forwarded to the search provider",
)
tool_failures = meter.create_counter(
    "tool.failures",
    description="Tool invocations that produced an error result",
)
provider_failures = meter.create_counter(
    "provider.failures",
    description="Target streams that ended in an error",
)


def record_cache_hit(conversation_id: Optional[str] = None) -> None:
    web_search_cache_hits.add(1, {"conversation.scoped": conversation_id is not None})


def record_cache_miss(conversation_id: Optional[str] = None) -> None:
    web_search_cache_misses.add(1, {"conversation.scoped": conversation_id is not None})


def record_tool_failure(tool_name: str) -> None:
    tool_failures.add(1, {"tool.name": tool_name})


def record_provider_failure(target_id: str, error_type: str) -> None:
    provider_failures.add(1, {"target.id": target_id, "error.type": error_type})
