"""Logging for the completion service.

One application logger; provider SDK and HTTP client loggers are kept at WARNING so
streamed requests do not flood the output. With an Application Insights connection
string, logs, traces and the counters in utils.metrics are exported to Azure Monitor.
"""

import logging
import sys

from azure.monitor.opentelemetry import configure_azure_monitor
from opentelemetry.instrumentation.logging import LoggingInstrumentor

from constants import APPLICATIONINSIGHTS_CONNECTION_STRING, LOGGER_NAME, LOGGING_LEVEL

NOISY_LOGGERS = ("httpx", "httpcore", "openai", "anthropic", "groq", "pymongo", "azure")

logger = logging.getLogger(LOGGER_NAME)

logging_level = getattr(logging, LOGGING_LEVEL, logging.INFO)
logger.setLevel(logging_level)

# Process and thread ids tell uvicorn workers apart
formatter = logging.Formatter("%(asctime)s - PID:%(process)d - Thread:%(thread)d - %(name)s - %(levelname)s - %(message)s")

console_handler = logging.StreamHandler(sys.stdout)
console_handler.setFormatter(formatter)
logger.addHandler(console_handler)

for name in NOISY_LOGGERS:
    logging.getLogger(name).setLevel(max(logging_level, logging.WARNING))

if APPLICATIONINSIGHTS_CONNECTION_STRING:
    configure_azure_monitor(connection_string=APPLICATIONINSIGHTS_CONNECTION_STRING, logger_name=LOGGER_NAME)

    # Adds trace and span ids to records; the azure SDK logger is excluded to avoid exporting its own logs
    LoggingInstrumentor().instrument(level=logging_level, excluded_loggers=["azure"])

# Handled here only, not again by the root logger
logger.propagate = False
