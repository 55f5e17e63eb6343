"""Exceptions raised by providers, tools and the dispatch pipeline."""


class AgentError(Exception):
    """Base exception for agent errors."""

    pass


class ProviderError(AgentError):
    """Raised when a provider stream fails for one target."""

    def __init__(self, message: str, target_id: str = None):
        super().__init__(message)
        self.target_id = target_id


class ProviderNotConfiguredError(ProviderError):
    """Raised when a target's backend has no credentials."""

    pass


class UnknownModelError(AgentError):
    """Raised when a model name is not in the catalog."""

    pass


class ModelAccessError(AgentError):
    """Raised when the caller's plan does not allow a target model."""

    pass


class ToolExecutionError(AgentError):
    """Raised inside tool bodies; always converted into an error result."""

    pass
