"""Exception types raised at the engine's collaborator boundary."""


class PerpsClawError(Exception):
    """Base class for all PerpsClaw errors."""


class ConfigurationError(PerpsClawError):
    """Missing or invalid configuration; fatal at startup."""


class FeedError(PerpsClawError):
    """Price feed or account collaborator failed to deliver data."""


class ExecutionError(PerpsClawError):
    """Execution collaborator rejected or failed to fill a signal."""
