"""reqchain errors."""


class ReqchainError(Exception):
    """Base class for every error reqchain reports to the user."""


class ConfigurationError(ReqchainError):
    """Missing workspace, variable set or call, or a malformed document."""


class PayloadError(ReqchainError):
    """The request body could not be built from the call template."""


class NetworkError(ReqchainError):
    """Transport-level failure while executing a call."""


class ExtractionError(ReqchainError):
    """A single extract rule could not be applied. Never fatal."""
