"""llrtrace package root."""

from llrtrace.exceptions import ConfigurationError, FrontendError, LlrTraceError

__all__ = ["__version__", "ConfigurationError", "FrontendError", "LlrTraceError"]

__version__ = "0.1.0"
