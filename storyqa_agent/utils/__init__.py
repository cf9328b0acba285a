from .exceptions import (
    AssertionMismatchError,
    CancelledByCaller,
    ConfigurationError,
    ElementNotFoundError,
    GenerationFailure,
    MalformedResponseError,
    ScenarioNotFoundError,
    StepTimeoutError,
    StoryQAError,
    TransportError,
    UnsupportedActionError,
)
from .get_log import GetLog

__all__ = [
    "GetLog",
    "StoryQAError",
    "ElementNotFoundError",
    "StepTimeoutError",
    "AssertionMismatchError",
    "TransportError",
    "MalformedResponseError",
    "UnsupportedActionError",
    "GenerationFailure",
    "CancelledByCaller",
    "ScenarioNotFoundError",
    "ConfigurationError",
]
