"""Exception taxonomy shared by the generation and execution pipeline."""


class StoryQAError(Exception):
    """Base class for all errors raised by storyqa_agent."""


class ElementNotFoundError(StoryQAError):
    """No candidate locator matched a visible element."""


class StepTimeoutError(StoryQAError):
    """A collaborator gave up waiting within the step timeout."""


class AssertionMismatchError(StoryQAError):
    """A verification predicate did not hold."""


class TransportError(StoryQAError):
    """An HTTP or network call failed before a response arrived."""


class MalformedResponseError(StoryQAError):
    """A response body could not be parsed in the requested format."""


class UnsupportedActionError(StoryQAError):
    """A step names an action outside the registered vocabulary."""


class GenerationFailure(StoryQAError):
    """The LLM call failed or its output could not be turned into steps."""


class CancelledByCaller(StoryQAError):
    """A caller requested that a scenario stop."""


class ScenarioNotFoundError(StoryQAError):
    """The repository holds no scenario with the requested id."""


class ConfigurationError(StoryQAError):
    """Configuration is missing or invalid."""
