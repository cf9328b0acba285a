import logging
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, NamedTuple, Optional

from pydantic import BaseModel, ConfigDict, Field

from storyqa_agent.data import ErrorKind, TestStep
from storyqa_agent.verification import VerificationEvaluator


class Capability(str, Enum):
    UI = "ui"
    API = "api"
    LOCAL = "local"


class StepOutcome(BaseModel):
    """What a handler reports back for one step."""

    success: bool
    message: str = ""
    error_kind: Optional[ErrorKind] = None
    actual_result: str = ""
    data: Dict[str, Any] = Field(default_factory=dict)
    screenshot_path: Optional[str] = None
    assertion_count: int = 0

    @classmethod
    def ok(cls, message: str = "", **kwargs) -> "StepOutcome":
        return cls(success=True, message=message, **kwargs)

    @classmethod
    def fail(cls, message: str, kind: Optional[ErrorKind] = ErrorKind.ASSERTION_MISMATCH, **kwargs) -> "StepOutcome":
        return cls(success=False, message=message, error_kind=kind, **kwargs)

    @classmethod
    def verification(cls, passed: bool, what: str, actual: str, expected: str, mode: str) -> "StepOutcome":
        """Outcome of one assertion, with a readable message either way."""
        if passed:
            message = f"{what} verification passed ({mode})"
            return cls(success=True, message=message, actual_result=actual, assertion_count=1)
        message = f"{what} verification failed: expected '{expected}' ({mode}), actual '{actual}'"
        return cls(success=False, message=message, error_kind=ErrorKind.ASSERTION_MISMATCH,
                   actual_result=actual, assertion_count=1)


class ActionRuntime(BaseModel):
    """Collaborators available to a handler during one step."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    context: Any
    ui: Any = None
    api: Any = None
    evaluator: Any = VerificationEvaluator
    base_url: str = ""


Handler = Callable[[TestStep, ActionRuntime], Awaitable[StepOutcome]]


class ActionSpec(NamedTuple):
    name: str
    handler: Handler
    capability: Capability


class ActionRegistry:
    """Maps action names to handlers; shared by the UI and API executors."""

    def __init__(self):
        self._actions: Dict[str, ActionSpec] = {}

    def register(self, name: str, capability: Capability):
        def decorator(handler: Handler) -> Handler:
            self.add(name, handler, capability)
            return handler

        return decorator

    def add(self, name: str, handler: Handler, capability: Capability) -> None:
        key = name.strip().lower()
        if key in self._actions:
            logging.debug(f"Replacing handler for action '{key}'")
        self._actions[key] = ActionSpec(key, handler, capability)

    def get(self, name: str) -> Optional[ActionSpec]:
        return self._actions.get((name or "").strip().lower())

    def names(self, capability: Optional[Capability] = None) -> List[str]:
        return [n for n, spec in self._actions.items() if capability is None or spec.capability == capability]

    def __contains__(self, name: str) -> bool:
        return self.get(name) is not None

    def __len__(self) -> int:
        return len(self._actions)
