import socket
import uuid
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


def _new_id() -> str:
    return str(uuid.uuid4())


class TestType(str, Enum):
    UI = "ui"
    API = "api"
    MIXED = "mixed"


class TestStatus(str, Enum):
    DRAFT = "draft"
    READY = "ready"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class TestPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class TestEnvironment(str, Enum):
    DEVELOPMENT = "development"
    TESTING = "testing"
    STAGING = "staging"
    PRODUCTION = "production"


class ExecutionState(str, Enum):
    NOT_STARTED = "not_started"
    RUNNING = "running"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAULTED = "faulted"


class ErrorKind(str, Enum):
    ELEMENT_NOT_FOUND = "ElementNotFound"
    TIMEOUT = "Timeout"
    ASSERTION_MISMATCH = "AssertionMismatch"
    TRANSPORT_ERROR = "TransportError"
    MALFORMED_RESPONSE = "MalformedResponse"
    UNSUPPORTED_ACTION = "UnsupportedAction"
    GENERATION_FAILURE = "GenerationFailure"
    CANCELLED_BY_CALLER = "CancelledByCaller"


class ActionType(str, Enum):
    """Coarse intent of one story segment."""

    AUTHENTICATION = "authentication"
    NAVIGATION = "navigation"
    NAVIGATE = "navigate"
    DATA_ENTRY = "data_entry"
    VERIFICATION = "verification"
    GENERAL = "general"


class WorkflowType(str, Enum):
    ADMIN_USER_MANAGEMENT = "admin_user_management"
    AUTHENTICATION_ONLY = "authentication_only"
    LOGIN_AND_NAVIGATE = "login_and_navigate"
    GENERAL_WORKFLOW = "general_workflow"


# ---------------------------------------------------------------------------
# Scenario definition
# ---------------------------------------------------------------------------

_TEXT_ACTIONS = {"enter_text", "type"}
_BODY_ACTIONS = {"api_post", "api_put", "api_patch"}


class TestStep(BaseModel):
    """One atomic action of a scenario.

    ``timeout``, ``wait_before`` and ``wait_after`` are expressed in seconds.
    """

    id: str = Field(default_factory=_new_id)
    order: int = 0
    action: str = ""
    target: str = ""
    description: str = ""
    parameters: Dict[str, Any] = Field(default_factory=dict)
    expected_result: str = ""
    timeout: Optional[float] = None
    is_enabled: bool = True
    is_required: bool = True
    continue_on_failure: bool = False
    take_screenshot: bool = False
    wait_before: Optional[float] = None
    wait_after: Optional[float] = None
    tags: List[str] = Field(default_factory=list)

    def get_parameter(self, *keys: str, default: Any = None) -> Any:
        """Return the first non-empty parameter among ``keys``."""
        for key in keys:
            value = self.parameters.get(key)
            if value is not None and value != "":
                return value
        return default

    def get_validation_errors(self) -> List[str]:
        errors = []
        if not self.action.strip():
            errors.append("Action is required")
        if not self.target.strip():
            errors.append("Target is required")
        if self.timeout is not None and self.timeout <= 0:
            errors.append("Timeout must be positive")
        if self.wait_before is not None and self.wait_before < 0:
            errors.append("WaitBefore cannot be negative")
        if self.wait_after is not None and self.wait_after < 0:
            errors.append("WaitAfter cannot be negative")

        action = self.action.lower()
        if action in _TEXT_ACTIONS and "value" not in self.parameters:
            errors.append("Text input actions require a 'value' parameter")
        elif action in _BODY_ACTIONS and "body" not in self.parameters:
            errors.append("HTTP POST/PUT/PATCH actions require a 'body' parameter")
        elif action == "wait" and "duration" not in self.parameters:
            errors.append("Wait actions require a 'duration' parameter")
        return errors

    def clone(self) -> "TestStep":
        return self.model_copy(update={"id": _new_id()}, deep=True)


class TestScenario(BaseModel):
    id: str = Field(default_factory=_new_id)
    title: str = ""
    description: str = ""
    original_user_story: str = ""
    type: TestType = TestType.UI
    status: TestStatus = TestStatus.DRAFT
    priority: TestPriority = TestPriority.MEDIUM
    environment: TestEnvironment = TestEnvironment.TESTING
    project_id: str = ""
    steps: List[TestStep] = Field(default_factory=list)
    preconditions: List[str] = Field(default_factory=list)
    expected_outcomes: List[str] = Field(default_factory=list)
    tags: List[str] = Field(default_factory=list)
    created_by: str = ""
    retry_count: int = 0
    metadata: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)

    def ordered_enabled_steps(self) -> List[TestStep]:
        """Steps that will run, in ascending ``order``.

        The list position of a step is irrelevant; ``sorted`` is stable so
        equal orders keep insertion order.
        """
        return sorted((s for s in self.steps if s.is_enabled), key=lambda s: s.order)

    def get_validation_errors(self) -> List[str]:
        errors = []
        if not self.title.strip():
            errors.append("Title is required")
        if not self.project_id.strip():
            errors.append("ProjectId is required")
        if not self.steps:
            errors.append("At least one test step is required")
        for step in self.steps:
            errors.extend(f"Step '{step.action}': {e}" for e in step.get_validation_errors())
        if self.retry_count < 0:
            errors.append("RetryCount cannot be negative")
        return errors

    def clone(self) -> "TestScenario":
        now = datetime.now()
        return self.model_copy(
            update={
                "id": _new_id(),
                "status": TestStatus.DRAFT,
                "steps": [step.clone() for step in self.steps],
                "created_at": now,
                "updated_at": now,
            },
            deep=True,
        )


# ---------------------------------------------------------------------------
# Execution results
# ---------------------------------------------------------------------------


class StepError(BaseModel):
    kind: str
    message: str
    stack: Optional[str] = None


class StepResult(BaseModel):
    id: str = Field(default_factory=_new_id)
    step_id: str = ""
    step_name: str = ""
    order: int = 0
    action: str = ""
    target: str = ""
    passed: bool = False
    message: str = ""
    expected_result: str = ""
    actual_result: str = ""
    started_at: datetime = Field(default_factory=datetime.now)
    completed_at: Optional[datetime] = None
    duration: float = 0.0
    screenshot_path: Optional[str] = None
    assertion_count: int = 0
    is_required: bool = True
    error: Optional[StepError] = None
    data: Dict[str, Any] = Field(default_factory=dict)

    def complete(self, passed: bool, message: str = "") -> None:
        self.passed = passed
        if message:
            self.message = message
        self.completed_at = datetime.now()
        self.duration = (self.completed_at - self.started_at).total_seconds()


class TestResult(BaseModel):
    id: str = Field(default_factory=_new_id)
    scenario_id: str = ""
    scenario_title: str = ""
    passed: bool = False
    message: str = ""
    execution_state: ExecutionState = ExecutionState.NOT_STARTED
    environment: TestEnvironment = TestEnvironment.TESTING
    executed_by: str = Field(default_factory=socket.gethostname)
    executor_name: str = ""
    started_at: datetime = Field(default_factory=datetime.now)
    completed_at: Optional[datetime] = None
    duration: float = 0.0
    step_results: List[StepResult] = Field(default_factory=list)
    screenshots: List[str] = Field(default_factory=list)
    error: Optional[StepError] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)

    def add_step_result(self, step_result: StepResult) -> None:
        self.step_results.append(step_result)
        if not step_result.passed and step_result.is_required:
            self.passed = False
            if not self.message:
                self.message = f"Test failed at step: {step_result.step_name}"

    def complete(self) -> None:
        """Finalize timing and derive ``passed`` from the required steps."""
        self.completed_at = datetime.now()
        self.duration = (self.completed_at - self.started_at).total_seconds()

        if any(not sr.passed and sr.is_required for sr in self.step_results):
            self.passed = False
            if not self.message:
                self.message = "One or more required steps failed"
        elif not self.message:
            self.passed = True
            self.message = "All test steps completed successfully"

    def success_rate(self) -> float:
        if not self.step_results:
            return 0.0
        return sum(1 for sr in self.step_results if sr.passed) / len(self.step_results) * 100

    def total_assertions(self) -> int:
        return sum(sr.assertion_count for sr in self.step_results)

    def get_first_failure(self) -> Optional[StepResult]:
        return next((sr for sr in self.step_results if not sr.passed), None)

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(mode="json")


# ---------------------------------------------------------------------------
# Story analysis
# ---------------------------------------------------------------------------


class ParsedStep(BaseModel):
    step_number: int
    text: str
    action_type: ActionType = ActionType.GENERAL
    target: str = ""
    data: Dict[str, str] = Field(default_factory=dict)


class StoryAnalysis(BaseModel):
    original_story: str = ""
    urls: List[str] = Field(default_factory=list)
    credentials: Dict[str, str] = Field(default_factory=dict)
    parsed_steps: List[ParsedStep] = Field(default_factory=list)
    workflow_type: WorkflowType = WorkflowType.GENERAL_WORKFLOW

    def has_action(self, action_type: ActionType) -> bool:
        return any(step.action_type == action_type for step in self.parsed_steps)


# ---------------------------------------------------------------------------
# Supporting records
# ---------------------------------------------------------------------------


class DocumentMetadata(BaseModel):
    urls: List[str] = Field(default_factory=list)
    email_addresses: List[str] = Field(default_factory=list)
    actions: List[str] = Field(default_factory=list)
    complexity_score: int = 1


class UserStoryDocument(BaseModel):
    id: str = Field(default_factory=_new_id)
    file_name: str = ""
    content: str = ""
    file_path: Optional[str] = None
    source: str = "manual_entry"
    file_format: str = "text"
    project_context: str = ""
    content_hash: str = ""
    metadata: DocumentMetadata = Field(default_factory=DocumentMetadata)
    uploaded_at: datetime = Field(default_factory=datetime.now)

    def get_content_preview(self, max_length: int = 200) -> str:
        if len(self.content) <= max_length:
            return self.content
        return self.content[:max_length] + "..."


class HealthCheckResult(BaseModel):
    executor_name: str
    is_healthy: bool
    message: str = ""
    checked_at: datetime = Field(default_factory=datetime.now)
    details: Dict[str, Any] = Field(default_factory=dict)


class TestSearchCriteria(BaseModel):
    project_id: Optional[str] = None
    type: Optional[TestType] = None
    status: Optional[TestStatus] = None
    priority: Optional[TestPriority] = None
    tags: List[str] = Field(default_factory=list)
    search_text: Optional[str] = None
    created_by: Optional[str] = None
    page_number: int = 1
    page_size: int = 50


class ResultSearchCriteria(BaseModel):
    scenario_id: Optional[str] = None
    project_id: Optional[str] = None
    passed: Optional[bool] = None
    environment: Optional[TestEnvironment] = None
    executed_by: Optional[str] = None
    executed_from: Optional[datetime] = None
    executed_to: Optional[datetime] = None
    # Seconds
    min_duration: Optional[float] = None
    max_duration: Optional[float] = None
    page_number: int = 1
    page_size: int = 50
    sort_descending: bool = True


class ExecutorValidationResult(BaseModel):
    can_execute: bool = True
    messages: List[str] = Field(default_factory=list)


class ExecutorCapabilities(BaseModel):
    supported_test_types: List[TestType] = Field(default_factory=list)
    supported_actions: List[str] = Field(default_factory=list)
    supports_screenshots: bool = False
    supported_browsers: List[str] = Field(default_factory=list)


class DocumentValidationResult(BaseModel):
    is_valid: bool = True
    quality_score: int = 100
    issues: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
    suggestions: List[str] = Field(default_factory=list)


class TestStatistics(BaseModel):
    project_id: str
    total_scenarios: int = 0
    total_executions: int = 0
    passed_executions: int = 0
    failed_executions: int = 0
    pass_rate: float = 0.0
    average_duration: float = 0.0
