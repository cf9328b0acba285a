from .test_structures import (
    ActionType,
    DocumentMetadata,
    DocumentValidationResult,
    ErrorKind,
    ExecutionState,
    ExecutorCapabilities,
    ExecutorValidationResult,
    HealthCheckResult,
    ParsedStep,
    ResultSearchCriteria,
    StepError,
    StepResult,
    StoryAnalysis,
    TestEnvironment,
    TestPriority,
    TestResult,
    TestScenario,
    TestSearchCriteria,
    TestStatistics,
    TestStatus,
    TestStep,
    TestType,
    UserStoryDocument,
    WorkflowType,
)

__all__ = [
    "TestType",
    "TestStatus",
    "TestPriority",
    "TestEnvironment",
    "ExecutionState",
    "ErrorKind",
    "ActionType",
    "WorkflowType",
    "TestStep",
    "TestScenario",
    "StepError",
    "StepResult",
    "TestResult",
    "ParsedStep",
    "StoryAnalysis",
    "DocumentMetadata",
    "UserStoryDocument",
    "HealthCheckResult",
    "TestSearchCriteria",
    "ResultSearchCriteria",
    "TestStatistics",
    "ExecutorValidationResult",
    "ExecutorCapabilities",
    "DocumentValidationResult",
]
