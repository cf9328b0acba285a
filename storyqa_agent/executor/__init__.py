from .context import ExecutionContext
from .execution_engine import ExecutionEngine
from .orchestrator import TestAutomationService
from .result_reporter import ResultReporter
from .test_executors import APITestExecutor, BaseTestExecutor, UITestExecutor

__all__ = [
    "ExecutionContext",
    "ExecutionEngine",
    "BaseTestExecutor",
    "UITestExecutor",
    "APITestExecutor",
    "TestAutomationService",
    "ResultReporter",
]
