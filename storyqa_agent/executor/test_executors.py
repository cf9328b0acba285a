import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional, Tuple

from storyqa_agent.actions import Capability
from storyqa_agent.api import HttpxApiClient
from storyqa_agent.browser import DEFAULT_CONFIG, BrowserSession, BrowserSessionManager, PlaywrightUIDriver
from storyqa_agent.data import (
    ExecutorCapabilities,
    ExecutorValidationResult,
    HealthCheckResult,
    TestResult,
    TestScenario,
    TestType,
)
from storyqa_agent.executor.execution_engine import ExecutionEngine


class BaseTestExecutor(ABC):
    """Base class for capability-specific scenario executors."""

    name = "BaseTestExecutor"
    # Which registered action groups this executor can drive
    action_capabilities: Tuple[Capability, ...] = (Capability.LOCAL,)
    supported_test_types: Tuple[TestType, ...] = ()

    def __init__(self, engine: Optional[ExecutionEngine] = None):
        self.engine = engine or ExecutionEngine()

    @abstractmethod
    def can_execute(self, test_type: TestType) -> bool:
        pass

    @abstractmethod
    async def execute(self, scenario: TestScenario, cancel_event: Optional[asyncio.Event] = None) -> TestResult:
        """Run the scenario and return its result."""
        pass

    @abstractmethod
    async def health_check(self) -> HealthCheckResult:
        pass

    def capabilities(self) -> ExecutorCapabilities:
        registry = self.engine.registry
        actions = [name for capability in self.action_capabilities for name in registry.names(capability)]
        return ExecutorCapabilities(
            supported_test_types=list(self.supported_test_types),
            supported_actions=sorted(actions),
            supports_screenshots=Capability.UI in self.action_capabilities,
        )

    def capabilities_for(self, test_type: TestType) -> Tuple[Capability, ...]:
        return self.action_capabilities

    def validate_scenario(self, scenario: TestScenario) -> ExecutorValidationResult:
        """Check, without running anything, that every enabled step has a handler this executor can drive.

        Step-level field problems are reported as messages only; an unknown
        action or one needing a capability the executor lacks makes the
        scenario not executable.
        """
        result = ExecutorValidationResult()
        if not self.can_execute(scenario.type):
            result.can_execute = False
            result.messages.append(f"{self.name} cannot handle test type: {scenario.type.value}")
            return result

        usable = self.capabilities_for(scenario.type)
        for step in scenario.ordered_enabled_steps():
            spec = self.engine.registry.get(step.action)
            if spec is None:
                result.can_execute = False
                result.messages.append(f"Step {step.order}: unsupported action '{step.action}'")
                continue
            if spec.capability not in usable:
                result.can_execute = False
                result.messages.append(
                    f"Step {step.order}: action '{step.action}' needs {spec.capability.value} support"
                )
            result.messages.extend(f"Step {step.order}: {e}" for e in step.get_validation_errors())
        return result

    async def close(self):
        return None


class UITestExecutor(BaseTestExecutor):
    """Runs UI and mixed scenarios in an isolated browser session per run."""

    name = "UITestExecutor"
    action_capabilities = (Capability.UI, Capability.API, Capability.LOCAL)
    supported_test_types = (TestType.UI, TestType.MIXED)

    def __init__(
        self,
        engine: Optional[ExecutionEngine] = None,
        browser_config: Optional[Dict[str, Any]] = None,
        api_config: Optional[Dict[str, Any]] = None,
        session_manager: Optional[BrowserSessionManager] = None,
    ):
        super().__init__(engine)
        self.browser_config = {**DEFAULT_CONFIG, **(browser_config or {})}
        self.api_config = api_config or {}
        self.session_manager = session_manager or BrowserSessionManager()

    def can_execute(self, test_type: TestType) -> bool:
        return test_type in self.supported_test_types

    def capabilities_for(self, test_type: TestType) -> Tuple[Capability, ...]:
        # An HTTP client is only attached to mixed runs
        if test_type == TestType.MIXED:
            return self.action_capabilities
        return (Capability.UI, Capability.LOCAL)

    async def execute(self, scenario: TestScenario, cancel_event: Optional[asyncio.Event] = None) -> TestResult:
        session = await self.session_manager.create_session(self.browser_config, owner=scenario.id)
        api = HttpxApiClient.from_config(self.api_config) if scenario.type == TestType.MIXED else None
        try:
            ui = PlaywrightUIDriver(session.get_page(), screenshot_dir=self.browser_config["screenshot_dir"])
            return await self.engine.run(
                scenario,
                ui=ui,
                api=api,
                cancel_event=cancel_event,
                executor_name=self.name,
                base_url=self.api_config.get("base_url") or "",
            )
        finally:
            if api is not None:
                await api.close()
            await self.session_manager.close_session(session.session_id)

    async def health_check(self) -> HealthCheckResult:
        async with BrowserSession(browser_config={**self.browser_config, "headless": True}) as session:
            user_agent = await session.get_page().evaluate("navigator.userAgent")
        return HealthCheckResult(
            executor_name=self.name,
            is_healthy=True,
            message="Browser launched successfully",
            details={"user_agent": user_agent, "active_sessions": self.session_manager.active_count()},
        )

    async def close(self):
        await self.session_manager.close_all_sessions()


class APITestExecutor(BaseTestExecutor):
    """Runs API scenarios (and mixed ones when no browser executor is registered)."""

    name = "APITestExecutor"
    action_capabilities = (Capability.API, Capability.LOCAL)
    supported_test_types = (TestType.API, TestType.MIXED)

    def __init__(
        self,
        engine: Optional[ExecutionEngine] = None,
        api_config: Optional[Dict[str, Any]] = None,
        transport=None,
    ):
        super().__init__(engine)
        self.api_config = api_config or {}
        self.transport = transport

    def can_execute(self, test_type: TestType) -> bool:
        return test_type in self.supported_test_types

    def _client(self) -> HttpxApiClient:
        return HttpxApiClient.from_config(self.api_config, transport=self.transport)

    async def execute(self, scenario: TestScenario, cancel_event: Optional[asyncio.Event] = None) -> TestResult:
        async with self._client() as client:
            return await self.engine.run(
                scenario,
                api=client,
                cancel_event=cancel_event,
                executor_name=self.name,
                base_url=self.api_config.get("base_url") or "",
            )

    async def health_check(self) -> HealthCheckResult:
        base_url = self.api_config.get("base_url")
        if not base_url:
            return HealthCheckResult(
                executor_name=self.name,
                is_healthy=True,
                message="HTTP client ready; no base_url configured to probe",
            )

        async with self._client() as client:
            response = await client.request("GET", base_url)
        healthy = response.status_code < 500
        logging.debug(f"API health probe {base_url} returned {response.status_code}")
        return HealthCheckResult(
            executor_name=self.name,
            is_healthy=healthy,
            message=f"GET {base_url} returned {response.status_code}",
            details={"status_code": response.status_code, "response_time_ms": round(response.elapsed_ms, 2)},
        )
