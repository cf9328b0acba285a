import asyncio
import logging
import traceback
from datetime import datetime
from typing import Dict, List, Optional, Sequence

from storyqa_agent.data import (
    ErrorKind,
    ExecutionState,
    HealthCheckResult,
    StepError,
    TestResult,
    TestScenario,
    TestSearchCriteria,
    TestStatistics,
    TestStatus,
    TestType,
)
from storyqa_agent.executor.test_executors import BaseTestExecutor
from storyqa_agent.generation import ScenarioGenerator
from storyqa_agent.llm import LLMAPI, LLMPrompt
from storyqa_agent.repository import TestRepository
from storyqa_agent.utils.exceptions import ScenarioNotFoundError

DEFAULT_MAX_CONCURRENT_TESTS = 2
NO_FAILURES_MESSAGE = "No failures to analyze"


class TestAutomationService:
    """Scenario lifecycle: generation, execution, batches, history and health."""

    def __init__(
        self,
        repository: TestRepository,
        executors: Sequence[BaseTestExecutor],
        generator: Optional[ScenarioGenerator] = None,
        llm: Optional[LLMAPI] = None,
        max_concurrent_tests: int = DEFAULT_MAX_CONCURRENT_TESTS,
    ):
        self.repository = repository
        self.executors = list(executors)
        self.generator = generator or ScenarioGenerator(llm=llm)
        self.llm = llm
        self.max_concurrent_tests = max_concurrent_tests
        # Every in-flight run of a scenario has its own cancel event
        self._running: Dict[str, List[asyncio.Event]] = {}

    # Creation

    async def create_test_from_user_story(
        self,
        story: str,
        project_id: str,
        test_type: TestType = TestType.UI,
        created_by: str = "",
        project_context: str = "",
    ) -> str:
        scenario = await self.generator.generate(story, project_context=project_context, test_type=test_type)
        scenario.project_id = project_id
        scenario.type = test_type
        scenario.created_by = created_by
        scenario.original_user_story = story

        errors = scenario.get_validation_errors()
        if errors:
            scenario.status = TestStatus.DRAFT
            logging.warning(f"Scenario '{scenario.title}' saved as draft: {'; '.join(errors)}")
        else:
            scenario.status = TestStatus.READY

        await self.repository.save_scenario(scenario)
        logging.info(f"Created scenario {scenario.id} '{scenario.title}' ({scenario.status.value})")
        return scenario.id

    # Execution

    def _select_executor(self, test_type: TestType) -> Optional[BaseTestExecutor]:
        return next((e for e in self.executors if e.can_execute(test_type)), None)

    async def execute_test(self, scenario_id: str, cancel_event: Optional[asyncio.Event] = None) -> TestResult:
        scenario = await self.repository.get_scenario(scenario_id)
        if scenario is None:
            raise ScenarioNotFoundError(f"Test scenario {scenario_id} not found")

        executor = self._select_executor(scenario.type)
        if executor is None:
            result = self._failed_result(scenario_id, scenario.title,
                                         f"No executor available for test type: {scenario.type.value}",
                                         kind=ErrorKind.UNSUPPORTED_ACTION.value)
            await self.repository.save_result(result)
            await self.repository.update_scenario_status(scenario_id, TestStatus.FAILED)
            return result

        validation = executor.validate_scenario(scenario)
        if validation.messages:
            logging.warning(f"Scenario {scenario_id} pre-run checks with {executor.name}: "
                            f"{'; '.join(validation.messages)}")

        cancel_event = cancel_event or asyncio.Event()
        self._running.setdefault(scenario_id, []).append(cancel_event)
        await self.repository.update_scenario_status(scenario_id, TestStatus.RUNNING)
        logging.info(f"Executing scenario {scenario_id} '{scenario.title}' with {executor.name}")

        try:
            result = await executor.execute(scenario, cancel_event)
        except asyncio.CancelledError:
            await self.repository.update_scenario_status(scenario_id, TestStatus.CANCELLED)
            raise
        except Exception as e:
            logging.error(f"Scenario {scenario_id} faulted: {e}", exc_info=True)
            result = self._failed_result(scenario_id, scenario.title, f"Test execution failed: {e}",
                                         kind=type(e).__name__, stack=traceback.format_exc())
            result.executor_name = executor.name
        finally:
            self._release(scenario_id, cancel_event)

        if result.execution_state == ExecutionState.CANCELLED:
            status = TestStatus.CANCELLED
        else:
            status = TestStatus.COMPLETED if result.passed else TestStatus.FAILED

        await self.repository.save_result(result)
        await self.repository.update_scenario_status(scenario_id, status)
        logging.info(f"Scenario {scenario_id} finished with status {status.value}: {result.message}")
        return result

    async def execute_tests_parallel(
        self, scenario_ids: Sequence[str], max_concurrency: Optional[int] = None
    ) -> List[TestResult]:
        """Run scenarios with at most ``max_concurrency`` in flight; results follow input order."""
        limit = max_concurrency if max_concurrency is not None else self.max_concurrent_tests
        if limit < 1:
            raise ValueError("max_concurrency must be at least 1")

        semaphore = asyncio.Semaphore(limit)
        logging.info(f"Executing {len(scenario_ids)} scenarios with concurrency {limit}")

        async def run_one(scenario_id: str) -> TestResult:
            async with semaphore:
                return await self.execute_test(scenario_id)

        tasks = [asyncio.create_task(run_one(sid)) for sid in scenario_ids]
        try:
            outcomes = await asyncio.gather(*tasks, return_exceptions=True)
        except asyncio.CancelledError:
            logging.warning("Batch execution cancelled, cancelling running scenarios")
            for task in tasks:
                task.cancel()
            raise

        results: List[TestResult] = []
        for scenario_id, outcome in zip(scenario_ids, outcomes):
            if isinstance(outcome, asyncio.CancelledError):
                result = self._failed_result(scenario_id, "", "Test execution was cancelled",
                                             kind=ErrorKind.CANCELLED_BY_CALLER.value)
                result.execution_state = ExecutionState.CANCELLED
                results.append(result)
            elif isinstance(outcome, BaseException):
                logging.error(f"Scenario {scenario_id} failed with exception: {outcome}")
                results.append(self._failed_result(scenario_id, "", f"Test execution failed: {outcome}",
                                                   kind=type(outcome).__name__))
            else:
                results.append(outcome)

        passed = sum(1 for r in results if r.passed)
        logging.info(f"Batch finished: {passed}/{len(results)} scenarios passed")
        return results

    async def cancel_test(self, scenario_id: str) -> bool:
        """Request a cooperative stop; the running step finishes first."""
        events = self._running.get(scenario_id)
        if not events:
            logging.debug(f"Scenario {scenario_id} is not running")
            return False
        for event in events:
            event.set()
        logging.info(f"Cancellation requested for {len(events)} run(s) of scenario {scenario_id}")
        return True

    def _release(self, scenario_id: str, cancel_event: asyncio.Event):
        events = self._running.get(scenario_id, [])
        if cancel_event in events:
            events.remove(cancel_event)
        if not events:
            self._running.pop(scenario_id, None)

    def get_running_tests(self) -> List[str]:
        return list(self._running)

    # Queries

    async def get_test_history(self, scenario_id: str, limit: Optional[int] = None) -> List[TestResult]:
        return await self.repository.get_results(scenario_id, limit)

    async def get_project_tests(self, project_id: str) -> List[TestScenario]:
        return await self.repository.list_project_scenarios(project_id)

    async def search_tests(self, criteria: TestSearchCriteria) -> List[TestScenario]:
        return await self.repository.search_scenarios(criteria)

    async def get_test_statistics(
        self, project_id: str, from_date: Optional[datetime] = None, to_date: Optional[datetime] = None
    ) -> TestStatistics:
        scenarios = await self.repository.list_project_scenarios(project_id)
        results = await self.repository.get_project_results(project_id, from_date, to_date)
        passed = sum(1 for r in results if r.passed)
        return TestStatistics(
            project_id=project_id,
            total_scenarios=len(scenarios),
            total_executions=len(results),
            passed_executions=passed,
            failed_executions=len(results) - passed,
            pass_rate=passed / len(results) * 100 if results else 0.0,
            average_duration=sum(r.duration for r in results) / len(results) if results else 0.0,
        )

    async def analyze_failure(self, scenario_id: str) -> str:
        history = await self.repository.get_results(scenario_id, limit=1)
        if not history or history[0].passed:
            return NO_FAILURES_MESSAGE

        latest = history[0]
        failed_steps = "\n".join(
            f"- Step {sr.order} ({sr.action}) {sr.step_name}: {sr.message}"
            for sr in latest.step_results if not sr.passed
        ) or "- none recorded"
        summary = f"Test failed: {latest.message}\n{failed_steps}"

        if self.llm is None:
            return summary

        prompt = LLMPrompt.failure_analysis_user_prompt.format(
            title=latest.scenario_title, failed_steps=failed_steps, message=latest.message
        )
        try:
            return await self.llm.get_llm_response(LLMPrompt.failure_analysis_system_prompt, prompt)
        except Exception as e:
            logging.warning(f"LLM failure analysis unavailable, returning summary: {e}")
            return summary

    # Maintenance

    async def delete_test_scenario(self, scenario_id: str) -> bool:
        removed_results = await self.repository.delete_results(scenario_id)
        deleted = await self.repository.delete_scenario(scenario_id)
        if deleted:
            logging.info(f"Deleted scenario {scenario_id} and {removed_results} result(s)")
        return deleted

    async def clone_test_scenario(self, scenario_id: str, new_title: str = "") -> str:
        scenario = await self.repository.get_scenario(scenario_id)
        if scenario is None:
            raise ScenarioNotFoundError(f"Test scenario {scenario_id} not found")
        clone = scenario.clone()
        clone.title = new_title or f"{scenario.title} (Copy)"
        await self.repository.save_scenario(clone)
        logging.info(f"Cloned scenario {scenario_id} into {clone.id}")
        return clone.id

    async def get_executor_health_status(self) -> List[HealthCheckResult]:
        results = []
        for executor in self.executors:
            try:
                results.append(await executor.health_check())
            except Exception as e:
                logging.warning(f"Health check of {executor.name} failed: {e}")
                results.append(HealthCheckResult(executor_name=executor.name, is_healthy=False,
                                                 message=f"Health check failed: {e}"))
        return results

    async def close(self):
        for executor in self.executors:
            await executor.close()
        if self.llm is not None:
            await self.llm.close()

    @staticmethod
    def _failed_result(scenario_id: str, title: str, message: str, kind: str, stack: Optional[str] = None) -> TestResult:
        result = TestResult(
            scenario_id=scenario_id,
            scenario_title=title,
            passed=False,
            message=message,
            execution_state=ExecutionState.FAULTED,
            error=StepError(kind=kind, message=message, stack=stack),
        )
        result.complete()
        return result
