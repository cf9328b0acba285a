import asyncio
import logging
import traceback
from datetime import datetime
from typing import Optional

from storyqa_agent.actions import ActionRegistry, ActionRuntime, Capability, StepOutcome, create_default_registry
from storyqa_agent.data import ErrorKind, ExecutionState, StepError, StepResult, TestResult, TestScenario, TestStep
from storyqa_agent.executor.context import ExecutionContext
from storyqa_agent.verification import VerificationEvaluator

CANCELLED_MESSAGE = "Test execution was cancelled"


class ExecutionEngine:
    """Runs the enabled steps of a scenario in ascending order.

    Every step is isolated: handler failures and unexpected exceptions both
    end up as a failed ``StepResult``. Cancellation is checked between
    steps only, an in-flight step always runs to completion.
    """

    def __init__(self, registry: Optional[ActionRegistry] = None, evaluator=VerificationEvaluator):
        self.registry = registry or create_default_registry()
        self.evaluator = evaluator

    async def run(
        self,
        scenario: TestScenario,
        ui=None,
        api=None,
        cancel_event: Optional[asyncio.Event] = None,
        executor_name: str = "",
        base_url: str = "",
    ) -> TestResult:
        context = ExecutionContext(scenario.id)
        runtime = ActionRuntime(context=context, ui=ui, api=api, evaluator=self.evaluator, base_url=base_url)
        result = TestResult(
            scenario_id=scenario.id,
            scenario_title=scenario.title,
            environment=scenario.environment,
            executor_name=executor_name,
            execution_state=ExecutionState.RUNNING,
        )
        steps = scenario.ordered_enabled_steps()
        logging.info(f"Starting scenario '{scenario.title}' ({len(steps)} enabled steps) with {executor_name or 'engine'}")

        try:
            for step in steps:
                if cancel_event is not None and cancel_event.is_set():
                    self._mark_cancelled(result)
                    break

                if step.wait_before:
                    await asyncio.sleep(step.wait_before)

                step_result = await self.execute_step(step, runtime)
                result.add_step_result(step_result)
                if step_result.screenshot_path:
                    result.screenshots.append(step_result.screenshot_path)

                if not step_result.passed and not step.continue_on_failure:
                    logging.warning(f"Step {step.order} ({step.action}) failed, skipping remaining steps")
                    result.passed = False
                    if not result.message:
                        result.message = f"Test failed at step: {step_result.step_name}"
                    break

                if step.wait_after and not (cancel_event is not None and cancel_event.is_set()):
                    await asyncio.sleep(step.wait_after)
        except asyncio.CancelledError:
            self._mark_cancelled(result)
            result.complete()
            logging.warning(f"Scenario '{scenario.title}' cancelled during execution")
            raise
        finally:
            context.clear()

        if result.execution_state == ExecutionState.RUNNING:
            result.execution_state = ExecutionState.COMPLETED
        result.complete()

        passed = sum(1 for sr in result.step_results if sr.passed)
        logging.info(
            f"Scenario '{scenario.title}' finished: passed={result.passed}, "
            f"{passed}/{len(result.step_results)} steps passed in {result.duration:.2f}s"
        )
        return result

    async def execute_step(self, step: TestStep, runtime: ActionRuntime) -> StepResult:
        step_result = StepResult(
            step_id=step.id,
            step_name=step.description or step.action,
            order=step.order,
            action=step.action,
            target=step.target,
            expected_result=step.expected_result,
            is_required=step.is_required,
        )
        spec = self.registry.get(step.action)
        logging.info(f"Executing step {step.order}: {step.action} - {step.description}")

        try:
            if spec is None:
                outcome = StepOutcome.fail(f"Unknown action: {step.action}", ErrorKind.UNSUPPORTED_ACTION)
            elif spec.capability == Capability.UI and runtime.ui is None:
                outcome = StepOutcome.fail(f"Action '{step.action}' needs a browser, which this executor does not provide",
                                           ErrorKind.UNSUPPORTED_ACTION)
            elif spec.capability == Capability.API and runtime.api is None:
                outcome = StepOutcome.fail(f"Action '{step.action}' needs an HTTP client, which this executor does not provide",
                                           ErrorKind.UNSUPPORTED_ACTION)
            else:
                outcome = await spec.handler(self._resolve(step, runtime.context), runtime)
            self._apply_outcome(step_result, outcome)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logging.warning(f"Step {step.order} ({step.action}) raised {type(e).__name__}: {e}")
            step_result.error = StepError(kind=type(e).__name__, message=str(e), stack=traceback.format_exc())
            step_result.complete(False, f"Step failed: {e}")

        uses_browser = spec is not None and spec.capability == Capability.UI and runtime.ui is not None
        if uses_browser and not step_result.screenshot_path and (not step_result.passed or step.take_screenshot):
            prefix = "failure" if not step_result.passed else "step"
            step_result.screenshot_path = await self._capture_screenshot(runtime.ui, f"{prefix}_step_{step.order}")

        if step_result.passed:
            logging.info(f"Step {step.order} passed: {step_result.message}")
        else:
            logging.warning(f"Step {step.order} failed: {step_result.message}")
        return step_result

    @staticmethod
    def _resolve(step: TestStep, context: ExecutionContext) -> TestStep:
        """Copy of ``step`` with context variables substituted."""
        return step.model_copy(update={
            "target": context.interpolate(step.target),
            "parameters": context.interpolate(step.parameters),
        })

    @staticmethod
    def _apply_outcome(step_result: StepResult, outcome: StepOutcome) -> None:
        step_result.actual_result = outcome.actual_result
        step_result.data = dict(outcome.data)
        step_result.assertion_count = outcome.assertion_count
        step_result.screenshot_path = outcome.screenshot_path
        if not outcome.success and outcome.error_kind is not None:
            step_result.error = StepError(kind=outcome.error_kind.value, message=outcome.message)
        step_result.complete(outcome.success, outcome.message)

    @staticmethod
    async def _capture_screenshot(ui, name: str) -> Optional[str]:
        file_name = f"{name}_{datetime.now().strftime('%Y%m%d_%H%M%S_%f')}.png"
        try:
            return await ui.screenshot(file_name)
        except Exception as e:
            logging.warning(f"Could not capture screenshot '{file_name}': {e}")
            return None

    @staticmethod
    def _mark_cancelled(result: TestResult) -> None:
        result.execution_state = ExecutionState.CANCELLED
        result.passed = False
        result.message = CANCELLED_MESSAGE
        result.error = StepError(kind=ErrorKind.CANCELLED_BY_CALLER.value, message=CANCELLED_MESSAGE)
        logging.warning(f"Scenario {result.scenario_id}: {CANCELLED_MESSAGE}")
