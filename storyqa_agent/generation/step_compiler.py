import logging
from typing import Any, Dict, List, Optional

from storyqa_agent.actions.ui_actions import as_flag
from storyqa_agent.analysis import StoryAnalyzer
from storyqa_agent.data import (
    ActionType,
    ParsedStep,
    StoryAnalysis,
    TestPriority,
    TestScenario,
    TestStatus,
    TestStep,
    TestType,
    WorkflowType,
)
from storyqa_agent.locators import GENERIC_INPUT_SELECTORS, SelectorSynthesizer, join_locators
from storyqa_agent.utils.exceptions import GenerationFailure

PLACEHOLDER_USERNAME = "admin@example.com"
PLACEHOLDER_PASSWORD = "Admin@123"

# Seconds.
DEFAULT_TIMEOUTS = {
    "navigate": 30,
    "enter_text": 15,
    "click": 15,
    "wait": 10,
    "verify_element": 20,
    "verify_text": 20,
    "verify_authentication": 25,
    "api": 30,
}
DEFAULT_TIMEOUT = 15

PAGE_SETTLE_MS = "3000"
AUTH_SETTLE_MS = "5000"
GENERAL_PLACEHOLDER_MS = "2000"
DESCRIPTION_PREVIEW_LENGTH = 150


def default_timeout(action: str) -> int:
    if action.startswith("api_"):
        return DEFAULT_TIMEOUTS["api"]
    return DEFAULT_TIMEOUTS.get(action, DEFAULT_TIMEOUT)


class StepCompiler:
    """Assembles ordered ``TestStep`` sequences.

    Two inputs are supported: a ``StoryAnalysis`` from the heuristic
    analyzer, and the JSON payload returned by an LLM.
    """

    def __init__(self, synthesizer: Optional[SelectorSynthesizer] = None):
        self.synthesizer = synthesizer or SelectorSynthesizer()

    def compile(self, analysis: StoryAnalysis) -> List[TestStep]:
        steps: List[TestStep] = []

        if analysis.urls:
            steps.extend(self._navigate_fragment(analysis.urls[0], "Navigate to application"))

        for parsed in analysis.parsed_steps:
            steps.extend(self._fragment_for(parsed, analysis))

        for order, step in enumerate(steps, start=1):
            step.order = order
        return steps

    def compile_api(self, analysis: StoryAnalysis) -> List[TestStep]:
        """HTTP checks for every URL found, plus body checks for quoted expectations."""
        steps: List[TestStep] = []
        for url in analysis.urls:
            steps.append(self._step("api_get", url, f"Send GET request to {url}", {},
                                    "Request succeeds with a 2xx status"))
            steps.append(self._step("verify_status_code", "response", "Verify response status code",
                                    {"expectedCode": "200"}, "Status code is 200"))
            steps.append(self._step("verify_response_time", "response", "Verify response time",
                                    {"maxTime": "5000"}, "Response arrives within 5000 ms"))

        for parsed in analysis.parsed_steps:
            if parsed.action_type == ActionType.VERIFICATION and parsed.target:
                steps.append(self._step("verify_body", "response", f"Verify response mentions {parsed.target}",
                                        {"expected": parsed.target, "mode": "contains"},
                                        f"Response body contains '{parsed.target}'"))

        for order, step in enumerate(steps, start=1):
            step.order = order
        return steps

    def build_scenario(self, analysis: StoryAnalysis, test_type: TestType = TestType.UI) -> TestScenario:
        steps = self.compile_api(analysis) if test_type == TestType.API else self.compile(analysis)
        has_auth = analysis.has_action(ActionType.AUTHENTICATION)

        scenario = TestScenario(
            title=self._title(analysis),
            description=self._description(analysis, len(steps)),
            original_user_story=analysis.original_story,
            type=test_type,
            priority=TestPriority.HIGH if has_auth else TestPriority.MEDIUM,
            steps=steps,
            preconditions=self._preconditions(analysis),
            expected_outcomes=self._expected_outcomes(analysis),
            tags=self._tags(analysis),
            metadata={"generated_by": "heuristic", "workflow_type": analysis.workflow_type.value},
        )
        logging.info(f"Heuristic scenario '{scenario.title}' compiled with {len(steps)} steps")
        return scenario

    def compile_llm_payload(self, payload: Dict[str, Any], original_story: str = "") -> TestScenario:
        """Build a scenario from the LLM's JSON object. Raises GenerationFailure when unusable."""
        if not isinstance(payload, dict):
            raise GenerationFailure("LLM response is not a JSON object")

        raw_steps = payload.get("steps") or []
        if not isinstance(raw_steps, list) or not raw_steps:
            raise GenerationFailure("LLM response contains no steps")

        steps = [self._step_from_payload(index, raw) for index, raw in enumerate(raw_steps, start=1)]
        steps.sort(key=lambda s: s.order)
        # The LLM may repeat or skip orders
        for order, step in enumerate(steps, start=1):
            step.order = order

        return TestScenario(
            title=str(payload.get("title") or "Generated Test"),
            description=str(payload.get("description") or ""),
            original_user_story=original_story,
            type=_enum_value(TestType, payload.get("type"), TestType.UI),
            priority=_enum_value(TestPriority, payload.get("priority"), TestPriority.MEDIUM),
            status=TestStatus.DRAFT,
            steps=steps,
            preconditions=[str(p) for p in payload.get("preconditions") or []],
            expected_outcomes=[str(o) for o in payload.get("expectedOutcomes") or payload.get("expected_outcomes") or []],
            tags=[str(t) for t in payload.get("tags") or []],
            metadata={"generated_by": "llm"},
        )

    # Fragments

    def _fragment_for(self, parsed: ParsedStep, analysis: StoryAnalysis) -> List[TestStep]:
        if parsed.action_type == ActionType.AUTHENTICATION:
            return self._authentication_fragment(parsed, analysis)
        if parsed.action_type == ActionType.NAVIGATE:
            urls = StoryAnalyzer.extract_urls(parsed.text)
            if urls:
                return self._navigate_fragment(urls[0], f"Navigate to {urls[0]}")
            return self._navigation_fragment(parsed)
        if parsed.action_type == ActionType.NAVIGATION:
            return self._navigation_fragment(parsed)
        if parsed.action_type == ActionType.DATA_ENTRY:
            return self._data_entry_fragment(parsed)
        if parsed.action_type == ActionType.VERIFICATION:
            return self._verification_fragment(parsed)
        return [
            self._step("wait", "page", f"Process: {parsed.text}",
                       {"type": "duration", "duration": GENERAL_PLACEHOLDER_MS}, "Step processed")
        ]

    def _navigate_fragment(self, url: str, description: str) -> List[TestStep]:
        return [
            self._step("navigate", url, description, {"url": url}, "Page loads successfully"),
            self._step("wait", "page", "Wait for page to load",
                       {"type": "page_load", "duration": PAGE_SETTLE_MS}, "Page is fully loaded"),
        ]

    def _authentication_fragment(self, parsed: ParsedStep, analysis: StoryAnalysis) -> List[TestStep]:
        username = parsed.data.get("username") or analysis.credentials.get("username") or PLACEHOLDER_USERNAME
        password = parsed.data.get("password") or analysis.credentials.get("password") or PLACEHOLDER_PASSWORD
        if username == PLACEHOLDER_USERNAME or password == PLACEHOLDER_PASSWORD:
            logging.warning("Credentials missing from story, using placeholder values")

        synth = self.synthesizer
        return [
            self._step("enter_text", join_locators(synth.synthesize_credential_field("username")),
                       "Enter username", {"value": username, "clearFirst": "true"}, "Username is entered"),
            self._step("enter_text", join_locators(synth.synthesize_credential_field("password")),
                       "Enter password", {"value": password, "clearFirst": "true"}, "Password is entered"),
            self._step("click", join_locators(synth.synthesize_credential_field("submit")),
                       "Click login button", {}, "Login form is submitted"),
            self._step("wait", "page", "Wait for authentication to complete",
                       {"type": "duration", "duration": AUTH_SETTLE_MS}, "Authentication request completes",
                       timeout=20),
            self._step("verify_authentication", "page", "Verify successful authentication",
                       {"mode": "success"}, "User is logged in"),
        ]

    def _navigation_fragment(self, parsed: ParsedStep) -> List[TestStep]:
        target = parsed.target
        label = target or "target element"
        locators = self.synthesizer.synthesize(target) or ["body"]
        return [
            self._step("click", join_locators(locators), f"Click {label}", {}, f"{label} is activated"),
            self._step("wait", "page", f"Wait for {label} to load",
                       {"type": "duration", "duration": PAGE_SETTLE_MS}, "Navigation completes"),
            self._step("verify_element", join_locators(self.synthesizer.synthesize_verification(target)),
                       f"Verify {label} is displayed", {"mode": "visible"}, f"{label} content is visible"),
        ]

    def _data_entry_fragment(self, parsed: ParsedStep) -> List[TestStep]:
        value = next(iter(parsed.data.values()), "")
        return [
            self._step("enter_text", join_locators(GENERIC_INPUT_SELECTORS), f"Enter data: {parsed.text}",
                       {"value": value, "clearFirst": "true"}, "Data is entered"),
        ]

    def _verification_fragment(self, parsed: ParsedStep) -> List[TestStep]:
        locators = self.synthesizer.synthesize(parsed.target) or self.synthesizer.synthesize_verification("")
        label = parsed.target or "page content"
        return [
            self._step("verify_element", join_locators(locators), f"Verify {label}",
                       {"mode": "visible"}, f"{label} is visible"),
        ]

    @staticmethod
    def _step(action: str, target: str, description: str, parameters: Dict[str, Any], expected: str,
              timeout: Optional[int] = None) -> TestStep:
        return TestStep(
            action=action,
            target=target,
            description=description,
            parameters=parameters,
            expected_result=expected,
            timeout=timeout if timeout is not None else default_timeout(action),
        )

    @staticmethod
    def _step_from_payload(index: int, raw: Any) -> TestStep:
        if not isinstance(raw, dict):
            raise GenerationFailure(f"Step {index} is not a JSON object")
        action = str(raw.get("action") or "").strip().lower()
        if not action:
            raise GenerationFailure(f"Step {index} has no action")

        try:
            order = int(raw.get("order") or index)
        except (TypeError, ValueError):
            order = index
        try:
            timeout = float(raw["timeout"]) if raw.get("timeout") else default_timeout(action)
        except (TypeError, ValueError):
            timeout = default_timeout(action)

        parameters = raw.get("parameters") or {}
        if not isinstance(parameters, dict):
            parameters = {}

        return TestStep(
            order=order,
            action=action,
            target=str(raw.get("target") or ""),
            description=str(raw.get("description") or ""),
            parameters=parameters,
            expected_result=str(raw.get("expectedResult") or raw.get("expected_result") or ""),
            timeout=timeout,
            continue_on_failure=as_flag(raw.get("continueOnFailure")),
            take_screenshot=as_flag(raw.get("takeScreenshot")),
        )

    # Scenario metadata

    @staticmethod
    def _title(analysis: StoryAnalysis) -> str:
        has_auth = analysis.has_action(ActionType.AUTHENTICATION)
        has_nav = analysis.has_action(ActionType.NAVIGATION) or analysis.has_action(ActionType.NAVIGATE)
        if analysis.workflow_type == WorkflowType.ADMIN_USER_MANAGEMENT:
            return "Complete Admin Workflow Test"
        if has_auth and has_nav:
            return "Login and Navigation Test"
        if has_auth:
            return "Authentication Test"
        if has_nav:
            return "Navigation Test"
        if analysis.has_action(ActionType.DATA_ENTRY):
            return "Data Entry Test"
        if analysis.has_action(ActionType.VERIFICATION):
            return "Verification Test"
        return "User Story Test"

    @staticmethod
    def _description(analysis: StoryAnalysis, step_count: int) -> str:
        story = analysis.original_story.strip()
        preview = story[:DESCRIPTION_PREVIEW_LENGTH]
        if len(story) > DESCRIPTION_PREVIEW_LENGTH:
            preview += "..."
        return f"Comprehensive test covering {step_count} steps: {preview}"

    @staticmethod
    def _tags(analysis: StoryAnalysis) -> List[str]:
        tags = ["automated", "generated", analysis.workflow_type.value]
        if analysis.workflow_type == WorkflowType.ADMIN_USER_MANAGEMENT:
            tags += ["admin", "user-management"]
        for action_type, tag in (
            (ActionType.AUTHENTICATION, "authentication"),
            (ActionType.NAVIGATION, "navigation"),
            (ActionType.NAVIGATE, "navigation"),
            (ActionType.DATA_ENTRY, "form"),
            (ActionType.VERIFICATION, "verification"),
        ):
            if analysis.has_action(action_type) and tag not in tags:
                tags.append(tag)
        return tags

    @staticmethod
    def _preconditions(analysis: StoryAnalysis) -> List[str]:
        if analysis.urls:
            preconditions = [f"Application is accessible at {analysis.urls[0]}"]
        else:
            preconditions = ["Application is accessible"]
        if analysis.has_action(ActionType.AUTHENTICATION):
            preconditions.append("Valid user credentials are available")
        if analysis.workflow_type == WorkflowType.ADMIN_USER_MANAGEMENT:
            preconditions.append("User has administrator privileges")
        if analysis.has_action(ActionType.DATA_ENTRY):
            preconditions.append("Required input data is available")
        return preconditions

    @staticmethod
    def _expected_outcomes(analysis: StoryAnalysis) -> List[str]:
        outcomes = []
        if analysis.has_action(ActionType.AUTHENTICATION):
            outcomes.append("User is authenticated successfully")
        if analysis.has_action(ActionType.NAVIGATION) or analysis.has_action(ActionType.NAVIGATE):
            outcomes.append("Navigation targets are reachable and their content is displayed")
        if analysis.has_action(ActionType.DATA_ENTRY):
            outcomes.append("Input fields accept the provided values")
        if analysis.has_action(ActionType.VERIFICATION):
            outcomes.append("Expected elements are visible")
        outcomes.append("All test steps complete without errors")
        return outcomes


def _enum_value(enum_cls, raw, default):
    if raw is None:
        return default
    text = str(raw).strip().lower()
    for member in enum_cls:
        if member.value == text or member.name.lower() == text:
            return member
    return default
