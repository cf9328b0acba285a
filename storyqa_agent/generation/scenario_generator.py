import json
import logging
from typing import Any, Dict, Optional

from storyqa_agent.analysis import StoryAnalyzer
from storyqa_agent.data import StoryAnalysis, TestScenario, TestType
from storyqa_agent.generation.step_compiler import StepCompiler
from storyqa_agent.llm import LLMAPI, LLMPrompt
from storyqa_agent.utils.exceptions import GenerationFailure


def extract_json_object(text: str) -> Dict[str, Any]:
    """Parse the JSON object embedded in ``text`` (first ``{`` to last ``}``)."""
    if not text:
        raise GenerationFailure("LLM returned an empty response")
    start, end = text.find("{"), text.rfind("}")
    if start == -1 or end <= start:
        raise GenerationFailure("No JSON object found in LLM response")
    try:
        return json.loads(text[start:end + 1])
    except json.JSONDecodeError as e:
        raise GenerationFailure(f"Invalid JSON in LLM response: {e}") from e


class ScenarioGenerator:
    """Story text to ``TestScenario``.

    The LLM is tried first when one is configured. Any LLM or parse error
    falls back to the analyzer and compiler, so generation always yields a
    scenario.
    """

    def __init__(
        self,
        llm: Optional[LLMAPI] = None,
        analyzer: Optional[StoryAnalyzer] = None,
        compiler: Optional[StepCompiler] = None,
    ):
        self.llm = llm
        self.analyzer = analyzer or StoryAnalyzer()
        self.compiler = compiler or StepCompiler()

    async def generate(self, story: str, project_context: str = "", test_type: TestType = TestType.UI) -> TestScenario:
        analysis = self.analyzer.analyze(story)

        if self.llm is not None:
            try:
                scenario = await self._generate_with_llm(analysis, project_context, test_type)
                logging.info(f"LLM generated scenario '{scenario.title}' with {len(scenario.steps)} steps")
                return scenario
            except GenerationFailure as e:
                logging.warning(f"Scenario generation failed, using heuristic pipeline: {e}")
            except Exception as e:
                logging.warning(f"LLM call failed ({type(e).__name__}), using heuristic pipeline: {e}")

        return self.compiler.build_scenario(analysis, test_type)

    async def _generate_with_llm(self, analysis: StoryAnalysis, project_context: str, test_type: TestType):
        prompt = LLMPrompt.scenario_user_prompt.format(
            story=analysis.original_story,
            project_context=project_context or "None",
            test_type=test_type.value.upper(),
            urls=", ".join(analysis.urls) or "none",
            has_credentials="yes" if analysis.credentials else "no",
            workflow_type=analysis.workflow_type.value,
            candidate_steps="; ".join(f"{s.action_type.value}: {s.text}" for s in analysis.parsed_steps) or "none",
        )
        response = await self.llm.get_llm_response(LLMPrompt.scenario_system_prompt, prompt)
        logging.debug(f"LLM scenario response: {response}")

        payload = extract_json_object(response)
        return self.compiler.compile_llm_payload(payload, analysis.original_story)
