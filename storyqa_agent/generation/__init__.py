from .scenario_generator import ScenarioGenerator, extract_json_object
from .step_compiler import DEFAULT_TIMEOUTS, PLACEHOLDER_PASSWORD, PLACEHOLDER_USERNAME, StepCompiler

__all__ = [
    "ScenarioGenerator",
    "StepCompiler",
    "extract_json_object",
    "DEFAULT_TIMEOUTS",
    "PLACEHOLDER_USERNAME",
    "PLACEHOLDER_PASSWORD",
]
