from .evaluator import VerificationEvaluator
from .json_path import extract_json_value, json_path_exists, parse_json

__all__ = ["VerificationEvaluator", "extract_json_value", "json_path_exists", "parse_json"]
