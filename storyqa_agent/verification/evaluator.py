import logging
import re
from typing import Callable, Dict, Optional

NUMERIC_EPSILON = 1e-6

DEFAULT_MODE = "contains"


def _to_float(value: str) -> Optional[float]:
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _numeric(compare: Callable[[float, float], bool]) -> Callable[[str, str], bool]:
    def predicate(actual: str, expected: str) -> bool:
        a, e = _to_float(actual), _to_float(expected)
        if a is None or e is None:
            return False
        return compare(a, e)

    return predicate


def _present(actual: str, expected: str) -> bool:
    return actual is not None and actual != ""


class VerificationEvaluator:
    """Pure comparison of an actual value against an expected value.

    ``evaluate`` has no side effects. A malformed regular expression raises
    ``re.error``; callers report that as a failed step.
    """

    MODES: Dict[str, Callable[[str, str], bool]] = {
        "equals": lambda a, e: a.lower() == e.lower(),
        "contains": lambda a, e: e.lower() in a.lower(),
        "startswith": lambda a, e: a.lower().startswith(e.lower()),
        "endswith": lambda a, e: a.lower().endswith(e.lower()),
        "regex": lambda a, e: re.search(e, a) is not None,
        "greater_than": _numeric(lambda a, e: a > e),
        "less_than": _numeric(lambda a, e: a < e),
        "==": _numeric(lambda a, e: abs(a - e) < NUMERIC_EPSILON),
        ">": _numeric(lambda a, e: a > e),
        "<": _numeric(lambda a, e: a < e),
        ">=": _numeric(lambda a, e: a >= e - NUMERIC_EPSILON),
        "<=": _numeric(lambda a, e: a <= e + NUMERIC_EPSILON),
        "exists": _present,
        "not_null": lambda a, e: a is not None and a.lower() != "null" and a != "",
    }

    @classmethod
    def evaluate(cls, actual: Optional[str], expected: Optional[str], mode: Optional[str] = DEFAULT_MODE) -> bool:
        mode_key = (mode or DEFAULT_MODE).strip().lower()
        predicate = cls.MODES.get(mode_key)
        if predicate is None:
            logging.debug(f"Unknown verification mode '{mode}', falling back to '{DEFAULT_MODE}'")
            predicate = cls.MODES[DEFAULT_MODE]

        if mode_key in ("exists", "not_null"):
            return predicate(actual, expected or "")
        return predicate("" if actual is None else str(actual), "" if expected is None else str(expected))

    @classmethod
    def supported_modes(cls):
        return list(cls.MODES)
