import re
from typing import Any, Dict, Optional

VARIABLE_PATTERN = re.compile(r"\$\{([A-Za-z_][\w.-]*)\}|\{\{\s*([A-Za-z_][\w.-]*)\s*\}\}")


class ExecutionContext:
    """Scenario-scoped state shared between the steps of one run.

    The fixed internal entries (last response, body, latency) have named
    accessors; user variables live in their own namespace.
    """

    LAST_RESPONSE = "last_response"
    LAST_RESPONSE_BODY = "last_response_body"
    LAST_RESPONSE_TIME = "last_response_time"

    def __init__(self, scenario_id: str = "", variables: Optional[Dict[str, str]] = None):
        self.scenario_id = scenario_id
        self._values: Dict[str, Any] = {}
        self._variables: Dict[str, str] = dict(variables or {})

    @property
    def last_response(self):
        return self._values.get(self.LAST_RESPONSE)

    @property
    def last_response_body(self) -> Optional[str]:
        return self._values.get(self.LAST_RESPONSE_BODY)

    @property
    def last_response_time(self) -> Optional[float]:
        """Latency of the last response in milliseconds."""
        return self._values.get(self.LAST_RESPONSE_TIME)

    def record_response(self, response) -> None:
        self._values[self.LAST_RESPONSE] = response
        self._values[self.LAST_RESPONSE_BODY] = response.body
        self._values[self.LAST_RESPONSE_TIME] = response.elapsed_ms

    def set_variable(self, name: str, value: Any) -> None:
        self._variables[name] = "" if value is None else str(value)

    def get_variable(self, name: str, default: Optional[str] = None) -> Optional[str]:
        return self._variables.get(name, default)

    def has_variable(self, name: str) -> bool:
        return name in self._variables

    @property
    def variables(self) -> Dict[str, str]:
        return dict(self._variables)

    def interpolate(self, value: Any) -> Any:
        """Replace ``${name}`` and ``{{name}}`` with variables; unknown names stay as written."""
        if isinstance(value, str):
            def replace(match):
                name = match.group(1) or match.group(2)
                return self._variables.get(name, match.group(0))

            return VARIABLE_PATTERN.sub(replace, value)
        if isinstance(value, dict):
            return {k: self.interpolate(v) for k, v in value.items()}
        if isinstance(value, list):
            return [self.interpolate(v) for v in value]
        return value

    def clear(self) -> None:
        self._values.clear()
        self._variables.clear()
