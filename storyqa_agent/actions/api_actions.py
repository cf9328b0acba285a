import asyncio
import json
import logging
import re
import time
import xml.etree.ElementTree as ElementTree
from typing import Any, Dict, Optional
from urllib.parse import quote, urlencode, urljoin

from storyqa_agent.actions.action_registry import ActionRegistry, ActionRuntime, Capability, StepOutcome
from storyqa_agent.api.http_client import DEFAULT_CONTENT_TYPE
from storyqa_agent.data import ErrorKind, TestStep
from storyqa_agent.utils.exceptions import MalformedResponseError, StepTimeoutError, TransportError
from storyqa_agent.verification import extract_json_value, json_path_exists

NO_RESPONSE = "No previous HTTP response to verify"
NO_RESPONSE_BODY = "No previous HTTP response body to verify"
NO_RESPONSE_TIME = "No previous HTTP response time to verify"


def build_url(target: str, parameters: Dict[str, Any]) -> str:
    """Apply ``path_<name>`` substitutions, ``query_<name>`` parameters and ``baseUrl``."""
    url = target or ""
    for key, value in parameters.items():
        if key.startswith("path_"):
            url = url.replace("{" + key[len("path_"):] + "}", quote(str(value), safe=""))

    query = [(key[len("query_"):], str(value)) for key, value in parameters.items() if key.startswith("query_")]
    if query:
        url += ("&" if "?" in url else "?") + urlencode(query)

    base_url = parameters.get("baseUrl")
    if base_url and not url.startswith(("http://", "https://")):
        url = urljoin(str(base_url).rstrip("/") + "/", url.lstrip("/"))
    return url


def build_headers(parameters: Dict[str, Any]) -> Dict[str, str]:
    headers: Dict[str, str] = {}
    raw = parameters.get("headers")
    if isinstance(raw, str) and raw.strip():
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError:
            logging.warning("Ignoring 'headers' parameter that is not a JSON object")
            raw = None
    if isinstance(raw, dict):
        headers.update({str(k): str(v) for k, v in raw.items()})

    for key, value in parameters.items():
        if key.startswith("header_"):
            headers[key[len("header_"):]] = str(value)
    return headers


def _response_data(response) -> Dict[str, Any]:
    return {
        "status_code": response.status_code,
        "response_time_ms": round(response.elapsed_ms, 2),
        "response_body": response.body,
        "content_type": response.content_type,
    }


def _evaluate(rt: ActionRuntime, what: str, actual: str, expected: str, mode: str) -> StepOutcome:
    try:
        passed = rt.evaluator.evaluate(actual, expected, mode)
    except re.error as e:
        return StepOutcome.fail(f"Invalid regular expression '{expected}': {e}", actual_result=actual)
    return StepOutcome.verification(passed, what, actual, expected, mode)


# HTTP verbs


def _http(method: str):
    async def handler(step: TestStep, rt: ActionRuntime) -> StepOutcome:
        url = build_url(step.target or step.get_parameter("url", default=""), step.parameters)
        try:
            response = await rt.api.request(
                method,
                url,
                headers=build_headers(step.parameters),
                body=step.get_parameter("body"),
                content_type=step.get_parameter("contentType", default=DEFAULT_CONTENT_TYPE),
                timeout=step.timeout,
            )
        except StepTimeoutError as e:
            return StepOutcome.fail(str(e), ErrorKind.TIMEOUT)
        except TransportError as e:
            return StepOutcome.fail(str(e), ErrorKind.TRANSPORT_ERROR)

        rt.context.record_response(response)
        data = _response_data(response)
        if response.is_success:
            return StepOutcome.ok(f"{method} {url} returned {response.status_code}",
                                  actual_result=str(response.status_code), data=data)
        return StepOutcome.fail(f"{method} {url} returned non-success status {response.status_code}",
                                actual_result=str(response.status_code), data=data)

    return handler


async def wait_for_response(step: TestStep, rt: ActionRuntime) -> StepOutcome:
    url = build_url(step.target or step.get_parameter("url", default=""), step.parameters)
    max_wait_ms = float(step.get_parameter("maxWait", default=30000))
    interval_ms = float(step.get_parameter("interval", default=1000))
    headers = build_headers(step.parameters)

    deadline = time.monotonic() + max_wait_ms / 1000
    attempts = 0
    last_status: Optional[str] = None
    while True:
        attempts += 1
        try:
            response = await rt.api.request("GET", url, headers=headers, timeout=step.timeout)
            rt.context.record_response(response)
            last_status = str(response.status_code)
            if response.is_success:
                data = {**_response_data(response), "attempts": attempts}
                return StepOutcome.ok(f"{url} responded {response.status_code} after {attempts} attempt(s)",
                                      actual_result=last_status, data=data)
        except (TransportError, StepTimeoutError) as e:
            last_status = str(e)
            logging.debug(f"wait_for_response attempt {attempts} failed: {e}")

        if time.monotonic() + interval_ms / 1000 > deadline:
            return StepOutcome.fail(f"No successful response from {url} within {int(max_wait_ms)}ms",
                                    ErrorKind.TIMEOUT, actual_result=last_status or "",
                                    data={"attempts": attempts})
        await asyncio.sleep(interval_ms / 1000)


# Verification over the last response


async def verify_status_code(step: TestStep, rt: ActionRuntime) -> StepOutcome:
    response = rt.context.last_response
    if response is None:
        return StepOutcome.fail(NO_RESPONSE, kind=None)
    expected = str(step.get_parameter("expectedCode", "expected", default="200")).strip()
    return _evaluate(rt, "Status code", str(response.status_code), expected, "equals")


async def verify_header(step: TestStep, rt: ActionRuntime) -> StepOutcome:
    response = rt.context.last_response
    if response is None:
        return StepOutcome.fail(NO_RESPONSE, kind=None)
    name = step.get_parameter("headerName", "header")
    if not name:
        return StepOutcome.fail("verify_header requires a 'headerName' parameter", kind=None)

    mode = str(step.get_parameter("mode", default="equals")).lower()
    value = response.header(name)
    if value is None:
        return StepOutcome.fail(f"Header '{name}' not found in response", assertion_count=1)
    if mode == "exists":
        return StepOutcome.ok(f"Header '{name}' is present", actual_result=value, assertion_count=1)
    expected = str(step.get_parameter("expected", default=step.expected_result))
    return _evaluate(rt, f"Header '{name}'", value, expected, mode)


async def verify_body(step: TestStep, rt: ActionRuntime) -> StepOutcome:
    body = rt.context.last_response_body
    if body is None:
        return StepOutcome.fail(NO_RESPONSE_BODY, kind=None)

    mode = str(step.get_parameter("mode", default="contains")).lower()
    expected = step.get_parameter("expected")
    if expected is None:
        expected = step.expected_result

    if mode == "not_empty":
        passed = bool(body.strip())
        return StepOutcome.verification(passed, "Body", f"{len(body)} characters", "non-empty body", mode)
    if mode == "json_equals":
        try:
            actual_json = json.loads(body)
        except json.JSONDecodeError as e:
            return StepOutcome.fail(f"Response body is not valid JSON: {e}", ErrorKind.MALFORMED_RESPONSE)
        try:
            expected_json = expected if isinstance(expected, (dict, list)) else json.loads(str(expected))
        except json.JSONDecodeError as e:
            return StepOutcome.fail(f"Expected value is not valid JSON: {e}", kind=None)
        return StepOutcome.verification(actual_json == expected_json, "Body", body, json.dumps(expected_json), mode)
    return _evaluate(rt, "Body", body, str(expected), mode)


async def verify_json_path(step: TestStep, rt: ActionRuntime) -> StepOutcome:
    body = rt.context.last_response_body
    if body is None:
        return StepOutcome.fail(NO_RESPONSE_BODY, kind=None)
    path = step.get_parameter("jsonPath", "path")
    if not path:
        return StepOutcome.fail("verify_json_path requires a 'jsonPath' parameter", kind=None)

    mode = str(step.get_parameter("mode", default="equals")).lower()
    expected = str(step.get_parameter("expected", default=step.expected_result))
    try:
        if mode == "exists":
            present = json_path_exists(body, path)
            return StepOutcome.verification(present, f"JSON path '{path}'", str(present).lower(), "true", mode)
        actual = extract_json_value(body, path)
    except MalformedResponseError as e:
        return StepOutcome.fail(str(e), ErrorKind.MALFORMED_RESPONSE)

    outcome = _evaluate(rt, f"JSON path '{path}'", actual, expected, mode)
    outcome.data["value"] = actual
    return outcome


async def verify_response_time(step: TestStep, rt: ActionRuntime) -> StepOutcome:
    elapsed = rt.context.last_response_time
    if elapsed is None:
        return StepOutcome.fail(NO_RESPONSE_TIME, kind=None)
    max_time = float(step.get_parameter("maxTime", "expected", default=5000))
    passed = elapsed <= max_time
    outcome = StepOutcome.verification(passed, "Response time", f"{elapsed:.2f}ms", f"<= {max_time:g}ms", "less_than")
    outcome.data["response_time_ms"] = round(elapsed, 2)
    return outcome


async def validate_schema(step: TestStep, rt: ActionRuntime) -> StepOutcome:
    body = rt.context.last_response_body
    if body is None:
        return StepOutcome.fail(NO_RESPONSE_BODY, kind=None)

    schema_type = str(step.get_parameter("schemaType", default="json")).lower()
    if schema_type == "json":
        try:
            json.loads(body)
        except json.JSONDecodeError as e:
            return StepOutcome.fail(f"Response is not valid JSON: {e}", ErrorKind.MALFORMED_RESPONSE)
    elif schema_type == "xml":
        try:
            ElementTree.fromstring(body)
        except ElementTree.ParseError as e:
            return StepOutcome.fail(f"Response is not valid XML: {e}", ErrorKind.MALFORMED_RESPONSE)
    else:
        return StepOutcome.fail(f"Unsupported schema type '{schema_type}'", kind=None)
    return StepOutcome.ok(f"Response is valid {schema_type.upper()}", assertion_count=1)


# Context only


async def extract_value(step: TestStep, rt: ActionRuntime) -> StepOutcome:
    body = rt.context.last_response_body
    if body is None:
        return StepOutcome.fail("No previous HTTP response body to extract from", kind=None)
    path = step.get_parameter("path", "jsonPath")
    variable = step.get_parameter("variable", "name")
    if not path or not variable:
        return StepOutcome.fail("extract_value requires 'path' and 'variable' parameters", kind=None)

    try:
        if not json_path_exists(body, path):
            return StepOutcome.fail(f"JSON path '{path}' not found in response")
        value = extract_json_value(body, path)
    except MalformedResponseError as e:
        return StepOutcome.fail(str(e), ErrorKind.MALFORMED_RESPONSE)

    rt.context.set_variable(variable, value)
    return StepOutcome.ok(f"Extracted '{path}' into '{variable}'", actual_result=value, data={variable: value})


async def set_variable(step: TestStep, rt: ActionRuntime) -> StepOutcome:
    name = step.get_parameter("name", "variable")
    if not name:
        return StepOutcome.fail("set_variable requires a 'name' parameter", kind=None)
    value = step.get_parameter("value", default="")
    rt.context.set_variable(name, str(value))
    return StepOutcome.ok(f"Variable '{name}' set", actual_result=str(value), data={name: str(value)})


API_ACTIONS = {
    "api_get": _http("GET"),
    "api_post": _http("POST"),
    "api_put": _http("PUT"),
    "api_delete": _http("DELETE"),
    "api_patch": _http("PATCH"),
    "api_head": _http("HEAD"),
    "api_options": _http("OPTIONS"),
    "wait_for_response": wait_for_response,
}

LOCAL_ACTIONS = {
    "verify_status_code": verify_status_code,
    "verify_header": verify_header,
    "verify_body": verify_body,
    "verify_json_path": verify_json_path,
    "verify_response_time": verify_response_time,
    "validate_schema": validate_schema,
    "extract_value": extract_value,
    "set_variable": set_variable,
}


def register_api_actions(registry: ActionRegistry) -> ActionRegistry:
    for name, handler in API_ACTIONS.items():
        registry.add(name, handler, Capability.API)
    for name, handler in LOCAL_ACTIONS.items():
        registry.add(name, handler, Capability.LOCAL)
    return registry
