import asyncio
import logging
import re
from typing import Any, List, Optional
from urllib.parse import urljoin

from storyqa_agent.actions.action_registry import ActionRegistry, ActionRuntime, Capability, StepOutcome
from storyqa_agent.data import ErrorKind, TestStep
from storyqa_agent.locators import split_locators

DEFAULT_STEP_TIMEOUT = 15
DEFAULT_WAIT_MS = 1000

AUTH_FAILURE_INDICATORS = [
    "invalid", "incorrect", "wrong", "error", "failed", "denied", "unauthorized", "forbidden",
    "bad credentials", "login failed", "authentication failed", "access denied", "invalid username",
    "invalid password", "wrong password", "user not found", "login error", "signin error",
    "authentication error",
]
AUTH_SUCCESS_INDICATORS = [
    "dashboard", "welcome", "admin", "profile", "account", "logout", "sign out", "home", "main",
    "portal", "panel", "workspace", "console",
]
AUTH_SUCCESS_SELECTORS = [
    "a[href*='logout'], a[href*='signout'], .logout, .sign-out, #logout",
    ".user-menu, .profile-menu, .account-menu, .user-info",
    ".dashboard, #dashboard, .admin-panel, .main-content",
    "nav, .navbar, .navigation, .menu-bar",
    ".welcome, .greeting, .user-welcome",
]
LOGIN_FORM_SELECTORS = "input[type='password'], input[name*='password'], .login-form, .signin-form, #loginForm"
LOGIN_URL_MARKERS = ("login", "signin")
AUTH_URL_MARKERS = ("login", "signin", "auth")


def timeout_ms(step: TestStep, default_seconds: float = DEFAULT_STEP_TIMEOUT) -> int:
    return int((step.timeout or default_seconds) * 1000)


def as_flag(value: Any, default: bool = False) -> bool:
    if value is None or value == "":
        return default
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("true", "1", "yes", "on")


def _short(text: str, limit: int = 120) -> str:
    return text if len(text) <= limit else text[:limit] + "..."


async def _locate(step: TestStep, rt: ActionRuntime, state: str = "visible") -> Optional[str]:
    candidates = split_locators(step.target)
    if not candidates:
        return None
    return await rt.ui.find(candidates, timeout_ms(step), state=state)


def _not_found(step: TestStep) -> StepOutcome:
    return StepOutcome.fail(f"Element not found: {_short(step.target)}", ErrorKind.ELEMENT_NOT_FOUND)


def _evaluate(rt: ActionRuntime, what: str, actual: str, expected: str, mode: str) -> StepOutcome:
    try:
        passed = rt.evaluator.evaluate(actual, expected, mode)
    except re.error as e:
        return StepOutcome.fail(f"Invalid regular expression '{expected}': {e}", actual_result=actual)
    return StepOutcome.verification(passed, what, actual, expected, mode)


# Navigation


async def navigate(step: TestStep, rt: ActionRuntime) -> StepOutcome:
    url = step.get_parameter("url") or step.target
    if not url:
        return StepOutcome.fail("Navigate requires a URL target", kind=None)
    if not url.startswith(("http://", "https://")):
        base_url = step.get_parameter("baseUrl") or rt.base_url
        if not base_url:
            return StepOutcome.fail(f"Relative URL '{url}' requires a baseUrl", kind=None)
        url = urljoin(base_url.rstrip("/") + "/", url.lstrip("/"))

    await rt.ui.navigate(url, timeout_ms(step, 30))
    current = await rt.ui.page_url()
    return StepOutcome.ok(f"Navigated to {url}", actual_result=current, data={"url": url, "current_url": current})


# Interaction


def _clicker(button: str = "left", click_count: int = 1, verb: str = "Clicked"):
    async def handler(step: TestStep, rt: ActionRuntime) -> StepOutcome:
        locator = await _locate(step, rt)
        if locator is None:
            return _not_found(step)
        await rt.ui.click(locator, timeout_ms(step), button=button, click_count=click_count)
        return StepOutcome.ok(f"{verb} element: {locator}", data={"locator": locator})

    return handler


async def hover(step: TestStep, rt: ActionRuntime) -> StepOutcome:
    locator = await _locate(step, rt)
    if locator is None:
        return _not_found(step)
    await rt.ui.hover(locator, timeout_ms(step))
    return StepOutcome.ok(f"Hovered over element: {locator}", data={"locator": locator})


async def enter_text(step: TestStep, rt: ActionRuntime) -> StepOutcome:
    value = step.get_parameter("value", "text")
    if value is None:
        return StepOutcome.fail("enter_text requires a 'value' parameter", kind=None)
    value = str(value)

    locator = await _locate(step, rt)
    if locator is None:
        return _not_found(step)

    await rt.ui.fill(locator, value, timeout_ms(step), clear_first=as_flag(step.get_parameter("clearFirst"), True))
    actual = await rt.ui.read_value(locator)
    shown = "***" if "password" in locator.lower() else value

    if value and not (value in actual or (actual and actual in value)):
        return StepOutcome.fail(
            f"Entered text was not retained by the field (expected '{shown}')",
            actual_result="***" if shown == "***" else actual,
            data={"locator": locator},
        )
    return StepOutcome.ok(f"Entered '{shown}' into {locator}", data={"locator": locator})


async def clear_text(step: TestStep, rt: ActionRuntime) -> StepOutcome:
    locator = await _locate(step, rt)
    if locator is None:
        return _not_found(step)
    await rt.ui.clear(locator, timeout_ms(step))
    return StepOutcome.ok(f"Cleared element: {locator}", data={"locator": locator})


async def select_option(step: TestStep, rt: ActionRuntime) -> StepOutcome:
    value = step.get_parameter("value")
    label = step.get_parameter("label")
    if value is None and label is None:
        return StepOutcome.fail("select_option requires a 'value' or 'label' parameter", kind=None)

    locator = await _locate(step, rt)
    if locator is None:
        return _not_found(step)
    await rt.ui.select_option(locator, value=None if value is None else str(value),
                              label=None if label is None else str(label))
    return StepOutcome.ok(f"Selected option '{label if label is not None else value}'", data={"locator": locator})


async def select_checkbox(step: TestStep, rt: ActionRuntime) -> StepOutcome:
    checked = as_flag(step.get_parameter("checked"), True)
    locator = await _locate(step, rt)
    if locator is None:
        return _not_found(step)
    await rt.ui.set_checked(locator, checked)
    return StepOutcome.ok(f"{'Checked' if checked else 'Unchecked'} element: {locator}", data={"locator": locator})


async def upload_file(step: TestStep, rt: ActionRuntime) -> StepOutcome:
    files = step.get_parameter("filePath", "files")
    if not files:
        return StepOutcome.fail("upload_file requires a 'filePath' parameter", kind=None)
    if isinstance(files, str):
        files = [f.strip() for f in files.split(",") if f.strip()]

    locator = await _locate(step, rt, state="attached")
    if locator is None:
        return _not_found(step)
    await rt.ui.upload_files(locator, list(files))
    return StepOutcome.ok(f"Uploaded {len(files)} file(s)", data={"files": list(files)})


async def switch_frame(step: TestStep, rt: ActionRuntime) -> StepOutcome:
    target = (step.target or "").strip()
    if target.lower() in ("", "main", "default", "parent"):
        await rt.ui.switch_frame(None)
        return StepOutcome.ok("Switched to main document")

    locator = await _locate(step, rt, state="attached")
    if locator is None:
        return _not_found(step)
    await rt.ui.switch_frame(locator)
    return StepOutcome.ok(f"Switched to frame: {locator}", data={"locator": locator})


async def switch_window(step: TestStep, rt: ActionRuntime) -> StepOutcome:
    index = step.get_parameter("index")
    url = await rt.ui.switch_window(None if index is None else int(index))
    return StepOutcome.ok(f"Switched to window: {url}", actual_result=url)


async def scroll(step: TestStep, rt: ActionRuntime) -> StepOutcome:
    direction = str(step.get_parameter("direction", default="down")).lower()
    if direction not in ("up", "down", "top", "bottom"):
        return StepOutcome.fail(f"Invalid scroll direction '{direction}'", kind=None)
    distance = step.get_parameter("distance")
    await rt.ui.scroll(direction, int(distance) if distance is not None else None)
    return StepOutcome.ok(f"Scrolled {direction}")


async def drag_drop(step: TestStep, rt: ActionRuntime) -> StepOutcome:
    destination = step.get_parameter("destination", "to")
    if not destination:
        return StepOutcome.fail("drag_drop requires a 'destination' parameter", kind=None)

    source = await _locate(step, rt)
    if source is None:
        return _not_found(step)
    target = await rt.ui.find(split_locators(str(destination)), timeout_ms(step))
    if target is None:
        return StepOutcome.fail(f"Drop target not found: {_short(str(destination))}", ErrorKind.ELEMENT_NOT_FOUND)

    await rt.ui.drag_and_drop(source, target, timeout_ms(step))
    return StepOutcome.ok(f"Dragged {source} to {target}")


async def execute_script(step: TestStep, rt: ActionRuntime) -> StepOutcome:
    script = step.get_parameter("script") or step.target
    if not script:
        return StepOutcome.fail("execute_script requires a 'script' parameter", kind=None)

    result = await rt.ui.execute_script(script)
    text = "" if result is None else str(result)
    variable = step.get_parameter("variable")
    if variable:
        rt.context.set_variable(variable, text)
    return StepOutcome.ok("Script executed", actual_result=text, data={"result": result})


async def take_screenshot(step: TestStep, rt: ActionRuntime) -> StepOutcome:
    path = await rt.ui.screenshot(step.get_parameter("fileName"),
                                  full_page=as_flag(step.get_parameter("fullPage")))
    return StepOutcome.ok(f"Screenshot saved: {path}", screenshot_path=path, data={"path": path})


async def wait(step: TestStep, rt: ActionRuntime) -> StepOutcome:
    wait_type = str(step.get_parameter("type", default="duration")).lower()

    if wait_type == "duration":
        duration = int(float(step.get_parameter("duration", default=DEFAULT_WAIT_MS)))
        await asyncio.sleep(duration / 1000)
        return StepOutcome.ok(f"Waited {duration}ms")

    if rt.ui is None:
        return StepOutcome.fail(f"Wait type '{wait_type}' needs a browser", ErrorKind.UNSUPPORTED_ACTION)

    if wait_type == "element":
        locator = await _locate(step, rt)
        if locator is None:
            return StepOutcome.fail(f"Element did not appear within {timeout_ms(step)}ms: {_short(step.target)}",
                                    ErrorKind.TIMEOUT)
        return StepOutcome.ok(f"Element appeared: {locator}", data={"locator": locator})
    if wait_type == "page_load":
        await rt.ui.wait_for_page_ready(timeout_ms(step))
        return StepOutcome.ok("Page loaded")
    return StepOutcome.fail(f"Unknown wait type '{wait_type}'", kind=None)


# Verification


async def verify_text(step: TestStep, rt: ActionRuntime) -> StepOutcome:
    expected = step.get_parameter("expected", "text") or step.expected_result
    mode = step.get_parameter("mode", default="equals")
    locator = await _locate(step, rt)
    if locator is None:
        return _not_found(step)
    actual = await rt.ui.read_text(locator)
    return _evaluate(rt, "Text", actual, str(expected), mode)


async def verify_element(step: TestStep, rt: ActionRuntime) -> StepOutcome:
    mode = str(step.get_parameter("mode", default="visible")).lower()
    candidates = split_locators(step.target)
    if not candidates:
        return StepOutcome.fail("verify_element requires a locator target", kind=None)

    if mode in ("not_exists", "not_visible"):
        check = rt.ui.is_present if mode == "not_exists" else rt.ui.is_visible
        offending = [c for c in candidates if await check(c)]
        if offending:
            return StepOutcome.fail(f"Element unexpectedly {mode[4:].replace('exists', 'present')}: {offending[0]}",
                                    actual_result=offending[0], assertion_count=1)
        return StepOutcome.ok(f"Element verification passed ({mode})", assertion_count=1)

    state = "visible" if mode in ("visible", "enabled") else "attached"
    locator = await rt.ui.find(candidates, timeout_ms(step, 20), state=state)
    if locator is None:
        return StepOutcome.fail(f"Element not found ({mode}): {_short(step.target)}", ErrorKind.ELEMENT_NOT_FOUND,
                                assertion_count=1)

    if mode in ("exists", "visible"):
        passed = True
    elif mode == "enabled":
        passed = await rt.ui.is_enabled(locator)
    elif mode == "not_enabled":
        passed = not await rt.ui.is_enabled(locator)
    elif mode == "selected":
        passed = await rt.ui.is_selected(locator)
    elif mode == "not_selected":
        passed = not await rt.ui.is_selected(locator)
    else:
        return StepOutcome.fail(f"Unknown element verification mode '{mode}'", kind=None)

    if passed:
        return StepOutcome.ok(f"Element verification passed ({mode}): {locator}", actual_result=locator,
                              assertion_count=1, data={"locator": locator})
    return StepOutcome.fail(f"Element verification failed ({mode}): {locator}", actual_result=locator,
                            assertion_count=1)


async def verify_attribute(step: TestStep, rt: ActionRuntime) -> StepOutcome:
    name = step.get_parameter("attribute", "name")
    if not name:
        return StepOutcome.fail("verify_attribute requires an 'attribute' parameter", kind=None)
    expected = step.get_parameter("expected") or step.expected_result
    mode = step.get_parameter("mode", default="equals")

    locator = await _locate(step, rt, state="attached")
    if locator is None:
        return _not_found(step)
    actual = await rt.ui.read_attribute(locator, name)
    if actual is None:
        return StepOutcome.fail(f"Attribute '{name}' not present on {locator}", assertion_count=1)
    return _evaluate(rt, f"Attribute '{name}'", actual, str(expected), mode)


def _any_marker(url: str, markers) -> bool:
    url = url.lower()
    return any(marker in url for marker in markers)


async def _authentication_signals(rt: ActionRuntime):
    url = await rt.ui.page_url()
    title = (await rt.ui.page_title() or "").lower()
    text = (await rt.ui.page_text() or "").lower()

    failure = [i for i in AUTH_FAILURE_INDICATORS if i in text or i in title]
    still_on_login = (
        _any_marker(url, LOGIN_URL_MARKERS)
        or ("login" in text and "password" in text)
        or "login" in title
        or "sign in" in title
    )
    return url, title, text, failure, still_on_login


async def verify_authentication(step: TestStep, rt: ActionRuntime) -> StepOutcome:
    """Decide from page signals whether a login attempt succeeded.

    With ``mode=failure`` the step passes when the login visibly failed.
    """
    mode = str(step.get_parameter("mode", default="success")).lower()
    url, title, text, failure, still_on_login = await _authentication_signals(rt)

    if mode == "failure":
        properly_failed = bool(failure) or still_on_login
        actual = f"URL: {url}, Failure indicators: {bool(failure)}, On login page: {still_on_login}"
        if properly_failed:
            return StepOutcome.ok("Authentication properly failed as expected", actual_result=actual, assertion_count=1)
        return StepOutcome.fail("Authentication did not fail as expected", actual_result=actual, assertion_count=1)

    if failure:
        logging.warning(f"Authentication failure indicators on page: {failure[:3]}")
        return StepOutcome.fail("Authentication failed - error messages detected on page",
                                actual_result=f"Found authentication failure indicators: {', '.join(failure[:3])}",
                                assertion_count=1)

    if still_on_login and await rt.ui.find(split_locators(LOGIN_FORM_SELECTORS), 0) is not None:
        return StepOutcome.fail("Authentication failed - still on login page with login form visible",
                                actual_result=f"URL: {url}", assertion_count=1)

    indicators = [i for i in AUTH_SUCCESS_INDICATORS if i in text or i in title or i in url.lower()]
    elements: List[str] = []
    for group in AUTH_SUCCESS_SELECTORS:
        elements += [c for c in split_locators(group) if await rt.ui.is_visible(c)]
    url_indicates_success = not _any_marker(url, AUTH_URL_MARKERS)

    actual = f"URL: {url}, Success elements: {len(elements)}, Success indicators: {bool(indicators)}"
    if indicators or elements or url_indicates_success:
        return StepOutcome.ok("Authentication successful - indicators found", actual_result=actual,
                              assertion_count=1, data={"indicators": indicators, "elements": elements})
    return StepOutcome.fail("Authentication verification failed - no clear success indicators found",
                            actual_result=actual, assertion_count=1)


UI_ACTIONS = {
    "navigate": navigate,
    "click": _clicker(),
    "double_click": _clicker(click_count=2, verb="Double-clicked"),
    "right_click": _clicker(button="right", verb="Right-clicked"),
    "hover": hover,
    "enter_text": enter_text,
    "clear_text": clear_text,
    "select_option": select_option,
    "select_checkbox": select_checkbox,
    "upload_file": upload_file,
    "switch_frame": switch_frame,
    "switch_window": switch_window,
    "scroll": scroll,
    "verify_text": verify_text,
    "verify_element": verify_element,
    "verify_attribute": verify_attribute,
    "verify_authentication": verify_authentication,
    "take_screenshot": take_screenshot,
    "execute_script": execute_script,
    "drag_drop": drag_drop,
}


def register_ui_actions(registry: ActionRegistry) -> ActionRegistry:
    for name, handler in UI_ACTIONS.items():
        registry.add(name, handler, Capability.UI)
    # Duration waits work without a browser.
    registry.add("wait", wait, Capability.LOCAL)
    return registry
