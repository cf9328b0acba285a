import json
import os
from typing import Any, Dict, List, Optional, Sequence

import httpx
import pytest

from storyqa_agent.actions import ActionRuntime
from storyqa_agent.api import HttpxApiClient
from storyqa_agent.browser import UIDriver
from storyqa_agent.executor import ExecutionContext
from storyqa_agent.repository import InMemoryTestRepository


def pytest_addoption(parser: pytest.Parser) -> None:
    parser.addoption(
        '--url',
        action='store',
        default=None,
        help='Target URL for live browser smoke tests (skipped when absent)',
    )


@pytest.fixture
def test_url(request: pytest.FixtureRequest) -> Optional[str]:
    # Priority: CLI --url > env STORYQA_TEST_URL
    return request.config.getoption('--url') or os.getenv('STORYQA_TEST_URL')


class FakeElement:
    def __init__(self, text: str = '', value: str = '', visible: bool = True, enabled: bool = True,
                 selected: bool = False, attributes: Optional[Dict[str, str]] = None, retains_input: bool = True):
        self.text = text
        self.value = value
        self.visible = visible
        self.enabled = enabled
        self.selected = selected
        self.attributes = attributes or {}
        self.retains_input = retains_input


class FakeUIDriver(UIDriver):
    """In-memory page: elements keyed by their exact locator string."""

    def __init__(self, elements: Optional[Dict[str, FakeElement]] = None, url: str = 'about:blank',
                 title: str = '', text: str = ''):
        self.elements: Dict[str, FakeElement] = elements or {}
        self.url = url
        self.title = title
        self.text = text
        self.calls: List[tuple] = []
        self.on_navigate: Dict[str, Dict[str, Any]] = {}

    def _record(self, *call):
        self.calls.append(call)

    async def navigate(self, url, timeout_ms):
        self._record('navigate', url)
        self.url = url
        page = self.on_navigate.get(url)
        if page:
            self.title = page.get('title', self.title)
            self.text = page.get('text', self.text)
            self.elements.update(page.get('elements', {}))

    async def wait_for_page_ready(self, timeout_ms):
        self._record('wait_for_page_ready')

    async def find(self, candidates: Sequence[str], timeout_ms, state='visible'):
        for candidate in candidates:
            element = self.elements.get(candidate)
            if element is not None and (state == 'attached' or element.visible):
                return candidate
        return None

    async def is_present(self, locator):
        return locator in self.elements

    async def is_visible(self, locator):
        element = self.elements.get(locator)
        return element is not None and element.visible

    async def is_enabled(self, locator):
        return self.elements[locator].enabled

    async def is_selected(self, locator):
        return self.elements[locator].selected

    async def click(self, locator, timeout_ms, button='left', click_count=1):
        self._record('click', locator, button, click_count)

    async def hover(self, locator, timeout_ms):
        self._record('hover', locator)

    async def fill(self, locator, value, timeout_ms, clear_first=True):
        self._record('fill', locator, value)
        element = self.elements[locator]
        if element.retains_input:
            element.value = value if clear_first else element.value + value

    async def clear(self, locator, timeout_ms):
        self._record('clear', locator)
        self.elements[locator].value = ''

    async def read_value(self, locator):
        return self.elements[locator].value

    async def read_text(self, locator):
        return self.elements[locator].text

    async def read_attribute(self, locator, name):
        return self.elements[locator].attributes.get(name)

    async def select_option(self, locator, value=None, label=None):
        self._record('select_option', locator, value, label)

    async def set_checked(self, locator, checked):
        self._record('set_checked', locator, checked)
        self.elements[locator].selected = checked

    async def upload_files(self, locator, files):
        self._record('upload_files', locator, list(files))

    async def drag_and_drop(self, source, destination, timeout_ms):
        self._record('drag_and_drop', source, destination)

    async def switch_frame(self, locator):
        self._record('switch_frame', locator)

    async def switch_window(self, index=None):
        self._record('switch_window', index)
        return self.url

    async def scroll(self, direction, distance=None):
        self._record('scroll', direction, distance)

    async def execute_script(self, script):
        self._record('execute_script', script)
        return 'script-result'

    async def screenshot(self, file_name=None, full_page=False):
        self._record('screenshot', file_name)
        return f'/tmp/screenshots/{file_name or "shot.png"}'

    async def page_url(self):
        return self.url

    async def page_title(self):
        return self.title

    async def page_text(self):
        return self.text


@pytest.fixture
def fake_ui() -> FakeUIDriver:
    return FakeUIDriver()


def json_response(payload: Any, status_code: int = 200, headers: Optional[Dict[str, str]] = None) -> httpx.Response:
    return httpx.Response(
        status_code,
        content=json.dumps(payload).encode('utf-8'),
        headers={'Content-Type': 'application/json; charset=utf-8', **(headers or {})},
    )


@pytest.fixture
def api_routes() -> Dict[str, Any]:
    """Path -> httpx.Response or callable(request). Tests fill it before use."""
    return {}


@pytest.fixture
def mock_transport(api_routes) -> httpx.MockTransport:
    def handler(request: httpx.Request) -> httpx.Response:
        route = api_routes.get(request.url.path)
        if route is None:
            return httpx.Response(404, text='not found')
        return route(request) if callable(route) else route

    return httpx.MockTransport(handler)


@pytest.fixture
async def api_client(mock_transport):
    client = HttpxApiClient(base_url='https://api.test', transport=mock_transport)
    yield client
    await client.close()


@pytest.fixture
def runtime_factory():
    def build(ui=None, api=None, base_url='') -> ActionRuntime:
        return ActionRuntime(context=ExecutionContext('scenario-under-test'), ui=ui, api=api, base_url=base_url)

    return build


@pytest.fixture
def repository() -> InMemoryTestRepository:
    return InMemoryTestRepository()
