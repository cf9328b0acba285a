import pytest

from storyqa_agent.analysis import StoryAnalyzer
from storyqa_agent.data import TestPriority, TestType
from storyqa_agent.generation import PLACEHOLDER_PASSWORD, PLACEHOLDER_USERNAME, StepCompiler
from storyqa_agent.locators import split_locators
from storyqa_agent.utils.exceptions import GenerationFailure

LOGIN_STORY = 'Login at https://ex.com with username: a@b.com and password: Secret1'


@pytest.fixture
def compiler():
    return StepCompiler()


def compile_story(compiler, story):
    return compiler.compile(StoryAnalyzer().analyze(story))


def test_login_story_compiles_to_authentication_sequence(compiler):
    steps = compile_story(compiler, LOGIN_STORY)

    assert [s.action for s in steps] == [
        'navigate', 'wait', 'enter_text', 'enter_text', 'click', 'wait', 'verify_authentication'
    ]
    assert [s.order for s in steps] == list(range(1, 8))
    assert steps[0].target == 'https://ex.com'
    assert steps[0].parameters == {'url': 'https://ex.com'}
    assert steps[1].parameters == {'type': 'page_load', 'duration': '3000'}
    assert steps[2].parameters == {'value': 'a@b.com', 'clearFirst': 'true'}
    assert steps[3].parameters == {'value': 'Secret1', 'clearFirst': 'true'}
    assert split_locators(steps[3].target)[0] == "input[type='password']"
    assert steps[5].parameters == {'type': 'duration', 'duration': '5000'}
    assert steps[5].timeout == 20
    assert steps[6].parameters == {'mode': 'success'}


def test_missing_credentials_use_placeholders(compiler):
    steps = compile_story(compiler, 'Sign in to the portal')
    values = [s.parameters['value'] for s in steps if s.action == 'enter_text']
    assert values == [PLACEHOLDER_USERNAME, PLACEHOLDER_PASSWORD]


def test_navigation_fragment_clicks_waits_and_verifies(compiler):
    steps = compile_story(compiler, 'Click "User Management"')

    assert [s.action for s in steps] == ['click', 'wait', 'verify_element']
    assert split_locators(steps[0].target)[0] == "a:text-is('User Management')"
    assert steps[1].parameters['duration'] == '3000'
    assert steps[2].parameters == {'mode': 'visible'}
    assert split_locators(steps[2].target)[-1] == '.container'


def test_default_timeouts_per_action(compiler):
    steps = compile_story(compiler, LOGIN_STORY)
    timeouts = {s.action: s.timeout for s in steps if s.action != 'wait'}
    assert timeouts == {'navigate': 30, 'enter_text': 15, 'click': 15, 'verify_authentication': 25}


def test_unclassified_segment_becomes_placeholder_wait(compiler):
    steps = compile_story(compiler, 'Relax for a moment')
    assert len(steps) == 1
    assert steps[0].action == 'wait'
    assert steps[0].description == 'Process: Relax for a moment'
    assert steps[0].parameters == {'type': 'duration', 'duration': '2000'}


def test_build_scenario_metadata(compiler):
    analysis = StoryAnalyzer().analyze('Login as admin then open User Management and check the users list')
    scenario = compiler.build_scenario(analysis)

    assert scenario.title == 'Complete Admin Workflow Test'
    assert scenario.priority == TestPriority.HIGH
    assert scenario.description.startswith(f'Comprehensive test covering {len(scenario.steps)} steps: ')
    assert {'automated', 'admin', 'user-management', 'authentication'} <= set(scenario.tags)
    assert 'User has administrator privileges' in scenario.preconditions
    assert scenario.metadata['generated_by'] == 'heuristic'


def test_api_scenario_checks_each_url(compiler):
    analysis = StoryAnalyzer().analyze('Call https://api.test/health then verify "ok"')
    scenario = compiler.build_scenario(analysis, TestType.API)

    assert scenario.type == TestType.API
    assert [s.action for s in scenario.steps] == [
        'api_get', 'verify_status_code', 'verify_response_time', 'verify_body'
    ]
    assert scenario.steps[-1].parameters == {'expected': 'ok', 'mode': 'contains'}


def test_compile_llm_payload_orders_steps(compiler):
    payload = {
        'title': 'Checkout',
        'priority': 'High',
        'steps': [
            {'order': 2, 'action': 'Click', 'target': '#pay', 'description': 'Pay'},
            {'order': 1, 'action': 'navigate', 'target': 'https://shop.test', 'parameters': {'url': 'https://shop.test'}},
        ],
        'expectedOutcomes': ['Order placed'],
    }
    scenario = compiler.compile_llm_payload(payload, original_story='Buy a thing')

    assert [s.action for s in scenario.steps] == ['navigate', 'click']
    assert scenario.priority == TestPriority.HIGH
    assert scenario.expected_outcomes == ['Order placed']
    assert scenario.original_user_story == 'Buy a thing'
    assert scenario.steps[0].timeout == 30


@pytest.mark.parametrize(
    'payload',
    [
        [],
        {'title': 'No steps'},
        {'steps': []},
        {'steps': [{'target': '#x'}]},
        {'steps': ['click']},
    ],
)
def test_compile_llm_payload_rejects_unusable_payloads(compiler, payload):
    with pytest.raises(GenerationFailure):
        compiler.compile_llm_payload(payload)


def test_url_with_connective_word_is_navigated_whole(compiler):
    steps = compile_story(compiler, 'Go to https://ex.com/next/page then click Save')
    targets = [s.target for s in steps if s.action == 'navigate']
    assert targets and set(targets) == {'https://ex.com/next/page'}


def test_compile_llm_payload_renumbers_duplicate_and_missing_orders(compiler):
    payload = {
        'steps': [
            {'order': 1, 'action': 'navigate', 'target': 'https://shop.test'},
            {'order': 1, 'action': 'click', 'target': '#buy'},
            {'action': 'wait', 'parameters': {'duration': '500'}},
        ],
    }
    scenario = compiler.compile_llm_payload(payload)

    assert [s.order for s in scenario.steps] == [1, 2, 3]
    assert [s.action for s in scenario.steps] == ['navigate', 'click', 'wait']


def test_compile_llm_payload_reads_string_flags(compiler):
    payload = {
        'steps': [
            {'action': 'click', 'target': '#a', 'continueOnFailure': 'false', 'takeScreenshot': 'true'},
            {'action': 'click', 'target': '#b', 'continueOnFailure': True},
        ],
    }
    first, second = compiler.compile_llm_payload(payload).steps

    assert first.continue_on_failure is False
    assert first.take_screenshot is True
    assert second.continue_on_failure is True
