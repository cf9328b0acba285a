from storyqa_agent.data import StepResult, TestResult, TestScenario, TestStatus, TestStep


def test_step_validation_rules():
    assert TestStep(action='click', target='#go').get_validation_errors() == []

    errors = TestStep(action='', target=' ', timeout=0, wait_before=-1).get_validation_errors()
    assert 'Action is required' in errors
    assert 'Target is required' in errors
    assert 'Timeout must be positive' in errors
    assert 'WaitBefore cannot be negative' in errors


def test_action_specific_parameters_are_required():
    assert TestStep(action='enter_text', target='#q').get_validation_errors() == [
        "Text input actions require a 'value' parameter"
    ]
    assert TestStep(action='api_post', target='/items').get_validation_errors() == [
        "HTTP POST/PUT/PATCH actions require a 'body' parameter"
    ]
    assert TestStep(action='wait', target='page', parameters={'duration': '100'}).get_validation_errors() == []


def test_scenario_validation_collects_step_errors():
    scenario = TestScenario(title='', steps=[TestStep(action='wait', target='page')])
    errors = scenario.get_validation_errors()

    assert 'Title is required' in errors
    assert 'ProjectId is required' in errors
    assert "Step 'wait': Wait actions require a 'duration' parameter" in errors
    assert 'At least one test step is required' in TestScenario(title='t', project_id='p').get_validation_errors()


def test_get_parameter_skips_empty_values():
    step = TestStep(action='verify_json_path', target='response', parameters={'jsonPath': '', 'path': 'user.id'})
    assert step.get_parameter('jsonPath', 'path') == 'user.id'
    assert step.get_parameter('missing', default='x') == 'x'


def test_clone_gets_fresh_ids_and_draft_status():
    scenario = TestScenario(title='t', project_id='p', status=TestStatus.COMPLETED,
                            steps=[TestStep(order=1, action='click', target='#a', parameters={'k': ['v']})])
    clone = scenario.clone()

    assert clone.id != scenario.id
    assert clone.status == TestStatus.DRAFT
    assert clone.steps[0].id != scenario.steps[0].id
    clone.steps[0].parameters['k'].append('w')
    assert scenario.steps[0].parameters == {'k': ['v']}


def test_result_aggregation():
    result = TestResult(scenario_id='s1')
    result.add_step_result(StepResult(step_name='optional', passed=False, is_required=False, assertion_count=1))
    result.add_step_result(StepResult(step_name='ok', passed=True, assertion_count=2))
    result.complete()

    assert result.passed
    assert result.message == 'All test steps completed successfully'
    assert result.total_assertions() == 3
    assert result.success_rate() == 50.0
    assert result.get_first_failure().step_name == 'optional'
    assert result.completed_at is not None


def test_required_failure_sets_message_once():
    result = TestResult(scenario_id='s1')
    result.add_step_result(StepResult(step_name='login', passed=False))
    result.add_step_result(StepResult(step_name='verify', passed=False))
    result.complete()

    assert not result.passed
    assert result.message == 'Test failed at step: login'
    assert TestResult().success_rate() == 0.0


def test_result_serializes_to_json_types():
    result = TestResult(scenario_id='s1', step_results=[StepResult(step_name='a', passed=True)])
    result.complete()
    payload = result.to_dict()

    assert payload['execution_state'] == 'not_started'
    assert isinstance(payload['started_at'], str)
    assert payload['step_results'][0]['step_name'] == 'a'
