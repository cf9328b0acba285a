from datetime import datetime, timedelta

import pytest

from storyqa_agent.data import ResultSearchCriteria, TestEnvironment, TestResult, TestScenario

NOW = datetime(2026, 3, 1, 12, 0, 0)


def result_for(scenario_id, days_ago=0, passed=True, duration=1.0, **kwargs):
    return TestResult(scenario_id=scenario_id, passed=passed, duration=duration,
                      started_at=NOW - timedelta(days=days_ago), **kwargs)


@pytest.fixture
async def seeded(repository):
    shop = TestScenario(title='Checkout', project_id='shop')
    blog = TestScenario(title='Publish', project_id='blog')
    await repository.save_scenario(shop)
    await repository.save_scenario(blog)

    await repository.save_result(result_for(shop.id, days_ago=0, passed=True, duration=2.0, executed_by='ci-runner'))
    await repository.save_result(result_for(shop.id, days_ago=10, passed=False, duration=8.0,
                                            environment=TestEnvironment.STAGING))
    await repository.save_result(result_for(blog.id, days_ago=40, passed=True, duration=0.5))
    return repository, shop.id, blog.id


async def test_search_results_by_project_and_outcome(seeded):
    repository, shop_id, _ = seeded

    results = await repository.search_results(ResultSearchCriteria(project_id='shop'))
    assert [r.scenario_id for r in results] == [shop_id, shop_id]
    assert results[0].started_at > results[1].started_at

    failed = await repository.search_results(ResultSearchCriteria(passed=False))
    assert len(failed) == 1
    assert failed[0].environment == TestEnvironment.STAGING


async def test_search_results_filters_combine(seeded):
    repository, shop_id, blog_id = seeded

    assert len(await repository.search_results(ResultSearchCriteria(min_duration=1.0))) == 2
    assert len(await repository.search_results(ResultSearchCriteria(max_duration=1.0, passed=True))) == 1
    assert len(await repository.search_results(ResultSearchCriteria(executed_by='CI'))) == 1
    recent = await repository.search_results(ResultSearchCriteria(executed_from=NOW - timedelta(days=15)))
    assert {r.scenario_id for r in recent} == {shop_id}
    assert [r.scenario_id for r in await repository.search_results(ResultSearchCriteria(scenario_id=blog_id))] == [
        blog_id
    ]


async def test_search_results_sorting_and_paging(seeded):
    repository, _, blog_id = seeded

    oldest_first = await repository.search_results(ResultSearchCriteria(sort_descending=False, page_size=1))
    assert [r.scenario_id for r in oldest_first] == [blog_id]
    second_page = await repository.search_results(ResultSearchCriteria(page_number=2, page_size=2))
    assert len(second_page) == 1


async def test_archive_old_results(seeded):
    repository, shop_id, blog_id = seeded

    archived = await repository.archive_old_results(NOW - timedelta(days=5))

    assert archived == 2
    assert len(await repository.get_results(shop_id)) == 1
    assert await repository.get_results(blog_id) == []
    assert await repository.archive_old_results(NOW - timedelta(days=5)) == 0
