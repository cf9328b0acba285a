import asyncio
import os
import sys
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
from dotenv import load_dotenv
load_dotenv()

from storyqa_agent.data import TestType
from storyqa_agent.executor import APITestExecutor, ResultReporter, TestAutomationService, UITestExecutor
from storyqa_agent.llm import LLMAPI
from storyqa_agent.repository import InMemoryTestRepository
from storyqa_agent.utils import GetLog

USER_STORIES = {
    "login": (
        TestType.UI,
        "As a registered user I want to login at https://practicetestautomation.com/practice-test-login/ "
        "with username: student and password: Password123, then verify the dashboard is shown",
    ),
    "health": (
        TestType.API,
        "Check that https://httpbin.org/json responds and verify the response contains \"slideshow\"",
    ),
}


async def example():
    GetLog.get_log(log_level="info")

    llm = None
    if os.getenv("OPENAI_API_KEY"):
        llm = LLMAPI({
            "api": "openai",
            "model": os.getenv("OPENAI_MODEL", "gpt-4o-mini"),
            "api_key": os.getenv("OPENAI_API_KEY"),
            "base_url": os.getenv("OPENAI_BASE_URL"),
        })

    service = TestAutomationService(
        repository=InMemoryTestRepository(),
        executors=[
            UITestExecutor(browser_config={"headless": True, "viewport": {"width": 1280, "height": 720}}),
            APITestExecutor(api_config={"timeout": 30}),
        ],
        llm=llm,
        max_concurrent_tests=2,
    )

    try:
        scenario_ids = []
        for name, (test_type, story) in USER_STORIES.items():
            scenario_id = await service.create_test_from_user_story(story, "examples", test_type=test_type,
                                                                    created_by="example")
            scenario_ids.append(scenario_id)
            print(f"Generated '{name}' scenario: {scenario_id}")

        for health in await service.get_executor_health_status():
            print(f"{health.executor_name}: {'healthy' if health.is_healthy else 'unhealthy'} - {health.message}")

        results = await service.execute_tests_parallel(scenario_ids)
        for result in results:
            print(f"{result.scenario_title}: {'PASSED' if result.passed else 'FAILED'} - {result.message}")
            if not result.passed:
                print(await service.analyze_failure(result.scenario_id))

        reporter = ResultReporter()
        print("HTML report:", reporter.generate_html_report(results) or "generation failed")
    except Exception as e:
        print(f"Example run failed: {e}")
    finally:
        await service.close()


async def main():
    """Main function - Run all examples"""

    try:
        await example()

    except Exception as e:
        print(f"Example failed: {e}")


if __name__ == "__main__":
    asyncio.run(main())
