#!/usr/bin/env python3
import argparse
import asyncio
import json
import os
import sys
import traceback

import yaml
from dotenv import load_dotenv
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import async_playwright

from storyqa_agent.data import TestType
from storyqa_agent.documents import DocumentManager
from storyqa_agent.executor import APITestExecutor, ResultReporter, TestAutomationService, UITestExecutor
from storyqa_agent.generation import ScenarioGenerator
from storyqa_agent.llm import LLMAPI, mask_secret
from storyqa_agent.repository import InMemoryTestRepository
from storyqa_agent.utils import GetLog

DEFAULT_CONCURRENCY = 2


def find_config_file(args_config=None):
    """Find the configuration file; returns None when no default location has one."""
    if args_config:
        if os.path.isfile(args_config):
            print(f"✅ Using specified config file: {args_config}")
            return args_config
        raise FileNotFoundError(f"❌ Specified config file not found: {args_config}")

    current_dir = os.getcwd()
    script_dir = os.path.dirname(os.path.abspath(__file__))

    default_paths = [
        os.path.join(current_dir, "config", "config.yaml"),
        os.path.join(script_dir, "config", "config.yaml"),
        os.path.join(current_dir, "config.yaml"),
        os.path.join(script_dir, "config.yaml"),
    ]

    for path in default_paths:
        if os.path.isfile(path):
            print(f"✅ Auto-discovered config file: {path}")
            return path

    print("⚠️  No config file found, using defaults. Checked:")
    for path in default_paths:
        print(f"   - {path}")
    return None


def load_yaml(path):
    if not os.path.isfile(path):
        print(f"[ERROR] Config file not found: {path}", file=sys.stderr)
        sys.exit(1)
    try:
        with open(path, "r", encoding="utf-8") as f:
            return yaml.safe_load(f) or {}
    except Exception as e:
        print(f"[ERROR] Failed to read YAML: {e}", file=sys.stderr)
        sys.exit(1)


async def check_playwright_browsers_async():
    try:
        async with async_playwright() as p:
            browser = await p.chromium.launch(headless=True)
            await browser.close()
        print("✅ Playwright browsers available")
        return True
    except PlaywrightError as e:
        print(f"⚠️ Playwright browsers unavailable: {e}")
        return False


def validate_and_build_llm_config(cfg):
    """Build the LLM configuration, environment variables take priority over the config file.

    Returns None when the LLM is disabled or no API key is available.
    """
    llm_cfg_raw = cfg.get("llm_config", {}) or {}
    if not llm_cfg_raw.get("enabled", True):
        print("ℹ️  LLM disabled in config, using heuristic generation")
        return None

    api_key = os.getenv("OPENAI_API_KEY") or llm_cfg_raw.get("api_key", "")
    base_url = os.getenv("OPENAI_BASE_URL") or llm_cfg_raw.get("base_url", "")
    model = llm_cfg_raw.get("model", "gpt-4o-mini")

    if not api_key:
        print("⚠️  LLM API key not configured (OPENAI_API_KEY or llm_config.api_key), using heuristic generation")
        return None

    if not base_url:
        print("⚠️  base_url not set, will use OpenAI default address")
        base_url = "https://api.openai.com/v1"

    llm_config = {
        "api": llm_cfg_raw.get("api", "openai"),
        "model": model,
        "api_key": api_key,
        "base_url": base_url,
        "temperature": llm_cfg_raw.get("temperature", 0.1),
        "max_tokens": llm_cfg_raw.get("max_tokens", 4000),
        "timeout": llm_cfg_raw.get("timeout", 60),
    }

    print("✅ LLM configuration validation successful:")
    print(f"   - API Key: {mask_secret(api_key)} ({'Environment variable' if os.getenv('OPENAI_API_KEY') else 'Config file'})")
    print(f"   - Base URL: {base_url} ({'Environment variable' if os.getenv('OPENAI_BASE_URL') else 'Config file/Default'})")
    print(f"   - Model: {model}")
    print(f"   - Temperature: {llm_config['temperature']}")
    return llm_config


def build_browser_config(cfg):
    browser_cfg = dict(cfg.get("browser_config", {}) or {})
    if os.getenv("DOCKER_ENV") == "true" and not browser_cfg.get("headless", True):
        print("⚠️  Docker environment detected, forcing headless mode")
        browser_cfg["headless"] = True
    return browser_cfg


def read_concurrency(cfg):
    raw_concurrency = (cfg.get("execution", {}) or {}).get("max_concurrent_tests", DEFAULT_CONCURRENCY)
    try:
        max_concurrent_tests = int(raw_concurrency)
        if max_concurrent_tests < 1:
            raise ValueError
    except (TypeError, ValueError):
        print(f"⚠️  Invalid concurrency setting: {raw_concurrency}, fallback to {DEFAULT_CONCURRENCY}")
        max_concurrent_tests = DEFAULT_CONCURRENCY
    return max_concurrent_tests


async def run(cfg, args):
    GetLog.get_log(log_level=(cfg.get("log", {}) or {}).get("level", "info"))

    llm_config = None if args.no_llm else validate_and_build_llm_config(cfg)
    llm = LLMAPI(llm_config) if llm_config else None

    documents = DocumentManager()
    if args.story_file:
        document = documents.upload_user_story(args.story_file)
    else:
        document = documents.create_user_story_from_text(args.story)

    test_type = TestType(args.type)
    project_id = args.project or (cfg.get("execution", {}) or {}).get("project_id", "default")
    api_config = cfg.get("api_config", {}) or {}

    executors = [APITestExecutor(api_config=api_config)]
    if test_type != TestType.API and not args.generate_only:
        print("🔍 Checking Playwright browsers...")
        if not await check_playwright_browsers_async():
            print("Please manually run: `playwright install` to install browser binaries, then retry.", file=sys.stderr)
            sys.exit(1)
        executors.insert(0, UITestExecutor(browser_config=build_browser_config(cfg), api_config=api_config))

    service = TestAutomationService(
        repository=InMemoryTestRepository(),
        executors=executors,
        generator=ScenarioGenerator(llm=llm),
        llm=llm,
        max_concurrent_tests=read_concurrency(cfg),
    )

    try:
        scenario_id = await service.create_test_from_user_story(
            document.content, project_id, test_type=test_type, project_context=document.project_context
        )
        scenario = await service.repository.get_scenario(scenario_id)
        print(f"📝 Generated scenario '{scenario.title}' with {len(scenario.steps)} steps ({scenario.status.value})")

        if args.generate_only:
            print(json.dumps(scenario.model_dump(mode="json"), indent=2, ensure_ascii=False))
            return True

        scenario_ids = [scenario_id]
        for _ in range(max(args.repeat, 1) - 1):
            scenario_ids.append(await service.clone_test_scenario(scenario_id, new_title=scenario.title))

        print(f"⚙️ Concurrency: {service.max_concurrent_tests}")
        results = await service.execute_tests_parallel(scenario_ids)

        reporter = ResultReporter()
        summary = reporter.aggregate_results(results)
        print(f"🔢 Total scenarios: {summary['total']}")
        print(f"✅ Passed: {summary['passed']}")
        print(f"❌ Failed: {summary['failed']}")

        report_cfg = cfg.get("report", {}) or {}
        report_dir = report_cfg.get("dir")
        json_report_path = reporter.generate_json_report(results, report_dir)
        print("JSON report path: ", json_report_path or "generation failed")
        if report_cfg.get("html", True):
            html_report_path = reporter.generate_html_report(results, report_dir)
            print("HTML report path: ", html_report_path or "generation failed")

        for result in results:
            if not result.passed:
                print(await service.analyze_failure(result.scenario_id))
        return all(r.passed for r in results)
    finally:
        await service.close()


def parse_args():
    parser = argparse.ArgumentParser(description="StoryQA Agent: turn a user story into an executed test scenario")
    parser.add_argument("--config", "-c", help="YAML configuration file path (optional, default auto-search config/config.yaml)")
    story = parser.add_mutually_exclusive_group(required=True)
    story.add_argument("--story", help="User story text")
    story.add_argument("--story-file", help="Path to a file holding the user story")
    parser.add_argument("--type", choices=[t.value for t in TestType], default=TestType.UI.value, help="Scenario type")
    parser.add_argument("--project", help="Project id the scenario belongs to")
    parser.add_argument("--generate-only", action="store_true", help="Print the generated scenario without executing it")
    parser.add_argument("--no-llm", action="store_true", help="Use heuristic generation only")
    parser.add_argument("--repeat", type=int, default=1, help="Run N copies of the scenario as one batch")
    return parser.parse_args()


def main():
    load_dotenv()
    args = parse_args()

    try:
        config_path = find_config_file(args.config)
    except FileNotFoundError as e:
        print(f"[ERROR] {e}", file=sys.stderr)
        sys.exit(1)
    cfg = load_yaml(config_path) if config_path else {}

    try:
        passed = asyncio.run(run(cfg, args))
    except FileNotFoundError as e:
        print(f"[ERROR] {e}", file=sys.stderr)
        sys.exit(1)
    except Exception:
        print("Test execution failed, stack trace:", file=sys.stderr)
        traceback.print_exc()
        sys.exit(1)

    sys.exit(0 if passed else 1)


if __name__ == "__main__":
    main()
