import json
import logging
import os
from datetime import datetime
from typing import Any, Dict, List, Optional

from jinja2 import Environment, PackageLoader, select_autoescape

from storyqa_agent.data import ExecutionState, TestResult


class ResultReporter:
    """Aggregates scenario results and writes JSON/HTML reports."""

    def __init__(self):
        self.env = Environment(
            loader=PackageLoader("storyqa_agent", "templates"),
            autoescape=select_autoescape(["html", "j2"]),
        )

    def aggregate_results(self, results: List[TestResult]) -> Dict[str, Any]:
        """Summarize a batch of results.

        Args:
            results: Results of one or more scenario runs

        Returns:
            Totals, per-state counts and the overall step success rate
        """
        total_steps = sum(len(r.step_results) for r in results)
        passed_steps = sum(1 for r in results for sr in r.step_results if sr.passed)
        cancelled = sum(1 for r in results if r.execution_state == ExecutionState.CANCELLED)
        passed = sum(1 for r in results if r.passed)

        summary = {
            "total": len(results),
            "passed": passed,
            "failed": len(results) - passed - cancelled,
            "cancelled": cancelled,
            "total_steps": total_steps,
            "passed_steps": passed_steps,
            "step_success_rate": round(passed_steps / total_steps * 100, 2) if total_steps else 0.0,
            "total_assertions": sum(r.total_assertions() for r in results),
            "total_duration": round(sum(r.duration for r in results), 3),
        }
        logging.debug(f"Aggregated {len(results)} results: {summary}")
        return summary

    def _report_dir(self, report_dir: Optional[str]) -> str:
        if report_dir is None:
            timestamp = os.getenv("STORYQA_TIMESTAMP") or datetime.now().strftime("%Y-%m-%d_%H-%M-%S")
            report_dir = f"./reports/test_{timestamp}"
        os.makedirs(report_dir, exist_ok=True)
        return report_dir

    @staticmethod
    def _host_path(path: str) -> str:
        absolute_path = os.path.abspath(path)
        if os.getenv("DOCKER_ENV"):
            return absolute_path.replace("/app/reports", "./reports")
        return absolute_path

    def generate_json_report(self, results: List[TestResult], report_dir: Optional[str] = None) -> str:
        try:
            json_path = os.path.join(self._report_dir(report_dir), "test_results.json")
            payload = {
                "summary": self.aggregate_results(results),
                "results": [r.to_dict() for r in results],
            }
            with open(json_path, "w", encoding="utf-8") as f:
                json.dump(payload, f, indent=2, ensure_ascii=False, default=str)

            path = self._host_path(json_path)
            logging.debug(f"JSON report generated: {path}")
            return path
        except Exception as e:
            logging.error(f"Failed to generate JSON report: {e}")
            return ""

    def generate_html_report(self, results: List[TestResult], report_dir: Optional[str] = None) -> str:
        try:
            template = self.env.get_template("report.html.j2")
            html_out = template.render(
                summary=self.aggregate_results(results),
                results=results,
                generated_at=datetime.now().strftime("%Y-%m-%d %H:%M:%S"),
            )
            html_path = os.path.join(self._report_dir(report_dir), "test_report.html")
            with open(html_path, "w", encoding="utf-8") as f:
                f.write(html_out)

            path = self._host_path(html_path)
            logging.debug(f"HTML report generated: {path}")
            return path
        except Exception as e:
            logging.error(f"Failed to generate HTML report: {e}")
            return ""
