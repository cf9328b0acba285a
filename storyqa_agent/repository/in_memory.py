import asyncio
import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Dict, List, Optional, Set

from storyqa_agent.data import ResultSearchCriteria, TestResult, TestScenario, TestSearchCriteria, TestStatus


class TestRepository(ABC):
    """Persistence of scenarios and their results."""

    @abstractmethod
    async def save_scenario(self, scenario: TestScenario) -> str: ...

    @abstractmethod
    async def get_scenario(self, scenario_id: str) -> Optional[TestScenario]: ...

    @abstractmethod
    async def update_scenario(self, scenario: TestScenario) -> None: ...

    @abstractmethod
    async def update_scenario_status(self, scenario_id: str, status: TestStatus) -> None: ...

    @abstractmethod
    async def delete_scenario(self, scenario_id: str) -> bool: ...

    @abstractmethod
    async def list_project_scenarios(self, project_id: str) -> List[TestScenario]: ...

    @abstractmethod
    async def search_scenarios(self, criteria: TestSearchCriteria) -> List[TestScenario]: ...

    @abstractmethod
    async def save_result(self, result: TestResult) -> str: ...

    @abstractmethod
    async def get_results(self, scenario_id: str, limit: Optional[int] = None) -> List[TestResult]:
        """Results of one scenario, newest first."""

    @abstractmethod
    async def get_project_results(
        self, project_id: str, from_date: Optional[datetime] = None, to_date: Optional[datetime] = None
    ) -> List[TestResult]: ...

    @abstractmethod
    async def delete_results(self, scenario_id: str) -> int: ...

    @abstractmethod
    async def search_results(self, criteria: ResultSearchCriteria) -> List[TestResult]:
        """Results across scenarios matching every set criterion, one page at a time."""

    @abstractmethod
    async def archive_old_results(self, older_than: datetime) -> int:
        """Drop results started before ``older_than``; returns how many were removed."""


class InMemoryTestRepository(TestRepository):
    """Process-local repository. Returned objects are copies."""

    def __init__(self):
        self._scenarios: Dict[str, TestScenario] = {}
        self._results: Dict[str, List[TestResult]] = {}
        self._lock = asyncio.Lock()

    async def save_scenario(self, scenario: TestScenario) -> str:
        async with self._lock:
            self._scenarios[scenario.id] = scenario.model_copy(deep=True)
        return scenario.id

    async def get_scenario(self, scenario_id: str) -> Optional[TestScenario]:
        async with self._lock:
            scenario = self._scenarios.get(scenario_id)
            return scenario.model_copy(deep=True) if scenario else None

    async def update_scenario(self, scenario: TestScenario) -> None:
        scenario.updated_at = datetime.now()
        async with self._lock:
            if scenario.id not in self._scenarios:
                raise KeyError(f"Test scenario {scenario.id} not found")
            self._scenarios[scenario.id] = scenario.model_copy(deep=True)

    async def update_scenario_status(self, scenario_id: str, status: TestStatus) -> None:
        async with self._lock:
            scenario = self._scenarios.get(scenario_id)
            if scenario is None:
                raise KeyError(f"Test scenario {scenario_id} not found")
            scenario.status = status
            scenario.updated_at = datetime.now()

    async def delete_scenario(self, scenario_id: str) -> bool:
        async with self._lock:
            return self._scenarios.pop(scenario_id, None) is not None

    async def list_project_scenarios(self, project_id: str) -> List[TestScenario]:
        async with self._lock:
            scenarios = [s for s in self._scenarios.values() if s.project_id == project_id]
        return [s.model_copy(deep=True) for s in sorted(scenarios, key=lambda s: s.created_at, reverse=True)]

    async def search_scenarios(self, criteria: TestSearchCriteria) -> List[TestScenario]:
        async with self._lock:
            scenarios = list(self._scenarios.values())

        matches = [s for s in scenarios if _matches(s, criteria)]
        matches.sort(key=lambda s: s.created_at, reverse=True)
        start = max(criteria.page_number - 1, 0) * criteria.page_size
        return [s.model_copy(deep=True) for s in matches[start:start + criteria.page_size]]

    async def save_result(self, result: TestResult) -> str:
        async with self._lock:
            self._results.setdefault(result.scenario_id, []).append(result.model_copy(deep=True))
        return result.id

    async def get_results(self, scenario_id: str, limit: Optional[int] = None) -> List[TestResult]:
        async with self._lock:
            results = list(self._results.get(scenario_id, []))
        results.sort(key=lambda r: r.started_at, reverse=True)
        if limit is not None:
            results = results[:limit]
        return [r.model_copy(deep=True) for r in results]

    async def get_project_results(self, project_id, from_date=None, to_date=None) -> List[TestResult]:
        async with self._lock:
            ids = {s.id for s in self._scenarios.values() if s.project_id == project_id}
            results = [r for sid in ids for r in self._results.get(sid, [])]

        if from_date is not None:
            results = [r for r in results if r.started_at >= from_date]
        if to_date is not None:
            results = [r for r in results if r.started_at <= to_date]
        return [r.model_copy(deep=True) for r in sorted(results, key=lambda r: r.started_at, reverse=True)]

    async def delete_results(self, scenario_id: str) -> int:
        async with self._lock:
            return len(self._results.pop(scenario_id, []))

    async def search_results(self, criteria: ResultSearchCriteria) -> List[TestResult]:
        async with self._lock:
            project_ids = None
            if criteria.project_id:
                project_ids = {s.id for s in self._scenarios.values() if s.project_id == criteria.project_id}
            results = [r for rs in self._results.values() for r in rs]

        matches = [r for r in results if _result_matches(r, criteria, project_ids)]
        matches.sort(key=lambda r: r.started_at, reverse=criteria.sort_descending)
        start = max(criteria.page_number - 1, 0) * criteria.page_size
        return [r.model_copy(deep=True) for r in matches[start:start + criteria.page_size]]

    async def archive_old_results(self, older_than: datetime) -> int:
        archived = 0
        async with self._lock:
            for scenario_id in list(self._results):
                kept = [r for r in self._results[scenario_id] if r.started_at >= older_than]
                archived += len(self._results[scenario_id]) - len(kept)
                if kept:
                    self._results[scenario_id] = kept
                else:
                    del self._results[scenario_id]
        if archived:
            logging.info(f"Archived {archived} result(s) started before {older_than.isoformat()}")
        return archived


def _matches(scenario: TestScenario, criteria: TestSearchCriteria) -> bool:
    if criteria.project_id and scenario.project_id != criteria.project_id:
        return False
    if criteria.type and scenario.type != criteria.type:
        return False
    if criteria.status and scenario.status != criteria.status:
        return False
    if criteria.priority and scenario.priority != criteria.priority:
        return False
    if criteria.created_by and scenario.created_by != criteria.created_by:
        return False
    if criteria.tags and not set(t.lower() for t in criteria.tags) <= set(t.lower() for t in scenario.tags):
        return False
    if criteria.search_text:
        needle = criteria.search_text.lower()
        haystack = " ".join([scenario.title, scenario.description, scenario.original_user_story]).lower()
        if needle not in haystack:
            return False
    return True


def _result_matches(result: TestResult, criteria: ResultSearchCriteria, project_ids: Optional[Set[str]]) -> bool:
    if criteria.scenario_id and result.scenario_id != criteria.scenario_id:
        return False
    if project_ids is not None and result.scenario_id not in project_ids:
        return False
    if criteria.passed is not None and result.passed != criteria.passed:
        return False
    if criteria.environment and result.environment != criteria.environment:
        return False
    if criteria.executed_by and criteria.executed_by.lower() not in result.executed_by.lower():
        return False
    if criteria.executed_from and result.started_at < criteria.executed_from:
        return False
    if criteria.executed_to and result.started_at > criteria.executed_to:
        return False
    if criteria.min_duration is not None and result.duration < criteria.min_duration:
        return False
    if criteria.max_duration is not None and result.duration > criteria.max_duration:
        return False
    return True
