"""In-memory RunStorageBackend implementation."""

import logging
from typing import Dict, List, Optional

from supertx.execution.run import ExecutionRun

logger = logging.getLogger(__name__)


class InMemoryRunStorage:
    """Keeps deep copies of runs in a dict.

    Default storage when no MongoDB URI is configured.
    """

    def __init__(self) -> None:
        self._runs: Dict[str, ExecutionRun] = {}

    async def startup(self) -> None:
        pass

    async def shutdown(self) -> None:
        pass

    async def save_run(self, run: ExecutionRun) -> ExecutionRun:
        self._runs[run.id] = run.model_copy(deep=True)
        logger.debug(f"Saved run: {run.id} status={run.status}")
        return run

    async def get_run(self, run_id: str) -> Optional[ExecutionRun]:
        run = self._runs.get(run_id)
        return run.model_copy(deep=True) if run else None

    async def list_runs(
        self,
        plan_hash: Optional[str] = None,
        limit: int = 100,
    ) -> List[ExecutionRun]:
        runs = [
            run
            for run in self._runs.values()
            if plan_hash is None or run.plan_hash == plan_hash
        ]
        runs.sort(key=lambda r: r.created_at, reverse=True)
        return [run.model_copy(deep=True) for run in runs[:limit]]
