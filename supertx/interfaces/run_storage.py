"""Run storage interface.

Runs are checkpointed while they execute and archived once terminal. The
Status Monitor reads archived runs back through this interface.
"""

from typing import TYPE_CHECKING, List, Optional, Protocol

if TYPE_CHECKING:
    from supertx.execution.run import ExecutionRun


class RunStorageBackend(Protocol):
    """Storage backend for ExecutionRun records.

    Example usage:
        ```python
        from supertx.mongodb import MongoDBRunStorage

        storage = MongoDBRunStorage(uri="mongodb://localhost", database="supertx")
        await storage.startup()
        coordinator = ExecutionCoordinator(registry, dispatchers, bridges, storage=storage)
        ```
    """

    async def startup(self) -> None:
        """Initialize storage backend (connections, indexes).

        Raises:
            ConnectionError: If unable to connect to storage backend
        """
        ...

    async def shutdown(self) -> None:
        """Release resources. Safe to call multiple times."""
        ...

    async def save_run(self, run: "ExecutionRun") -> "ExecutionRun":
        """Insert or replace a run record."""
        ...

    async def get_run(self, run_id: str) -> Optional["ExecutionRun"]:
        """Retrieve a run by ID, or None if unknown."""
        ...

    async def list_runs(
        self,
        plan_hash: Optional[str] = None,
        limit: int = 100,
    ) -> List["ExecutionRun"]:
        """List runs, most recent first, optionally filtered by plan hash."""
        ...
