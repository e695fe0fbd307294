import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Callable, Iterable, List, Sequence, TypeVar

from discobot.domain.errors import RemoteServiceError


logger = logging.getLogger(__name__)

T = TypeVar("T")


class BoundedExecutor:
    """Runs independent remote-fetch tasks with a capped degree of parallelism."""

    def __init__(self, max_workers: int = 8):
        """Initialize executor.

        Args:
            max_workers: Maximum number of tasks running at the same time
        """
        if max_workers < 1:
            raise ValueError("max_workers must be at least 1")
        self.max_workers = max_workers

    def execute_and_wait(self, tasks: Sequence[Callable[[], Iterable[T]]]) -> List[T]:
        """Run all tasks and return the concatenation of their results.

        Result order is unspecified. A task failing with RemoteServiceError
        contributes no items; any other exception is raised once every
        submitted task has finished.

        Args:
            tasks: Zero-argument callables, each returning an iterable of items

        Returns:
            All items produced by the successful tasks
        """
        if not tasks:
            return []

        results: List[T] = []
        failed = 0

        with ThreadPoolExecutor(max_workers=min(self.max_workers, len(tasks))) as pool:
            futures = [pool.submit(self._run_task, task) for task in tasks]
            for future in as_completed(futures):
                try:
                    items = future.result()
                except RemoteServiceError as e:
                    failed += 1
                    logger.warning(f"Remote task failed, treating as empty result: {e}")
                    continue
                results.extend(items)

        if failed:
            logger.info(f"{failed}/{len(tasks)} remote tasks failed in this batch")
        return results

    def execute_and_wait_void(self, tasks: Sequence[Callable[[], object]]) -> None:
        """Run side-effect tasks and block until all of them completed or failed."""
        self.execute_and_wait([self._as_void(task) for task in tasks])

    @staticmethod
    def _run_task(task: Callable[[], Iterable[T]]) -> List[T]:
        items = task()
        return list(items) if items is not None else []

    @staticmethod
    def _as_void(task: Callable[[], object]) -> Callable[[], List[T]]:
        def run() -> List[T]:
            task()
            return []
        return run
