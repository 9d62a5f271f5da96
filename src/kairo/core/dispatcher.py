"""Routing of jobs to their executors."""

from typing import Any, Protocol, runtime_checkable

from kairo.core.executor import Executor
from kairo.core.job import Job, NetworkAction
from kairo.core.job_handle import JobHandle
from kairo.utils.errors import ExecutorNotFoundError
from kairo.utils.telemetry import get_logger


@runtime_checkable
class NetworkGateway(Protocol):
    """Connectivity check and offline queue used for ``NetworkAction`` jobs."""

    def is_online(self) -> bool: ...

    async def enqueue(self, job: Job[Any]) -> None: ...


class Dispatcher:
    """Registry mapping job classes to executors.

    Lookup is by exact class: an executor registered for ``FetchUser`` does
    not handle subclasses of ``FetchUser``.
    """

    def __init__(self, gateway: NetworkGateway | None = None):
        """Initialize dispatcher.

        Args:
            gateway: Optional network gateway; when it reports offline,
                ``NetworkAction`` jobs are queued instead of executed
        """
        self.gateway = gateway
        self._executors: dict[type[Job[Any]], Executor[Any, Any]] = {}
        self._logger = get_logger("kairo.dispatcher")

    def register(self, job_type: type[Job[Any]], executor: Executor[Any, Any]) -> None:
        """Register the executor for a job class, replacing any previous one."""
        previous = self._executors.get(job_type)
        if previous is not None and previous is not executor:
            self._logger.warning(
                "Replacing registered executor",
                job_type=job_type.__name__,
                previous=previous.name,
                executor=executor.name,
            )

        self._executors[job_type] = executor

    def unregister(self, job_type: type[Job[Any]]) -> bool:
        """Remove the executor for a job class. Returns True if one was registered."""
        return self._executors.pop(job_type, None) is not None

    def is_registered(self, job_type: type[Job[Any]]) -> bool:
        return job_type in self._executors

    def clear(self) -> None:
        self._executors.clear()

    @property
    def registered_types(self) -> list[type[Job[Any]]]:
        return list(self._executors)

    def executor_for(self, job: Job[Any]) -> Executor[Any, Any]:
        """Find the executor for ``job``.

        Raises:
            ExecutorNotFoundError: If no executor is registered for its class
        """
        executor = self._executors.get(type(job))
        if executor is None:
            raise ExecutorNotFoundError(type(job))
        return executor

    def dispatch(self, job: Job[Any]) -> JobHandle[Any]:
        """Send ``job`` to its executor without waiting for it.

        Raises:
            ExecutorNotFoundError: Synchronously, before any work is started
        """
        executor = self.executor_for(job)

        if (
            self.gateway is not None
            and isinstance(job, NetworkAction)
            and not self.gateway.is_online()
        ):
            self._logger.info(
                "Offline, queueing network action",
                job_id=job.id,
                job_type=job.job_type,
            )
            return executor.queue_offline(job, self.gateway)

        self._logger.debug("Dispatching job", job_id=job.id, job_type=job.job_type)
        return executor.execute(job)

    def replay(self, job: Job[Any]) -> JobHandle[Any]:
        """Execute a previously queued job, skipping the connectivity check."""
        executor = self.executor_for(job)
        self._logger.info("Replaying queued job", job_id=job.id, job_type=job.job_type)
        return executor.execute(job)
