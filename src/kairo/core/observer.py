"""Observer hooks for job lifecycle and bus traffic."""

from collections.abc import Callable
from typing import Any

from kairo.schemas.types import DataSource
from kairo.utils.telemetry import get_logger

_logger = get_logger("kairo.observer")


class JobObserver:
    """Receives job lifecycle notifications and every emitted event.

    All hooks are no-ops; subclass and override the ones you need. Hooks run
    synchronously inside the engine, so keep them fast. Exceptions they raise
    are logged and otherwise ignored.
    """

    def on_job_start(self, job: Any) -> None:
        pass

    def on_job_success(self, job: Any, result: Any, source: DataSource) -> None:
        pass

    def on_job_error(self, job: Any, error: BaseException) -> None:
        pass

    def on_event(self, event: Any) -> None:
        pass


class LoggingObserver(JobObserver):
    """Observer that writes every notification to a structured log."""

    def __init__(self, logger_name: str = "kairo.observer"):
        self.logger = get_logger(logger_name)

    def on_job_start(self, job: Any) -> None:
        self.logger.info("Job started", job_id=job.id, job_type=type(job).__name__)

    def on_job_success(self, job: Any, result: Any, source: DataSource) -> None:
        self.logger.info(
            "Job succeeded",
            job_id=job.id,
            job_type=type(job).__name__,
            source=source.value,
        )

    def on_job_error(self, job: Any, error: BaseException) -> None:
        self.logger.warning(
            "Job failed",
            job_id=job.id,
            job_type=type(job).__name__,
            error_type=type(error).__name__,
            error=str(error),
        )

    def on_event(self, event: Any) -> None:
        self.logger.debug(
            "Event emitted",
            event_type=type(event).__name__,
            correlation_id=getattr(event, "correlation_id", None),
        )


def notify_observer(
    observer: JobObserver | None,
    hook: Callable[[JobObserver], None],
) -> None:
    """Invoke an observer hook, isolating the caller from its failures.

    Args:
        observer: Observer to notify (None is a no-op)
        hook: Callable receiving the observer, e.g. ``lambda o: o.on_event(e)``
    """
    if observer is None:
        return

    try:
        hook(observer)
    except Exception:
        _logger.exception("Observer hook failed", observer=type(observer).__name__)
