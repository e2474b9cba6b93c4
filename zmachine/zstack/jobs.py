"""Asynchronous job tracking.

Mutating ZStack calls answer ``202 Accepted`` with a job-accepted envelope,
``{"location": ".../api-jobs/<uuid>"}``. The real outcome is obtained by
polling the job status endpoint until it stops answering with that same
envelope. A call that answers without the envelope already completed and
is resolved without polling.

Outcome classification looks at the body before the status code: an error
object marks the job failed even under a 2xx.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any, Final

from tenacity import (
    RetryCallState,
    RetryError,
    retry,
    retry_if_exception_type,
    stop_before_delay,
    wait_fixed,
)

from zmachine.core.exceptions import ProtocolError, RemoteOperationError, TimeoutError
from zmachine.infra.http import Response
from zmachine.observability.logger import logger

from .session import Session
from .types import JOB_PATH, describe_error

DEFAULT_POLL_INTERVAL: Final = 5.0
DEFAULT_JOB_TIMEOUT: Final = 120.0


# =============================================================================
# Outcomes
# =============================================================================


@dataclass(frozen=True, slots=True)
class Pending:
    """Job scheduled but not finished. The only non-terminal outcome."""


@dataclass(frozen=True, slots=True)
class Succeeded:
    payload: Any


@dataclass(frozen=True, slots=True)
class Failed:
    code: str
    message: str


type JobOutcome = Pending | Succeeded | Failed


def accepted_job_uuid(resp: Response) -> str | None:
    """Job identifier if ``resp`` carries a job-accepted envelope, else None."""
    if resp.status != 202:
        return None
    try:
        data = resp.json()
    except ValueError:
        return None
    if not isinstance(data, Mapping):
        return None
    location = data.get("location")
    if not isinstance(location, str) or not location.strip("/"):
        return None
    return location.rstrip("/").rsplit("/", 1)[-1]


def classify(resp: Response) -> JobOutcome:
    """Classify one response from a mutating call or a job status poll.

    Raises:
        ProtocolError: The body is not JSON.
    """
    try:
        data = resp.json()
    except ValueError as e:
        raise ProtocolError(
            f"undecodable response (status {resp.status}): {resp.body[:200]}"
        ) from e

    if isinstance(data, Mapping) and data.get("error"):
        error = data["error"]
        if not isinstance(error, Mapping):
            return Failed(code=str(resp.status), message=str(error))
        return Failed(*describe_error(error))

    if accepted_job_uuid(resp) is not None:
        return Pending()

    if resp.ok:
        return Succeeded(payload=data if data is not None else {})

    return Failed(code=str(resp.status), message=resp.body[:200] or f"HTTP {resp.status}")


# =============================================================================
# Handles
# =============================================================================


@dataclass(frozen=True, slots=True)
class AsyncJob:
    """Handle returned by every mutating call.

    Either references a scheduled job by ``job_uuid``, or carries the
    ``immediate`` response of a call that completed synchronously.
    """

    tracker: JobTracker
    job_uuid: str | None = None
    immediate: Response | None = None
    operation: str = ""

    @property
    def synchronous(self) -> bool:
        return self.job_uuid is None

    async def resolve[T](self, decode: Callable[[Any], T], max_wait: float = 0) -> T:
        return await self.tracker.resolve(self, decode, max_wait)


class _JobPendingError(Exception):
    """Raised inside the poll loop to keep polling."""


# =============================================================================
# Tracker
# =============================================================================


class JobTracker:
    """Polls job status endpoints for a Session.

    Args:
        session: Authenticated session used for the status polls.
        interval: Fixed delay between two polls, in seconds.
        default_timeout: Bound used when a caller passes a non-positive
            ``max_wait``. Also caps any larger bound a caller asks for.
    """

    def __init__(
        self,
        session: Session,
        *,
        interval: float = DEFAULT_POLL_INTERVAL,
        default_timeout: float = DEFAULT_JOB_TIMEOUT,
    ) -> None:
        self.session = session
        self.interval = interval
        self.default_timeout = default_timeout
        self._log = logger.bind(provider="zstack", component="jobs")

    def submit(self, resp: Response, operation: str = "") -> AsyncJob:
        """Turn the response of a mutating call into a job handle."""
        job_uuid = accepted_job_uuid(resp)
        if job_uuid is None:
            self._log.debug(
                "{operation} completed synchronously with status {status}",
                operation=operation or "call", status=resp.status,
            )
            return AsyncJob(tracker=self, immediate=resp, operation=operation)
        self._log.debug("{operation} accepted as job {job}", operation=operation or "call", job=job_uuid)
        return AsyncJob(tracker=self, job_uuid=job_uuid, operation=operation)

    async def poll(self, job_uuid: str) -> JobOutcome:
        resp = await self.session.request("GET", JOB_PATH.format(uuid=job_uuid))
        outcome = classify(resp)
        self._log.debug("Job {job}: {outcome}", job=job_uuid, outcome=type(outcome).__name__)
        return outcome

    def effective_timeout(self, max_wait: float) -> float:
        if max_wait <= 0:
            return self.default_timeout
        return min(max_wait, self.default_timeout)

    async def resolve[T](self, job: AsyncJob, decode: Callable[[Any], T], max_wait: float = 0) -> T:
        """Wait for ``job`` to finish and decode its payload.

        Polls immediately, then every ``interval`` seconds. No poll is
        issued once the next one would land past the bound.

        Raises:
            RemoteOperationError: The job reported failure.
            TimeoutError: The job was still pending when the bound elapsed.
            ProtocolError: A response or the final payload could not be decoded.
            TransportError: A poll could not be completed.
        """
        label = job.operation or "job"

        if job.job_uuid is not None:
            outcome = await self._wait(job.job_uuid, self.effective_timeout(max_wait), label)
        elif job.immediate is not None:
            outcome = classify(job.immediate)
            if isinstance(outcome, Pending):
                raise ProtocolError(f"{label}: synchronous response classified as pending")
        else:
            raise ProtocolError(f"{label}: job handle carries neither a job uuid nor a response")

        match outcome:
            case Failed(code=code, message=message):
                raise RemoteOperationError(code, message).add_context(label)
            case Succeeded(payload=payload):
                try:
                    return decode(payload)
                except ProtocolError as e:
                    raise e.add_context(label)
                except (KeyError, TypeError, ValueError) as e:
                    raise ProtocolError(f"malformed job result: {e}").add_context(label) from e
            case _:
                raise ProtocolError(f"{label}: unexpected outcome {outcome!r}")

    async def _wait(self, job_uuid: str, bound: float, label: str) -> Succeeded | Failed:
        log = self._log.bind(job=job_uuid)

        def _log_pending(state: RetryCallState) -> None:
            log.debug(
                "{label} still pending after {n} poll(s), next in {delay:.1f}s",
                label=label, n=state.attempt_number, delay=self.interval,
            )

        @retry(
            stop=stop_before_delay(bound),
            wait=wait_fixed(self.interval),
            retry=retry_if_exception_type(_JobPendingError),
            before_sleep=_log_pending,
        )
        async def _poll_until_terminal() -> Succeeded | Failed:
            outcome = await self.poll(job_uuid)
            if isinstance(outcome, Pending):
                raise _JobPendingError(job_uuid)
            return outcome

        try:
            return await _poll_until_terminal()
        except RetryError as e:
            raise TimeoutError(
                f"job {job_uuid} still pending after {bound:.1f}s"
            ).add_context(label) from e
