"""Polling waiter for resources that converge asynchronously.

A mutating AWS call (create, modify, delete) returns before the resource has
settled. ``StateWaiter`` polls a refresh function until the resource reports
a target status, disappears (when waiting for deletion), or the deadline
passes. Each resource family defines its own status ``Enum``; the waiter only
compares against the sets it is given.
"""

import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Collection, Optional, Tuple, Type, Union

from aws_converge.utils.errors import (
    FetchError,
    NotFoundDuringPollError,
    ResourceError,
    UnexpectedStatusError,
    WaitCancelledError,
    WaitTimeoutError,
)
from aws_converge.utils.logging import get_logger

logger = get_logger(__name__)

Status = Union[Enum, str]

# A refresh function returns (obj, status), or (None, None) when the
# resource does not exist.
RefreshFunc = Callable[[], Tuple[Any, Optional[Status]]]


def coerce_status(status_type: Type[Enum], raw: Optional[str]) -> Optional[Status]:
    """Map a raw API status string onto ``status_type``.

    Unknown values are returned unchanged so the waiter can report them as
    unexpected instead of failing to parse.
    """
    if raw is None:
        return None
    try:
        return status_type(raw)
    except ValueError:
        return raw


def _status_label(status: Optional[Status]) -> Optional[str]:
    if isinstance(status, Enum):
        return str(status.value)
    return status


@dataclass
class StateWaiter:
    """Polls ``refresh`` until the resource reaches one of ``target``.

    An empty ``target`` means "wait until the resource is gone".
    """

    target: Collection[Status]
    pending: Collection[Status]
    refresh: RefreshFunc
    timeout: float
    poll_interval: float = 10.0
    delay: float = 0.0
    not_found_checks: int = 0
    cancel_event: Optional[threading.Event] = None
    resource_id: Optional[str] = None

    def __post_init__(self):
        if self.timeout <= 0:
            raise ValueError(f"timeout must be positive: {self.timeout}")
        if self.poll_interval <= 0:
            raise ValueError(f"poll_interval must be positive: {self.poll_interval}")
        self.target = frozenset(self.target)
        self.pending = frozenset(self.pending)

    @property
    def waits_for_absence(self) -> bool:
        return not self.target

    def wait(self) -> Any:
        """Block until the resource converges.

        Returns:
            The last fetched object, or None when waiting for absence

        Raises:
            WaitTimeoutError: Deadline passed while still pending
            NotFoundDuringPollError: Resource vanished during a presence wait
            UnexpectedStatusError: Status outside the pending and target sets
            FetchError: The refresh function raised
            WaitCancelledError: ``cancel_event`` was set
        """
        start = time.monotonic()
        deadline = start + self.timeout
        last_object: Any = None
        last_status: Optional[Status] = None
        not_found_count = 0
        attempt = 0

        def elapsed() -> float:
            return time.monotonic() - start

        def timed_out() -> WaitTimeoutError:
            return WaitTimeoutError(
                f"Timeout after {self.timeout:g}s waiting for {self._describe_goal()} "
                f"(last status: {_status_label(last_status) or 'none'})",
                last_status=_status_label(last_status),
                last_object=last_object,
                elapsed=elapsed(),
                resource_id=self.resource_id,
            )

        if self.delay > 0:
            self._sleep(min(self.delay, self.timeout), elapsed)

        while True:
            self._check_cancelled(elapsed, last_status, last_object)
            if time.monotonic() >= deadline:
                raise timed_out()

            attempt += 1
            obj, status = self._fetch(elapsed, last_status, last_object)
            logger.debug(
                f"Poll {attempt} for {self.resource_id or 'resource'}: "
                f"{_status_label(status) if obj is not None else 'not found'}",
                extra={'attempt': attempt, 'status': _status_label(status)},
            )

            if obj is None:
                if self.waits_for_absence:
                    return None
                not_found_count += 1
                if not_found_count > self.not_found_checks:
                    raise NotFoundDuringPollError(
                        f"{self.resource_id or 'Resource'} not found while waiting for "
                        f"{self._describe_goal()} ({not_found_count} checks)",
                        last_status=_status_label(last_status),
                        last_object=last_object,
                        elapsed=elapsed(),
                        resource_id=self.resource_id,
                    )
            else:
                not_found_count = 0
                last_object, last_status = obj, status

                if status in self.target:
                    return obj
                if status not in self.pending:
                    raise UnexpectedStatusError(
                        f"Unexpected status '{_status_label(status)}' for "
                        f"{self.resource_id or 'resource'} while waiting for {self._describe_goal()}",
                        last_status=_status_label(status),
                        last_object=obj,
                        elapsed=elapsed(),
                        resource_id=self.resource_id,
                    )

            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise timed_out()
            self._sleep(min(self.poll_interval, remaining), elapsed, last_status, last_object)

    def _fetch(self, elapsed, last_status, last_object) -> Tuple[Any, Optional[Status]]:
        try:
            return self.refresh()
        except ResourceError:
            raise
        except Exception as e:
            raise FetchError(
                f"Failed to fetch status of {self.resource_id or 'resource'}: {e}",
                last_status=_status_label(last_status),
                last_object=last_object,
                elapsed=elapsed(),
                resource_id=self.resource_id,
                cause=e,
            ) from e

    def _sleep(self, seconds: float, elapsed, last_status=None, last_object=None) -> None:
        if self.cancel_event is None:
            time.sleep(seconds)
            return
        if self.cancel_event.wait(seconds):
            self._check_cancelled(elapsed, last_status, last_object)

    def _check_cancelled(self, elapsed, last_status, last_object) -> None:
        if self.cancel_event is not None and self.cancel_event.is_set():
            raise WaitCancelledError(
                f"Wait for {self.resource_id or 'resource'} cancelled",
                last_status=_status_label(last_status),
                last_object=last_object,
                elapsed=elapsed(),
                resource_id=self.resource_id,
            )

    def _describe_goal(self) -> str:
        if self.waits_for_absence:
            return 'deletion'
        return 'status ' + '|'.join(sorted(_status_label(s) for s in self.target))


def wait_for_available(
    refresh: RefreshFunc,
    timeout: float,
    *,
    target: Collection[Status],
    pending: Collection[Status],
    poll_interval: float = 10.0,
    delay: float = 0.0,
    not_found_checks: int = 0,
    cancel_event: Optional[threading.Event] = None,
    resource_id: Optional[str] = None,
) -> Any:
    """Wait until the resource exists and reports one of ``target``."""
    if not target:
        raise ValueError("target statuses are required when waiting for availability")
    return StateWaiter(
        target=target,
        pending=pending,
        refresh=refresh,
        timeout=timeout,
        poll_interval=poll_interval,
        delay=delay,
        not_found_checks=not_found_checks,
        cancel_event=cancel_event,
        resource_id=resource_id,
    ).wait()


def wait_for_deleted(
    refresh: RefreshFunc,
    timeout: float,
    *,
    pending: Collection[Status],
    poll_interval: float = 10.0,
    delay: float = 0.0,
    cancel_event: Optional[threading.Event] = None,
    resource_id: Optional[str] = None,
) -> None:
    """Wait until the resource no longer exists."""
    StateWaiter(
        target=(),
        pending=pending,
        refresh=refresh,
        timeout=timeout,
        poll_interval=poll_interval,
        delay=delay,
        cancel_event=cancel_event,
        resource_id=resource_id,
    ).wait()
