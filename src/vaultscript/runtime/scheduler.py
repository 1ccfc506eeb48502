"""
Timer-based scheduler for `@EVENT_TRIGGER` statements.

Timers run on daemon `threading.Timer` threads, but they never execute
script code themselves: each firing is handed to a single-worker
ThreadPoolExecutor, so scheduled actions run one at a time, in firing
order, on one dedicated thread. The runner callable (normally
`Interpreter.run_action`) takes the interpreter lock, which serialises
firings against the main thread as well.

A counted schedule halts the scheduler after its final firing: the
`halted` event is set, every other pending timer is cancelled and the
optional `on_halt` callback runs. Whether that ends the process is the
host's decision.
"""

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Set
import itertools
import logging
import threading

from .values import to_number, to_integer, type_name
from ..ast import AstNode
from ..errors import ScriptRuntimeError, error_invalid_schedule


logger = logging.getLogger(__name__)

UNIT_SECONDS = {
    "seconds": 1,
    "minutes": 60,
    "hours": 3600,
}

DEFAULT_DATETIME_FORMAT = "%Y-%m-%d %H:%M:%S"


@dataclass
class ScheduledTask:
    """
    One armed schedule.

    Exactly one of `delay` (relative schedules) and `run_at` (absolute
    schedules) drives the first firing. `remaining` is None for unlimited
    periodic tasks and for absolute one-shots.
    """
    task_id: int
    action: AstNode
    delay: float
    run_at: Optional[datetime] = None
    remaining: Optional[int] = None
    fired: int = 0

    @property
    def periodic(self) -> bool:
        return self.run_at is None and self.remaining is None

    @property
    def counted(self) -> bool:
        return self.remaining is not None


class Scheduler:
    """
    Arms, fires and retires scheduled actions.

    Usage:
        scheduler = Scheduler(interpreter.run_action)
        scheduler.schedule(2, "seconds", action_node, 3)
        scheduler.wait()        # until no task is pending or halted
        scheduler.shutdown()
    """

    def __init__(
        self,
        runner: Callable[[AstNode], Any],
        datetime_format: str = DEFAULT_DATETIME_FORMAT,
        on_halt: Optional[Callable[[], None]] = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.runner = runner
        self.datetime_format = datetime_format
        self.on_halt = on_halt
        self.clock = clock

        self.halted = threading.Event()
        self.errors: List[BaseException] = []

        self._lock = threading.Lock()
        self._idle = threading.Condition(self._lock)
        self._ids = itertools.count(1)
        self._tasks: Dict[int, ScheduledTask] = {}
        self._timers: Dict[int, threading.Timer] = {}
        self._in_flight: Set[int] = set()
        self._closed = False
        self._worker_ident: Optional[int] = None
        self._executor = ThreadPoolExecutor(
            max_workers=1, thread_name_prefix="vaultscript-scheduler"
        )

    @property
    def pending(self) -> int:
        """Number of tasks that may still fire."""
        with self._lock:
            return len(self._tasks)

    # =========================================================================
    # Scheduling
    # =========================================================================

    def schedule(
        self,
        time_value: Any,
        unit: Optional[str],
        action: AstNode,
        repeat_count: Any = None,
    ) -> ScheduledTask:
        """
        Validate parameters and arm a task.

        With a unit, `time_value` is a delay and `repeat_count` None means
        repeat forever. Without one, `time_value` is an absolute local
        date-time string and `repeat_count` must be None.

        Raises:
            InvalidScheduleParameters: on any invalid combination
        """
        remaining = self._repeat_count(repeat_count)

        if unit is not None:
            factor = UNIT_SECONDS.get(unit.lower())
            if factor is None:
                raise error_invalid_schedule(
                    f"unknown time unit '{unit}', use one of {', '.join(UNIT_SECONDS)}"
                )
            delay = to_number(time_value) * factor
            if delay <= 0:
                raise error_invalid_schedule(f"delay must be positive, got '{time_value}'")
            run_at = None
        else:
            if remaining is not None:
                raise error_invalid_schedule("a repeat count needs a time unit")
            run_at = self._parse_instant(time_value)
            delay = (run_at - self.clock()).total_seconds()
            if delay <= 0:
                raise error_invalid_schedule(
                    f"scheduled time {time_value} is already in the past"
                )

        task = ScheduledTask(
            task_id=next(self._ids),
            action=action,
            delay=float(delay),
            run_at=run_at,
            remaining=remaining,
        )
        with self._lock:
            if self._closed or self.halted.is_set():
                raise error_invalid_schedule("scheduler is no longer running")
            self._tasks[task.task_id] = task
            self._arm(task)

        logger.debug(
            "Scheduled task %d: delay=%.3fs remaining=%s periodic=%s",
            task.task_id, task.delay, task.remaining, task.periodic,
        )
        return task

    def _repeat_count(self, repeat_count: Any) -> Optional[int]:
        if repeat_count is None:
            return None
        try:
            count = to_integer(repeat_count)
        except ScriptRuntimeError:
            raise error_invalid_schedule(
                f"repeat count must be an integer, got {type_name(repeat_count)}"
            )
        if count < 1:
            raise error_invalid_schedule(f"repeat count must be at least 1, got {count}")
        return count

    def _parse_instant(self, time_value: Any) -> datetime:
        if not isinstance(time_value, str):
            raise error_invalid_schedule(
                f"absolute time must be a string like '2025-01-31 12:00:00', got {type_name(time_value)}"
            )
        try:
            return datetime.strptime(time_value.strip(), self.datetime_format)
        except ValueError:
            raise error_invalid_schedule(
                f"cannot parse '{time_value}' with format '{self.datetime_format}'"
            )

    # =========================================================================
    # Timer plumbing (callers hold self._lock where noted)
    # =========================================================================

    def _arm(self, task: ScheduledTask) -> None:
        """Start a timer for the task's next firing. Caller holds the lock."""
        timer = threading.Timer(task.delay, self._on_timer, args=(task,))
        timer.daemon = True
        self._timers[task.task_id] = timer
        timer.start()

    def _on_timer(self, task: ScheduledTask) -> None:
        with self._lock:
            if self._closed or task.task_id not in self._tasks:
                return
            self._timers.pop(task.task_id, None)
            if task.periodic:
                # Fixed-rate: the next period starts now, not after the run
                self._arm(task)
                if task.task_id in self._in_flight:
                    logger.debug("Task %d still running, skipping this period", task.task_id)
                    return
            self._in_flight.add(task.task_id)
            self._executor.submit(self._fire, task)

    def _fire(self, task: ScheduledTask) -> None:
        """Run one firing on the worker thread."""
        self._worker_ident = threading.get_ident()
        try:
            self._run_firing(task)
        finally:
            with self._lock:
                self._in_flight.discard(task.task_id)

    def _run_firing(self, task: ScheduledTask) -> None:
        with self._lock:
            if self._closed or task.task_id not in self._tasks:
                return

        logger.debug("Firing task %d (run %d)", task.task_id, task.fired + 1)
        try:
            self.runner(task.action)
        except Exception as exc:
            logger.exception("Scheduled task %d failed", task.task_id)
            self.errors.append(exc)
            self._retire(task)
            return

        task.fired += 1
        if task.periodic:
            return

        if task.counted:
            task.remaining -= 1
            if task.remaining > 0:
                with self._lock:
                    if not self._closed and task.task_id in self._tasks:
                        self._arm(task)
                return
            self._retire(task)
            self.halt()
            return

        self._retire(task)

    def _retire(self, task: ScheduledTask) -> None:
        with self._idle:
            self._tasks.pop(task.task_id, None)
            timer = self._timers.pop(task.task_id, None)
            if timer is not None:
                timer.cancel()
            self._idle.notify_all()

    def _cancel_all(self) -> None:
        """Drop every task and timer. Caller holds the lock."""
        for timer in self._timers.values():
            timer.cancel()
        self._timers.clear()
        self._tasks.clear()
        self._idle.notify_all()

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def halt(self) -> None:
        """Stop all scheduling and signal the host."""
        with self._idle:
            if self.halted.is_set():
                return
            self.halted.set()
            self._cancel_all()
        logger.debug("Scheduler halted")
        if self.on_halt is not None:
            self.on_halt()

    def wait(self, timeout: Optional[float] = None) -> bool:
        """
        Block until no task is pending or the scheduler halted.

        Returns False if the timeout expired first.
        """
        with self._idle:
            return self._idle.wait_for(
                lambda: not self._tasks or self.halted.is_set(), timeout
            )

    def shutdown(self, wait: bool = True) -> None:
        """Cancel everything and stop the worker thread."""
        with self._idle:
            self._closed = True
            self._cancel_all()
        on_worker = threading.get_ident() == self._worker_ident
        self._executor.shutdown(wait=wait and not on_worker)
