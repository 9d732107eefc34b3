"""Run lifecycle controller: submit a run, poll it, fetch its dataset.

Phases::

    idle -> starting -> running -> succeeded | failed | aborted | timed-out

One controller tracks at most one run. Submitting again cancels the polling
task of the previous run before the new one starts. Polling has no attempt
cap; a failed poll is reported and the next poll still happens one interval
later.
"""
from __future__ import annotations

import asyncio
import json
import logging
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, Deque, Dict, List, Optional, Protocol

from actor_console.console.gateway_client import GatewayClientError
from actor_console.domain.actors import ActorDescriptor
from actor_console.domain.runs import (
    RUN_STATUS_ABORTED,
    RUN_STATUS_FAILED,
    RUN_STATUS_SUCCEEDED,
    RUN_STATUS_TIMED_OUT,
    RunRecord,
)

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL_SEC = 3.0
LIVE_RESULT_LIMIT = 50
INVALID_INPUT_MESSAGE = "Invalid JSON in input. Please check your input format."


class LifecyclePhase(str, Enum):
    IDLE = "idle"
    STARTING = "starting"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    ABORTED = "aborted"
    TIMED_OUT = "timed-out"


_TERMINAL_PHASES = {
    RUN_STATUS_SUCCEEDED: LifecyclePhase.SUCCEEDED,
    RUN_STATUS_FAILED: LifecyclePhase.FAILED,
    RUN_STATUS_ABORTED: LifecyclePhase.ABORTED,
    RUN_STATUS_TIMED_OUT: LifecyclePhase.TIMED_OUT,
}


class InputValidationError(ValueError):
    pass


def parse_run_input(text: str) -> Any:
    try:
        return json.loads(text or "")
    except ValueError as exc:
        raise InputValidationError(INVALID_INPUT_MESSAGE) from exc


def format_input(text: str) -> str:
    try:
        parsed = json.loads(text or "")
    except ValueError as exc:
        raise InputValidationError("Invalid JSON - cannot format") from exc
    return json.dumps(parsed, indent=2, ensure_ascii=False)


def example_input(actor: Optional[ActorDescriptor]) -> str:
    if actor is None:
        return "{}"
    return actor.example_input


@dataclass(frozen=True)
class Notification:
    level: str
    message: str
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class RunGateway(Protocol):
    async def start_run(
        self, actor_id: str, run_input: Any, options: Optional[Dict[str, Any]] = None
    ) -> RunRecord: ...

    async def get_run(self, run_id: str) -> RunRecord: ...

    async def list_dataset_items(
        self, dataset_id: str, *, offset: Optional[int] = None, limit: Optional[int] = None
    ) -> List[Any]: ...


NotifyFn = Callable[[Notification], None]
SleepFn = Callable[[float], Awaitable[Any]]


class RunLifecycleController:
    def __init__(
        self,
        gateway: RunGateway,
        *,
        poll_interval_sec: float = DEFAULT_POLL_INTERVAL_SEC,
        result_limit: int = LIVE_RESULT_LIMIT,
        on_notify: Optional[NotifyFn] = None,
        sleep: SleepFn = asyncio.sleep,
        max_notifications: int = 50,
    ) -> None:
        self._gateway = gateway
        self._poll_interval_sec = poll_interval_sec
        self._result_limit = result_limit
        self._on_notify = on_notify
        self._sleep = sleep
        self._notifications: Deque[Notification] = deque(maxlen=max(1, max_notifications))
        self._task: Optional[asyncio.Task] = None
        self._generation = 0
        self.phase = LifecyclePhase.IDLE
        self.actor_id = ""
        self.run: Optional[RunRecord] = None
        self.results: List[Any] = []
        self.results_loading = False
        self.polls_scheduled = 0

    @property
    def is_active(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def poll_interval_sec(self) -> float:
        return self._poll_interval_sec

    @property
    def notifications(self) -> List[Notification]:
        return list(self._notifications)

    def drain_notifications(self) -> List[Notification]:
        items = list(self._notifications)
        self._notifications.clear()
        return items

    def submit(
        self, actor_id: str, input_text: str, options: Optional[Dict[str, Any]] = None
    ) -> asyncio.Task:
        """Validate ``input_text`` and launch a new run lifecycle task.

        Raises ``InputValidationError`` before anything is sent when the input
        is not valid JSON; the current phase and run are left untouched.
        Must be called from a running event loop.
        """
        try:
            run_input = parse_run_input(input_text)
        except InputValidationError as exc:
            self._notify("error", str(exc))
            raise
        self.cancel()
        self.phase = LifecyclePhase.STARTING
        self.actor_id = actor_id
        self.run = None
        self.results = []
        self.results_loading = False
        self.polls_scheduled = 0
        self._generation += 1
        self._task = asyncio.get_running_loop().create_task(
            self._lifecycle(actor_id, run_input, options),
            name=f"run-lifecycle-{actor_id}",
        )
        return self._task

    async def start(
        self, actor_id: str, input_text: str, options: Optional[Dict[str, Any]] = None
    ) -> Optional[RunRecord]:
        """Submit and wait for the whole lifecycle, returning the final record."""
        await asyncio.wait({self.submit(actor_id, input_text, options)})
        return self.run

    async def wait(self) -> None:
        if self._task is not None:
            await asyncio.wait({self._task})

    def cancel(self) -> bool:
        if self._task is None or self._task.done():
            return False
        self._task.cancel()
        return True

    async def close(self) -> None:
        task = self._task
        if not self.cancel() or task is None:
            return
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def load_results(self, dataset_id: str = "", *, limit: Optional[int] = None) -> List[Any]:
        target = dataset_id or (self.run.default_dataset_id if self.run else "")
        if not target:
            self._notify("error", "No dataset is available for this run.")
            return []
        cap = self._result_limit if limit is None else limit
        generation = self._generation
        self.results_loading = True
        try:
            items = await self._gateway.list_dataset_items(target)
        except GatewayClientError as exc:
            logger.warning("Dataset %s fetch failed: %s", target, exc.message)
            self._notify("error", "Failed to load results.")
            return []
        finally:
            # a newer run owns the flag once submit() has moved on
            if generation == self._generation:
                self.results_loading = False
        if generation != self._generation:
            return list(items)
        self.results = list(items[:cap]) if cap > 0 else list(items)
        self._notify("success", "Results loaded successfully!")
        return self.results

    def snapshot(self) -> Dict[str, Any]:
        run = self.run
        return {
            "phase": self.phase.value,
            "actor_id": self.actor_id,
            "polling": self.is_active,
            "run": None
            if run is None
            else {
                "id": run.run_id,
                "status": run.status,
                "status_message": run.status_message,
                "dataset_id": run.default_dataset_id,
            },
            "result_count": len(self.results),
            "notifications": [{"level": n.level, "message": n.message} for n in self._notifications],
        }

    async def _lifecycle(self, actor_id: str, run_input: Any, options: Optional[Dict[str, Any]]) -> None:
        try:
            run = await self._gateway.start_run(actor_id, run_input, options)
        except GatewayClientError as exc:
            self.phase = LifecyclePhase.IDLE
            self._notify("error", f"Failed to start actor: {exc.message}")
            return
        self.run = run
        self._notify("success", "Actor started successfully!")
        logger.info("Run %s started for actor %s (status %s)", run.run_id, actor_id, run.status)
        if run.is_terminal:
            await self._resolve(run)
            return
        self.phase = LifecyclePhase.RUNNING
        await self._poll(run.run_id)

    async def _poll(self, run_id: str) -> None:
        while True:
            self.polls_scheduled += 1
            await self._sleep(self._poll_interval_sec)
            try:
                record = await self._gateway.get_run(run_id)
            except GatewayClientError as exc:
                if exc.is_transient:
                    self._notify("error", "Connection error while checking run status.")
                else:
                    self._notify("error", f"Failed to check run status: {exc.message}")
                continue
            self.run = record
            if record.is_terminal:
                await self._resolve(record)
                return

    async def _resolve(self, record: RunRecord) -> None:
        self.phase = _TERMINAL_PHASES[record.status]
        logger.info("Run %s finished with %s", record.run_id, record.status)
        if record.status == RUN_STATUS_FAILED:
            if record.status_message:
                self._notify("error", f"Actor run failed: {record.status_message}")
            else:
                self._notify("error", "Actor run failed!")
        elif record.status == RUN_STATUS_ABORTED:
            self._notify("error", "Actor run was aborted!")
        elif record.status == RUN_STATUS_TIMED_OUT:
            self._notify("error", "Actor run timed out!")
        else:
            self._notify("success", "Actor run completed successfully!")
            if record.default_dataset_id:
                await self.load_results(record.default_dataset_id)

    def _notify(self, level: str, message: str) -> None:
        note = Notification(level=level, message=message)
        self._notifications.append(note)
        log = logger.warning if level == "error" else logger.info
        log("[%s] %s", self.actor_id or "-", message)
        if self._on_notify is not None:
            self._on_notify(note)
