"""Deferred and periodic work for live games.

Tasks run as Socket.IO background tasks inside an app context. In TESTING
mode nothing is started: one-shot tasks are queued on ``pending`` and tests
fire them with ``run_pending()``, while periodic tasks are not started at all.
Set ``ENABLE_SCHEDULER_IN_TESTS`` to run real background tasks under test.
"""

import threading
import time
from typing import Any, Callable, List, Optional

from flask import current_app, has_app_context

from turfwar import socketio


class ScheduledTask:
    def __init__(self, delay: float, fn: Callable, args=(), kwargs=None, name: Optional[str] = None):
        self.delay = delay
        self.fn = fn
        self.args = args
        self.kwargs = kwargs or {}
        self.name = name or getattr(fn, '__qualname__', repr(fn))
        self.deadline = time.time() + delay
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True

    def __repr__(self):
        return f"<ScheduledTask {self.name} delay={self.delay}>"


class Scheduler:
    def __init__(self):
        self.app = None
        self.pending: List[ScheduledTask] = []
        self._lock = threading.Lock()

    def init_app(self, app) -> None:
        self.app = app
        with self._lock:
            self.pending = []

    @property
    def deferred(self) -> bool:
        cfg = self.app.config
        return bool(cfg.get('TESTING')) and not cfg.get('ENABLE_SCHEDULER_IN_TESTS')

    def call_later(self, delay: float, fn: Callable, *args: Any, **kwargs: Any) -> ScheduledTask:
        task = ScheduledTask(max(0.0, float(delay)), fn, args, kwargs)
        if self.deferred:
            with self._lock:
                self.pending.append(task)
            return task
        socketio.start_background_task(self._run_later, task)
        return task

    def call_every(self, interval: float, fn: Callable, *args: Any, **kwargs: Any) -> ScheduledTask:
        task = ScheduledTask(max(0.0, float(interval)), fn, args, kwargs)
        if self.deferred:
            # Periodic workers are driven by hand in tests
            return task
        socketio.start_background_task(self._run_every, task)
        return task

    def run_pending(self) -> int:
        """Run the queued tasks in deadline order; tasks queued meanwhile wait for the next call."""
        with self._lock:
            tasks = sorted(self.pending, key=lambda t: t.deadline)
            self.pending = []
        ran = 0
        for task in tasks:
            if task.cancelled:
                continue
            self._execute(task)
            ran += 1
        return ran

    def _run_later(self, task: ScheduledTask) -> None:
        socketio.sleep(task.delay)
        if task.cancelled:
            return
        self._execute(task)

    def _run_every(self, task: ScheduledTask) -> None:
        while not task.cancelled:
            socketio.sleep(task.delay)
            if task.cancelled:
                return
            self._execute(task)

    def _execute(self, task: ScheduledTask) -> None:
        app = self.app
        if has_app_context() and current_app._get_current_object() is app:
            # run_pending under an active context shares its session
            self._call(app, task)
            return
        with app.app_context():
            self._call(app, task)

    @staticmethod
    def _call(app, task: ScheduledTask) -> None:
        try:
            task.fn(*task.args, **task.kwargs)
        except Exception:
            app.logger.exception(f"[task-error] task={task.name}")


scheduler = Scheduler()
