# sitecms/editor/scheduler.py
# Temporizadores cancelables para el autosave con debounce.
from __future__ import annotations

import threading
from typing import Any, Callable, Protocol


class Scheduler(Protocol):
    def schedule(self, delay: float, fn: Callable[[], None]) -> Any:
        ...

    def cancel(self, handle: Any) -> None:
        ...


class ThreadingScheduler:
    """Un threading.Timer daemon por tarea; `fn` corre en el hilo del timer."""

    def schedule(self, delay: float, fn: Callable[[], None]) -> threading.Timer:
        timer = threading.Timer(max(0.0, float(delay)), fn)
        timer.daemon = True
        timer.start()
        return timer

    def cancel(self, handle: threading.Timer) -> None:
        if handle is not None:
            handle.cancel()
