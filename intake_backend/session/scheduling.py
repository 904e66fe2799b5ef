"""
Planification des minuteries de session.
Un scheduler expose call_later(delay, callback, *args) et renvoie un handle annulable
(.cancel()). asyncio.AbstractEventLoop satisfait déjà ce protocole; ThreadScheduler
est la version par défaut hors boucle asyncio.
"""
import threading
import time
from typing import Any, Callable, Protocol


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    def call_later(self, delay: float, callback: Callable[..., Any], *args: Any) -> TimerHandle: ...


class ThreadScheduler:
    def call_later(self, delay: float, callback: Callable[..., Any], *args: Any) -> threading.Timer:
        timer = threading.Timer(max(0.0, delay), callback, args=args)
        timer.daemon = True
        timer.start()
        return timer


Clock = Callable[[], float]

# Horloge par défaut: secondes, monotone (indépendante des changements d'heure système)
default_clock: Clock = time.monotonic
