"""Shared machinery for the poll daemons: the periodic loop and per-user fan-out."""

import logging
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Callable, Iterable

from ..config import DaemonSettings

logger = logging.getLogger(__name__)


class PollDaemon(threading.Thread):
    """Run ``work`` every ``settings.period`` seconds until stopped.

    The first cycle starts after ``settings.startup_delay``.  A failed cycle
    is logged and followed by the same sleep as a successful one.  Setting
    the stop event ends the loop between cycles; a running cycle is never
    interrupted.
    """

    def __init__(
        self,
        settings: DaemonSettings,
        work: Callable[[], object],
        stop_event: threading.Event | None = None,
    ):
        super().__init__(name=f"{settings.name}-daemon", daemon=True)
        self.settings = settings
        self.work = work
        self.stop_event = stop_event or threading.Event()
        self.cycles = 0
        self.failures = 0

    def run_cycle(self) -> bool:
        """Run one cycle.  Returns False if it raised."""
        try:
            self.work()
            return True
        except Exception:
            self.failures += 1
            logger.exception(f"{self.settings.name} cycle failed")
            return False
        finally:
            self.cycles += 1

    def run(self):
        logger.info(
            f"Starting {self.settings.name} daemon "
            f"(period {self.settings.period}s, delay {self.settings.startup_delay}s)"
        )
        if self.stop_event.wait(self.settings.startup_delay):
            return
        while not self.stop_event.is_set():
            self.run_cycle()
            if self.stop_event.wait(self.settings.period):
                break
        logger.info(f"Stopped {self.settings.name} daemon")

    def stop(self):
        self.stop_event.set()


def fan_out(
    task: Callable[[str], object],
    users: Iterable[str],
    max_workers: int | None = None,
    label: str = "task",
) -> dict:
    """Run ``task(user)`` for every user concurrently and wait for all of them.

    One worker per user unless ``max_workers`` caps it.  A failing task is
    logged and counted; its siblings keep running.

    Returns:
        dict: {total, succeeded, failed, failed_users}
    """
    users = list(users)
    stats = {"total": len(users), "succeeded": 0, "failed": 0, "failed_users": []}
    if not users:
        return stats

    workers = max_workers or len(users)
    with ThreadPoolExecutor(max_workers=workers, thread_name_prefix=label) as pool:
        futures = {pool.submit(task, user): user for user in users}
        for future in as_completed(futures):
            user = futures[future]
            try:
                future.result()
                stats["succeeded"] += 1
            except Exception as e:
                stats["failed"] += 1
                stats["failed_users"].append(user)
                logger.error(f"{label} failed for {user}: {e}")

    stats["failed_users"].sort()
    return stats
