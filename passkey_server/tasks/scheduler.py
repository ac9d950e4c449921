"""
Background task scheduler for challenge store maintenance.

Abandoned ceremonies leave orphaned challenges behind; the default task
sweeps the expired ones on a fixed interval.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, Dict, Optional

from passkey_server.services.challenge_store import ChallengeStore

logger = logging.getLogger(__name__)

# How often the scheduler loop looks for due tasks
POLL_INTERVAL_SECONDS = 1.0


@dataclass
class ScheduledTask:
    """Represents a scheduled background task."""
    name: str
    func: Callable[[], Awaitable[Any]]
    interval_seconds: int
    last_run: Optional[datetime] = None
    next_run: Optional[datetime] = None
    enabled: bool = True
    running: bool = False

    def __post_init__(self):
        """Calculate next run time after initialization."""
        if self.next_run is None:
            self.next_run = datetime.now() + timedelta(seconds=self.interval_seconds)

    def should_run(self, now: Optional[datetime] = None) -> bool:
        """Check if task should run now."""
        return (
            self.enabled
            and not self.running
            and self.next_run is not None
            and (now or datetime.now()) >= self.next_run
        )

    def mark_completed(self):
        """Mark task as completed and schedule next run."""
        self.last_run = datetime.now()
        self.next_run = self.last_run + timedelta(seconds=self.interval_seconds)
        self.running = False

    def mark_started(self):
        """Mark task as started."""
        self.running = True


class BackgroundTaskScheduler:
    """Manages background task scheduling and execution."""

    def __init__(
        self,
        challenges: Optional[ChallengeStore] = None,
        cleanup_interval: int = 60,
        poll_interval: float = POLL_INTERVAL_SECONDS,
    ):
        """Initialize task scheduler."""
        self.tasks: Dict[str, ScheduledTask] = {}
        self.running = False
        self.poll_interval = poll_interval
        self.challenges = challenges
        self._runner: Optional[asyncio.Task] = None

        if challenges is not None:
            self.add_task(
                name="challenge_cleanup",
                func=self._run_challenge_cleanup,
                interval_seconds=cleanup_interval,
            )

    def add_task(self, name: str, func: Callable, interval_seconds: int, enabled: bool = True):
        """Add a new scheduled task."""
        self.tasks[name] = ScheduledTask(
            name=name,
            func=func,
            interval_seconds=interval_seconds,
            enabled=enabled
        )
        logger.info(f"Added background task: {name} (interval: {interval_seconds}s)")

    def remove_task(self, name: str):
        """Remove a scheduled task."""
        if self.tasks.pop(name, None) is not None:
            logger.info(f"Removed background task: {name}")

    async def run(self):
        """Run the scheduler loop until stopped."""
        if self.running:
            logger.warning("Task scheduler is already running")
            return

        self.running = True
        logger.info("Starting background task scheduler")

        while self.running:
            try:
                for task in list(self.tasks.values()):
                    if task.should_run():
                        await self.execute_task(task)

                await asyncio.sleep(self.poll_interval)

            except asyncio.CancelledError:
                logger.info("Task scheduler cancelled")
                break
            except Exception as e:
                logger.error(f"Error in task scheduler: {e}")
                await asyncio.sleep(self.poll_interval * 3)

        self.running = False
        logger.info("Background task scheduler stopped")

    def start(self) -> asyncio.Task:
        """Start the scheduler loop as a background task."""
        if self._runner is None or self._runner.done():
            self._runner = asyncio.create_task(self.run())
        return self._runner

    async def stop(self):
        """Stop the scheduler and wait for the loop to exit."""
        self.running = False
        if self._runner is not None:
            self._runner.cancel()
            try:
                await self._runner
            except asyncio.CancelledError:
                pass
            self._runner = None
        logger.info("Stopping background task scheduler")

    async def execute_task(self, task: ScheduledTask):
        """Execute a single task."""
        logger.debug(f"Executing background task: {task.name}")
        task.mark_started()

        try:
            await task.func()
            logger.debug(f"Task completed successfully: {task.name}")
        except Exception as e:
            logger.error(f"Task failed: {task.name} - {e}")
        finally:
            # Still mark as completed to avoid getting stuck
            task.mark_completed()

    async def _run_challenge_cleanup(self) -> int:
        """Delete expired challenges."""
        removed = await self.challenges.purge_expired()
        if removed:
            logger.info(f"Removed {removed} expired challenges")
        return removed

    def get_task_status(self) -> Dict[str, Any]:
        """Get status of all scheduled tasks."""
        return {
            "scheduler_running": self.running,
            "total_tasks": len(self.tasks),
            "tasks": {
                name: {
                    "enabled": task.enabled,
                    "running": task.running,
                    "interval_seconds": task.interval_seconds,
                    "last_run": task.last_run.isoformat() if task.last_run else None,
                    "next_run": task.next_run.isoformat() if task.next_run else None,
                }
                for name, task in self.tasks.items()
            },
        }
