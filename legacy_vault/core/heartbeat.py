"""
Heartbeat scheduler - runs periodic maintenance tasks such as the inactivity sweep.
Cooperative single-threaded loop; intervals are measured with time.monotonic().
"""

import time
import threading
from typing import Callable, Dict, List, Optional

from .config import is_heartbeat_enabled, validate_heartbeat_config
from ..util.logging import logger


class Heartbeat:
    """Registry of periodic tasks plus the loop that drives them."""

    def __init__(self, enabled: Optional[bool] = None, tick_sec: float = 0.1, max_cycle_sec: float = 10.0):
        self.tasks: Dict[str, Dict] = {}  # task_name -> {func, interval, last_run}
        self.running = False
        self.shutdown_event: Optional[threading.Event] = None
        self.enabled = enabled
        self.tick_sec = tick_sec
        self.max_cycle_sec = max_cycle_sec

    def is_enabled(self) -> bool:
        return is_heartbeat_enabled() if self.enabled is None else self.enabled

    def register_task(self, name: str, interval_sec: int, func: Callable):
        """
        Register a task to be executed periodically.

        Args:
            name: Unique task identifier
            interval_sec: How often to run this task in seconds
            func: Function to call (should be fast and not block)
        """
        if not callable(func):
            raise ValueError(f"Task function must be callable: {func}")

        if interval_sec < 1:
            raise ValueError(f"Interval must be >= 1 second: {interval_sec}")

        issues = validate_heartbeat_config()
        if issues:
            raise ValueError(f"Heartbeat configuration invalid: {issues}")

        self.tasks[name] = {
            "func": func,
            "interval": interval_sec,
            "last_run": None
        }
        logger.info(f"Registered heartbeat task '{name}' (every {interval_sec}s)")

    def unregister_task(self, name: str):
        """Remove a task from the registry."""
        if name in self.tasks:
            del self.tasks[name]
            logger.info(f"Unregistered heartbeat task '{name}'")

    def list_tasks(self) -> List[str]:
        return list(self.tasks.keys())

    def start(self):
        """
        Run the heartbeat loop until stop() is called or the process is interrupted.

        A failing task is logged and the loop carries on with the next one.
        """
        if not self.is_enabled():
            logger.info("Heartbeat disabled (HEARTBEAT_ENABLED=false). Skipping start.")
            return

        if self.running:
            raise RuntimeError("Heartbeat already running")

        issues = validate_heartbeat_config()
        if issues:
            raise ValueError(f"Heartbeat configuration invalid: {issues}")

        self.running = True
        self.shutdown_event = threading.Event()
        logger.info(f"Starting heartbeat loop with tasks: {self.list_tasks()}")

        try:
            while self.running and not self.shutdown_event.is_set():
                start_time = time.monotonic()

                for name, task_info in list(self.tasks.items()):
                    if self.should_run_task(name, task_info):
                        try:
                            self.run_task(name, task_info)
                        except Exception as e:
                            logger.error(f"Heartbeat task '{name}' failed: {e}")

                self.shutdown_event.wait(self.tick_sec)

                elapsed = time.monotonic() - start_time
                if elapsed > self.max_cycle_sec:
                    # A slow task only delays the next cycle; the loop keeps running
                    logger.warning(f"Heartbeat cycle too slow ({elapsed:.1f}s)")

        except KeyboardInterrupt:
            logger.info("Heartbeat interrupted by user")
        finally:
            self.running = False
            logger.info("Heartbeat loop stopped")

    def stop(self):
        """Stop the heartbeat loop gracefully."""
        if not self.running:
            logger.info("Heartbeat not running")
            return

        logger.info("Stopping heartbeat loop")
        self.running = False
        if self.shutdown_event:
            self.shutdown_event.set()

    def should_run_task(self, name: str, task_info: Dict) -> bool:
        """Check if a task should run this cycle."""
        if task_info["last_run"] is None:
            return True

        elapsed = time.monotonic() - task_info["last_run"]
        return elapsed >= task_info["interval"]

    def run_task(self, name: str, task_info: Dict):
        """Execute a task and record timing."""
        start_time = time.monotonic()

        try:
            task_info["func"]()
        except Exception as e:
            end_time = time.monotonic()
            # Failed runs still count, so a broken task waits a full interval
            task_info["last_run"] = end_time
            logger.log_heartbeat_task(name, start_time, end_time, "failed", {"error": str(e)})
            raise RuntimeError(f"Task '{name}' failed after {end_time - start_time:.2f}s: {e}")

        end_time = time.monotonic()
        task_info["last_run"] = end_time
        logger.log_heartbeat_task(name, start_time, end_time)

    def reset_task(self, name: str):
        """Reset a task's last_run time to force immediate execution."""
        if name in self.tasks:
            self.tasks[name]["last_run"] = None

    def get_status(self) -> Dict:
        """Return current heartbeat status for monitoring."""
        if not self.is_enabled():
            return {"status": "disabled", "reason": "HEARTBEAT_ENABLED=false"}

        return {
            "status": "running" if self.running else "stopped",
            "tasks": {
                name: {
                    "interval_sec": info["interval"],
                    "last_run": info["last_run"],
                    "next_run": info["last_run"] + info["interval"] if info["last_run"] else None
                }
                for name, info in self.tasks.items()
            }
        }
