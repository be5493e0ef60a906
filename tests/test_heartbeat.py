"""
Heartbeat scheduler tests - registration, timing, failure isolation and the sweep task.
"""

import pytest
import time
from unittest.mock import patch, MagicMock

from legacy_vault.core.heartbeat import Heartbeat


@pytest.fixture
def heartbeat():
    """Enabled scheduler with a short tick."""
    return Heartbeat(enabled=True, tick_sec=0.01)


class TestHeartbeatRegistration:

    def test_register_task_valid(self, heartbeat):
        heartbeat.register_task("test_task", 30, lambda: None)
        assert heartbeat.list_tasks() == ["test_task"]

    def test_register_task_invalid_func(self, heartbeat):
        with pytest.raises(ValueError, match="Task function must be callable"):
            heartbeat.register_task("bad_task", 30, "not_callable")

    def test_register_task_invalid_interval(self, heartbeat):
        with pytest.raises(ValueError, match="Interval must be >= 1 second"):
            heartbeat.register_task("bad_task", 0, lambda: None)

    def test_register_duplicate_task(self, heartbeat):
        heartbeat.register_task("duplicate", 30, lambda: None)
        heartbeat.register_task("duplicate", 60, lambda: None)

        assert len(heartbeat.list_tasks()) == 1
        assert heartbeat.tasks["duplicate"]["interval"] == 60

    def test_register_rejects_bad_config(self, heartbeat):
        with patch("legacy_vault.core.heartbeat.validate_heartbeat_config", return_value=["bad interval"]):
            with pytest.raises(ValueError, match="configuration invalid"):
                heartbeat.register_task("task", 30, lambda: None)

    def test_unregister_task(self, heartbeat):
        heartbeat.register_task("test_task", 30, lambda: None)
        heartbeat.unregister_task("test_task")
        assert heartbeat.list_tasks() == []

    def test_unregister_unknown_task(self, heartbeat):
        heartbeat.unregister_task("nothing")
        assert heartbeat.list_tasks() == []


class TestHeartbeatExecution:

    def test_should_run_when_never_run(self, heartbeat):
        assert heartbeat.should_run_task("t", {"func": None, "interval": 60, "last_run": None})

    def test_should_not_run_before_interval(self, heartbeat):
        task_info = {"func": None, "interval": 60, "last_run": time.monotonic()}
        assert not heartbeat.should_run_task("t", task_info)

    def test_should_run_after_interval(self, heartbeat):
        task_info = {"func": None, "interval": 1, "last_run": time.monotonic() - 2}
        assert heartbeat.should_run_task("t", task_info)

    def test_run_task_records_last_run(self, heartbeat):
        func = MagicMock()
        heartbeat.register_task("t", 30, func)

        heartbeat.run_task("t", heartbeat.tasks["t"])

        func.assert_called_once()
        assert heartbeat.tasks["t"]["last_run"] is not None

    def test_run_task_failure(self, heartbeat):
        heartbeat.register_task("t", 30, MagicMock(side_effect=Exception("boom")))

        with pytest.raises(RuntimeError, match="Task 't' failed"):
            heartbeat.run_task("t", heartbeat.tasks["t"])
        assert heartbeat.tasks["t"]["last_run"] is not None

    def test_reset_task(self, heartbeat):
        heartbeat.register_task("t", 30, lambda: None)
        heartbeat.run_task("t", heartbeat.tasks["t"])
        heartbeat.reset_task("t")
        assert heartbeat.tasks["t"]["last_run"] is None

    def test_start_disabled_is_noop(self):
        heartbeat = Heartbeat(enabled=False)
        func = MagicMock()
        heartbeat.register_task("t", 30, func)

        heartbeat.start()

        func.assert_not_called()
        assert heartbeat.running is False

    def test_loop_runs_tasks_until_stopped(self, heartbeat):
        calls = []

        def task():
            calls.append(1)
            heartbeat.stop()

        heartbeat.register_task("t", 30, task)
        heartbeat.start()

        assert calls == [1]
        assert heartbeat.running is False

    def test_failing_task_does_not_stop_loop(self, heartbeat):
        seen = []

        def broken():
            raise ValueError("broken")

        def last():
            seen.append(1)
            heartbeat.stop()

        heartbeat.register_task("broken", 30, broken)
        heartbeat.register_task("last", 30, last)
        heartbeat.start()

        assert seen == [1]

    def test_slow_cycle_keeps_looping(self):
        heartbeat = Heartbeat(enabled=True, tick_sec=0.01, max_cycle_sec=0.01)
        runs = []

        def slow():
            time.sleep(0.05)
            runs.append(1)
            if len(runs) < 3:
                heartbeat.reset_task("slow")
            else:
                heartbeat.stop()

        heartbeat.register_task("slow", 30, slow)
        with patch("legacy_vault.core.heartbeat.logger") as mock_logger:
            heartbeat.start()

        assert len(runs) == 3
        assert mock_logger.warning.call_count >= 2
        assert heartbeat.running is False

    def test_start_twice_raises(self, heartbeat):
        heartbeat.running = True
        with pytest.raises(RuntimeError, match="already running"):
            heartbeat.start()


class TestHeartbeatStatus:

    def test_status_disabled(self):
        assert Heartbeat(enabled=False).get_status()["status"] == "disabled"

    def test_status_lists_tasks(self, heartbeat):
        heartbeat.register_task("inactivity_sweep", 3600, lambda: None)
        status = heartbeat.get_status()

        assert status["status"] == "stopped"
        assert status["tasks"]["inactivity_sweep"]["interval_sec"] == 3600
        assert status["tasks"]["inactivity_sweep"]["next_run"] is None


class TestInactivitySweepTask:

    def test_sweep_as_heartbeat_task(self, heartbeat, services, clock, owner):
        heartbeat.register_task("inactivity_sweep", 3600, services.activity.sweep)
        clock.advance(days=31)

        heartbeat.run_task("inactivity_sweep", heartbeat.tasks["inactivity_sweep"])

        assert services.users.get_user(owner.id).is_inactive is True
