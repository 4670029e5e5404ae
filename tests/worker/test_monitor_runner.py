# tests/worker/test_monitor_runner.py
"""
Тесты для запускалки мониторов.
"""

from __future__ import annotations

from unittest.mock import MagicMock

from dispatch_engine.config import settings
from dispatch_engine.worker.auto_cancel import AutoCancelMonitor
from dispatch_engine.worker.liveness import DriverLivenessMonitor
from dispatch_engine.worker.runner import build_monitors
from dispatch_engine.worker.scheduled import ScheduledDispatchMonitor


class TestBuildMonitors:
    """Тесты для build_monitors."""

    def test_creates_all_monitors(self) -> None:
        services = MagicMock()

        monitors = build_monitors(services)

        assert [type(m) for m in monitors] == [
            AutoCancelMonitor,
            DriverLivenessMonitor,
            ScheduledDispatchMonitor,
        ]
        assert {m.name for m in monitors} == {"auto_cancel", "liveness", "scheduled_dispatch"}
        assert all(m.services is services for m in monitors)

    def test_intervals_from_config(self) -> None:
        monitors = {m.name: m for m in build_monitors(MagicMock())}

        assert monitors["auto_cancel"].interval_seconds == settings.monitors.AUTO_CANCEL_INTERVAL_SECONDS
        assert monitors["liveness"].interval_seconds == settings.monitors.LIVENESS_INTERVAL_SECONDS
        assert monitors["scheduled_dispatch"].batch_size == settings.monitors.MONITOR_BATCH_SIZE
