# tests/core/test_presence_service.py
"""
Тесты для присутствия и доступности водителей.
"""

from __future__ import annotations

from datetime import timedelta

import pytest

from dispatch_engine.common.errors import DriverNotFound
from dispatch_engine.infra.event_bus import EventTypes

from dispatch_fakes import NOW, Engine


class TestRecordPresence:
    """Тесты для heartbeat водителя."""

    @pytest.mark.asyncio
    async def test_updates_position_and_presence(self, engine: Engine) -> None:
        # Arrange
        engine.store.add_driver("d1", last_presence_at=NOW - timedelta(minutes=5))
        engine.clock.advance(seconds=10)

        # Act
        driver = await engine.presence.record_presence("d1", 50.40, 30.60)

        # Assert
        assert (driver.latitude, driver.longitude) == (50.40, 30.60)
        assert driver.last_presence_at == NOW + timedelta(seconds=10)
        assert driver.location_updated_at == driver.last_presence_at

    @pytest.mark.asyncio
    async def test_unknown_driver(self, engine: Engine) -> None:
        with pytest.raises(DriverNotFound):
            await engine.presence.record_presence("ghost", 50.0, 30.0)


class TestSetAvailability:
    """Тесты для тумблера доступности."""

    @pytest.mark.asyncio
    async def test_going_online_refreshes_presence(self, engine: Engine) -> None:
        engine.store.add_driver("d1", available=False, last_presence_at=NOW - timedelta(hours=1))

        driver = await engine.presence.set_availability("d1", True)

        assert driver.available is True
        assert driver.last_presence_at == NOW
        [(topic, event)] = engine.broadcaster.of_type("driver-status-changed")
        assert topic == "driver:d1"
        assert event.available is True
        assert event.reason == "driver"
        assert engine.facts(EventTypes.DRIVER_ONLINE) == [{"driver_id": "d1", "reason": "driver"}]

    @pytest.mark.asyncio
    async def test_going_offline(self, engine: Engine) -> None:
        engine.store.add_driver("d1")

        driver = await engine.presence.set_availability("d1", False)

        assert driver.available is False
        assert len(engine.facts(EventTypes.DRIVER_OFFLINE)) == 1

    @pytest.mark.asyncio
    async def test_no_change_no_event(self, engine: Engine) -> None:
        engine.store.add_driver("d1", available=True)

        driver = await engine.presence.set_availability("d1", True)

        assert driver.available is True
        assert engine.broadcaster.events == []

    @pytest.mark.asyncio
    async def test_does_not_touch_on_delivery(self, engine: Engine) -> None:
        """Тумблер меняет только available, занятость водителя не затирается."""
        engine.store.add_driver("d1")
        engine.store.drivers["d1"].on_delivery = True

        await engine.presence.set_availability("d1", False)

        assert engine.store.drivers["d1"].on_delivery is True

    @pytest.mark.asyncio
    async def test_unknown_driver(self, engine: Engine) -> None:
        with pytest.raises(DriverNotFound):
            await engine.presence.set_availability("ghost", True)


class TestExpireStale:
    """Тесты для перевода молчащих водителей в недоступные."""

    @pytest.mark.asyncio
    async def test_expires_silent_driver(self, engine: Engine) -> None:
        driver = engine.store.add_driver("d1", last_presence_at=NOW - timedelta(seconds=61))

        expired = await engine.presence.expire_stale(driver, NOW, heartbeat_timeout_seconds=60)

        assert expired is True
        assert engine.store.drivers["d1"].available is False
        [(_, event)] = engine.broadcaster.of_type("driver-status-changed")
        assert event.reason == "heartbeat_timeout"

    @pytest.mark.asyncio
    async def test_presence_at_boundary_is_kept(self, engine: Engine) -> None:
        driver = engine.store.add_driver("d1", last_presence_at=NOW - timedelta(seconds=60))

        assert await engine.presence.expire_stale(driver, NOW, heartbeat_timeout_seconds=60) is False
        assert engine.store.drivers["d1"].available is True

    @pytest.mark.asyncio
    async def test_heartbeat_after_selection_wins(self, engine: Engine) -> None:
        """Водитель, приславший сигнал после выборки монитора, остаётся на линии."""
        driver = engine.store.add_driver("d1", last_presence_at=NOW - timedelta(minutes=5))
        await engine.presence.record_presence("d1", 50.45, 30.52)

        assert await engine.presence.expire_stale(driver, NOW, heartbeat_timeout_seconds=60) is False
        assert engine.broadcaster.events == []
