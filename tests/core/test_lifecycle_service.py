# tests/core/test_lifecycle_service.py
"""
Тесты для машины состояний заявки.
"""

from __future__ import annotations

import asyncio

import pytest

from dispatch_engine.common.constants import CancelActor, LifecycleTransition, RequestState, StopStatus
from dispatch_engine.common.errors import (
    AlreadyTerminal,
    InvalidTransition,
    NotAssignedDriver,
    RequestNotFound,
)
from dispatch_engine.core.requests.models import LifecycleResult
from dispatch_engine.infra.event_bus import EventTypes

from dispatch_fakes import Engine, make_create_dto

ARRIVED = LifecycleTransition.ARRIVED_PICKUP
PICKED_UP = LifecycleTransition.PICKED_UP
DELIVERED = LifecycleTransition.DELIVERED
START_RETURN = LifecycleTransition.START_RETURN
COMPLETE_RETURN = LifecycleTransition.COMPLETE_RETURN


async def _claimed(engine: Engine, driver_id: str = "d1", **dto_kwargs) -> str:
    """Заявка, принятая водителем driver_id."""
    if driver_id not in engine.store.drivers:
        engine.store.add_driver(driver_id)
    outcome = await engine.dispatch.create_and_dispatch(make_create_dto(**dto_kwargs))
    await engine.claims.accept(outcome.request.id, driver_id)
    return outcome.request.id


async def _advance(engine: Engine, request_id: str, *transitions: LifecycleTransition) -> LifecycleResult:
    result = None
    for transition in transitions:
        engine.clock.advance(minutes=1)
        result = await engine.lifecycle.advance(request_id, "d1", transition)
    return result


class TestSingleStop:
    """Одноточечная доставка без обратного рейса."""

    @pytest.mark.asyncio
    async def test_full_lifecycle(self, engine: Engine) -> None:
        # Arrange
        request_id = await _claimed(engine)

        # Act
        arrived = await _advance(engine, request_id, ARRIVED)
        picked = await _advance(engine, request_id, PICKED_UP)
        delivered = await _advance(engine, request_id, DELIVERED)

        # Assert
        assert arrived.state == RequestState.ARRIVED_PICKUP
        assert picked.state == RequestState.PICKED_UP
        assert delivered.state == RequestState.COMPLETED
        assert delivered.remaining_stops == 0
        assert delivered.completed_stop.rank == 1

        stored = await engine.requests.get_by_id(request_id)
        assert stored.arrived_at < stored.trip_started_at < stored.delivered_at
        assert stored.completed_at == stored.delivered_at

    @pytest.mark.asyncio
    async def test_completion_releases_driver(self, engine: Engine) -> None:
        request_id = await _claimed(engine)

        await _advance(engine, request_id, ARRIVED, PICKED_UP, DELIVERED)

        driver = engine.store.drivers["d1"]
        assert driver.on_delivery is False
        assert driver.completed_deliveries == 1
        assert await engine.dispatch.get_active_request("d1") is None

    @pytest.mark.asyncio
    async def test_completion_events(self, engine: Engine) -> None:
        request_id = await _claimed(engine)

        await _advance(engine, request_id, ARRIVED, PICKED_UP, DELIVERED)

        states = [event.state for _, event in engine.broadcaster.of_type("request-status-changed")]
        assert states == ["accepted", "arrived_pickup", "picked_up", "completed"]
        [fact] = engine.facts(EventTypes.DELIVERY_COMPLETED)
        assert fact["request_id"] == request_id
        assert fact["driver_id"] == "d1"


class TestMultiStop:
    """Многоточечная доставка."""

    @pytest.mark.asyncio
    async def test_stops_completed_in_rank_order(self, engine: Engine) -> None:
        # Arrange
        request_id = await _claimed(engine, stops=3)
        await _advance(engine, request_id, ARRIVED, PICKED_UP)

        # Act
        first = await _advance(engine, request_id, DELIVERED)
        second = await _advance(engine, request_id, DELIVERED)
        third = await _advance(engine, request_id, DELIVERED)

        # Assert
        assert (first.completed_stop.rank, first.remaining_stops, first.next_stop.rank) == (1, 2, 2)
        assert (second.completed_stop.rank, second.remaining_stops, second.next_stop.rank) == (2, 1, 3)
        assert third.completed_stop.rank == 3
        assert third.next_stop is None
        assert first.state == second.state == RequestState.PICKED_UP
        assert third.state == RequestState.COMPLETED

        stored = await engine.requests.get_by_id(request_id)
        completed_at = [stop.completed_at for stop in sorted(stored.stops, key=lambda s: s.rank)]
        assert completed_at == sorted(completed_at)

    @pytest.mark.asyncio
    async def test_stop_completed_notifications(self, engine: Engine) -> None:
        request_id = await _claimed(engine, stops=2)
        await _advance(engine, request_id, ARRIVED, PICKED_UP, DELIVERED)

        [push] = engine.pushes("delivery.stop_completed")
        assert push["driver_id"] == "d1"
        assert push["data"]["rank"] == 1
        assert push["data"]["remaining_stops"] == 1
        assert push["data"]["next_stop_address"] == "Точка 2"

        [(topic, event)] = engine.broadcaster.of_type("stop-completed")
        assert topic == "company:company-1"
        assert event.rank == 1

    @pytest.mark.asyncio
    async def test_concurrent_deliveries_never_skip_a_stop(self, engine: Engine) -> None:
        """Два одновременных подтверждения завершают одну точку, а не две."""
        request_id = await _claimed(engine, stops=2)
        await _advance(engine, request_id, ARRIVED, PICKED_UP)

        await asyncio.gather(
            engine.lifecycle.advance(request_id, "d1", DELIVERED),
            engine.lifecycle.advance(request_id, "d1", DELIVERED),
        )

        stored = await engine.requests.get_by_id(request_id)
        statuses = {stop.rank: stop.status for stop in stored.stops}
        assert statuses == {1: StopStatus.COMPLETED, 2: StopStatus.PENDING}
        assert stored.state == RequestState.PICKED_UP


class TestReturnLeg:
    """Доставка с обратным рейсом."""

    @pytest.mark.asyncio
    async def test_full_return_lifecycle(self, engine: Engine) -> None:
        # Arrange
        request_id = await _claimed(engine, needs_return=True)

        # Act
        delivered = await _advance(engine, request_id, ARRIVED, PICKED_UP, DELIVERED)
        started = await _advance(engine, request_id, START_RETURN)
        completed = await _advance(engine, request_id, COMPLETE_RETURN)

        # Assert
        assert delivered.state == RequestState.DELIVERED_AWAITING_RETURN
        assert started.state == RequestState.RETURN_STARTED
        assert completed.state == RequestState.COMPLETED
        assert engine.store.drivers["d1"].completed_deliveries == 1
        assert engine.store.drivers["d1"].on_delivery is False

    @pytest.mark.asyncio
    async def test_driver_stays_busy_until_return(self, engine: Engine) -> None:
        request_id = await _claimed(engine, needs_return=True)

        await _advance(engine, request_id, ARRIVED, PICKED_UP, DELIVERED)

        assert engine.store.drivers["d1"].on_delivery is True
        assert engine.facts(EventTypes.DELIVERY_COMPLETED) == []

    @pytest.mark.asyncio
    async def test_complete_return_before_start(self, engine: Engine) -> None:
        request_id = await _claimed(engine, needs_return=True)
        await _advance(engine, request_id, ARRIVED, PICKED_UP, DELIVERED)

        with pytest.raises(InvalidTransition):
            await _advance(engine, request_id, COMPLETE_RETURN)

    @pytest.mark.asyncio
    async def test_start_return_without_return_leg(self, engine: Engine) -> None:
        request_id = await _claimed(engine)
        await _advance(engine, request_id, ARRIVED, PICKED_UP)

        with pytest.raises(InvalidTransition):
            await _advance(engine, request_id, START_RETURN)

    @pytest.mark.asyncio
    async def test_start_return_before_delivery(self, engine: Engine) -> None:
        request_id = await _claimed(engine, needs_return=True)
        await _advance(engine, request_id, ARRIVED, PICKED_UP)

        with pytest.raises(InvalidTransition):
            await _advance(engine, request_id, START_RETURN)


class TestPreconditions:
    """Недопустимые переходы."""

    @pytest.mark.asyncio
    async def test_pickup_requires_arrival(self, engine: Engine) -> None:
        request_id = await _claimed(engine)

        with pytest.raises(InvalidTransition):
            await _advance(engine, request_id, PICKED_UP)

    @pytest.mark.asyncio
    async def test_delivery_requires_pickup(self, engine: Engine) -> None:
        request_id = await _claimed(engine)
        await _advance(engine, request_id, ARRIVED)

        with pytest.raises(InvalidTransition):
            await _advance(engine, request_id, DELIVERED)

    @pytest.mark.asyncio
    async def test_other_driver(self, engine: Engine) -> None:
        request_id = await _claimed(engine)
        engine.store.add_driver("d2")

        with pytest.raises(NotAssignedDriver):
            await engine.lifecycle.advance(request_id, "d2", ARRIVED)

    @pytest.mark.asyncio
    async def test_unclaimed_request(self, engine: Engine) -> None:
        engine.store.add_driver("d1")
        outcome = await engine.dispatch.create_and_dispatch(make_create_dto())

        with pytest.raises(InvalidTransition) as exc_info:
            await engine.lifecycle.advance(outcome.request.id, "d1", ARRIVED)

        assert not isinstance(exc_info.value, NotAssignedDriver)

    @pytest.mark.asyncio
    async def test_unknown_request(self, engine: Engine) -> None:
        with pytest.raises(RequestNotFound):
            await engine.lifecycle.advance("missing", "d1", ARRIVED)

    @pytest.mark.asyncio
    async def test_transition_after_cancel(self, engine: Engine) -> None:
        request_id = await _claimed(engine)
        await engine.lifecycle.cancel(request_id, CancelActor.COMPANY, "customer changed mind")

        with pytest.raises(AlreadyTerminal):
            await _advance(engine, request_id, ARRIVED)

    @pytest.mark.asyncio
    async def test_transition_after_completion(self, engine: Engine) -> None:
        request_id = await _claimed(engine)
        await _advance(engine, request_id, ARRIVED, PICKED_UP, DELIVERED)

        with pytest.raises(AlreadyTerminal):
            await _advance(engine, request_id, ARRIVED)


class TestIdempotency:
    """Повтор применённого перехода возвращает текущее состояние без побочных эффектов."""

    @pytest.mark.asyncio
    async def test_repeated_arrival(self, engine: Engine) -> None:
        # Arrange
        request_id = await _claimed(engine)
        await _advance(engine, request_id, ARRIVED)
        arrived_at = (await engine.requests.get_by_id(request_id)).arrived_at
        events_before = len(engine.broadcaster.events)

        # Act
        again = await _advance(engine, request_id, ARRIVED)

        # Assert
        assert again.state == RequestState.ARRIVED_PICKUP
        assert (await engine.requests.get_by_id(request_id)).arrived_at == arrived_at
        assert len(engine.broadcaster.events) == events_before

    @pytest.mark.asyncio
    async def test_arrival_after_pickup_is_noop(self, engine: Engine) -> None:
        request_id = await _claimed(engine)
        await _advance(engine, request_id, ARRIVED, PICKED_UP)

        result = await _advance(engine, request_id, ARRIVED)

        assert result.state == RequestState.PICKED_UP

    @pytest.mark.asyncio
    async def test_repeated_delivery_after_completion(self, engine: Engine) -> None:
        request_id = await _claimed(engine)
        await _advance(engine, request_id, ARRIVED, PICKED_UP, DELIVERED)

        again = await _advance(engine, request_id, DELIVERED)

        assert again.state == RequestState.COMPLETED
        assert engine.store.drivers["d1"].completed_deliveries == 1
        assert len(engine.facts(EventTypes.DELIVERY_COMPLETED)) == 1

    @pytest.mark.asyncio
    async def test_repeated_complete_return(self, engine: Engine) -> None:
        request_id = await _claimed(engine, needs_return=True)
        await _advance(engine, request_id, ARRIVED, PICKED_UP, DELIVERED, START_RETURN, COMPLETE_RETURN)

        again = await _advance(engine, request_id, COMPLETE_RETURN)

        assert again.state == RequestState.COMPLETED
        assert engine.store.drivers["d1"].completed_deliveries == 1

    @pytest.mark.asyncio
    async def test_concurrent_arrivals(self, engine: Engine) -> None:
        request_id = await _claimed(engine)

        results = await asyncio.gather(
            engine.lifecycle.advance(request_id, "d1", ARRIVED),
            engine.lifecycle.advance(request_id, "d1", ARRIVED),
        )

        assert [r.state for r in results] == [RequestState.ARRIVED_PICKUP] * 2
        arrivals = [
            event for _, event in engine.broadcaster.of_type("request-status-changed")
            if event.state == "arrived_pickup"
        ]
        assert len(arrivals) == 1
