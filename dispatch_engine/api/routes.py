# dispatch_engine/api/routes.py
"""
HTTP маршруты движка.
Ошибки движка (DispatchError) превращаются в ответы обработчиком в app.py.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, status

from dispatch_engine.api.dependencies import (
    get_dispatch_service,
    get_presence_service,
    get_settings_provider,
)
from dispatch_engine.api.schemas import (
    AvailabilityRequest,
    CancelRequest,
    LifecycleRequest,
    PresenceRequest,
    RespondRequest,
)
from dispatch_engine.core.dispatch.models import DispatchOutcome
from dispatch_engine.core.dispatch.service import DispatchService
from dispatch_engine.core.drivers.models import Driver
from dispatch_engine.core.drivers.service import DriverPresenceService
from dispatch_engine.core.offers.models import PendingOffer
from dispatch_engine.core.requests.models import (
    DeliveryRequest,
    DeliveryRequestCreateDTO,
    LifecycleResult,
)
from dispatch_engine.core.settings.models import DispatchSettings, DispatchSettingsUpdateDTO
from dispatch_engine.core.settings.service import DispatchSettingsProvider

requests_router = APIRouter(prefix="/requests", tags=["Requests"])
drivers_router = APIRouter(prefix="/drivers", tags=["Drivers"])
settings_router = APIRouter(prefix="/settings", tags=["Settings"])


# =============================================================================
# ЗАЯВКИ
# =============================================================================

@requests_router.post("", response_model=DispatchOutcome, status_code=status.HTTP_201_CREATED)
async def create_request(
    body: DeliveryRequestCreateDTO,
    service: DispatchService = Depends(get_dispatch_service),
):
    return await service.create_and_dispatch(body)


@requests_router.post("/{request_id}/dispatch", response_model=DispatchOutcome)
async def dispatch_request(
    request_id: str,
    service: DispatchService = Depends(get_dispatch_service),
):
    return await service.dispatch(request_id)


@requests_router.get("/{request_id}", response_model=DeliveryRequest)
async def get_request(
    request_id: str,
    service: DispatchService = Depends(get_dispatch_service),
):
    return await service.get_request(request_id)


@requests_router.post("/{request_id}/offers/{driver_id}/respond", response_model=DeliveryRequest)
async def respond_to_offer(
    request_id: str,
    driver_id: str,
    body: RespondRequest,
    service: DispatchService = Depends(get_dispatch_service),
):
    return await service.respond(request_id, driver_id, body.action)


@requests_router.post("/{request_id}/lifecycle", response_model=LifecycleResult)
async def advance_lifecycle(
    request_id: str,
    body: LifecycleRequest,
    service: DispatchService = Depends(get_dispatch_service),
):
    return await service.advance(request_id, body.driver_id, body.transition)


@requests_router.post("/{request_id}/cancel", response_model=DeliveryRequest)
async def cancel_request(
    request_id: str,
    body: CancelRequest,
    service: DispatchService = Depends(get_dispatch_service),
):
    return await service.cancel(request_id, body.actor, body.reason)


# =============================================================================
# ВОДИТЕЛИ
# =============================================================================

@drivers_router.get("/{driver_id}/offers", response_model=list[PendingOffer])
async def list_pending_offers(
    driver_id: str,
    service: DispatchService = Depends(get_dispatch_service),
):
    return await service.list_pending_offers(driver_id)


@drivers_router.get("/{driver_id}/active-request", response_model=Optional[DeliveryRequest])
async def get_active_request(
    driver_id: str,
    service: DispatchService = Depends(get_dispatch_service),
):
    return await service.get_active_request(driver_id)


@drivers_router.post("/{driver_id}/presence", response_model=Driver)
async def record_presence(
    driver_id: str,
    body: PresenceRequest,
    service: DriverPresenceService = Depends(get_presence_service),
):
    return await service.record_presence(driver_id, body.latitude, body.longitude)


@drivers_router.post("/{driver_id}/availability", response_model=Driver)
async def set_availability(
    driver_id: str,
    body: AvailabilityRequest,
    service: DriverPresenceService = Depends(get_presence_service),
):
    return await service.set_availability(driver_id, body.available)


# =============================================================================
# НАСТРОЙКИ
# =============================================================================

@settings_router.get("", response_model=DispatchSettings)
async def get_dispatch_settings(
    provider: DispatchSettingsProvider = Depends(get_settings_provider),
):
    return await provider.get()


@settings_router.patch("", response_model=DispatchSettings)
async def update_dispatch_settings(
    body: DispatchSettingsUpdateDTO,
    provider: DispatchSettingsProvider = Depends(get_settings_provider),
):
    return await provider.update(body)
