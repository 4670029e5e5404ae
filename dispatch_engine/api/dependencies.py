# dispatch_engine/api/dependencies.py
"""
Зависимости FastAPI.
Сервисы собираются один раз при старте приложения и хранятся в app.state.
"""

from __future__ import annotations

from fastapi import Depends, Request

from dispatch_engine.core.dispatch.service import DispatchService
from dispatch_engine.core.drivers.service import DriverPresenceService
from dispatch_engine.core.factory import Services
from dispatch_engine.core.settings.service import DispatchSettingsProvider


def get_services(request: Request) -> Services:
    return request.app.state.services


def get_dispatch_service(services: Services = Depends(get_services)) -> DispatchService:
    return services.dispatch


def get_presence_service(services: Services = Depends(get_services)) -> DriverPresenceService:
    return services.presence


def get_settings_provider(services: Services = Depends(get_services)) -> DispatchSettingsProvider:
    return services.settings_provider
