# tests/common/test_errors.py
"""
Тесты для иерархии ошибок движка.
"""

from __future__ import annotations

import pytest

from dispatch_engine.common.errors import (
    AlreadyClaimed,
    AlreadyResponded,
    AlreadyTerminal,
    DispatchError,
    DriverBusy,
    DriverNotFound,
    InvalidTransition,
    NoDriversAvailable,
    NotAssignedDriver,
    NotFound,
    OfferExpired,
    OfferNotFound,
    RequestNotFound,
)


class TestDispatchError:
    """Тесты для базовой ошибки."""

    def test_default_message(self) -> None:
        error = AlreadyClaimed()

        assert error.message == "offer taken by another driver"
        assert str(error) == "offer taken by another driver"

    def test_custom_message(self) -> None:
        error = AlreadyTerminal("cannot cancel — already completed")

        assert error.message == "cannot cancel — already completed"

    def test_to_dict_includes_context(self) -> None:
        """Контекст ошибки попадает в тело ответа."""
        error = NoDriversAvailable(request_id="req-1")

        assert error.to_dict() == {
            "code": "no_drivers_available",
            "detail": "no driver available",
            "request_id": "req-1",
        }

    def test_to_dict_without_context(self) -> None:
        assert OfferExpired().to_dict() == {"code": "offer_expired", "detail": "offer expired"}


class TestHierarchy:
    """Тесты для иерархии и HTTP-кодов."""

    @pytest.mark.parametrize(
        "error_cls",
        [RequestNotFound, DriverNotFound, OfferNotFound],
    )
    def test_not_found_family(self, error_cls: type[DispatchError]) -> None:
        assert issubclass(error_cls, NotFound)
        assert error_cls.status_code == 404

    @pytest.mark.parametrize(
        ("error_cls", "status_code"),
        [
            (AlreadyClaimed, 409),
            (AlreadyResponded, 409),
            (DriverBusy, 409),
            (AlreadyTerminal, 409),
            (NoDriversAvailable, 409),
            (OfferExpired, 410),
            (InvalidTransition, 422),
            (NotAssignedDriver, 403),
        ],
    )
    def test_status_codes(self, error_cls: type[DispatchError], status_code: int) -> None:
        assert error_cls.status_code == status_code

    def test_not_assigned_is_invalid_transition(self) -> None:
        """Чужой водитель — частный случай недопустимого перехода."""
        with pytest.raises(InvalidTransition):
            raise NotAssignedDriver()

    def test_codes_are_unique(self) -> None:
        classes = [
            RequestNotFound, DriverNotFound, OfferNotFound, AlreadyClaimed, AlreadyResponded,
            OfferExpired, DriverBusy, InvalidTransition, NotAssignedDriver, AlreadyTerminal,
            NoDriversAvailable,
        ]
        codes = [cls.code for cls in classes]
        assert len(codes) == len(set(codes))
