"""Unit tests for the response envelope helpers."""

import pytest

from src.api.envelope import enveloped
from src.api.middleware.error_handler import ConflictError, InfrastructureError
from src.schemas.common import ApiResponse


async def returning(value):
    return value


async def raising(error: Exception):
    raise error


class TestApiResponse:
    def test_ok(self) -> None:
        response = ApiResponse.ok({"id": 1}, "Created")

        assert response.success is True
        assert response.message == "Created"
        assert response.data == {"id": 1}

    def test_fail_carries_optional_data(self) -> None:
        assert ApiResponse.fail("Nope").model_dump() == {"success": False, "message": "Nope", "data": None}
        assert ApiResponse.fail("Nope", {"is_valid": False}).data == {"is_valid": False}


class TestEnveloped:
    @pytest.mark.asyncio
    async def test_success(self) -> None:
        response = await enveloped(returning(42), "Done")

        assert response.success is True
        assert response.message == "Done"
        assert response.data == 42

    @pytest.mark.asyncio
    async def test_business_failure_becomes_fail_envelope(self) -> None:
        response = await enveloped(raising(ConflictError("User limit exceeded")))

        assert response.success is False
        assert response.message == "User limit exceeded"
        assert response.data is None

    @pytest.mark.asyncio
    async def test_infrastructure_failure_is_enveloped_too(self) -> None:
        response = await enveloped(raising(InfrastructureError("The operation could not be completed")))

        assert response.success is False
        assert response.message == "The operation could not be completed"

    @pytest.mark.asyncio
    async def test_other_exceptions_propagate(self) -> None:
        with pytest.raises(RuntimeError):
            await enveloped(raising(RuntimeError("boom")))
