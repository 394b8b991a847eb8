"""Tests for ServiceResult and ServiceError."""

import json

import pydantic
import pytest

from pimsctl.services.result import ServiceError, ServiceResult


class TestServiceResult:
    def test_success_defaults(self) -> None:
        result = ServiceResult(ok=True, op="status", data={"logged_in": False})
        assert result.warnings == []
        assert result.error is None
        assert result.meta is None

    def test_error_construction(self) -> None:
        error = ServiceError(code="INVALID_CREDENTIALS", message="Invalid email or password")
        result = ServiceResult(ok=False, op="login", error=error)
        assert result.error is not None
        assert result.error.code == "INVALID_CREDENTIALS"
        assert result.error.detail == {}

    def test_json_round_trip(self) -> None:
        result = ServiceResult(
            ok=True,
            op="observe",
            data={"domain": "example.com", "rule_ids": [3060]},
            warnings=["note"],
        )
        parsed = json.loads(result.model_dump_json())
        assert parsed["data"]["rule_ids"] == [3060]
        assert ServiceResult.model_validate(parsed) == result

    def test_frozen(self) -> None:
        result = ServiceResult(ok=True, op="status")
        with pytest.raises(pydantic.ValidationError):
            result.ok = False  # type: ignore[misc]
