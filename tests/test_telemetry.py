import pytest
from pydantic import ValidationError

from duckchat.telemetry import TelemetryHeaders, current_telemetry


def test_current_telemetry_reflects_settings(cfg):
    rotated = cfg.model_copy(
        update={"fe_signals": "sig", "fe_version": "serp_x", "vqd_hash_1": "hash"}
    )

    telemetry = current_telemetry(rotated)

    assert telemetry.as_headers() == {
        "x-fe-signals": "sig",
        "x-fe-version": "serp_x",
        "x-vqd-hash-1": "hash",
    }


def test_empty_hash_header_is_omitted():
    headers = TelemetryHeaders(fe_signals="sig", fe_version="v").as_headers()
    assert "x-vqd-hash-1" not in headers


def test_telemetry_is_immutable():
    telemetry = TelemetryHeaders(fe_signals="sig", fe_version="v")
    with pytest.raises(ValidationError):
        telemetry.fe_version = "other"
