from __future__ import annotations

from pydantic import BaseModel, ConfigDict

from .settings import Settings, settings


class TelemetryHeaders(BaseModel):
    """
    Anti-automation values the web front-end attaches to every chat turn.

    They are fingerprints of one front-end build: opaque, never computed
    here, and rotated by operators through settings once upstream stops
    accepting them.
    """

    model_config = ConfigDict(frozen=True)

    fe_signals: str
    fe_version: str
    vqd_hash_1: str = ""

    def as_headers(self) -> dict[str, str]:
        headers = {
            "x-fe-signals": self.fe_signals,
            "x-fe-version": self.fe_version,
        }
        if self.vqd_hash_1:
            headers["x-vqd-hash-1"] = self.vqd_hash_1
        return headers


def current_telemetry(cfg: Settings | None = None) -> TelemetryHeaders:
    cfg = cfg or settings
    return TelemetryHeaders(
        fe_signals=cfg.fe_signals,
        fe_version=cfg.fe_version,
        vqd_hash_1=cfg.vqd_hash_1,
    )


__all__ = ["TelemetryHeaders", "current_telemetry"]
