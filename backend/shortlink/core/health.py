"""Health check helpers and deletion sweep telemetry."""
from __future__ import annotations

import asyncio
import datetime as dt
from dataclasses import dataclass
from typing import Any

from loguru import logger

from shortlink.core.database import check_connection

_PROCESS_STARTED_AT = dt.datetime.now(dt.timezone.utc)
_SWEEP_LOCK = asyncio.Lock()

DELETION_SWEEP = "deletion_sweep"


@dataclass(slots=True)
class _SweepProbe:
    name: str
    last_tick: dt.datetime | None = None
    last_processed: int | None = None

    def snapshot(self) -> dict[str, Any]:
        if self.last_tick is None:
            return {"last_tick": None, "lag_seconds": None, "last_processed": None}
        now = dt.datetime.now(dt.timezone.utc)
        age = max((now - self.last_tick).total_seconds(), 0.0)
        return {
            "last_tick": self.last_tick.isoformat(),
            "lag_seconds": round(age, 2),
            "last_processed": self.last_processed,
        }


_SWEEP_PROBES: dict[str, _SweepProbe] = {DELETION_SWEEP: _SweepProbe(DELETION_SWEEP)}


async def record_sweep_tick(
    name: str = DELETION_SWEEP,
    *,
    processed: int | None = None,
    timestamp: dt.datetime | None = None,
) -> None:
    """Capture the last time an externally triggered sweep completed."""

    async with _SWEEP_LOCK:
        probe = _SWEEP_PROBES.setdefault(name, _SweepProbe(name))
        probe.last_tick = timestamp or dt.datetime.now(dt.timezone.utc)
        probe.last_processed = processed
    logger.bind(event="sweep.tick", job=name, processed=processed).info("sweep_tick_recorded")


def get_uptime_seconds() -> float:
    """Return the service uptime in seconds."""

    now = dt.datetime.now(dt.timezone.utc)
    return round((now - _PROCESS_STARTED_AT).total_seconds(), 2)


async def database_health(timeout_seconds: float = 2.0) -> dict[str, str]:
    """Run a lightweight query to confirm the database is reachable."""

    try:
        await asyncio.wait_for(check_connection(), timeout=timeout_seconds)
    except asyncio.TimeoutError:
        reason = f"Connection test exceeded {timeout_seconds} seconds"
        logger.warning("database_health_timeout", timeout=timeout_seconds)
        return {"state": "degraded", "reason": reason}
    except Exception as exc:
        logger.exception("database_health_failed")
        return {"state": "down", "reason": str(exc)}
    return {"state": "ok"}


async def sweep_snapshot() -> dict[str, dict[str, Any]]:
    async with _SWEEP_LOCK:
        return {name: probe.snapshot() for name, probe in _SWEEP_PROBES.items()}


async def build_health_payload(version: str | None) -> dict[str, Any]:
    """Compose the JSON payload for the /health endpoint."""

    db = await database_health()
    sweeps = await sweep_snapshot()
    return {
        "uptime_seconds": get_uptime_seconds(),
        "db_status": db,
        "sweep_status": sweeps,
        "version": version or "unknown",
    }


__all__ = [
    "DELETION_SWEEP",
    "build_health_payload",
    "database_health",
    "get_uptime_seconds",
    "record_sweep_tick",
    "sweep_snapshot",
]
