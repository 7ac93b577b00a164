"""
Request telemetry: one single-line JSON log record per event, optionally
mirrored to the ``telemetry_events`` Supabase table when
``ENABLE_TELEMETRY_DB=1``.
"""
import time
import json
import os
import logging
import inspect
from contextlib import contextmanager
from functools import wraps
from typing import Optional

from satcraft.core.errors import SatcraftError

logger = logging.getLogger("satcraft.telemetry")


def _error_kind(exc: Exception) -> str:
    if isinstance(exc, SatcraftError):
        return exc.kind.value
    return exc.__class__.__name__


def _persist(payload: dict) -> None:
    try:
        from satcraft.core.deps import get_supabase_client
        row = {k: v for k, v in payload.items() if k != "ts"}
        get_supabase_client().table("telemetry_events").insert(row).execute()
    except Exception as e:
        logger.error(f"[telemetry] could not persist {payload.get('event')}: {e}", exc_info=True)


def emit_event(event: str, *, route: str, version: str, user_id: Optional[str] = None,
               section: Optional[str] = None, topic: Optional[str] = None,
               error_kind: Optional[str] = None, latency_ms: Optional[int] = None,
               ok: Optional[bool] = None, **extra):
    payload = {
        "event": event,
        "route": route,
        "version": version,
        "user_id": user_id,
        "section": section,
        "topic": topic,
        "error_kind": error_kind,
        "latency_ms": latency_ms,
        "ok": ok,
        **extra,
        "ts": time.time(),
    }
    logger.info("telemetry=%s", json.dumps(payload, separators=(",", ":"), default=str))
    if os.getenv("ENABLE_TELEMETRY_DB", "0") == "1":
        _persist(payload)


@contextmanager
def _api_call(route: str, version: str):
    started = time.perf_counter()
    outcome = {"ok": True, "error_kind": None}
    try:
        yield
    except Exception as exc:
        outcome = {"ok": False, "error_kind": _error_kind(exc)}
        raise
    finally:
        latency_ms = int((time.perf_counter() - started) * 1000)
        emit_event("api_call", route=route, version=version, latency_ms=latency_ms, **outcome)


def instrument(route: str, version: str):
    """Emit an ``api_call`` event (latency, ok, error kind) around a sync or async handler."""
    def deco(fn):
        if inspect.iscoroutinefunction(fn):
            @wraps(fn)
            async def wrapped_async(*args, **kwargs):
                with _api_call(route, version):
                    return await fn(*args, **kwargs)
            return wrapped_async

        @wraps(fn)
        def wrapped(*args, **kwargs):
            with _api_call(route, version):
                return fn(*args, **kwargs)
        return wrapped
    return deco
