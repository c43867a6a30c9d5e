"""
Health and readiness endpoints

Liveness is a constant answer. Readiness checks the order store, the
optional Redis instance, disk, memory and whatever service checks the
caller registers. The engine is supplied by the service so the checks hit
the same database the workflows use.
"""

from fastapi import APIRouter, status
from fastapi.responses import JSONResponse
from sqlalchemy import inspect, text
from sqlalchemy.engine import Engine
from typing import Callable, Dict, Any, Iterable, Optional
import os
import time
import redis
from datetime import datetime, timezone
from enum import Enum
import psutil
from .logging_config import get_logger

logger = get_logger(__name__)

Check = Dict[str, Any]

def _now() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")

class HealthStatus(str, Enum):
    """Health status values following the health-check response draft"""
    PASS = "pass"
    FAIL = "fail"
    WARN = "warn"

def check_result(
    status_val: HealthStatus,
    component: str,
    value: Optional[float] = None,
    unit: Optional[str] = None,
    output: Optional[str] = None,
) -> Check:
    result: Check = {"status": status_val, "componentType": component, "time": _now()}
    if value is not None:
        result["observedValue"] = f"{value:.2f}"
        result["observedUnit"] = unit
    if output:
        result["output"] = output
    return result

def _by_floor(value: float, fail_below: float, warn_below: float) -> HealthStatus:
    if value < fail_below:
        return HealthStatus.FAIL
    if value < warn_below:
        return HealthStatus.WARN
    return HealthStatus.PASS

def overall_status(checks: Dict[str, Check]) -> HealthStatus:
    statuses = {check.get("status", HealthStatus.PASS) for check in checks.values()}
    for candidate in (HealthStatus.FAIL, HealthStatus.WARN):
        if candidate in statuses:
            return candidate
    return HealthStatus.PASS

class ServiceHealth:
    """Builds the health router for one service.

    ``required_tables`` gate the startup endpoint. ``extra_checks`` maps a
    check name to a callable returning a :func:`check_result`; they run on
    every readiness request after the built-in ones.
    """

    def __init__(
        self,
        service_name: str,
        version: str,
        engine_factory: Callable[[], Engine],
        required_tables: Iterable[str] = ("orders",),
        extra_checks: Optional[Dict[str, Callable[[], Check]]] = None,
    ):
        self.service_name = service_name
        self.version = version
        self.engine_factory = engine_factory
        self.required_tables = tuple(required_tables)
        self.extra_checks = dict(extra_checks or {})
        self.started_at = time.time()
        self.readiness_checks_run = 0

    def create_health_router(self) -> APIRouter:
        router = APIRouter(tags=["health"])

        @router.get("/health")
        async def health() -> Dict[str, Any]:
            return {
                "status": HealthStatus.PASS,
                "service": self.service_name,
                "version": self.version,
                "releaseId": os.getenv("RELEASE_ID", "unknown"),
                "timestamp": _now(),
            }

        @router.get("/health/live")
        async def live() -> Dict[str, Any]:
            return {"status": "alive"}

        @router.get("/health/ready")
        def ready() -> JSONResponse:
            """503 when any check fails; warnings still report ready"""
            checks = self.readiness_checks()
            verdict = overall_status(checks)
            return JSONResponse(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE if verdict == HealthStatus.FAIL else status.HTTP_200_OK,
                content={
                    "status": verdict,
                    "serviceId": self.service_name,
                    "version": self.version,
                    "checks": checks,
                    "timestamp": _now(),
                },
            )

        @router.get("/health/startup")
        def startup() -> JSONResponse:
            checks = {"database:schema": self._check_schema()}
            if overall_status(checks) == HealthStatus.FAIL:
                return JSONResponse(
                    status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                    content={"status": "starting", "checks": checks},
                )
            return JSONResponse(content={"status": "started", "checks": checks})

        @router.get("/metrics")
        async def metrics() -> Dict[str, Any]:
            process = psutil.Process()
            memory = process.memory_info()
            return {
                "service": self.service_name,
                "version": self.version,
                "uptime_seconds": time.time() - self.started_at,
                "readiness_checks_run": self.readiness_checks_run,
                "timestamp": _now(),
                "system": {
                    "memory_rss_bytes": memory.rss,
                    "cpu_percent": process.cpu_percent(),
                    "num_threads": process.num_threads(),
                },
            }

        return router

    def readiness_checks(self) -> Dict[str, Check]:
        self.readiness_checks_run += 1
        checks = {"database:connectivity": self._check_database()}
        if os.getenv("REDIS_URL"):
            checks["cache:connectivity"] = self._check_redis(os.getenv("REDIS_URL"))
        checks["storage:disk_space"] = self._check_system(
            lambda: psutil.disk_usage("/").free / (1024 ** 3), "GB", fail_below=1, warn_below=5
        )
        checks["system:memory"] = self._check_system(
            lambda: psutil.virtual_memory().available / (1024 ** 2), "MB", fail_below=100, warn_below=500
        )
        for name, run_check in self.extra_checks.items():
            try:
                checks[name] = run_check()
            except Exception as e:
                logger.error(
                    "Readiness check raised",
                    extra={'extra_fields': {'check': name, 'error': str(e)}}
                )
                checks[name] = check_result(HealthStatus.FAIL, "component", output=str(e))
        return checks

    def _check_database(self) -> Check:
        started = time.perf_counter()
        try:
            with self.engine_factory().connect() as conn:
                conn.execute(text("SELECT 1"))
        except Exception as e:
            logger.error("Database health check failed", extra={'extra_fields': {'error': str(e)}})
            return check_result(HealthStatus.FAIL, "datastore", output=str(e))
        return check_result(HealthStatus.PASS, "datastore", (time.perf_counter() - started) * 1000, "ms")

    def _check_schema(self) -> Check:
        try:
            inspector = inspect(self.engine_factory())
            missing = [name for name in self.required_tables if not inspector.has_table(name)]
        except Exception as e:
            return check_result(HealthStatus.FAIL, "datastore", output=str(e))
        if missing:
            return check_result(HealthStatus.FAIL, "datastore", output=f"missing tables: {', '.join(missing)}")
        return check_result(HealthStatus.PASS, "datastore")

    def _check_redis(self, url: str) -> Check:
        started = time.perf_counter()
        try:
            redis.from_url(url, socket_connect_timeout=1).ping()
        except Exception as e:
            # cache outage degrades, it does not take the service down
            return check_result(HealthStatus.WARN, "cache", output=str(e))
        return check_result(HealthStatus.PASS, "cache", (time.perf_counter() - started) * 1000, "ms")

    def _check_system(self, measure: Callable[[], float], unit: str, fail_below: float, warn_below: float) -> Check:
        try:
            value = measure()
        except Exception as e:
            return check_result(HealthStatus.WARN, "system", output=str(e))
        return check_result(_by_floor(value, fail_below, warn_below), "system", value, unit)
