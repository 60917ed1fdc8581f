"""
Health and readiness probes for the record store.

Response bodies follow the IETF draft "Health Check Response Format for
HTTP APIs"; the probe split (live / ready / startup) follows Kubernetes.
"""

from fastapi import APIRouter, status
from fastapi.responses import JSONResponse
from sqlalchemy import inspect, text
from sqlalchemy.engine import Engine
from typing import Any, Callable, Dict, Optional
from datetime import datetime, timezone
from enum import Enum
import os
import time
import psutil
import logging

logger = logging.getLogger(__name__)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class HealthStatus(str, Enum):
    PASS = "pass"
    FAIL = "fail"
    WARN = "warn"


class ServiceHealth:
    """
    Builds the health router for one service.

    ``engine`` is the SQLAlchemy engine the service writes to and ``cache``
    is any object exposing ``ping() -> bool``; a failing cache only degrades
    readiness to ``warn`` because reads fall back to the database.
    """

    def __init__(
        self,
        service_name: str,
        version: str = "1.0.0",
        engine: Optional[Engine] = None,
        cache: Optional[Any] = None,
    ):
        self.service_name = service_name
        self.version = version
        self.engine = engine
        self.cache = cache
        self.start_time = time.time()
        self.checks_performed = 0
        self.last_check_time: Optional[float] = None

    def create_health_router(self) -> APIRouter:
        router = APIRouter(tags=["health"])

        @router.get("/health", status_code=status.HTTP_200_OK)
        async def health_check() -> Dict[str, Any]:
            """Lightweight liveness check used by load balancers."""
            return {
                "status": HealthStatus.PASS,
                "service": self.service_name,
                "version": self.version,
                "releaseId": os.getenv("RELEASE_ID", "unknown"),
                "timestamp": _now(),
            }

        @router.get("/health/live", status_code=status.HTTP_200_OK)
        async def liveness() -> Dict[str, Any]:
            return {"status": "alive"}

        @router.get("/health/ready")
        def readiness() -> JSONResponse:
            checks = self.readiness_checks()
            overall = self.overall_status(checks)
            code = status.HTTP_503_SERVICE_UNAVAILABLE if overall == HealthStatus.FAIL else status.HTTP_200_OK
            return JSONResponse(
                status_code=code,
                content={
                    "status": overall,
                    "version": self.version,
                    "serviceId": self.service_name,
                    "description": f"{self.service_name} service",
                    "checks": checks,
                    "timestamp": _now(),
                },
            )

        @router.get("/health/startup")
        def startup() -> JSONResponse:
            checks = {"database:migrations": self._check_migrations()}
            if self.overall_status(checks) == HealthStatus.FAIL:
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
                "uptime_seconds": time.time() - self.start_time,
                "checks_performed": self.checks_performed,
                "timestamp": _now(),
                "system": {
                    "memory_rss_bytes": memory.rss,
                    "memory_vms_bytes": memory.vms,
                    "cpu_percent": process.cpu_percent(),
                    "num_threads": process.num_threads(),
                },
            }

        return router

    def readiness_checks(self) -> Dict[str, Dict[str, Any]]:
        self.checks_performed += 1
        self.last_check_time = time.time()

        checks = {"database:connectivity": self._check_database()}
        if self.cache is not None:
            checks["cache:connectivity"] = self._check_cache()
        checks["storage:disk_space"] = self._check_disk_space()
        checks["system:memory"] = self._check_memory()
        return checks

    @staticmethod
    def overall_status(checks: Dict[str, Dict[str, Any]]) -> HealthStatus:
        statuses = [check.get("status", HealthStatus.PASS) for check in checks.values()]
        if HealthStatus.FAIL in statuses:
            return HealthStatus.FAIL
        if HealthStatus.WARN in statuses:
            return HealthStatus.WARN
        return HealthStatus.PASS

    def _timed(self, component: str, probe: Callable[[], Any], failure: HealthStatus) -> Dict[str, Any]:
        start_time = time.perf_counter()
        try:
            probe()
        except Exception as e:
            logger.warning(f"{self.service_name} {component} check failed: {e}")
            return {"status": failure, "componentType": component, "output": str(e), "time": _now()}
        return {
            "status": HealthStatus.PASS,
            "componentType": component,
            "observedValue": f"{(time.perf_counter() - start_time) * 1000:.2f}",
            "observedUnit": "ms",
            "time": _now(),
        }

    def _check_database(self) -> Dict[str, Any]:
        def probe():
            if self.engine is None:
                raise RuntimeError("no database engine configured")
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1")).fetchone()

        return self._timed("datastore", probe, HealthStatus.FAIL)

    def _check_cache(self) -> Dict[str, Any]:
        def probe():
            if not self.cache.ping():
                raise RuntimeError("cache did not answer PING")

        return self._timed("cache", probe, HealthStatus.WARN)

    def _check_migrations(self) -> Dict[str, Any]:
        try:
            with self.engine.connect() as conn:
                migrated = inspect(conn).has_table("alembic_version")
        except Exception as e:
            return {"status": HealthStatus.FAIL, "componentType": "datastore", "output": str(e), "time": _now()}
        if not migrated:
            return {
                "status": HealthStatus.WARN,
                "componentType": "datastore",
                "output": "Migrations table not found",
                "time": _now(),
            }
        return {"status": HealthStatus.PASS, "componentType": "datastore", "time": _now()}

    def _check_disk_space(self) -> Dict[str, Any]:
        free_gb = psutil.disk_usage("/").free / (1024 ** 3)
        return {
            "status": _threshold(free_gb, fail_below=1, warn_below=5),
            "componentType": "system",
            "observedValue": f"{free_gb:.2f}",
            "observedUnit": "GB",
            "time": _now(),
        }

    def _check_memory(self) -> Dict[str, Any]:
        available_mb = psutil.virtual_memory().available / (1024 ** 2)
        return {
            "status": _threshold(available_mb, fail_below=100, warn_below=500),
            "componentType": "system",
            "observedValue": f"{available_mb:.2f}",
            "observedUnit": "MB",
            "time": _now(),
        }


def _threshold(value: float, fail_below: float, warn_below: float) -> HealthStatus:
    if value < fail_below:
        return HealthStatus.FAIL
    if value < warn_below:
        return HealthStatus.WARN
    return HealthStatus.PASS
