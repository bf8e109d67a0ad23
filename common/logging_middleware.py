"""Audit log of booking traffic, one file per service."""
from __future__ import annotations

import logging
from pathlib import Path
from time import perf_counter
from typing import Optional

from fastapi import FastAPI, HTTPException, Request

from .auth import decode_token
from .config import get_settings

MUTATING_METHODS = {"POST", "PATCH", "DELETE"}


def _audit_logger(service_name: str) -> logging.Logger:
    logger = logging.getLogger(f"audit.{service_name}")
    if logger.handlers:
        return logger

    log_dir = Path(get_settings().log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(log_dir / f"{service_name}.log")
    handler.setFormatter(
        logging.Formatter("%(asctime)s | %(levelname)s | %(message)s", datefmt="%Y-%m-%d %H:%M:%S")
    )
    logger.addHandler(handler)
    logger.setLevel(logging.INFO)
    return logger


def acting_user(request: Request) -> str:
    """Username carried by the bearer token, ``anonymous`` without a valid one."""
    scheme, _, token = request.headers.get("Authorization", "").partition(" ")
    if scheme.lower() != "bearer" or not token:
        return "anonymous"
    try:
        return decode_token(token).get("sub") or "anonymous"
    except HTTPException:
        return "invalid-token"


def add_audit_middleware(app: FastAPI, service_name: str) -> None:
    """Log every request with its user and room; failed mutations go out at WARNING."""
    logger = _audit_logger(service_name)

    @app.middleware("http")
    async def audit_logger(request: Request, call_next):  # type: ignore[override]
        started = perf_counter()
        response = await call_next(request)
        elapsed_ms = (perf_counter() - started) * 1000

        room_id: Optional[str] = request.path_params.get("room_id")
        failed_mutation = request.method in MUTATING_METHODS and response.status_code >= 400
        logger.log(
            logging.WARNING if failed_mutation else logging.INFO,
            "%s %s | status=%s | user=%s | room=%s | client=%s | %.2fms",
            request.method,
            request.url.path,
            response.status_code,
            acting_user(request),
            room_id or "-",
            request.client.host if request.client else "unknown",
            elapsed_ms,
        )
        return response
