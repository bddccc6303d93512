"""Centralized logging service using loguru."""

import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from loguru import logger

from opera.config import settings

# Remove default handler
logger.remove()

# Add console handler with color
logger.add(
    sys.stderr,
    format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>",
    level=settings.app_log_level.upper(),
    colorize=True,
)

if settings.log_to_file:
    LOG_DIR = Path(settings.log_dir)
    LOG_DIR.mkdir(exist_ok=True)

    logger.add(
        LOG_DIR / "opera_{time:YYYY-MM-DD}.log",
        format="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} - {message} | {extra}",
        level="DEBUG",
        rotation="00:00",  # New file at midnight
        retention="7 days",
        compression="zip",
    )

# Reduce noise from framework/network libraries
for logger_name in (
    "uvicorn",
    "uvicorn.error",
    "uvicorn.access",
    "fastapi",
    "sse_starlette.sse",
    "httpx",
    "httpcore",
    "hpack",
    "asyncio",
):
    logging.getLogger(logger_name).setLevel(settings.noisy_log_level.upper())


def log_research_step(
    project_id: str,
    step_type: str,
    status: str,
    data: Optional[dict] = None,
) -> None:
    """Log a research cycle step."""
    step_data = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "project_id": project_id,
        "step_type": step_type,
        "status": status,
        "data": data,
    }
    if status == "failed":
        logger.error(f"RESEARCH_STEP_FAILED: {step_data}")
    else:
        logger.info(f"RESEARCH_STEP: {step_data}")


def log_job_event(
    job_id: str,
    job_type: str,
    status: str,
    error: Optional[str] = None,
    **kwargs,
) -> None:
    """Log a background job lifecycle transition."""
    job_data = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "job_id": job_id,
        "job_type": job_type,
        "status": status,
        "error": error,
        **kwargs,
    }
    if error:
        logger.error(f"JOB_FAILED: {job_data}")
    else:
        logger.info(f"JOB: {job_data}")


def log_event(
    event_type: str,
    message: str,
    **kwargs,
) -> None:
    """Log a generic event."""
    event_data = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "event_type": event_type,
        "message": message,
        **kwargs,
    }
    logger.info(f"EVENT: {event_data}")
