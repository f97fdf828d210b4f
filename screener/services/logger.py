"""Centralized logging service using loguru."""

import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from loguru import logger

from screener.config import settings

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
    LOG_DIR.mkdir(parents=True, exist_ok=True)
    logger.add(
        LOG_DIR / "screener_{time:YYYY-MM-DD}.log",
        format="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} - {message}",
        level="DEBUG",
        rotation="00:00",  # New file at midnight
        retention="7 days",
        compression="zip",
    )

# Reduce noise from network libraries
for logger_name in (
    "httpx",
    "httpcore",
    "openai._base_client",
    "asyncio",
):
    logging.getLogger(logger_name).setLevel(settings.noisy_log_level.upper())


def log_llm_call(
    model: str,
    caller: str,
    input_tokens: int = 0,
    output_tokens: int = 0,
    duration_ms: int = 0,
    status: str = "success",
    error: Optional[str] = None,
) -> None:
    """Log one OpenRouter request; ``caller`` is ``<request kind>[:<category>]``."""
    request_kind, _, category = caller.partition(":")
    call_data = {
        "request": request_kind,
        "category": category or None,
        "model": model,
        "tokens": {"prompt": input_tokens, "completion": output_tokens},
        "duration_ms": duration_ms,
        "status": status,
    }
    if error:
        logger.error(f"OPENROUTER_CALL_FAILED: {call_data} error={error}")
    else:
        logger.info(f"OPENROUTER_CALL: {call_data}")


def log_pipeline_event(
    category: str,
    state: str,
    records: int,
    skipped: int,
    error: Optional[str] = None,
) -> None:
    """Log the final state of one category's screening stream."""
    pipeline_data = {
        "finished_at": datetime.now(timezone.utc).isoformat(),
        "category": category,
        "state": state,
        "records": records,
        "skipped": skipped,
    }
    if error:
        logger.error(f"PIPELINE_{state.upper()}: {pipeline_data} error={error}")
    else:
        logger.info(f"PIPELINE_{state.upper()}: {pipeline_data}")
