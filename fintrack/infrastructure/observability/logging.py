"""Structured JSON logging for pipeline observability"""

import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict
from pythonjsonlogger import jsonlogger
from fintrack.config import settings


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """Custom JSON formatter with timestamp and service metadata"""

    def add_fields(self, log_record: Dict[str, Any], record: logging.LogRecord, message_dict: Dict[str, Any]) -> None:
        super().add_fields(log_record, record, message_dict)
        log_record["timestamp"] = datetime.now(timezone.utc).isoformat()
        log_record["level"] = record.levelname
        log_record["service"] = settings.service_name


def setup_logging(level: str = "INFO") -> None:
    """Configure structured JSON logging"""
    logger = logging.getLogger()
    logger.setLevel(level)

    # Remove existing handlers
    logger.handlers.clear()

    # JSON handler for stdout
    handler = logging.StreamHandler(sys.stdout)
    formatter = CustomJsonFormatter(
        "%(timestamp)s %(level)s %(name)s %(message)s"
    )
    handler.setFormatter(formatter)
    logger.addHandler(handler)


def log_ingestion_run(
    run_id: str,
    user_id: str,
    received: int,
    created: int,
    duplicates: int,
    skipped_non_financial: int,
    enriched: int,
    enrichment_unavailable: int,
    duration_ms: float,
    error: str = None,
) -> None:
    """Log one structured summary per ingestion run"""
    logging.info(
        "Ingestion completed" if error is None else "Ingestion failed",
        extra={
            "run_id": run_id,
            "user_id": user_id,
            "step": "ingestion_complete",
            "outcome": "failed" if error else "ok",
            "received": received,
            "created": created,
            "duplicates": duplicates,
            "skipped_non_financial": skipped_non_financial,
            "enriched": enriched,
            "enrichment_unavailable": enrichment_unavailable,
            "duration_ms": duration_ms,
            "error": error,
        },
    )


def log_reclassification(run_id: str, user_id: str, examined: int, updated: int, duration_ms: float) -> None:
    """Log structured reclassification outcome"""
    logging.info(
        "Reclassification completed",
        extra={
            "run_id": run_id,
            "user_id": user_id,
            "step": "reclassification_complete",
            "examined": examined,
            "updated": updated,
            "duration_ms": duration_ms,
        },
    )
