"""Structured JSON logging for production observability"""

import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict, List
from pythonjsonlogger import jsonlogger
from collections_desk.config import settings


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


def log_assignment(
    case_id: int,
    version: int,
    changed: bool,
    matched_rules: List[str],
    duration_ms: float,
) -> None:
    """Log structured assignment outcome for analysis"""
    logging.info(
        "Assignment completed",
        extra={
            "case_id": case_id,
            "step": "assignment_complete",
            "assignment_outcome": "updated" if changed else "unchanged",
            "version": version,
            "matched_rules": matched_rules,
            "duration_ms": duration_ms,
        },
    )


def log_reconciliation(examined: int, updated: int, skipped: int, failed: int, duration_ms: float) -> None:
    """Log the counts of one reconciliation pass"""
    logging.info(
        f"Reconciliation completed. Examined: {examined}, Updated: {updated}",
        extra={
            "step": "reconciliation_complete",
            "examined": examined,
            "updated": updated,
            "skipped": skipped,
            "failed": failed,
            "duration_ms": duration_ms,
        },
    )
