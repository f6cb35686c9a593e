"""Structured JSON logging for production observability"""

import logging
import sys
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict
from pythonjsonlogger import jsonlogger

from household_ledger.config import settings


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


def log_posting(
    step: str,
    household_id: str,
    account_id: Any,
    transaction_id: Any,
    kind: str,
    amount: Decimal,
) -> None:
    """Log one balance-affecting ledger write"""
    logging.info(
        "Ledger write",
        extra={
            "step": step,
            "household_id": household_id,
            "account_id": str(account_id),
            "transaction_id": str(transaction_id),
            "kind": kind,
            "amount": str(amount),
        },
    )


def log_loan_event(step: str, loan_id: Any, **fields: Any) -> None:
    """Log a loan lifecycle event (origination, EMI payment, prepayment, closure)"""
    logging.info(
        "Loan event",
        extra={"step": step, "loan_id": str(loan_id), **{k: str(v) for k, v in fields.items()}},
    )


def log_card_event(step: str, card_id: Any, **fields: Any) -> None:
    """Log a credit card lifecycle event (charge, payment, statement)"""
    logging.info(
        "Card event",
        extra={"step": step, "card_id": str(card_id), **{k: str(v) for k, v in fields.items()}},
    )
