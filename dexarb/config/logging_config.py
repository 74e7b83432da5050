"""
Logging configuration for the application
Structured JSON logging with rotation
"""
import logging
import sys
from pathlib import Path
from logging.handlers import RotatingFileHandler, TimedRotatingFileHandler
import json
from datetime import datetime, timezone
from typing import Any, Dict

from dexarb.config.settings import Settings


# Extra fields copied into JSON records when present
EXTRA_FIELDS = (
    "request_id",
    "opportunity_id",
    "dex",
    "pair",
    "method",
    "path",
    "status_code",
    "duration_ms",
    "tx_hash",
    "context"
)


class JSONFormatter(logging.Formatter):
    """Custom JSON formatter for structured logging"""

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            'timestamp': datetime.now(timezone.utc).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
            'module': record.module,
            'function': record.funcName,
            'line': record.lineno
        }

        # Add exception info if present
        if record.exc_info:
            log_data['exception'] = self.formatException(record.exc_info)

        for field in EXTRA_FIELDS:
            if hasattr(record, field):
                log_data[field] = getattr(record, field)

        return json.dumps(log_data, default=str)


def setup_logging(settings: Settings) -> None:
    """Setup application logging"""

    log_dir = Path(settings.LOG_DIR)
    log_dir.mkdir(parents=True, exist_ok=True)

    # Root logger
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO))

    # Remove existing handlers
    root_logger.handlers.clear()

    # Console handler
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(logging.DEBUG if settings.DEBUG else logging.INFO)

    if settings.LOG_FORMAT == "json":
        console_handler.setFormatter(JSONFormatter())
    else:
        console_handler.setFormatter(logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        ))

    root_logger.addHandler(console_handler)

    # File handler - rotating by size
    file_handler = RotatingFileHandler(
        log_dir / "app.log",
        maxBytes=10_485_760,  # 10MB
        backupCount=5
    )
    file_handler.setLevel(logging.INFO)
    file_handler.setFormatter(JSONFormatter())
    root_logger.addHandler(file_handler)

    # Error file handler - daily rotation
    error_handler = TimedRotatingFileHandler(
        log_dir / "error.log",
        when="midnight",
        interval=1,
        backupCount=30
    )
    error_handler.setLevel(logging.ERROR)
    error_handler.setFormatter(JSONFormatter())
    root_logger.addHandler(error_handler)

    # Set specific loggers
    logging.getLogger("uvicorn").setLevel(logging.WARNING)
    logging.getLogger("web3").setLevel(logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("asyncio").setLevel(logging.WARNING)

    logging.info("Logging configuration completed")


def log_opportunity(logger: logging.Logger, opportunity) -> None:
    """Log opportunity detection"""
    logger.info(
        f"Opportunity detected: buy on {opportunity.buy_dex}, sell on {opportunity.sell_dex} "
        f"({opportunity.diff_percentage:.2f}%)",
        extra={
            "opportunity_id": opportunity.id,
            "pair": opportunity.pair_key,
            "context": {
                "token_in": opportunity.token_in,
                "token_out": opportunity.token_out,
                "estimated_profit": str(opportunity.estimated_profit)
            }
        }
    )


def log_execution(logger: logging.Logger, result) -> None:
    """Log execution result"""
    if result.success:
        logger.info(
            "Arbitrage executed successfully",
            extra={
                "opportunity_id": result.opportunity.id,
                "tx_hash": result.transaction_hash,
                "context": {"profit": str(result.profit), "gas_used": result.gas_used}
            }
        )
    else:
        logger.error(
            f"Arbitrage execution failed: {result.error}",
            extra={
                "opportunity_id": result.opportunity.id,
                "tx_hash": result.transaction_hash,
                "context": result.opportunity.model_dump(mode="json")
            }
        )
