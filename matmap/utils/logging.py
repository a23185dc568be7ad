# matmap/utils/logging.py
import logging
import json
from pathlib import Path
from datetime import datetime
from typing import Optional, Dict, Any
import sys
from .errors import MatMapError

SIMPLE_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


class StructuredFormatter(logging.Formatter):
    """JSON formatter for structured logging"""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.fromtimestamp(record.created).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "function": record.funcName,
            "line": record.lineno,
        }

        if record.exc_info:
            exc_type, exc_value, _ = record.exc_info
            log_data["exception"] = {
                "type": exc_type.__name__ if exc_type else None,
                "message": str(exc_value) if exc_value else None,
            }
            if isinstance(exc_value, MatMapError):
                log_data["exception"]["details"] = exc_value.details
                if exc_value.context:
                    log_data["exception"]["context"] = {
                        k: str(v) for k, v in exc_value.context.items()
                    }

        if hasattr(record, "extra_data"):
            log_data["extra"] = record.extra_data

        return json.dumps(log_data, default=str)


class PipelineLogger:
    """Logger that times named mapping stages"""

    def __init__(self, name: str):
        self.logger = logging.getLogger(name)
        self.stage: Optional[str] = None
        self.start_time: Optional[datetime] = None
        self.durations: Dict[str, float] = {}

    def start_stage(self, stage: str) -> None:
        """Start timing a stage

        Args:
            stage: Stage name
        """
        if self.stage:
            self.end_stage()
        self.stage = stage
        self.start_time = datetime.now()
        self.logger.info(f"Starting stage: {stage}")

    def end_stage(self, extra_data: Optional[Dict[str, Any]] = None) -> float:
        """Finish the running stage and log its duration

        Args:
            extra_data: Optional additional data to attach to the record

        Returns:
            Stage duration in seconds (0.0 if no stage was running)
        """
        duration = 0.0
        if self.stage and self.start_time:
            duration = (datetime.now() - self.start_time).total_seconds()
            self.durations[self.stage] = duration
            log_data = {"stage": self.stage, "duration_seconds": duration}
            if extra_data:
                log_data.update(extra_data)

            self.logger.info(
                f"Completed stage: {self.stage} in {duration:.2f}s",
                extra={"extra_data": log_data},
            )

        self.stage = None
        self.start_time = None
        return duration


def setup_logging(
    output_dir: Optional[Path] = None,
    level: int = logging.INFO,
    enable_console: bool = True,
    log_format: str = "structured",
) -> None:
    """Configure root logging with console and optional file handlers

    Args:
        output_dir: Directory for mapping.log and errors.log; no files if None
        level: Logging level
        enable_console: Whether to log to stdout
        log_format: "structured" (JSON files) or "simple"
    """
    root = logging.getLogger()
    root.setLevel(level)

    for handler in root.handlers[:]:
        root.removeHandler(handler)

    console_formatter = logging.Formatter(SIMPLE_FORMAT)
    if log_format == "structured":
        file_formatter: logging.Formatter = StructuredFormatter()
    else:
        file_formatter = console_formatter

    if output_dir is not None:
        output_dir = Path(output_dir)
        output_dir.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(output_dir / "mapping.log")
        file_handler.setFormatter(file_formatter)
        root.addHandler(file_handler)

        error_handler = logging.FileHandler(output_dir / "errors.log")
        error_handler.setFormatter(file_formatter)
        error_handler.setLevel(logging.ERROR)
        root.addHandler(error_handler)

    if enable_console:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setFormatter(console_formatter)
        console_handler.setLevel(level)
        root.addHandler(console_handler)


def log_error(logger: logging.Logger, error: Exception, stage: str) -> None:
    """Log an error with the stage it occurred in

    Args:
        logger: Logger instance
        error: Exception to log
        stage: Pipeline stage where the error occurred
    """
    if isinstance(error, MatMapError):
        logger.error(
            f"Error in {stage}: {error.message}",
            extra={"extra_data": {"stage": stage, "error_details": error.details}},
        )
    else:
        logger.error(
            f"Unexpected error in {stage}: {str(error)}",
            exc_info=True,
            extra={"extra_data": {"stage": stage}},
        )
