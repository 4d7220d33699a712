"""
File Logger Utility

Sends coordinator logs to the console and to a rotating file in the output
directory. Handlers are attached to the service logger and to the package
loggers ("common", "coordinator", "api") so module-level loggers created with
logging.getLogger(__name__) end up in the same places.
"""

import logging
import sys
from pathlib import Path
from datetime import datetime
from logging.handlers import RotatingFileHandler
from typing import Iterable, Optional

PACKAGE_LOGGERS = ("common", "coordinator", "api")


def setup_file_logger(
    service_name: str,
    log_level: str = "INFO",
    output_dir: Optional[str] = "./output",
    console_output: bool = True,
    package_loggers: Iterable[str] = PACKAGE_LOGGERS,
    max_bytes: int = 10 * 1024 * 1024,  # 10 MB
    backup_count: int = 5
) -> logging.Logger:
    """
    Set up logging to write to both console and file.

    Args:
        service_name: Name of the service logger (e.g., "oracle-coordinator")
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        output_dir: Directory for log files, or None to skip file logging
        console_output: Whether to also output to console
        package_loggers: Additional logger names that share the handlers
        max_bytes: Maximum size of each log file before rotation
        backup_count: Number of backup files to keep

    Returns:
        Configured service logger
    """
    level = getattr(logging, log_level.upper(), logging.INFO)

    detailed_formatter = logging.Formatter(
        fmt='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )
    console_formatter = logging.Formatter(
        fmt='[%(name)s] %(levelname)s: %(message)s'
    )

    handlers = []
    log_file = None

    if output_dir:
        output_path = Path(output_dir)
        output_path.mkdir(parents=True, exist_ok=True)

        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        log_file = output_path / f"{service_name}_{timestamp}.log"

        file_handler = RotatingFileHandler(
            log_file,
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding='utf-8'
        )
        file_handler.setLevel(logging.DEBUG)  # Capture all levels in file
        file_handler.setFormatter(detailed_formatter)
        handlers.append(file_handler)

    if console_output:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(level)
        console_handler.setFormatter(console_formatter)
        handlers.append(console_handler)

    for name in (service_name, *package_loggers):
        target = logging.getLogger(name)
        target.setLevel(level)
        target.handlers.clear()
        for handler in handlers:
            target.addHandler(handler)

    logger = logging.getLogger(service_name)
    if log_file:
        logger.info(f"File logging initialized: {log_file}")
    return logger
