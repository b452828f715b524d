"""Logging configuration for the sweeper."""
import sys
from pathlib import Path
from loguru import logger


def setup_logging(log_dir: str = "./logs", level: str = "INFO") -> None:
    """Configure loguru logging with file and console output."""
    # Remove default handler
    logger.remove()

    logger.add(
        sys.stdout,
        format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>",
        level=level,
        colorize=True,
    )

    log_path = Path(log_dir)
    log_path.mkdir(parents=True, exist_ok=True)
    logger.add(
        log_path / "sweeper.log",
        format="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} - {message}",
        level=level,
        rotation="100 MB",
        retention="30 days",
        compression="zip",
    )

    logger.info("Logging configured at {} level", level)
