import logging
from pathlib import Path
from typing import Optional
from rich.console import Console
from rich.logging import RichHandler

def setup_logging(
    log_dir: Path,
    debug: bool = False,
    log_path: Optional[Path] = None,
    console: Optional[Console] = None,
) -> logging.Logger:
    """
    Setup logging configuration for msync.

    Everything goes to msync.log; warnings and errors are also shown on
    stderr through rich so per-file failures are visible during a run.

    Args:
        log_dir: Directory holding msync.log (created if missing)
        debug: If True, enable DEBUG level logging in the log file
        log_path: Optional path to log file (overrides log_dir)
        console: Optional rich console for the stderr handler
    """
    log_file = Path(log_path) if log_path else (log_dir / "msync.log")
    log_file.parent.mkdir(parents=True, exist_ok=True)

    level = logging.DEBUG if debug else logging.INFO

    file_handler = logging.FileHandler(log_file)
    file_handler.setLevel(level)
    file_handler.setFormatter(logging.Formatter('%(asctime)s - %(levelname)s - %(message)s'))

    console_handler = RichHandler(
        console=console or Console(stderr=True),
        show_time=False,
        show_path=False,
        markup=False,
    )
    console_handler.setLevel(logging.WARNING)

    logging.basicConfig(
        level=level,
        handlers=[file_handler, console_handler],
        force=True  # Override any existing configuration
    )

    logger = logging.getLogger(__name__)
    logger.info(f"Logging initialized: {log_file} (debug={'ON' if debug else 'OFF'})")

    return logger
