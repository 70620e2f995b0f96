import logging
from pathlib import Path


def setup_app_logging(level=logging.INFO, logger_name=None, log_dir=None):
    # App-specific logger instead of root logger
    if logger_name is None:
        logger_name = "memwatch"

    logger = logging.getLogger(logger_name)

    # Prevent duplicate handlers
    if logger.handlers:
        return logger

    if isinstance(level, str):
        level = getattr(logging, level.upper(), logging.INFO)
    logger.setLevel(level)

    # Prevent propagation to root logger - avoid conflicts
    logger.propagate = False

    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)

    formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - [%(filename)s:%(lineno)d] - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    try:
        if log_dir is None:
            try:
                from config.app_config import get_config
                log_dir = get_config().logs_dir
            except Exception:
                # Fallback to relative path
                log_dir = Path(__file__).parent.parent / "data" / "logs"

        log_dir = Path(log_dir)
        log_dir.mkdir(parents=True, exist_ok=True)
        log_file = log_dir / "memwatch.log"

        file_handler = logging.FileHandler(log_file, mode='a', encoding='utf-8')
        file_handler.setLevel(logging.DEBUG)

        file_formatter = logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - [%(filename)s:%(lineno)d] - %(funcName)s - %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )

        file_handler.setFormatter(file_formatter)
        logger.addHandler(file_handler)

    except Exception as e:
        # If file logging fails - no crash, with log
        logger.warning(f"File logging setup failed: {e}")

    return logger
