import logging
from logging.handlers import RotatingFileHandler

from printer_registry.core.config import APP_VERSION, Settings

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def setup_logging(app_settings: Settings) -> logging.Logger:
    """Configure the root logger from settings.

    DEBUG=true forces DEBUG level, otherwise LOG_LEVEL is used. A console
    handler is always installed; a rotating file handler is added when
    LOG_TO_FILE is enabled.
    """
    log_level_str = "DEBUG" if app_settings.debug else app_settings.log_level.upper()
    log_level = getattr(logging, log_level_str, logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)

    # Console handler - always enabled
    console_handler = logging.StreamHandler()
    console_handler.setLevel(log_level)
    console_handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root_logger.addHandler(console_handler)

    # File handler - only in production or if explicitly enabled
    if app_settings.log_to_file:
        app_settings.log_dir.mkdir(parents=True, exist_ok=True)
        log_file = app_settings.log_dir / "printer_registry.log"
        file_handler = RotatingFileHandler(
            log_file,
            maxBytes=5 * 1024 * 1024,  # 5MB
            backupCount=3,
            encoding="utf-8",
        )
        file_handler.setLevel(log_level)
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        root_logger.addHandler(file_handler)
        logging.info(f"Logging to file: {log_file}")

    # Reduce noise from third-party libraries in production
    if not app_settings.debug:
        logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
        logging.getLogger("aiosqlite").setLevel(logging.WARNING)

    logging.info(f"{app_settings.app_name} {APP_VERSION} logging ready - debug={app_settings.debug}, log_level={log_level_str}")
    return root_logger
