"""
promo_engine/utils/logging.py
─────────────────────────────
Configures logging for the app and the engine modules.
"""
import os
import logging
from logging.handlers import RotatingFileHandler
from flask import request


class RequestFormatter(logging.Formatter):
    """
    Custom formatter that injects request info (URL, client IP)
    into logs if a request context is available.
    """
    def format(self, record):
        if request:
            record.url = request.url
            record.remote_addr = request.remote_addr
        else:
            record.url = None
            record.remote_addr = None
        return super().format(record)


def setup_logging(app):
    """
    Configure rotating file logging (PROMOTIONS_LOG_DIR/app.log) and stdout.
    Max size: 5MB
    Backup count: 5 files
    Format: timestamp | level | module | message

    Handlers go on app.logger and on the `promo_engine` package logger, so
    engine modules using logging.getLogger(__name__) land in the same place.
    """
    targets = [app.logger, logging.getLogger('promo_engine')]

    # create_app may run more than once per process (tests); drop our old handlers.
    for logger in targets:
        for handler in [h for h in logger.handlers if getattr(h, 'promo_engine', False)]:
            logger.removeHandler(handler)

    # 1. File Logger (Try/Except for permissions)
    log_dir = app.config.get('PROMOTIONS_LOG_DIR')
    if log_dir:
        try:
            os.makedirs(log_dir, exist_ok=True)
            file_handler = RotatingFileHandler(
                os.path.join(log_dir, 'app.log'),
                maxBytes=5 * 1024 * 1024,
                backupCount=5
            )
            file_handler.setFormatter(RequestFormatter(
                '%(asctime)s | %(levelname)s | %(name)s | %(remote_addr)s | %(url)s | %(message)s'
            ))
            file_handler.setLevel(logging.INFO)
            file_handler.promo_engine = True
            for logger in targets:
                logger.addHandler(file_handler)
        except OSError:
            app.logger.warning(f'File logging disabled: cannot write to {log_dir}')

    # 2. Stdout Logger
    stream_handler = logging.StreamHandler()
    stream_handler.setFormatter(logging.Formatter(
        '%(asctime)s | %(levelname)s | %(name)s | %(message)s'
    ))
    stream_handler.setLevel(logging.INFO)
    stream_handler.promo_engine = True
    for logger in targets:
        logger.addHandler(stream_handler)
        logger.setLevel(logging.INFO)

    app.logger.info("Promotion engine startup")
