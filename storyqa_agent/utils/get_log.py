import logging
import os
from datetime import datetime
from logging.handlers import TimedRotatingFileHandler
from typing import List, Optional

LOG_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}
LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] [%(filename)s (%(funcName)s:%(lineno)d)] - %(message)s"
QUIET_LOGGERS = ("httpx", "httpcore", "openai")


class GetLog:
    logger = None
    log_folder = None

    @staticmethod
    def _run_folder(shared_log_folder: Optional[str]) -> str:
        if shared_log_folder:
            return shared_log_folder
        run_timestamp = datetime.now().strftime("%Y-%m-%d_%H-%M-%S")
        # Reports reuse the timestamp so logs and reports line up
        os.environ["STORYQA_TIMESTAMP"] = run_timestamp
        return os.path.join("./logs", run_timestamp)

    @staticmethod
    def _handlers(log_folder: str, level: int) -> List[logging.Handler]:
        run_log = TimedRotatingFileHandler(
            filename=os.path.join(log_folder, "log.log"),
            when="midnight",
            backupCount=3,
            encoding="utf-8",
        )
        run_log.setLevel(level)

        warnings_log = logging.FileHandler(os.path.join(log_folder, "error.log"), encoding="utf-8")
        warnings_log.setLevel(logging.WARNING)

        console = logging.StreamHandler()
        console.setLevel(level)
        return [run_log, warnings_log, console]

    @classmethod
    def get_log(cls, log_level: str = "info", shared_log_folder=None):
        """Configure the root logger once per process and return it.

        Args:
            log_level (str): One of debug, info, warning, error. Unknown values fall back to info
            shared_log_folder (str): Log folder to reuse instead of a new ./logs/<timestamp>
        """
        if cls.logger is not None:
            return cls.logger

        cls.log_folder = cls._run_folder(shared_log_folder)
        os.makedirs(cls.log_folder, exist_ok=True)
        level = LOG_LEVELS.get(str(log_level).lower(), logging.INFO)

        cls.logger = logging.getLogger()
        cls.logger.setLevel(level)
        formatter = logging.Formatter(LOG_FORMAT)
        for handler in cls._handlers(cls.log_folder, level):
            handler.setFormatter(formatter)
            cls.logger.addHandler(handler)

        # Client libraries log every request at INFO
        for name in QUIET_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)

        logging.info(f"Logging to {cls.log_folder} at level {logging.getLevelName(level)}")
        return cls.logger
