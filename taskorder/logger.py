import logging
import sys
from pathlib import Path
from typing import Optional


class OrderLogger:
    def __init__(self, log_file: Optional[str] = "taskorder.log", verbose: bool = False):
        self.log_file = Path(log_file) if log_file else None
        self.verbose = verbose
        self.setup_logging()

    def setup_logging(self):
        self.logger = logging.getLogger('taskorder')
        self.logger.setLevel(logging.DEBUG if self.verbose else logging.INFO)
        for handler in self.logger.handlers:
            handler.close()
        self.logger.handlers.clear()

        # file gets timestamps, console gets the bare message
        if self.log_file is not None:
            file_handler = logging.FileHandler(self.log_file)
            file_handler.setFormatter(logging.Formatter(
                '%(asctime)s - %(levelname)s - %(message)s',
                datefmt='%Y-%m-%d %H:%M:%S'
            ))
            self.logger.addHandler(file_handler)

        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setFormatter(logging.Formatter('%(message)s'))
        self.logger.addHandler(console_handler)

        self.logger.propagate = False

    def debug(self, msg):
        self.logger.debug(msg)

    def info(self, msg):
        self.logger.info(msg)

    def error(self, msg):
        self.logger.error(msg)

    def warning(self, msg):
        self.logger.warning(msg)
