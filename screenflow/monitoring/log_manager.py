import json
import logging
from pathlib import Path
from datetime import datetime


class LogManager:
    """Console, daily file, error file and JSON performance logging"""

    def __init__(self, log_dir: str = "screenflow_data/logs", log_level: str = "INFO"):
        self.log_dir = Path(log_dir)
        self.log_dir.mkdir(parents=True, exist_ok=True)

        self.setup_logging(log_level)

    def setup_logging(self, log_level: str):
        detailed_formatter = logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(funcName)s:%(lineno)d - %(message)s'
        )
        simple_formatter = logging.Formatter(
            '%(asctime)s - %(levelname)s - %(message)s'
        )
        day = datetime.now().strftime('%Y%m%d')

        root_logger = logging.getLogger()
        root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))
        for handler in list(root_logger.handlers):
            root_logger.removeHandler(handler)
            handler.close()

        console_handler = logging.StreamHandler()
        console_handler.setLevel(logging.DEBUG if log_level.upper() == 'DEBUG' else logging.INFO)
        console_handler.setFormatter(simple_formatter)
        root_logger.addHandler(console_handler)

        file_handler = logging.FileHandler(self.log_dir / f"screenflow_{day}.log", encoding='utf-8')
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(detailed_formatter)
        root_logger.addHandler(file_handler)

        error_handler = logging.FileHandler(self.log_dir / f"errors_{day}.log", encoding='utf-8')
        error_handler.setLevel(logging.WARNING)
        error_handler.setFormatter(detailed_formatter)
        root_logger.addHandler(error_handler)

        self.perf_handler = logging.FileHandler(self.log_dir / f"performance_{day}.log", encoding='utf-8')
        self.perf_logger = logging.getLogger('screenflow.performance')
        self.perf_logger.setLevel(logging.INFO)
        for handler in list(self.perf_logger.handlers):
            self.perf_logger.removeHandler(handler)
            handler.close()
        self.perf_logger.addHandler(self.perf_handler)
        self.perf_logger.propagate = False

    def log_performance_event(self, event_type: str, **kwargs):
        """One JSON line per event in the performance log"""
        event_data = {
            'timestamp': datetime.now().isoformat(),
            'event_type': event_type,
            **kwargs
        }
        self.perf_logger.info(json.dumps(event_data, default=str))
