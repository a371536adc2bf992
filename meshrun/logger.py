"""
Logging module for meshrun.
Structured logging (structlog over the stdlib logging module) with rich
console output, a rotating log file and a bounded buffer of recent entries.
"""

import os
import json
import logging
import logging.handlers
import threading
from datetime import datetime
from typing import Dict, Any, List, Optional
import structlog
from rich.console import Console
from rich.logging import RichHandler

# Author: Vamsi


LOGGER_NAME = "meshrun"


class StructuredLogger:
    """Structured logger with console and file output."""

    def __init__(self,
                 level: str = "info",
                 log_file: str = "logs/meshrun.log",
                 log_format: str = "json",
                 enable_console: bool = True,
                 enable_file: bool = True,
                 name: str = LOGGER_NAME):
        """
        Initialize the structured logger.

        Args:
            level: Logging level (debug, info, warn, error, fatal)
            log_file: Path to log file
            log_format: Log format (json, text)
            enable_console: Enable console output
            enable_file: Enable file output
            name: Name of the underlying stdlib logger
        """
        self.level = self._parse_level(level)
        self.log_file = log_file
        self.log_format = log_format
        self.enable_console = enable_console
        self.enable_file = enable_file
        self.name = name

        # Console logs go to stderr so they never mix with command output
        self.console = Console(stderr=True)

        # Real-time log buffer
        self.log_buffer: List[Dict[str, Any]] = []
        self.max_buffer_size = 1000
        self.buffer_lock = threading.Lock()

        self._setup_logging()

    @classmethod
    def quiet(cls, level: str = "info") -> 'StructuredLogger':
        """Logger that only fills its buffer; used by library components by default."""
        return cls(level=level, enable_console=False, enable_file=False)

    def _parse_level(self, level: str) -> int:
        """Parse log level string to logging constant."""
        level_map = {
            'debug': logging.DEBUG,
            'info': logging.INFO,
            'warn': logging.WARNING,
            'warning': logging.WARNING,
            'error': logging.ERROR,
            'fatal': logging.CRITICAL,
            'critical': logging.CRITICAL
        }
        return level_map.get(level.lower(), logging.INFO)

    def _setup_logging(self):
        """Setup logging configuration."""
        processors = [
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
        ]

        if self.log_format == "json":
            processors.append(structlog.processors.JSONRenderer())
        else:
            processors.append(structlog.dev.ConsoleRenderer(colors=False))

        if self.enable_console or self.enable_file:
            stdlib_logger = logging.getLogger(self.name)
            stdlib_logger.handlers.clear()
        else:
            # Unregistered logger: a quiet instance never touches the handlers
            # of a configured logger with the same name
            stdlib_logger = logging.Logger(self.name)
        stdlib_logger.setLevel(self.level)
        stdlib_logger.propagate = False

        if self.enable_console:
            console_handler = RichHandler(
                console=self.console,
                show_time=True,
                show_path=False,
                markup=False,
                rich_tracebacks=True
            )
            console_handler.setLevel(self.level)
            stdlib_logger.addHandler(console_handler)

        if self.enable_file:
            log_dir = os.path.dirname(self.log_file)
            if log_dir:
                os.makedirs(log_dir, exist_ok=True)

            file_handler = logging.handlers.RotatingFileHandler(
                self.log_file,
                maxBytes=100 * 1024 * 1024,  # 100MB
                backupCount=5,
                encoding='utf-8'
            )
            file_handler.setLevel(self.level)

            if self.log_format == "json":
                formatter = logging.Formatter('%(message)s')
            else:
                formatter = logging.Formatter(
                    '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
                )
            file_handler.setFormatter(formatter)
            stdlib_logger.addHandler(file_handler)

        if not stdlib_logger.handlers:
            stdlib_logger.addHandler(logging.NullHandler())

        # Processors are bound per instance; the global structlog configuration is left alone
        self.logger = structlog.wrap_logger(
            stdlib_logger,
            processors=processors,
            context_class=dict,
            wrapper_class=structlog.stdlib.BoundLogger,
        )

    def _add_to_buffer(self, level: str, message: str, **kwargs):
        """Add log entry to buffer for real-time processing."""
        if logging.getLevelName(level.upper()) < self.level:
            return
        log_entry = {
            'timestamp': datetime.now().isoformat(),
            'level': level,
            'message': message,
            **kwargs
        }

        with self.buffer_lock:
            self.log_buffer.append(log_entry)
            if len(self.log_buffer) > self.max_buffer_size:
                self.log_buffer = self.log_buffer[-self.max_buffer_size:]

    def debug(self, message: str, **kwargs):
        """Log debug message."""
        self._add_to_buffer('debug', message, **kwargs)
        self.logger.debug(message, **kwargs)

    def info(self, message: str, **kwargs):
        """Log info message."""
        self._add_to_buffer('info', message, **kwargs)
        self.logger.info(message, **kwargs)

    def warning(self, message: str, **kwargs):
        """Log warning message."""
        self._add_to_buffer('warning', message, **kwargs)
        self.logger.warning(message, **kwargs)

    def error(self, message: str, **kwargs):
        """Log error message."""
        self._add_to_buffer('error', message, **kwargs)
        self.logger.error(message, **kwargs)

    def log_command_result(self, host: str, command: str, exit_code: Optional[int],
                           exit_signal: Optional[str], duration: float):
        """Log command execution result."""
        self.info(
            "Command executed",
            host=host,
            command=command,
            exit_code=exit_code,
            exit_signal=exit_signal,
            duration=round(duration, 3)
        )

    def log_connection_event(self, host: str, event: str, **kwargs):
        """Log connection-related events."""
        level = 'warning' if event == 'failure' else 'debug'
        getattr(self, level)(f"Connection {event}", host=host, **kwargs)

    def get_recent_logs(self, count: int = 50) -> list:
        """Get recent log entries."""
        with self.buffer_lock:
            return self.log_buffer[-count:] if self.log_buffer else []

    def export_logs(self, filename: str, format: str = "json"):
        """Export buffered logs to file."""
        with self.buffer_lock:
            logs = list(self.log_buffer)

        if format == "json":
            with open(filename, 'w') as f:
                json.dump(logs, f, indent=2, default=str)
        elif format == "csv":
            import csv
            with open(filename, 'w', newline='') as f:
                writer = csv.DictWriter(f, fieldnames=['timestamp', 'level', 'message'],
                                        extrasaction='ignore')
                writer.writeheader()
                writer.writerows(logs)
        else:
            raise ValueError(f"Unsupported export format: {format}")

        self.info(f"Logs exported to {filename}")


class HostLogger:
    """Host-specific logger for tracking commands per host."""

    def __init__(self, host: str, parent_logger: StructuredLogger):
        """
        Initialize host-specific logger.

        Args:
            host: Host identifier (user@host)
            parent_logger: Parent structured logger
        """
        self.host = host
        self.parent_logger = parent_logger
        self.host_metrics = {
            'commands_executed': 0,
            'successful_commands': 0,
            'failed_commands': 0,
            'connection_attempts': 0,
            'connection_failures': 0,
            'total_duration': 0.0
        }
        self.last_command_time: Optional[datetime] = None
        self.lock = threading.Lock()

    def log_command(self, command: str, exit_code: Optional[int], exit_signal: Optional[str],
                    duration: float):
        """Log command execution for this host."""
        with self.lock:
            self.host_metrics['commands_executed'] += 1
            if exit_code == 0 and exit_signal is None:
                self.host_metrics['successful_commands'] += 1
            else:
                self.host_metrics['failed_commands'] += 1
            self.host_metrics['total_duration'] += duration
            self.last_command_time = datetime.now()

        self.parent_logger.log_command_result(self.host, command, exit_code, exit_signal, duration)

    def log_connection(self, event: str, **kwargs):
        """Log connection event for this host."""
        with self.lock:
            if event == 'attempt':
                self.host_metrics['connection_attempts'] += 1
            elif event == 'failure':
                self.host_metrics['connection_failures'] += 1
        self.parent_logger.log_connection_event(self.host, event, **kwargs)

    def get_metrics(self) -> Dict[str, Any]:
        """Get host-specific metrics."""
        with self.lock:
            executed = self.host_metrics['commands_executed']
            return {
                'host': self.host,
                **self.host_metrics,
                'success_rate': (
                    self.host_metrics['successful_commands'] / executed * 100 if executed else 0.0
                ),
                'avg_duration': self.host_metrics['total_duration'] / executed if executed else 0.0,
                'last_command_time': self.last_command_time.isoformat() if self.last_command_time else None
            }
