"""
Per-host connections.

A HostConnection owns the session to one host. The session is opened the
first time a command runs and reused until the connection is disconnected.
"""

import signal
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Union

from .config import SSHConfig, OutputConfig
from .errors import ChannelRejected, CommandFailed, TransportError
from .hosts import HostSpec
from .logger import StructuredLogger, HostLogger
from .output import NULL_GUARD, OutputAggregator, OutputGuard, OutputMode
from .session import (
    EXIT_SIGNAL, EXIT_STATUS, STDERR, STDOUT, RemoteSession, SessionFactory, open_session
)

# Author: Vamsi


@dataclass
class ExecutionOptions:
    """How a single run() routes output and treats abnormal exits."""
    output: Union[OutputMode, str] = OutputMode.PRETTY
    continue_on_failure: bool = False

    def __post_init__(self):
        self.output = OutputMode.parse(self.output)


@dataclass
class ExecutionResult:
    """Result of one command on one host."""
    host: str
    command: str
    exit_code: Optional[int] = None
    exit_signal: Optional[str] = None
    stdout: Optional[List[str]] = None
    stderr: Optional[List[str]] = None
    duration: float = 0.0
    timestamp: datetime = field(default_factory=datetime.now)

    @property
    def output(self) -> str:
        """Captured stdout as text ('' when not captured)."""
        return "".join(self.stdout or [])

    @property
    def error(self) -> str:
        """Captured stderr as text ('' when not captured)."""
        return "".join(self.stderr or [])

    @property
    def success(self) -> bool:
        return self.exit_code == 0 and self.exit_signal is None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'host': self.host,
            'command': self.command,
            'exit_code': self.exit_code,
            'exit_signal': self.exit_signal,
            'output': self.output,
            'error': self.error,
            'duration': self.duration,
            'timestamp': self.timestamp.isoformat(),
            'success': self.success,
        }


def signal_name(sig: Union[str, int, None]) -> str:
    """
    Resolve a signal to its name.

    :param sig: Signal name, number, or None when the transport did not say
    :return: Name such as 'TERM', the number as text when unknown, or 'unknown'
    """
    if sig is None:
        return "unknown"
    if isinstance(sig, int):
        try:
            return signal.Signals(sig).name[3:]
        except ValueError:
            return str(sig)
    return str(sig)


class HostConnection:
    """An SSH connection which isn't established until it's needed."""

    def __init__(self, spec: HostSpec,
                 settings: Optional[SSHConfig] = None,
                 output_config: Optional[OutputConfig] = None,
                 default_options: Optional[ExecutionOptions] = None,
                 session_factory: Optional[SessionFactory] = None,
                 logger: Optional[StructuredLogger] = None):
        """
        Initialize a disconnected connection.

        :param spec: Target host
        :param settings: Transport settings handed to the session factory
        :param output_config: Colors for pretty output
        :param default_options: Options used by run() when none are given
        :param session_factory: Callable (host, user, settings) -> RemoteSession
        :param logger: Structured logger
        """
        self.spec = spec
        self.settings = settings or SSHConfig()
        self.output_config = output_config or OutputConfig()
        self.default_options = default_options or ExecutionOptions()
        self.session_factory = session_factory or open_session
        self.logger = logger or StructuredLogger.quiet()
        self.host_logger = HostLogger(str(spec), self.logger)

        self.session: Optional[RemoteSession] = None
        self.output_guard: OutputGuard = NULL_GUARD

    @property
    def user(self) -> str:
        return self.spec.user

    @property
    def host(self) -> str:
        return self.spec.host

    @property
    def connected(self) -> bool:
        return self.session is not None

    def __repr__(self) -> str:
        state = "connected" if self.connected else "disconnected"
        return f"<HostConnection {self.spec} {state}>"

    def connect(self) -> RemoteSession:
        """Open the session if it isn't open yet and return it."""
        if self.session is None:
            self.host_logger.log_connection('attempt')
            try:
                self.session = self.session_factory(self.host, self.user, self.settings)
            except TransportError as e:
                self.host_logger.log_connection('failure', error=str(e))
                raise
            self.host_logger.log_connection('established')
        return self.session

    @contextmanager
    def guarded(self, guard: Optional[OutputGuard]):
        """Bind the output guard of the current invocation."""
        self.output_guard = guard or NULL_GUARD
        try:
            yield self
        finally:
            self.output_guard = NULL_GUARD

    def _resolve_options(self, options: Optional[ExecutionOptions], overrides: Dict[str, Any]) -> ExecutionOptions:
        base = options or self.default_options
        if not overrides:
            return base
        unknown = set(overrides) - {'output', 'continue_on_failure'}
        if unknown:
            raise TypeError(f"Unknown run() options: {', '.join(sorted(unknown))}")
        return ExecutionOptions(
            output=overrides.get('output', base.output),
            continue_on_failure=overrides.get('continue_on_failure', base.continue_on_failure)
        )

    def run(self, command: str, options: Optional[ExecutionOptions] = None, **overrides) -> ExecutionResult:
        """
        Run a command on this connection, opening the session if needed.

        Output is routed by options.output: pretty prints each line tagged with
        the stream and host, raw passes chunks through to the local stdout and
        stderr, capture collects them into the result.

        :param command: Shell command
        :param options: Execution options (defaults to the connection's)
        :param overrides: output= / continue_on_failure= shortcuts
        :return: ExecutionResult
        :raises ChannelRejected: If the channel or exec request is refused
        :raises CommandFailed: On non-zero exit or signal, unless continue_on_failure
        """
        options = self._resolve_options(options, overrides)
        start_time = time.time()
        session = self.connect()

        result = ExecutionResult(host=self.host, command=command)
        if options.output is OutputMode.CAPTURE:
            result.stdout = []
            result.stderr = []
        aggregator = OutputAggregator(
            options.output,
            colors=self.output_config.colors,
            stream_colors=self.output_config.stream_colors,
            color=self.output_config.color
        )

        try:
            channel = session.open_channel()
        except TransportError as e:
            self.logger.warning("Channel rejected", host=str(self.spec), command=command, error=str(e))
            raise ChannelRejected(self.host, command, reason=str(e)) from e

        exit_seen = False
        try:
            if not channel.exec(command):
                self.logger.warning("Exec rejected", host=str(self.spec), command=command)
                raise ChannelRejected(self.host, command, reason="exec request refused")

            for event in channel.events():
                if event.kind == STDOUT:
                    self._on_data(aggregator, result, event.payload)
                elif event.kind == STDERR:
                    self._on_extended_data(aggregator, result, event.payload)
                elif event.kind in (EXIT_STATUS, EXIT_SIGNAL):
                    self._on_request(result, event.kind, event.payload)
                    exit_seen = True
        finally:
            channel.close()

        result.duration = time.time() - start_time
        self.host_logger.log_command(command, result.exit_code, result.exit_signal, result.duration)

        if not exit_seen:
            raise CommandFailed(self.host, command, reason="channel closed without an exit status")

        if not options.continue_on_failure:
            if result.exit_signal is not None:
                raise CommandFailed(self.host, command, signal=result.exit_signal)
            if result.exit_code != 0:
                raise CommandFailed(self.host, command, exit_code=result.exit_code)

        return result

    def _on_data(self, aggregator: OutputAggregator, result: ExecutionResult, data: str):
        aggregator.route(STDOUT, data, self.host, result, self.output_guard)

    def _on_extended_data(self, aggregator: OutputAggregator, result: ExecutionResult, data: str):
        aggregator.route(STDERR, data, self.host, result, self.output_guard)

    def _on_request(self, result: ExecutionResult, kind: str, payload):
        if kind == EXIT_STATUS:
            result.exit_code = int(payload)
        else:
            result.exit_signal = signal_name(payload)

    def disconnect(self):
        """Disconnect, if connected."""
        if self.session is not None:
            try:
                self.session.close()
            finally:
                self.session = None
                self.host_logger.log_connection('closed')

    def metrics(self) -> Dict[str, Any]:
        """Command metrics recorded for this host."""
        return self.host_logger.get_metrics()
