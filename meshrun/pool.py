"""
Connection pool for meshrun.
Runs a block of work against every host of the pool, serially, in batches,
or in parallel over a bounded number of worker threads.
"""

import threading
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Optional, Union

from .config import Config, DEFAULT_CONCURRENCY, UNLIMITED
from .connection import HostConnection
from .distributor import WorkDistributor
from .errors import ConfigError
from .hosts import parse_host_list
from .logger import StructuredLogger
from .output import NULL_GUARD, OutputGuard
from .session import SessionFactory, open_session

# Author: Vamsi


Block = Callable[..., Any]


@dataclass
class PoolOptions:
    """How execute() spreads the block across hosts."""
    concurrency: Union[int, str] = DEFAULT_CONCURRENCY
    serial: bool = False
    batch_size: Optional[int] = None
    block_args: tuple = ()

    def __post_init__(self):
        if self.concurrency != UNLIMITED and (
                isinstance(self.concurrency, bool) or not isinstance(self.concurrency, int)
                or self.concurrency < 1):
            raise ConfigError(
                f"concurrency must be a positive integer or '{UNLIMITED}', got {self.concurrency!r}"
            )
        if self.batch_size is not None and (
                isinstance(self.batch_size, bool) or not isinstance(self.batch_size, int)
                or self.batch_size < 1):
            raise ConfigError(f"batch_size must be a positive integer, got {self.batch_size!r}")
        self.block_args = tuple(self.block_args)

    @property
    def unlimited(self) -> bool:
        return self.concurrency == UNLIMITED

    def worker_count(self, unit_count: int) -> int:
        """Workers for a run over unit_count hosts (or one batch of them)."""
        if self.unlimited:
            return max(unit_count, 1)
        return self.concurrency


class ConnectionPool:
    """A pool of lazy SSH connections. Work over the pool runs serially or in parallel."""

    def __init__(self, host_list: Iterable[str] = (),
                 config: Optional[Config] = None,
                 logger: Optional[StructuredLogger] = None,
                 session_factory: Optional[SessionFactory] = None):
        """
        Initialize the pool. No connection is opened until a command runs.

        :param host_list: Hosts of the form user@host
        :param config: Configuration (transport, output and default pool settings)
        :param logger: Structured logger
        :param session_factory: Callable (host, user, settings) -> RemoteSession
        :raises InvalidHostSpec: If any host is malformed
        """
        self.config = config or Config()
        self.logger = logger or StructuredLogger.quiet()
        self.session_factory = session_factory or open_session
        self.distributor = WorkDistributor(self.logger)

        self.connections: Dict[str, HostConnection] = {}
        self.lock = threading.RLock()
        self.add_hosts(host_list)

    def add_hosts(self, host_list: Iterable[str]) -> List[HostConnection]:
        """
        Make sure every host has a connection, creating missing ones.

        All hosts are parsed before any connection is added, so a malformed
        entry leaves the pool unchanged.

        :param host_list: Hosts of the form user@host
        :return: Connections for the given hosts, in order
        """
        host_list = list(host_list)
        specs = parse_host_list(host_list)
        with self.lock:
            for host_string, spec in zip(host_list, specs):
                if host_string not in self.connections:
                    self.connections[host_string] = HostConnection(
                        spec,
                        settings=self.config.ssh,
                        output_config=self.config.output_settings,
                        default_options=self.config.to_execution_options(),
                        session_factory=self.session_factory,
                        logger=self.logger
                    )
            return [self.connections[host_string] for host_string in host_list]

    @property
    def hosts(self) -> List[str]:
        with self.lock:
            return list(self.connections)

    def connection(self, host_string: str) -> HostConnection:
        return self.connections[host_string]

    def __len__(self) -> int:
        return len(self.connections)

    def __contains__(self, host_string: str) -> bool:
        return host_string in self.connections

    def _resolve_options(self, options: Optional[PoolOptions], overrides: Dict[str, Any]) -> PoolOptions:
        if options is None:
            options = self.config.to_pool_options()
        if overrides:
            unknown = set(overrides) - set(PoolOptions.__dataclass_fields__)
            if unknown:
                raise TypeError(f"Unknown pool options: {', '.join(sorted(unknown))}")
            values = {name: getattr(options, name) for name in PoolOptions.__dataclass_fields__}
            values.update(overrides)
            options = PoolOptions(**values)
        if options.serial and options.batch_size is not None:
            self.logger.warning("Both serial and batch_size given; running serially",
                                batch_size=options.batch_size)
        return options

    def execute(self, block: Block, options: Optional[PoolOptions] = None, **overrides) -> Dict[str, Any]:
        """
        Run a block once for every host in the pool.

        The block is called as block(connection, *options.block_args) and may
        call connection.run(), connection.user and connection.host.

        :param block: Work to run per host
        :param options: Pool options (defaults come from the configuration)
        :param overrides: Shortcuts for PoolOptions fields (serial=True, batch_size=2, ...)
        :return: Mapping of host string to the block's return value
        """
        return self._execute(self.hosts, block, self._resolve_options(options, overrides))

    def execute_with(self, host_list: Iterable[str], block: Block,
                     options: Optional[PoolOptions] = None, **overrides) -> Dict[str, Any]:
        """
        Run a block once for each of the given hosts only.

        Hosts missing from the pool are added; other pool hosts are left alone.

        :param host_list: Hosts of the form user@host
        :param block: Work to run per host
        :param options: Pool options
        :return: Mapping of host string to the block's return value
        """
        # a connection is never used by two workers at once
        host_list = list(dict.fromkeys(host_list))
        self.add_hosts(host_list)
        return self._execute(host_list, block, self._resolve_options(options, overrides))

    def _execute(self, host_list: List[str], block: Block, options: PoolOptions) -> Dict[str, Any]:
        results: Dict[str, Any] = {}
        results_lock = threading.Lock()

        def unit_of_work(host_string: str, guard: OutputGuard):
            connection = self.connections[host_string]
            with connection.guarded(guard):
                value = block(connection, *options.block_args)
            with results_lock:
                results[host_string] = value

        if options.serial:
            mode = "serial"
        elif options.batch_size is not None:
            mode = "batch"
        else:
            mode = "parallel"
        self.logger.info("Executing block", hosts=len(host_list), mode=mode,
                         concurrency=options.concurrency, batch_size=options.batch_size)

        if options.serial:
            for host_string in host_list:
                unit_of_work(host_string, NULL_GUARD)
        elif options.batch_size is not None:
            worker_count = options.batch_size if options.unlimited else options.concurrency
            for start in range(0, len(host_list), options.batch_size):
                batch = host_list[start:start + options.batch_size]
                self.logger.debug("Starting batch", batch=start // options.batch_size + 1, hosts=batch)
                self.distributor.distribute(batch, worker_count, unit_of_work)
        else:
            self.distributor.distribute(host_list, options.worker_count(len(host_list)), unit_of_work)

        return results

    def disconnect_all(self):
        """Disconnect all open connections."""
        with self.lock:
            connections = list(self.connections.values())
        for connection in connections:
            connection.disconnect()

    def metrics(self) -> Dict[str, Dict[str, Any]]:
        """Per-host command metrics."""
        with self.lock:
            return {host_string: conn.metrics() for host_string, conn in self.connections.items()}

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.disconnect_all()


def connect(host_list: Iterable[str], block: Optional[Block] = None,
            options: Optional[PoolOptions] = None,
            config: Optional[Config] = None,
            logger: Optional[StructuredLogger] = None,
            session_factory: Optional[SessionFactory] = None,
            **overrides):
    """
    Create a connection pool for a list of hosts.

    With a block, the block is run on every host right away and the pool is
    disconnected afterwards; the per-host block results are returned.
    Without one, the pool is returned for manual execute()/disconnect_all().

    :param host_list: Hosts of the form user@host
    :param block: Optional work to run per host
    :param options: Pool options for the immediate run
    :param config: Configuration
    :param logger: Structured logger
    :param session_factory: Callable (host, user, settings) -> RemoteSession
    """
    pool = ConnectionPool(host_list, config=config, logger=logger, session_factory=session_factory)
    if block is None:
        if options is not None or overrides:
            raise TypeError("Pool options are only used together with a block")
        return pool
    try:
        return pool.execute(block, options, **overrides)
    finally:
        pool.disconnect_all()
