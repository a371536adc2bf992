"""
meshrun - run shell commands across many SSH hosts at once.

Commands run over a pool of lazily opened connections, either one host at a
time, in batches, or in parallel on a bounded number of worker threads.
Output is printed line by line tagged with the host, passed through as is,
or captured into per-host results.

Example usage:
    import meshrun

    results = meshrun.connect(
        ["root@web1", "root@web2"],
        lambda conn: conn.run("uptime", output="capture"),
    )
    for host, result in results.items():
        print(host, result.output)
"""

# Author: Vamsi

from .config import Config, SSHConfig, OutputConfig, DEFAULT_CONCURRENCY, UNLIMITED
from .connection import HostConnection, ExecutionOptions, ExecutionResult
from .distributor import WorkDistributor, distribute
from .errors import (
    MeshrunError, ConfigError, InvalidHostSpec, CommandFailed, ChannelRejected,
    TransportError, ConnectionFailed
)
from .hosts import HostSpec
from .logger import StructuredLogger, HostLogger
from .output import OutputMode, OutputAggregator, OutputGuard, LockGuard, NullGuard, color_string
from .pool import ConnectionPool, PoolOptions, connect
from .report import export_results
from .session import ChannelEvent, RemoteSession, RemoteChannel, ParamikoSession, open_session

__version__ = "1.0.0"

__all__ = [
    'connect', 'ConnectionPool', 'PoolOptions', 'HostConnection',
    'ExecutionOptions', 'ExecutionResult', 'HostSpec',
    'WorkDistributor', 'distribute',
    'OutputMode', 'OutputAggregator', 'OutputGuard', 'LockGuard', 'NullGuard', 'color_string',
    'Config', 'SSHConfig', 'OutputConfig', 'DEFAULT_CONCURRENCY', 'UNLIMITED',
    'StructuredLogger', 'HostLogger', 'export_results',
    'ChannelEvent', 'RemoteSession', 'RemoteChannel', 'ParamikoSession', 'open_session',
    'MeshrunError', 'ConfigError', 'InvalidHostSpec', 'CommandFailed', 'ChannelRejected',
    'TransportError', 'ConnectionFailed',
]
