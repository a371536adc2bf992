"""
Remote session transport.

The pool only needs a small shape from the transport: open a session for a
host, open a channel on it, exec a command and iterate over the channel's
events (stdout data, stderr data, exit status or exit signal), then close.
Any object with that shape can stand in for the paramiko implementation
below, which is what the tests do.
"""

import os
import time
import codecs
import socket
from dataclasses import dataclass
from typing import Any, Callable, Iterator, Optional, Protocol
import paramiko
from paramiko import SSHClient, AutoAddPolicy, RejectPolicy
from paramiko.ssh_exception import SSHException, AuthenticationException, NoValidConnectionsError

from .config import SSHConfig
from .errors import ConnectionFailed, TransportError

# Author: Vamsi


STDOUT = "stdout"
STDERR = "stderr"
EXIT_STATUS = "exit-status"
EXIT_SIGNAL = "exit-signal"


@dataclass
class ChannelEvent:
    """One event received on a command channel."""
    kind: str
    payload: Any = None


class RemoteChannel(Protocol):
    """A command channel on an open session."""

    def exec(self, command: str) -> bool:
        """Request execution of a command; False when the remote side refuses it."""

    def events(self) -> Iterator[ChannelEvent]:
        """Yield data events until the command ends, then exactly one exit event."""

    def close(self) -> None:
        """Close the channel."""


class RemoteSession(Protocol):
    """An authenticated session to one host."""

    def open_channel(self) -> RemoteChannel:
        """Open a new command channel; raises TransportError when refused."""

    def close(self) -> None:
        """Close the session."""


SessionFactory = Callable[[str, str, SSHConfig], RemoteSession]


class ParamikoChannel:
    """Command channel backed by a paramiko session channel."""

    def __init__(self, channel: paramiko.Channel, settings: SSHConfig):
        self.channel = channel
        self.settings = settings

    def exec(self, command: str) -> bool:
        try:
            self.channel.exec_command(command)
        except SSHException:
            return False
        return True

    def events(self) -> Iterator[ChannelEvent]:
        channel = self.channel
        decoders = {
            STDOUT: codecs.getincrementaldecoder(self.settings.encoding)(errors='replace'),
            STDERR: codecs.getincrementaldecoder(self.settings.encoding)(errors='replace'),
        }
        window_size = self.settings.window_size

        while not channel.exit_status_ready():
            received = False
            if channel.recv_ready():
                data = decoders[STDOUT].decode(channel.recv(window_size))
                if data:
                    yield ChannelEvent(STDOUT, data)
                received = True
            if channel.recv_stderr_ready():
                data = decoders[STDERR].decode(channel.recv_stderr(window_size))
                if data:
                    yield ChannelEvent(STDERR, data)
                received = True
            if not received:
                time.sleep(self.settings.poll_interval)

        # data buffered alongside the exit status is still pending; read each
        # stream until paramiko reports EOF with an empty chunk
        for stream, read in ((STDOUT, channel.recv), (STDERR, channel.recv_stderr)):
            while True:
                chunk = read(window_size)
                if not chunk:
                    break
                data = decoders[stream].decode(chunk)
                if data:
                    yield ChannelEvent(stream, data)

        for stream, decoder in decoders.items():
            tail = decoder.decode(b"", final=True)
            if tail:
                yield ChannelEvent(stream, tail)

        # paramiko leaves the status at -1 when the channel closes without an
        # exit-status request, which is how a command killed by a signal ends
        status = channel.recv_exit_status()
        if status == -1:
            yield ChannelEvent(EXIT_SIGNAL, None)
        else:
            yield ChannelEvent(EXIT_STATUS, status)

    def close(self) -> None:
        self.channel.close()


class ParamikoSession:
    """Session to one host over a paramiko SSHClient."""

    def __init__(self, client: SSHClient, host: str, settings: SSHConfig):
        self.client = client
        self.host = host
        self.settings = settings

    @classmethod
    def open(cls, host: str, user: str, settings: Optional[SSHConfig] = None) -> 'ParamikoSession':
        """
        Open an authenticated session.

        :param host: Host name (or ssh_config alias)
        :param user: Login user
        :param settings: Transport settings
        :return: ParamikoSession
        :raises ConnectionFailed: If the host can't be reached or authentication fails
        """
        settings = settings or SSHConfig()
        hostname, port, key_filename = host, settings.port, settings.key_file or None

        if settings.use_ssh_config and os.path.exists(settings.ssh_config_file):
            entry = paramiko.SSHConfig.from_path(settings.ssh_config_file).lookup(host)
            hostname = entry.get('hostname', host)
            if settings.port == 22 and 'port' in entry:
                port = int(entry['port'])
            if key_filename is None and 'identityfile' in entry:
                key_filename = [os.path.expanduser(path) for path in entry['identityfile']]

        client = SSHClient()
        if settings.strict_host_key_checking:
            client.load_system_host_keys()
            if os.path.exists(settings.known_hosts_file):
                client.load_host_keys(settings.known_hosts_file)
            client.set_missing_host_key_policy(RejectPolicy())
        else:
            client.set_missing_host_key_policy(AutoAddPolicy())

        try:
            client.connect(
                hostname=hostname,
                port=port,
                username=user,
                password=settings.password or None,
                key_filename=key_filename,
                timeout=settings.timeout,
                banner_timeout=settings.banner_timeout,
                auth_timeout=settings.auth_timeout
            )
        except (SSHException, AuthenticationException, NoValidConnectionsError, socket.error) as e:
            client.close()
            raise ConnectionFailed(f"{user}@{host}", str(e)) from e

        return cls(client, host, settings)

    def open_channel(self) -> ParamikoChannel:
        transport = self.client.get_transport()
        if transport is None or not transport.is_active():
            raise TransportError(f"Session to {self.host} is not active")
        try:
            channel = transport.open_session(timeout=self.settings.timeout)
        except SSHException as e:
            raise TransportError(f"Channel open refused by {self.host}: {e}") from e
        return ParamikoChannel(channel, self.settings)

    def close(self) -> None:
        self.client.close()


def open_session(host: str, user: str, settings: Optional[SSHConfig] = None) -> RemoteSession:
    """Default session factory used by connections."""
    return ParamikoSession.open(host, user, settings)
