"""
Exception hierarchy for meshrun.
"""

from typing import Optional, Union

# Author: Vamsi


class MeshrunError(Exception):
    """Base class for all meshrun errors."""


class ConfigError(MeshrunError, ValueError):
    """Invalid configuration value."""


class InvalidHostSpec(MeshrunError, ValueError):
    """Host string is not of the form user@host."""

    def __init__(self, host_string: str):
        self.host_string = host_string
        super().__init__(f"Bad hostname (needs to be of the form user@host): {host_string!r}")


class CommandFailed(MeshrunError):
    """A remote command exited non-zero, was killed by a signal, or never started."""

    def __init__(self, host: str, command: str, exit_code: Optional[int] = None,
                 signal: Optional[Union[str, int]] = None, reason: Optional[str] = None):
        """
        Initialize the failure.

        :param host: Host the command ran on
        :param command: The command
        :param exit_code: Non-zero exit code, if the command exited
        :param signal: Signal name (or number when unresolvable), if it was killed
        :param reason: Free-form reason when neither applies
        """
        self.host = host
        self.command = command
        self.exit_code = exit_code
        self.signal = signal
        self.reason = reason
        super().__init__(self._describe())

    def _describe(self) -> str:
        if self.exit_code is not None:
            detail = f"exit code {self.exit_code}"
        elif self.signal is not None:
            detail = f"signal {self.signal}"
        else:
            detail = self.reason or "unknown failure"
        return f"Command {self.command!r} failed on {self.host}: {detail}"


class ChannelRejected(CommandFailed):
    """The transport refused to open a channel or to exec the command."""

    def __init__(self, host: str, command: str, reason: str = "channel rejected"):
        super().__init__(host, command, reason=reason)


class TransportError(MeshrunError):
    """The remote session transport failed."""


class ConnectionFailed(TransportError):
    """A session to a host could not be established."""

    def __init__(self, host: str, reason: str):
        self.host = host
        self.reason = reason
        super().__init__(f"Could not connect to {host}: {reason}")
