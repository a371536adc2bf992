"""
Host identifiers of the form user@host.
"""

from dataclasses import dataclass
from typing import Iterable, List

from .errors import InvalidHostSpec

# Author: Vamsi


@dataclass(frozen=True)
class HostSpec:
    """A remote target: the login user and the host name."""
    user: str
    host: str

    def __post_init__(self):
        if not self.user or not self.host:
            raise InvalidHostSpec(f"{self.user}@{self.host}")

    @classmethod
    def parse(cls, host_string: str) -> 'HostSpec':
        """
        Parse a host string of the form user@host.

        The string is split on its last '@' so user names may contain one.

        :param host_string: Host string
        :return: HostSpec
        :raises InvalidHostSpec: If either part is missing or empty
        """
        if not isinstance(host_string, str):
            raise InvalidHostSpec(repr(host_string))
        user, at, host = host_string.rpartition("@")
        if not at or not user or not host:
            raise InvalidHostSpec(host_string)
        return cls(user=user, host=host)

    def __str__(self) -> str:
        return f"{self.user}@{self.host}"


def parse_host_list(host_list: Iterable[str]) -> List[HostSpec]:
    """Parse every entry of a host list, failing on the first malformed one."""
    return [HostSpec.parse(host_string) for host_string in host_list]
