"""
Shared fixtures: an in-memory transport standing in for SSH.

Commands understood by the fake channel are ';'-separated steps:
  echo TEXT       stdout TEXT plus newline
  err TEXT        stderr TEXT plus newline
  sleep SECONDS   pause before the next step
  exit N          end with exit status N
  signal NAME|N   end with an exit signal
  noexit          end without any exit event
"""

import shlex
import threading
import time

import pytest

from meshrun import Config, ConnectionPool, StructuredLogger
from meshrun.errors import TransportError
from meshrun.session import ChannelEvent, EXIT_SIGNAL, EXIT_STATUS, STDERR, STDOUT


class FakeChannel:

    def __init__(self, session):
        self.session = session
        self.command = None
        self.closed = False

    def exec(self, command):
        self.command = command
        self.session.transport.record("exec", self.session.host, command)
        return not self.session.transport.reject_exec

    def events(self):
        exit_event = ChannelEvent(EXIT_STATUS, 0)
        for step in self.command.split(";"):
            step = step.strip()
            if not step:
                continue
            verb, _, rest = step.partition(" ")
            if verb == "echo":
                yield ChannelEvent(STDOUT, " ".join(shlex.split(rest)) + "\n")
            elif verb == "err":
                yield ChannelEvent(STDERR, " ".join(shlex.split(rest)) + "\n")
            elif verb == "sleep":
                time.sleep(float(rest))
            elif verb == "exit":
                exit_event = ChannelEvent(EXIT_STATUS, int(rest))
                break
            elif verb == "signal":
                exit_event = ChannelEvent(EXIT_SIGNAL, int(rest) if rest.isdigit() else rest)
                break
            elif verb == "noexit":
                exit_event = None
                break
            else:
                raise AssertionError(f"fake channel does not understand {step!r}")
        if exit_event is not None:
            yield exit_event

    def close(self):
        self.closed = True


class FakeSession:

    def __init__(self, transport, host, user, settings):
        self.transport = transport
        self.host = host
        self.user = user
        self.settings = settings
        self.closed = False
        self.channels = []

    def open_channel(self):
        if self.transport.reject_channel:
            raise TransportError(f"channel refused by {self.host}")
        channel = FakeChannel(self)
        self.channels.append(channel)
        return channel

    def close(self):
        self.closed = True
        self.transport.record("close", self.host)


class FakeTransport:
    """Session factory recording every session it opens."""

    def __init__(self):
        self.sessions = []
        self.events = []
        self.reject_channel = False
        self.reject_exec = False
        self.lock = threading.Lock()

    def __call__(self, host, user, settings):
        session = FakeSession(self, host, user, settings)
        with self.lock:
            self.sessions.append(session)
        self.record("open", host)
        return session

    def record(self, kind, host, *details):
        with self.lock:
            self.events.append((kind, host) + details)

    def opened(self, host=None):
        return [s for s in self.sessions if host is None or s.host == host]


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def quiet_logger():
    return StructuredLogger.quiet(level="debug")


@pytest.fixture
def make_pool(transport, quiet_logger):
    def factory(hosts=(), **config_values):
        config_values.setdefault("log_file", "")
        config = Config(**config_values)
        return ConnectionPool(hosts, config=config, logger=quiet_logger, session_factory=transport)
    return factory
