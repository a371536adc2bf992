"""
Output routing for remote command streams.

Each chunk a host produces is either captured into its result, written as is
to the local stdout/stderr, or printed line by line with a colored stream tag
and the host name. Pretty output is written under an output guard so that two
hosts printing at the same time never share a printed block.
"""

import sys
import threading
from contextlib import contextmanager
from enum import Enum
from typing import Dict, Optional

# Author: Vamsi


DEFAULT_COLORS: Dict[str, int] = {
    'red': 1,
    'green': 2,
    'yellow': 3,
    'blue': 4,
    'magenta': 5,
    'cyan': 6,
    'white': 7,
    'default': 8,
}

DEFAULT_STREAM_COLORS: Dict[str, str] = {
    'stdout': 'green',
    'stderr': 'red',
}

STREAM_TAGS = {
    'stdout': 'out',
    'stderr': 'err',
}


class OutputMode(Enum):
    """How a connection routes the output of a command."""
    PRETTY = "pretty"
    RAW = "raw"
    CAPTURE = "capture"

    @classmethod
    def parse(cls, value) -> 'OutputMode':
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            choices = ", ".join(mode.value for mode in cls)
            raise ValueError(f"Unknown output mode {value!r} (expected one of: {choices})")


class OutputGuard:
    """Mutual exclusion around a single printed block."""

    @contextmanager
    def exclusive(self):
        raise NotImplementedError

    def with_exclusive_access(self, action):
        with self.exclusive():
            return action()


class LockGuard(OutputGuard):
    """Guard backed by a real lock, shared by concurrent workers."""

    def __init__(self):
        self._lock = threading.Lock()

    @contextmanager
    def exclusive(self):
        with self._lock:
            yield


class NullGuard(OutputGuard):
    """Guard for contexts with a single writer."""

    @contextmanager
    def exclusive(self):
        yield


NULL_GUARD = NullGuard()


def color_string(string: str, color: str, colors: Optional[Dict[str, int]] = None) -> str:
    """
    Wrap a string in an ANSI bold color sequence.

    :param string: Text to color
    :param color: Color name from the color table
    :param colors: Color table mapping names to ANSI color offsets
    :return: Colored string
    """
    table = colors if colors is not None else DEFAULT_COLORS
    return f"\033[01;{table[color] + 30}m{string}\033[m"


class OutputAggregator:
    """Routes output chunks according to an output mode."""

    def __init__(self, mode: OutputMode = OutputMode.PRETTY, colors: Optional[Dict[str, int]] = None,
                 stream_colors: Optional[Dict[str, str]] = None, color: bool = True):
        """
        Initialize the aggregator.

        :param mode: Output mode
        :param colors: Color table (name -> ANSI offset)
        :param stream_colors: Color name per stream
        :param color: Disable to print plain stream tags
        """
        self.mode = OutputMode.parse(mode)
        self.colors = dict(colors) if colors is not None else dict(DEFAULT_COLORS)
        self.stream_colors = dict(stream_colors) if stream_colors is not None else dict(DEFAULT_STREAM_COLORS)
        self.color = color

    def stream_tag(self, stream: str) -> str:
        tag = STREAM_TAGS[stream]
        if not self.color:
            return tag
        return color_string(tag, self.stream_colors[stream], self.colors)

    def format_lines(self, stream: str, host: str, data: str) -> str:
        """
        Prefix every line of a chunk with the stream tag and host.

        :param stream: 'stdout' or 'stderr'
        :param host: Host identifier
        :param data: Chunk of output
        :return: Tagged lines joined with newlines
        """
        tag = self.stream_tag(stream)
        lines = data.split("\n")
        # trailing newline(s) of the chunk are not lines of their own
        while lines and not lines[-1]:
            lines.pop()
        return "\n".join(f"[{tag}|{host}] {line}" for line in lines)

    def route(self, stream: str, data: str, host: str, result, guard: OutputGuard = NULL_GUARD):
        """
        Route one chunk.

        :param stream: 'stdout' or 'stderr'
        :param data: Decoded chunk
        :param host: Host identifier used in pretty mode
        :param result: ExecutionResult receiving captured chunks
        :param guard: Output guard for pretty mode
        """
        if self.mode is OutputMode.CAPTURE:
            getattr(result, stream).append(data)
        elif self.mode is OutputMode.RAW:
            out = sys.stdout if stream == 'stdout' else sys.stderr
            out.write(data)
            out.flush()
        else:
            lines = self.format_lines(stream, host, data)
            if not lines:
                return
            with guard.exclusive():
                sys.stdout.write(lines + "\n")
                sys.stdout.flush()
