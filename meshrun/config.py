"""
Configuration management for meshrun.
Provides dataclasses and utilities for pool, transport, output and logging
settings, loaded from and saved to YAML.
"""

import os
import yaml
from dataclasses import dataclass, field
from typing import List, Dict, Optional, Union

from .errors import ConfigError, InvalidHostSpec
from .hosts import HostSpec
from .output import DEFAULT_COLORS, DEFAULT_STREAM_COLORS, OutputMode

# Author: Vamsi


DEFAULT_CONCURRENCY = 10
UNLIMITED = "unlimited"


@dataclass
class SSHConfig:
    """Transport settings used when a session is opened."""
    port: int = 22
    password: str = ""
    key_file: str = ""
    timeout: int = 30
    banner_timeout: int = 240
    auth_timeout: int = 60
    use_ssh_config: bool = True
    ssh_config_file: str = "~/.ssh/config"
    strict_host_key_checking: bool = False
    known_hosts_file: str = "~/.ssh/known_hosts"
    poll_interval: float = 0.01
    window_size: int = 32768
    encoding: str = "utf-8"

    def __post_init__(self):
        self.expand_paths()

    def expand_paths(self):
        """Expand user paths (~) of the key, known_hosts and ssh_config files."""
        if self.key_file:
            self.key_file = os.path.expanduser(self.key_file)
        if self.known_hosts_file:
            self.known_hosts_file = os.path.expanduser(self.known_hosts_file)
        if self.ssh_config_file:
            self.ssh_config_file = os.path.expanduser(self.ssh_config_file)


@dataclass
class OutputConfig:
    """Pretty-output settings."""
    color: bool = True
    colors: Dict[str, int] = field(default_factory=lambda: dict(DEFAULT_COLORS))
    stream_colors: Dict[str, str] = field(default_factory=lambda: dict(DEFAULT_STREAM_COLORS))


@dataclass
class Config:
    """Main configuration class for meshrun."""

    # Targets, each of the form user@host
    hosts: List[str] = field(default_factory=list)

    # Pool settings
    concurrency: Union[int, str] = DEFAULT_CONCURRENCY
    serial: bool = False
    batch_size: Optional[int] = None

    # Execution settings
    output: str = "pretty"
    continue_on_failure: bool = False

    # Logging configuration
    log_level: str = "info"
    log_file: str = "logs/meshrun.log"
    log_format: str = "json"

    ssh: SSHConfig = field(default_factory=SSHConfig)
    output_settings: OutputConfig = field(default_factory=OutputConfig)

    def __post_init__(self):
        """Post-initialization processing."""
        self._expand_paths()
        self._validate()

    def _expand_paths(self):
        """Expand user paths in configuration."""
        self.ssh.expand_paths()

    def _validate(self):
        """Validate configuration settings."""
        for host in self.hosts:
            try:
                HostSpec.parse(host)
            except InvalidHostSpec as e:
                raise ConfigError(str(e))

        if self.concurrency != UNLIMITED:
            if isinstance(self.concurrency, bool) or not isinstance(self.concurrency, int) \
                    or self.concurrency < 1:
                raise ConfigError(
                    f"concurrency must be a positive integer or '{UNLIMITED}', got {self.concurrency!r}"
                )

        if self.batch_size is not None:
            if isinstance(self.batch_size, bool) or not isinstance(self.batch_size, int) \
                    or self.batch_size < 1:
                raise ConfigError(f"batch_size must be a positive integer, got {self.batch_size!r}")

        try:
            OutputMode.parse(self.output)
        except ValueError as e:
            raise ConfigError(str(e))

        if self.ssh.key_file and not os.path.exists(self.ssh.key_file):
            raise ConfigError(f"Key file not found: {self.ssh.key_file}")

        if not 1 <= self.ssh.port <= 65535:
            raise ConfigError(f"ssh.port must be between 1 and 65535, got {self.ssh.port}")

        if self.ssh.timeout <= 0:
            raise ConfigError("ssh.timeout must be positive")

        if self.ssh.poll_interval <= 0:
            raise ConfigError("ssh.poll_interval must be positive")

        for stream, color in self.output_settings.stream_colors.items():
            if color not in self.output_settings.colors:
                raise ConfigError(f"Unknown color {color!r} for stream {stream}")

    @classmethod
    def from_dict(cls, data: Dict) -> 'Config':
        """
        Build a configuration from a plain dictionary.

        :param data: Parsed configuration data
        :return: Config instance
        """
        data = dict(data or {})
        ssh_config = SSHConfig(**(data.pop('ssh', None) or {}))
        output_config = OutputConfig(**(data.pop('output_settings', None) or {}))
        unknown = set(data) - set(cls.__dataclass_fields__)
        if unknown:
            raise ConfigError(f"Unknown configuration keys: {', '.join(sorted(unknown))}")
        return cls(ssh=ssh_config, output_settings=output_config, **data)

    @classmethod
    def load(cls, filename: str) -> 'Config':
        """
        Load configuration from a YAML (.yaml/.yml) file.

        :param filename: Path to configuration file
        :return: Config instance
        :raises FileNotFoundError: If config file doesn't exist
        :raises ConfigError: If the file is not valid YAML or holds invalid values
        """
        if not os.path.exists(filename):
            raise FileNotFoundError(f"Configuration file not found: {filename}")
        ext = os.path.splitext(filename)[1].lower()
        if ext not in ['.yaml', '.yml']:
            raise ConfigError(f"Unsupported config file extension: {ext}")
        try:
            with open(filename, 'r', encoding='utf-8') as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in configuration file: {e}")
        if data is not None and not isinstance(data, dict):
            raise ConfigError(f"Configuration file must hold a mapping: {filename}")
        try:
            return cls.from_dict(data)
        except TypeError as e:
            raise ConfigError(f"Invalid configuration in {filename}: {e}")

    def to_dict(self) -> Dict:
        """Plain-data view of the configuration, as written by save()."""
        return {
            'hosts': list(self.hosts),
            'concurrency': self.concurrency,
            'serial': self.serial,
            'batch_size': self.batch_size,
            'output': self.output,
            'continue_on_failure': self.continue_on_failure,
            'log_level': self.log_level,
            'log_file': self.log_file,
            'log_format': self.log_format,
            'ssh': {
                'port': self.ssh.port,
                'password': self.ssh.password,
                'key_file': self.ssh.key_file,
                'timeout': self.ssh.timeout,
                'banner_timeout': self.ssh.banner_timeout,
                'auth_timeout': self.ssh.auth_timeout,
                'use_ssh_config': self.ssh.use_ssh_config,
                'ssh_config_file': self.ssh.ssh_config_file,
                'strict_host_key_checking': self.ssh.strict_host_key_checking,
                'known_hosts_file': self.ssh.known_hosts_file,
                'poll_interval': self.ssh.poll_interval,
                'window_size': self.ssh.window_size,
                'encoding': self.ssh.encoding,
            },
            'output_settings': {
                'color': self.output_settings.color,
                'colors': dict(self.output_settings.colors),
                'stream_colors': dict(self.output_settings.stream_colors),
            },
        }

    def save(self, filename: str) -> None:
        """
        Save configuration to YAML file.

        :param filename: Path to save configuration file
        """
        directory = os.path.dirname(filename)
        if directory:
            os.makedirs(directory, exist_ok=True)

        with open(filename, 'w', encoding='utf-8') as f:
            yaml.safe_dump(self.to_dict(), f, default_flow_style=False, indent=2, sort_keys=False)

    def merge_cli_args(self, **kwargs) -> None:
        """
        Merge command-line arguments into configuration.

        :param **kwargs: Command-line arguments to merge
        """
        if kwargs.get('hosts'):
            hosts = kwargs['hosts']
            self.hosts = [h.strip() for h in hosts.split(',') if h.strip()] if isinstance(hosts, str) else list(hosts)

        if kwargs.get('concurrency') is not None:
            self.concurrency = kwargs['concurrency']

        if kwargs.get('unlimited'):
            self.concurrency = UNLIMITED

        if kwargs.get('serial'):
            self.serial = True

        if kwargs.get('batch_size') is not None:
            self.batch_size = kwargs['batch_size']

        if kwargs.get('output'):
            self.output = kwargs['output']

        if kwargs.get('continue_on_failure'):
            self.continue_on_failure = True

        if kwargs.get('key_file'):
            self.ssh.key_file = kwargs['key_file']

        if kwargs.get('password'):
            self.ssh.password = kwargs['password']

        if kwargs.get('port') is not None:
            self.ssh.port = kwargs['port']

        if kwargs.get('timeout') is not None:
            self.ssh.timeout = kwargs['timeout']

        # Re-validate after merging
        self._expand_paths()
        self._validate()

    def to_pool_options(self):
        """Pool options described by this configuration."""
        from .pool import PoolOptions
        return PoolOptions(concurrency=self.concurrency, serial=self.serial, batch_size=self.batch_size)

    def to_execution_options(self):
        """Execution options described by this configuration."""
        from .connection import ExecutionOptions
        return ExecutionOptions(output=OutputMode.parse(self.output),
                                continue_on_failure=self.continue_on_failure)
