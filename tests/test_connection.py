import pytest

from meshrun import (
    ChannelRejected, CommandFailed, ExecutionOptions, HostConnection, HostSpec, OutputConfig
)
from meshrun.connection import signal_name
from meshrun.errors import ConnectionFailed
from meshrun.output import LockGuard, NullGuard, OutputMode

CAPTURE = ExecutionOptions(output="capture")


@pytest.fixture
def connection(transport, quiet_logger):
    return HostConnection(HostSpec.parse("root@web1"), session_factory=transport, logger=quiet_logger,
                          output_config=OutputConfig(color=False))


def test_connection_starts_disconnected(connection, transport):
    assert not connection.connected
    assert connection.user == "root"
    assert connection.host == "web1"
    assert transport.sessions == []


def test_capture_returns_output_and_exit_code(connection):
    result = connection.run("echo x", CAPTURE)
    assert result.exit_code == 0
    assert result.exit_signal is None
    assert result.stdout == ["x\n"]
    assert result.stderr == []
    assert result.output == "x\n"
    assert result.success


def test_capture_keeps_streams_apart(connection):
    result = connection.run("echo out; err problem", output="capture")
    assert result.output == "out\n"
    assert result.error == "problem\n"


def test_session_is_opened_lazily_and_reused(connection, transport):
    connection.run("echo a", CAPTURE)
    connection.run("echo b", CAPTURE)
    assert len(transport.sessions) == 1
    assert len(transport.sessions[0].channels) == 2
    assert all(channel.closed for channel in transport.sessions[0].channels)


def test_session_gets_host_user_and_settings(connection, transport):
    connection.run("echo a", CAPTURE)
    session = transport.sessions[0]
    assert (session.host, session.user) == ("web1", "root")
    assert session.settings is connection.settings


def test_non_zero_exit_raises_command_failed(connection):
    with pytest.raises(CommandFailed) as excinfo:
        connection.run("exit 3", CAPTURE)
    error = excinfo.value
    assert (error.host, error.command, error.exit_code) == ("web1", "exit 3", 3)
    assert "exit code 3" in str(error)


def test_continue_on_failure_records_exit_code(connection):
    result = connection.run("exit 123", output="capture", continue_on_failure=True)
    assert result.exit_code == 123
    assert not result.success


def test_signal_raises_command_failed(connection):
    with pytest.raises(CommandFailed) as excinfo:
        connection.run("signal KILL", CAPTURE)
    assert excinfo.value.signal == "KILL"
    assert excinfo.value.exit_code is None


def test_signal_number_is_resolved_to_name(connection):
    result = connection.run("signal 15", ExecutionOptions(output="capture", continue_on_failure=True))
    assert result.exit_signal == "TERM"
    assert result.exit_code is None


def test_signal_name_helper():
    assert signal_name(9) == "KILL"
    assert signal_name("HUP") == "HUP"
    assert signal_name(999) == "999"
    assert signal_name(None) == "unknown"


def test_missing_exit_event_is_a_failure_even_when_continuing(connection):
    with pytest.raises(CommandFailed, match="without an exit status"):
        connection.run("echo a; noexit", output="capture", continue_on_failure=True)


def test_rejected_channel_fails_before_output(connection, transport, capsys):
    transport.reject_channel = True
    with pytest.raises(ChannelRejected) as excinfo:
        connection.run("echo never")
    assert isinstance(excinfo.value, CommandFailed)
    assert excinfo.value.host == "web1"
    assert capsys.readouterr().out == ""


def test_rejected_exec_fails_and_closes_channel(connection, transport, capsys):
    transport.reject_exec = True
    with pytest.raises(ChannelRejected):
        connection.run("echo never")
    assert transport.sessions[0].channels[0].closed
    assert capsys.readouterr().out == ""


def test_raw_mode_never_buffers(connection, capsys):
    for _ in range(3):
        result = connection.run("echo raw; err rawerr", output="raw")
        assert result.stdout is None
        assert result.stderr is None
    captured = capsys.readouterr()
    assert captured.out == "raw\n" * 3
    assert captured.err == "rawerr\n" * 3


def test_pretty_mode_is_default(connection, capsys):
    result = connection.run("echo hello; err warn")
    assert result.stdout is None
    out = capsys.readouterr().out
    assert "[out|web1] hello\n" in out
    assert "[err|web1] warn\n" in out


def test_default_options_come_from_connection(transport, quiet_logger):
    connection = HostConnection(HostSpec.parse("root@a"), session_factory=transport, logger=quiet_logger,
                                default_options=ExecutionOptions(output=OutputMode.CAPTURE,
                                                                 continue_on_failure=True))
    result = connection.run("exit 2")
    assert result.exit_code == 2
    assert result.stdout == []


def test_unknown_run_option_is_rejected(connection):
    with pytest.raises(TypeError):
        connection.run("echo a", colour=True)


def test_guarded_binds_and_restores_guard(connection):
    guard = LockGuard()
    with connection.guarded(guard):
        assert connection.output_guard is guard
    assert isinstance(connection.output_guard, NullGuard)


def test_disconnect_closes_and_allows_reopen(connection, transport):
    connection.run("echo a", CAPTURE)
    connection.disconnect()
    assert not connection.connected
    assert transport.sessions[0].closed
    connection.run("echo b", CAPTURE)
    assert len(transport.sessions) == 2


def test_disconnect_without_session_is_a_no_op(connection):
    connection.disconnect()
    connection.disconnect()
    assert not connection.connected


def test_connection_failure_propagates(quiet_logger):
    def refuse(host, user, settings):
        raise ConnectionFailed(f"{user}@{host}", "connection refused")

    connection = HostConnection(HostSpec.parse("root@down"), session_factory=refuse, logger=quiet_logger)
    with pytest.raises(ConnectionFailed):
        connection.run("echo a")
    assert not connection.connected
    assert connection.metrics()['connection_failures'] == 1


def test_metrics_count_commands(connection):
    connection.run("echo a", CAPTURE)
    connection.run("exit 1", output="capture", continue_on_failure=True)
    metrics = connection.metrics()
    assert metrics['commands_executed'] == 2
    assert metrics['successful_commands'] == 1
    assert metrics['failed_commands'] == 1
    assert metrics['success_rate'] == 50.0


def test_result_to_dict(connection):
    data = connection.run("echo a", CAPTURE).to_dict()
    assert data['host'] == "web1"
    assert data['output'] == "a\n"
    assert data['success'] is True
