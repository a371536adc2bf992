import pytest
import yaml

from meshrun import Config, ConfigError, ExecutionOptions, PoolOptions, UNLIMITED
from meshrun.config import OutputConfig, SSHConfig
from meshrun.output import OutputMode


def write_yaml(path, data):
    path.write_text(yaml.safe_dump(data))
    return str(path)


def test_defaults():
    cfg = Config()
    assert cfg.hosts == []
    assert cfg.concurrency == 10
    assert not cfg.serial
    assert cfg.batch_size is None
    assert cfg.output == "pretty"
    assert cfg.ssh.port == 22
    assert cfg.output_settings.stream_colors == {'stdout': 'green', 'stderr': 'red'}


def test_load_yaml(tmp_path):
    filename = write_yaml(tmp_path / "meshrun.yaml", {
        'hosts': ['root@a', 'admin@b'],
        'concurrency': 'unlimited',
        'batch_size': 5,
        'output': 'capture',
        'ssh': {'port': 2222, 'timeout': 5},
        'output_settings': {'color': False},
    })
    cfg = Config.load(filename)
    assert cfg.hosts == ['root@a', 'admin@b']
    assert cfg.concurrency == UNLIMITED
    assert cfg.batch_size == 5
    assert cfg.ssh.port == 2222
    assert cfg.ssh.timeout == 5
    assert cfg.output_settings.color is False


def test_save_and_load_round_trip(tmp_path):
    cfg = Config(hosts=['root@a'], serial=True, continue_on_failure=True)
    filename = str(tmp_path / "nested" / "out.yaml")
    cfg.save(filename)
    loaded = Config.load(filename)
    assert loaded.to_dict() == cfg.to_dict()


def test_load_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        Config.load(str(tmp_path / "missing.yaml"))


def test_load_rejects_other_extensions(tmp_path):
    path = tmp_path / "meshrun.ini"
    path.write_text("[main]\n")
    with pytest.raises(ConfigError):
        Config.load(str(path))


def test_load_rejects_invalid_yaml(tmp_path):
    path = tmp_path / "bad.yaml"
    path.write_text("hosts: [unclosed\n")
    with pytest.raises(ConfigError):
        Config.load(str(path))


def test_load_rejects_unknown_keys(tmp_path):
    filename = write_yaml(tmp_path / "c.yaml", {'hosts': [], 'threads': 4})
    with pytest.raises(ConfigError, match="threads"):
        Config.load(filename)


def test_load_rejects_unknown_nested_keys(tmp_path):
    filename = write_yaml(tmp_path / "c.yaml", {'ssh': {'jumphost': 'x'}})
    with pytest.raises(ConfigError):
        Config.load(filename)


def test_empty_yaml_gives_defaults(tmp_path):
    path = tmp_path / "empty.yaml"
    path.write_text("")
    assert Config.load(str(path)).to_dict() == Config().to_dict()


@pytest.mark.parametrize("values", [
    {'hosts': ['noatsign']},
    {'concurrency': 0},
    {'concurrency': 'many'},
    {'batch_size': -1},
    {'output': 'loud'},
])
def test_validation_errors(values):
    with pytest.raises(ConfigError):
        Config(**values)


def test_missing_key_file_is_rejected():
    with pytest.raises(ConfigError, match="Key file"):
        Config(ssh=SSHConfig(key_file='/definitely/not/here'))


def test_unknown_stream_color_is_rejected():
    with pytest.raises(ConfigError):
        Config(output_settings=OutputConfig(stream_colors={'stdout': 'plaid', 'stderr': 'red'}))


def test_merge_cli_args():
    cfg = Config()
    cfg.merge_cli_args(hosts="root@a, root@b", concurrency=3, batch_size=2, output="raw",
                       continue_on_failure=True, port=2200)
    assert cfg.hosts == ['root@a', 'root@b']
    assert cfg.concurrency == 3
    assert cfg.batch_size == 2
    assert cfg.output == "raw"
    assert cfg.continue_on_failure
    assert cfg.ssh.port == 2200


def test_merge_unlimited_overrides_concurrency():
    cfg = Config()
    cfg.merge_cli_args(concurrency=4, unlimited=True)
    assert cfg.concurrency == UNLIMITED


def test_merge_revalidates():
    cfg = Config()
    with pytest.raises(ConfigError):
        cfg.merge_cli_args(hosts="root@a,broken")


def test_bridges_to_core_options():
    cfg = Config(concurrency=4, batch_size=2, output="capture", continue_on_failure=True)
    assert cfg.to_pool_options() == PoolOptions(concurrency=4, batch_size=2)
    assert cfg.to_execution_options() == ExecutionOptions(output=OutputMode.CAPTURE, continue_on_failure=True)


@pytest.mark.parametrize("values", [
    {'concurrency': 0},
    {'batch_size': 0},
    {'port': 0},
    {'timeout': 0},
])
def test_merge_rejects_zero_values(values):
    cfg = Config()
    with pytest.raises(ConfigError):
        cfg.merge_cli_args(**values)


def test_ssh_settings_expand_home_paths(monkeypatch, tmp_path):
    monkeypatch.setenv("HOME", str(tmp_path))
    settings = SSHConfig()
    assert settings.ssh_config_file == str(tmp_path / ".ssh" / "config")
    assert settings.known_hosts_file == str(tmp_path / ".ssh" / "known_hosts")
