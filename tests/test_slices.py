from pathlib import Path

import pytest

from streamfish.config import StreamfishConfig
from streamfish.errors import ConfigFileError, ConfigParseError
from streamfish.slices import SliceConfig, SliceDiceConfig


def _config_data() -> dict:
    return {
        "meta": {
            "name": "streamfish",
            "version": "0.1.0",
            "description": "adaptive sampling",
            "client_name": "base-client",
            "server_name": "base-server",
        },
        "debug": {"cache": False, "mapping": False},
        "minknow": {
            "port": 9502,
            "host": "localhost",
            "token": "token",
            "certificate": "/tmp/cert.pem",
        },
        "icarust": {
            "enabled": False,
            "data_seed": 1,
            "manager_port": 10000,
            "position_port": 10001,
            "config": "/tmp/icarust.toml",
            "deplete": True,
            "launch": False,
            "delay": 0,
            "runtime": 0,
            "task_delay": 0,
            "log_actions": False,
        },
        "basecaller": {
            "client": {
                "path": "/usr/bin/python",
                "script": "/opt/client.py",
                "address": "ipc:///tmp/base",
                "config": "dna_model",
                "throttle": 0.01,
                "threads": 1,
                "max_reads_queued": 100,
            },
            "server": {
                "path": "/opt/basecall_server",
                "port": "/tmp/base",
                "config": "dna_model.cfg",
                "num_callers": 1,
                "chunks_per_runner": 48,
                "gpu_runners_per_device": 4,
                "chunk_size": 1000,
                "threads": 1,
                "device": "cuda:0",
                "log_path": "/tmp/logs",
                "stderr_log": "/tmp/server.err",
            },
        },
        "dori": {
            "adaptive": {
                "tcp_enabled": False,
                "tcp_port": 10002,
                "tcp_host": "0.0.0.0",
                "uds_path": "/tmp/dori/base.sock",
                "uds_override": True,
                "minknow_host": "localhost",
                "minknow_port": 9502,
                "classifier": "kraken2",
                "basecaller": "guppy",
                "stderr_log": "/tmp/dori.err",
            },
            "dynamic": {
                "tcp_enabled": False,
                "tcp_port": 10003,
                "tcp_host": "0.0.0.0",
                "uds_path": "/tmp/dori/dynamic.sock",
                "uds_override": True,
            },
        },
        "dynamic": {
            "enabled": False,
            "launch_server": False,
            "interval_seconds": 10,
            "cache_capacity": 100,
            "test_targets": [],
        },
        "readuntil": {
            "init_delay": 0,
            "device_name": "MS00000",
            "channels": 128,
            "channel_start": 1,
            "channel_end": 128,
            "dori_tcp_host": "localhost",
            "dori_tcp_port": 10002,
            "unblock_all": False,
            "unblock_all_mode": "client",
            "unblock_all_chunk_file": "/tmp/chunks.txt",
            "read_cache": True,
            "read_cache_ttl": 10,
            "read_cache_tti": 10,
            "read_cache_max_capacity": 1000,
            "read_cache_min_chunks": 1,
            "read_cache_max_chunks": 10,
            "action_throttle": 0,
            "unblock_duration": 0.1,
            "sample_minimum_chunk_size": 200,
            "accepted_first_chunk_classifications": [83, 65],
            "launch_dori_server": False,
            "launch_basecall_server": False,
        },
        "experiment": {
            "control": False,
            "mode": "mapping",
            "type": "host_depletion",
            "targets": [],
            "target_file": "",
            "min_match_len": 0,
            "reference": "/tmp/reference.k2d",
        },
    }


def _base_config() -> StreamfishConfig:
    config = StreamfishConfig.from_dict(_config_data())
    config.experiment.configure()
    config.configure()
    return config


def _slice_data() -> dict:
    return {
        "channels": 512,
        "launch_dori_server": True,
        "launch_basecall_server": False,
        "slice": [
            {
                "client_name": "slice-one",
                "channel_start": 1,
                "channel_end": 256,
                "dori_adaptive_uds_path": "/tmp/dori/one.sock",
                "basecaller_server_port": "/tmp/one",
                "basecaller_client_address": "ipc:///tmp/one",
            },
            {
                "client_name": "slice-two",
                "channel_start": 257,
                "channel_end": 512,
                "dori_adaptive_uds_path": "/tmp/dori/two.sock",
                "basecaller_server_port": "/tmp/two",
                "basecaller_client_address": "ipc:///tmp/two",
            },
        ],
    }


SLICE_TOML = """
channels = 512
launch_dori_server = true
launch_basecall_server = false

[[slice]]
client_name = "slice-one"
channel_start = 1
channel_end = 256
dori_adaptive_uds_path = "/tmp/dori/one.sock"
basecaller_server_port = "/tmp/one"
basecaller_client_address = "ipc:///tmp/one"
"""


def test_from_dict_reads_every_slice():
    slices = SliceDiceConfig.from_dict(_slice_data())
    assert slices.channels == 512
    assert slices.launch_dori_server is True
    assert slices.launch_basecall_server is False
    assert [s.client_name for s in slices.slices] == ["slice-one", "slice-two"]
    assert slices.slices[1].dori_adaptive_uds_path == Path("/tmp/dori/two.sock")


def test_from_toml_matches_from_dict(tmp_path):
    path = tmp_path / "slices.toml"
    path.write_text(SLICE_TOML, encoding="utf-8")
    loaded = SliceDiceConfig.from_toml(path)
    data = _slice_data()
    data["slice"] = data["slice"][:1]
    assert loaded == SliceDiceConfig.from_dict(data)


def test_from_toml_missing_file(tmp_path):
    with pytest.raises(ConfigFileError):
        SliceDiceConfig.from_toml(tmp_path / "absent.toml")


def test_from_toml_invalid_syntax(tmp_path):
    path = tmp_path / "bad.toml"
    path.write_text("channels = = 3", encoding="utf-8")
    with pytest.raises(ConfigParseError):
        SliceDiceConfig.from_toml(path)


def test_missing_slice_field_is_parse_error():
    data = _slice_data()
    del data["slice"][0]["basecaller_server_port"]
    with pytest.raises(ConfigParseError):
        SliceDiceConfig.from_dict(data)


def test_wrong_type_is_parse_error():
    data = _slice_data()
    data["channels"] = "many"
    with pytest.raises(ConfigParseError):
        SliceDiceConfig.from_dict(data)


def test_get_configs_applies_slice_settings():
    base = _base_config()
    slices = SliceDiceConfig.from_dict(_slice_data())
    configs = slices.get_configs(base)
    assert len(configs) == len(slices.slices)
    for sliced, item in zip(configs, slices.slices):
        assert sliced.meta.client_name == item.client_name
        assert sliced.readuntil.channels == slices.channels
        assert sliced.readuntil.channel_start == item.channel_start
        assert sliced.readuntil.channel_end == item.channel_end
        assert sliced.readuntil.launch_dori_server is True
        assert sliced.readuntil.launch_basecall_server is False
        assert sliced.dori.adaptive.uds_path == item.dori_adaptive_uds_path
        assert sliced.basecaller.server.port == item.basecaller_server_port
        assert sliced.basecaller.client.address == item.basecaller_client_address


def test_get_configs_rebuilds_basecaller_arguments():
    base = _base_config()
    slices = SliceDiceConfig.from_dict(_slice_data())
    for sliced, item in zip(slices.get_configs(base), slices.slices):
        server_args = sliced.basecaller.server.args
        port_at = server_args.index("--port")
        assert server_args[port_at + 1] == item.basecaller_server_port
        client_args = sliced.basecaller.client.args
        address_at = client_args.index("--address")
        assert client_args[address_at + 1] == item.basecaller_client_address


def test_get_configs_leaves_base_untouched():
    base = _base_config()
    SliceDiceConfig.from_dict(_slice_data()).get_configs(base)
    assert base.meta.client_name == "base-client"
    assert base.readuntil.channels == 128
    assert base.basecaller.server.port == "/tmp/base"
    assert "ipc:///tmp/base" in base.basecaller.client.args


def test_no_slices_gives_no_configs():
    data = _slice_data()
    data["slice"] = []
    assert SliceDiceConfig.from_dict(data).get_configs(_base_config()) == []


def test_display_formats():
    slices = SliceDiceConfig.from_dict(_slice_data())
    assert str(slices) == (
        "SliceDice: channels=512 slices=2 launch_dori=true launch_basecaller=false"
    )
    item = SliceConfig(
        "slice-one", 1, 256, Path("/tmp/dori/one.sock"), "/tmp/one", "ipc:///tmp/one"
    )
    assert str(item) == (
        "slice-one: start=1 end=256 dori=/tmp/dori/one.sock "
        "basecaller_client=ipc:///tmp/one"
    )