"""Slice-and-dice configuration: one adaptive sampling client per channel range."""

from __future__ import annotations

import copy
import tomllib
from dataclasses import dataclass, field
from os import PathLike
from pathlib import Path
from typing import Any

from streamfish.config import StreamfishConfig
from streamfish.errors import ConfigFileError, ConfigParseError


def _require(data: dict[str, Any], key: str, kind: type, where: str) -> Any:
    location = f"{where}.{key}" if where else key
    if key not in data:
        raise ConfigParseError(f"missing field `{location}`")
    value = data[key]
    if kind is int:
        valid = isinstance(value, int) and not isinstance(value, bool)
    else:
        valid = isinstance(value, kind)
    if not valid:
        raise ConfigParseError(f"invalid type for `{location}`: {value!r}")
    return value


def _flag(value: bool) -> str:
    return "true" if value else "false"


@dataclass
class SliceConfig:
    """Settings for one slice of the flow cell channels."""

    client_name: str
    channel_start: int
    channel_end: int
    dori_adaptive_uds_path: Path
    basecaller_server_port: str
    basecaller_client_address: str

    @classmethod
    def _from_dict(cls, data: Any, where: str) -> SliceConfig:
        if not isinstance(data, dict):
            raise ConfigParseError(f"expected a table at `{where}`")
        return cls(
            client_name=_require(data, "client_name", str, where),
            channel_start=_require(data, "channel_start", int, where),
            channel_end=_require(data, "channel_end", int, where),
            dori_adaptive_uds_path=Path(
                _require(data, "dori_adaptive_uds_path", str, where)
            ),
            basecaller_server_port=_require(data, "basecaller_server_port", str, where),
            basecaller_client_address=_require(
                data, "basecaller_client_address", str, where
            ),
        )

    def __str__(self) -> str:
        return (
            f"{self.client_name}: start={self.channel_start} end={self.channel_end} "
            f"dori={self.dori_adaptive_uds_path} "
            f"basecaller_client={self.basecaller_client_address}"
        )


@dataclass
class SliceDiceConfig:
    """Channel count, server launch switches and the slices to run."""

    channels: int
    launch_dori_server: bool
    launch_basecall_server: bool
    slices: list[SliceConfig] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SliceDiceConfig:
        """Build the configuration from parsed TOML data."""
        if not isinstance(data, dict):
            raise ConfigParseError("expected a table at `root`")
        raw_slices = _require(data, "slice", list, "")
        return cls(
            channels=_require(data, "channels", int, ""),
            launch_dori_server=_require(data, "launch_dori_server", bool, ""),
            launch_basecall_server=_require(data, "launch_basecall_server", bool, ""),
            slices=[
                SliceConfig._from_dict(item, f"slice[{position}]")
                for position, item in enumerate(raw_slices)
            ],
        )

    @classmethod
    def from_toml(cls, path: str | PathLike[str]) -> SliceDiceConfig:
        """Load the configuration from a TOML file."""
        try:
            text = Path(path).read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as err:
            raise ConfigFileError(err) from err
        try:
            data = tomllib.loads(text)
        except tomllib.TOMLDecodeError as err:
            raise ConfigParseError(err) from err
        return cls.from_dict(data)

    def get_configs(self, config: StreamfishConfig) -> list[StreamfishConfig]:
        """One reconfigured copy of ``config`` per slice."""
        configs = []
        for item in self.slices:
            sliced = copy.deepcopy(config)
            sliced.meta.client_name = item.client_name
            sliced.readuntil.launch_dori_server = self.launch_dori_server
            sliced.readuntil.launch_basecall_server = self.launch_basecall_server
            sliced.readuntil.channels = self.channels
            sliced.readuntil.channel_start = item.channel_start
            sliced.readuntil.channel_end = item.channel_end
            sliced.dori.adaptive.uds_path = item.dori_adaptive_uds_path
            sliced.basecaller.server.port = item.basecaller_server_port
            sliced.basecaller.client.address = item.basecaller_client_address
            sliced.configure()
            configs.append(sliced)
        return configs

    def __str__(self) -> str:
        return (
            f"SliceDice: channels={self.channels} slices={len(self.slices)} "
            f"launch_dori={_flag(self.launch_dori_server)} "
            f"launch_basecaller={_flag(self.launch_basecall_server)}"
        )