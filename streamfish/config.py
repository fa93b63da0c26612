"""Run configuration: loading, command-line overrides and derived settings."""

import copy
import enum
import json
import logging
import math
import os
import random
import struct
import tomllib
import types
import typing
from dataclasses import dataclass, field, fields, is_dataclass
from decimal import Decimal
from os import PathLike
from pathlib import Path
from typing import Any

from streamfish.errors import (
    ConfigFileError,
    ConfigParseError,
    StreamfishConfigError,
    TargetFileNotFoundError,
)
from streamfish.experiment import (
    Experiment,
    ExperimentKind,
    Target,
    build_experiment,
    read_target_file,
)

logger = logging.getLogger(__name__)

MINKNOW_HOST_ENV = "STREAMFISH_MINKNOW_HOST"
RAW_DATA_UNCALIBRATED = "uncalibrated"

_SKIP_LOAD = {"skip_load": True}
_SKIP_ALL = {"skip_load": True, "skip_dump": True}

_EXPERIMENT_VARIANTS = {
    ExperimentKind.HOST_DEPLETION: "HostDepletion",
    ExperimentKind.TARGETED_SEQUENCING: "TargetedSequencing",
    ExperimentKind.UNKNOWN_SEQUENCES: "UnknownSequences",
}


class ServerType(enum.Enum):
    """Which RPC service a server process runs."""

    ADAPTIVE = "adaptive"
    DYNAMIC = "dynamic"


class UnblockAll(enum.Enum):
    """Stage of the pipeline at which every read is unblocked, for testing."""

    CLIENT = "client"
    SERVER = "server"
    BASECALLER = "basecaller"
    MAPPER = "mapper"

    def flags(self) -> tuple[bool, bool, bool, bool]:
        """The (client, server, basecaller, mapper) switches for this stage."""
        order = (
            UnblockAll.CLIENT,
            UnblockAll.SERVER,
            UnblockAll.BASECALLER,
            UnblockAll.MAPPER,
        )
        client, server, basecaller, mapper = (stage is self for stage in order)
        return client, server, basecaller, mapper


class Basecaller(enum.Enum):
    DORADO = "dorado"
    GUPPY = "guppy"


class Classifier(enum.Enum):
    MINIMAP2 = "minimap2-rs"
    KRAKEN2 = "kraken2"


@dataclass
class StreamfishConfigArgs:
    """Command-line values that override the configuration file."""

    control: bool = False
    dynamic: bool = False
    debug_mapping: bool = False
    outdir: Path | None = None
    prefix: str | None = None
    simulation: Path | None = None
    reference: Path | None = None
    basecaller_model: str | None = None
    basecaller_server: Path | None = None
    experiment_config: Path | None = None
    seed: int = 0


@dataclass
class MetaConfig:
    name: str
    version: str
    description: str
    client_name: str
    server_name: str


@dataclass
class DebugConfig:
    cache: bool
    mapping: bool


@dataclass
class MinknowConfig:
    port: int
    host: str
    token: str
    certificate: Path


@dataclass
class IcarustConfig:
    enabled: bool
    data_seed: int
    manager_port: int
    position_port: int
    config: Path
    outdir: Path | None
    prefix: str | None
    simulation: Path | None
    deplete: bool
    launch: bool
    delay: int
    runtime: int
    task_delay: int
    log_actions: bool
    sample_rate: int = field(default=0, metadata=_SKIP_LOAD)


@dataclass
class DoriAdaptiveConfig:
    tcp_enabled: bool
    tcp_port: int
    tcp_host: str
    uds_path: Path
    uds_override: bool
    minknow_host: str
    minknow_port: int
    classifier: Classifier
    basecaller: Basecaller
    stderr_log: Path


@dataclass
class DoriDynamicConfig:
    tcp_enabled: bool
    tcp_port: int
    tcp_host: str
    uds_path: Path
    uds_override: bool


@dataclass
class DoriConfig:
    adaptive: DoriAdaptiveConfig
    dynamic: DoriDynamicConfig


@dataclass
class DynamicConfig:
    enabled: bool
    launch_server: bool
    interval_seconds: int
    cache_capacity: int
    test_targets: list[Target]


@dataclass
class ReadUntilConfig:
    init_delay: int
    device_name: str
    channels: int
    channel_start: int
    channel_end: int
    dori_tcp_host: str
    dori_tcp_port: int
    unblock_all: bool
    unblock_all_mode: str
    unblock_all_chunk_file: Path
    read_cache: bool
    read_cache_ttl: int
    read_cache_tti: int
    read_cache_max_capacity: int
    read_cache_min_chunks: int
    read_cache_max_chunks: int
    action_throttle: int
    latency_log: Path | None
    unblock_duration: float
    sample_minimum_chunk_size: int
    accepted_first_chunk_classifications: list[int]
    launch_dori_server: bool
    launch_basecall_server: bool
    unblock_all_client: bool = field(default=False, metadata=_SKIP_LOAD)
    unblock_all_server: bool = field(default=False, metadata=_SKIP_LOAD)
    unblock_all_basecaller: bool = field(default=False, metadata=_SKIP_LOAD)
    unblock_all_mapper: bool = field(default=False, metadata=_SKIP_LOAD)
    raw_data_type: str = field(default=RAW_DATA_UNCALIBRATED, metadata=_SKIP_ALL)


@dataclass
class BasecallerClientConfig:
    path: Path
    script: Path
    address: str
    config: str
    throttle: float
    threads: int
    max_reads_queued: int
    args: list[str] = field(default_factory=list, metadata=_SKIP_LOAD)


@dataclass
class BasecallerServerConfig:
    path: Path
    port: str
    config: str
    num_callers: int
    chunks_per_runner: int
    gpu_runners_per_device: int
    chunk_size: int
    threads: int
    device: str
    log_path: Path
    stderr_log: Path
    args: list[str] = field(default_factory=list, metadata=_SKIP_LOAD)


@dataclass
class BasecallerConfig:
    client: BasecallerClientConfig
    server: BasecallerServerConfig


@dataclass
class ExperimentConfig:
    config: Path | None
    control: bool
    mode: str
    kind: str = field(metadata={"key": "type"})
    targets: list[Target]
    target_file: str
    min_match_len: int
    reference: Path
    experiment: Experiment = field(default_factory=Experiment.default, metadata=_SKIP_LOAD)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ExperimentConfig":
        """Build the experiment section from parsed TOML data."""
        return _load(cls, data, "experiment")

    def configure(self) -> None:
        """Build the mapping experiment that the mode and type select."""
        self.experiment = build_experiment(
            self.mode, self.kind, self.targets, self.min_match_len
        )


@dataclass
class StreamfishConfig:
    meta: MetaConfig
    debug: DebugConfig
    minknow: MinknowConfig
    icarust: IcarustConfig
    basecaller: BasecallerConfig
    dori: DoriConfig
    dynamic: DynamicConfig
    readuntil: ReadUntilConfig
    experiment: ExperimentConfig

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "StreamfishConfig":
        """Build a configuration from parsed TOML data, without derived settings."""
        return _load(cls, data, "")

    @classmethod
    def from_toml(
        cls, path: str | PathLike[str], args: StreamfishConfigArgs | None = None
    ) -> "StreamfishConfig":
        """Load, override and configure a run from a TOML file."""
        config = cls.from_dict(_read_toml(path))

        if args is not None:
            config.experiment.config = args.experiment_config
            logger.info(
                "Experiment config path was set to >> %s << from the command-line",
                config.experiment.config,
            )
            if args.basecaller_server is not None:
                config.basecaller.server.path = Path(args.basecaller_server)

        config.minknow.host = os.environ.get(MINKNOW_HOST_ENV, config.minknow.host)
        config.readuntil.raw_data_type = RAW_DATA_UNCALIBRATED

        if config.experiment.config is not None:
            config.experiment = ExperimentConfig.from_dict(
                _read_toml(config.experiment.config)
            )

        if config.experiment.target_file:
            target_file = Path(config.experiment.target_file)
            if not target_file.exists():
                raise TargetFileNotFoundError(str(target_file))
            config.experiment.targets = read_target_file(target_file)
            logger.info("Loaded targets from file: %s", config.experiment.targets)

        config.experiment.configure()
        config.configure()

        if args is not None:
            config.dynamic.enabled = args.dynamic
            config.experiment.control = args.control
            config.icarust.outdir = args.outdir
            if args.reference is not None:
                config.experiment.reference = Path(args.reference)
            config.icarust.data_seed = (
                args.seed if args.seed > 0 else random.getrandbits(64)
            )
            config.debug.mapping = args.debug_mapping
            config.icarust.prefix = args.prefix
            config.icarust.simulation = args.simulation
            if args.basecaller_model is not None:
                config.basecaller.client.config = args.basecaller_model
                config.basecaller.server.config = f"{args.basecaller_model}.cfg"
            logger.info("Command-line arguments override: %s", args)

        return config

    def configure(self) -> None:
        """Derive unblock switches and basecaller arguments; validate the reference."""
        readuntil = self.readuntil
        if readuntil.unblock_all:
            try:
                stage = UnblockAll(readuntil.unblock_all_mode)
            except ValueError:
                raise StreamfishConfigError(
                    f"Unblock all setting `{readuntil.unblock_all_mode}` is not supported"
                ) from None
            switches = stage.flags()
        else:
            switches = (False, False, False, False)
        (
            readuntil.unblock_all_client,
            readuntil.unblock_all_server,
            readuntil.unblock_all_basecaller,
            readuntil.unblock_all_mapper,
        ) = switches

        adaptive = self.dori.adaptive
        reference = Path(self.experiment.reference)
        if adaptive.classifier is Classifier.MINIMAP2:
            if reference.suffix != ".mmi":
                raise StreamfishConfigError(
                    "Minimap2 reference must be an index file ending with: .mmi"
                )
            if not reference.exists():
                raise StreamfishConfigError(
                    f"Minimap2 reference does not exist at: {reference}"
                )

        if adaptive.basecaller is not Basecaller.GUPPY or adaptive.classifier not in (
            Classifier.MINIMAP2,
            Classifier.KRAKEN2,
        ):
            raise StreamfishConfigError("Classifier configuration not supported")

        client = self.basecaller.client
        client.args = (
            f"{client.script} --address {client.address} --config {client.config} "
            f"--throttle {_format_f32(client.throttle)} "
            f"--max-reads-queued {client.max_reads_queued} --threads {client.threads}"
        ).split()

        server = self.basecaller.server
        server.args = (
            f"--log_path {server.log_path} --port {server.port} --config {server.config} "
            f"--ipc_threads {server.threads} --device {server.device} "
            f"--gpu_runners_per_device {server.gpu_runners_per_device} "
            f"--num_callers {server.num_callers} "
            f"--chunks_per_runner {server.chunks_per_runner} "
            f"--chunk_size {server.chunk_size}"
        ).split()

    def to_json(self, path: str | PathLike[str]) -> None:
        """Write the configuration as JSON."""
        with open(path, "w", encoding="utf-8") as handle:
            json.dump(_to_json(self), handle)

    def copy(self) -> "StreamfishConfig":
        """An independent deep copy of this configuration."""
        return copy.deepcopy(self)


def _read_toml(path: str | PathLike[str]) -> dict[str, Any]:
    try:
        text = Path(path).read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as err:
        raise ConfigFileError(err) from err
    try:
        return tomllib.loads(text)
    except tomllib.TOMLDecodeError as err:
        raise ConfigParseError(err) from err


def _is_optional(hint: Any) -> bool:
    origin = typing.get_origin(hint)
    return origin in (types.UnionType, typing.Union) and type(None) in typing.get_args(
        hint
    )


def _load(cls: type, data: Any, where: str) -> Any:
    if not isinstance(data, dict):
        raise ConfigParseError(f"expected a table at `{where or 'root'}`")
    values = {}
    for item in fields(cls):
        if item.metadata.get("skip_load"):
            continue
        key = item.metadata.get("key", item.name)
        hint = item.type
        location = f"{where}.{key}" if where else key
        if key not in data:
            if _is_optional(hint):
                values[item.name] = None
                continue
            raise ConfigParseError(f"missing field `{location}`")
        values[item.name] = _convert(hint, data[key], location)
    return cls(**values)


def _convert(hint: Any, value: Any, location: str) -> Any:
    origin = typing.get_origin(hint)
    if origin in (types.UnionType, typing.Union):
        inner = [arg for arg in typing.get_args(hint) if arg is not type(None)]
        return _convert(inner[0], value, location)
    if origin is list:
        if not isinstance(value, list):
            raise ConfigParseError(f"expected an array at `{location}`")
        (item_hint,) = typing.get_args(hint)
        return [
            _convert(item_hint, item, f"{location}[{position}]")
            for position, item in enumerate(value)
        ]
    if hint is Target:
        if not isinstance(value, str):
            raise ConfigParseError(f"expected a target string at `{location}`")
        try:
            return Target.from_config_string(value)
        except StreamfishConfigError as err:
            raise ConfigParseError(err) from err
    if is_dataclass(hint):
        return _load(hint, value, location)
    if isinstance(hint, type) and issubclass(hint, enum.Enum):
        try:
            return hint(value)
        except ValueError:
            raise ConfigParseError(f"unsupported value {value!r} at `{location}`") from None
    if hint is bool:
        if isinstance(value, bool):
            return value
    elif hint is int:
        if isinstance(value, int) and not isinstance(value, bool):
            return value
    elif hint is float:
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return float(value)
    elif hint is str:
        if isinstance(value, str):
            return value
    elif hint is Path:
        if isinstance(value, str):
            return Path(value)
    raise ConfigParseError(f"invalid type for `{location}`: {value!r}")


def _to_json(value: Any) -> Any:
    if isinstance(value, Experiment):
        return {
            "MappingExperiment": {
                _EXPERIMENT_VARIANTS[value.kind]: _to_json(value.mapping_config)
            }
        }
    if is_dataclass(value) and not isinstance(value, type):
        return {
            item.metadata.get("key", item.name): _to_json(getattr(value, item.name))
            for item in fields(value)
            if not item.metadata.get("skip_dump")
        }
    if isinstance(value, enum.Enum):
        return value.value
    if isinstance(value, Path):
        return str(value)
    if isinstance(value, (list, tuple)):
        return [_to_json(item) for item in value]
    return value


def _f32(value: float) -> float:
    return struct.unpack("<f", struct.pack("<f", value))[0]


def _format_f32(value: float) -> str:
    """Shortest decimal text that reads back as the same 32-bit float."""
    single = _f32(value)
    if math.isnan(single):
        return "NaN"
    if math.isinf(single):
        return "inf" if single > 0 else "-inf"
    text = repr(single)
    for precision in range(1, 18):
        candidate = f"{single:.{precision}g}"
        if _f32(float(candidate)) == single:
            text = candidate
            break
    plain = format(Decimal(text), "f")
    if "." in plain:
        plain = plain.rstrip("0").rstrip(".")
    return plain