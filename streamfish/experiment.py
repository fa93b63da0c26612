"""Targets, mapping configurations and adaptive sampling decisions."""

from __future__ import annotations

import enum
import re
from dataclasses import dataclass, field
from os import PathLike
from pathlib import Path
from typing import Iterable

from streamfish.errors import TargetBoundsError, TargetFormatError

_I32_MIN = -(2**31)
_I32_MAX = 2**31 - 1
_INTEGER = re.compile(r"[+-]?[0-9]+")


def _parse_i32(text: str, original: str) -> int:
    if not _INTEGER.fullmatch(text):
        raise TargetBoundsError(original)
    value = int(text)
    if not _I32_MIN <= value <= _I32_MAX:
        raise TargetBoundsError(original)
    return value


class Decision(enum.IntEnum):
    """Action sent back for a read."""

    PROCEED = 0
    STOP_DATA = 1
    UNBLOCK = 2


@dataclass(frozen=True)
class Mapping:
    """A single alignment of a read against the reference."""

    target_name: str | None
    target_start: int = 0
    target_end: int = 0
    match_len: int = 0


@dataclass(frozen=True)
class DynamicTarget:
    """Target description exchanged with the dynamic feedback service."""

    reference: str
    start: int | None = None
    end: int | None = None
    name: str | None = None
    alignment_index: str | None = None
    channel_start: int | None = None
    channel_end: int | None = None


@dataclass(frozen=True)
class Target:
    """A reference sequence, optionally restricted to a region, to target."""

    reference: str
    start: int | None = None
    end: int | None = None
    name: str | None = None

    @classmethod
    def from_line(cls, line: str) -> Target:
        """Parse a whitespace separated line: ``ref`` or ``ref start end name``.

        A range of ``0 0`` targets the whole reference.
        """
        parts = line.split()
        if len(parts) == 1:
            return cls(parts[0])
        if len(parts) == 4:
            reference, start_text, end_text, name = parts
            start = _parse_i32(start_text, line)
            end = _parse_i32(end_text, line)
            if start == 0 and end == 0:
                return cls(reference, None, None, name)
            return cls(reference, start, end, name)
        raise TargetFormatError(line)

    @classmethod
    def from_config_string(cls, value: str) -> Target:
        """Parse a configuration string: ``ref`` or ``ref::start::end::name``."""
        parts = value.split("::")
        if len(parts) == 1:
            return cls(parts[0])
        if len(parts) == 4:
            reference, start_text, end_text, name = parts
            return cls(
                reference,
                _parse_i32(start_text, value),
                _parse_i32(end_text, value),
                name,
            )
        raise TargetFormatError(value)

    def to_dynamic_target(self) -> DynamicTarget:
        return DynamicTarget(
            reference=self.reference, start=self.start, end=self.end, name=self.name
        )

    @classmethod
    def from_dynamic_target(cls, dynamic_target: DynamicTarget) -> Target:
        return cls(
            dynamic_target.reference,
            dynamic_target.start,
            dynamic_target.end,
            dynamic_target.name,
        )

    def _covers(self, start: int, end: int) -> bool:
        if self.start is None or self.end is None:
            return True
        return (
            self.start <= start <= self.end
            or self.start <= end <= self.end
            or (start <= self.start and end >= self.end)
        )


def read_target_file(path: str | PathLike[str]) -> list[Target]:
    """Read one target per line; an unreadable file yields no targets."""
    try:
        handle = open(path, "rb")
    except OSError:
        return []
    targets = []
    with handle:
        for raw in handle:
            raw = raw.removesuffix(b"\n").removesuffix(b"\r")
            try:
                line = raw.decode("utf-8")
            except UnicodeDecodeError:
                continue
            targets.append(Target.from_line(line))
    return targets


class MappingFlags(enum.Enum):
    """SAM flag groups used to classify alignments."""

    MULTI = "multi"
    SINGLE = "single"
    NONE = "none"

    def sam(self) -> list[int]:
        return {
            MappingFlags.MULTI: [256, 257, 272],
            MappingFlags.SINGLE: [0, 1, 16],
            MappingFlags.NONE: [4],
        }[self]


@dataclass
class DecisionConfig:
    """The decision taken for alignments carrying one of ``flags``."""

    decision: Decision
    flags: list[int]


def _decisions(flags: MappingFlags, decision: Decision) -> DecisionConfig:
    return DecisionConfig(decision, flags.sam())


@dataclass
class MappingConfig:
    """Decisions for each class of alignment outcome."""

    targets: list[Target]
    target_all: bool
    multi_on: DecisionConfig
    multi_off: DecisionConfig
    single_on: DecisionConfig
    single_off: DecisionConfig
    no_map: DecisionConfig
    no_seq: DecisionConfig
    min_match_len: int = 0

    @classmethod
    def _build(
        cls,
        targets: Iterable[Target],
        target_all: bool,
        min_match_len: int,
        on: Decision,
        off: Decision,
    ) -> MappingConfig:
        return cls(
            targets=list(targets),
            target_all=target_all,
            multi_on=_decisions(MappingFlags.MULTI, on),
            multi_off=_decisions(MappingFlags.MULTI, off),
            single_on=_decisions(MappingFlags.SINGLE, on),
            single_off=_decisions(MappingFlags.SINGLE, off),
            no_map=_decisions(MappingFlags.NONE, Decision.PROCEED),
            no_seq=_decisions(MappingFlags.NONE, Decision.PROCEED),
            min_match_len=min_match_len,
        )

    @classmethod
    def host_depletion(cls, targets: Iterable[Target], min_match_len: int) -> MappingConfig:
        """Unblock reads mapping to the host targets, keep everything else."""
        targets = list(targets)
        return cls._build(
            targets, not targets, min_match_len, Decision.UNBLOCK, Decision.PROCEED
        )

    @classmethod
    def targeted_sequencing(
        cls, targets: Iterable[Target], min_match_len: int
    ) -> MappingConfig:
        """Keep reads mapping to the targets, unblock reads mapping elsewhere."""
        targets = list(targets)
        return cls._build(
            targets, not targets, min_match_len, Decision.STOP_DATA, Decision.UNBLOCK
        )

    @classmethod
    def unknown_sequences(cls, min_match_len: int) -> MappingConfig:
        """Unblock every mapped read, keep reads that do not map."""
        return cls._build([], True, min_match_len, Decision.UNBLOCK, Decision.UNBLOCK)

    def _target_named(self, tid: str) -> bool:
        return self.target_all or any(t.reference == tid for t in self.targets)

    def decision_from_sam(self, flag: int, tid: str) -> Decision:
        """Decision for a single SAM record flag and target sequence name."""
        mapped = self._target_named(tid)
        if flag in self.multi_on.flags and mapped:
            return self.multi_on.decision
        if flag in self.multi_off.flags and not mapped:
            return self.multi_off.decision
        if flag in self.single_on.flags and mapped:
            return self.single_on.decision
        if flag in self.single_off.flags and not mapped:
            return self.single_off.decision
        return self.no_map.decision

    def _hits_target(self, mapping: Mapping) -> bool:
        tid = mapping.target_name
        if tid is None:
            return False
        return any(
            target.reference.startswith(tid)
            and target._covers(mapping.target_start, mapping.target_end)
            for target in self.targets
        )

    def decision_from_mapping(self, mappings: Iterable[Mapping]) -> Decision:
        """Decision for the alignments of a read."""
        if self.min_match_len != 0:
            kept = [m for m in mappings if m.match_len >= self.min_match_len]
        else:
            kept = list(mappings)
        if not kept:
            return self.no_map.decision
        mapped = self.target_all or any(self._hits_target(m) for m in kept)
        many = len(kept) > 1
        if mapped:
            return (self.multi_on if many else self.single_on).decision
        return (self.multi_off if many else self.single_off).decision


class ExperimentKind(enum.Enum):
    """Preset experiment types for mapping mode."""

    HOST_DEPLETION = "host_depletion"
    TARGETED_SEQUENCING = "targeted_sequencing"
    UNKNOWN_SEQUENCES = "unknown_sequences"


@dataclass
class Experiment:
    """A configured mapping experiment."""

    kind: ExperimentKind
    mapping_config: MappingConfig = field(repr=False)

    @classmethod
    def default(cls) -> Experiment:
        return cls(ExperimentKind.HOST_DEPLETION, MappingConfig.host_depletion([], 0))


def build_experiment(
    mode: str, kind: str | ExperimentKind, targets: Iterable[Target], min_match_len: int
) -> Experiment:
    """Build the experiment for a mode and type as named in the configuration."""
    if mode != "mapping":
        raise ValueError(f"Experiment mode not supported: {mode}")
    try:
        kind = ExperimentKind(kind)
    except ValueError:
        raise ValueError(f"Experiment type not supported for mapping mode: {kind}") from None
    if kind is ExperimentKind.HOST_DEPLETION:
        mapping = MappingConfig.host_depletion(targets, min_match_len)
    elif kind is ExperimentKind.TARGETED_SEQUENCING:
        mapping = MappingConfig.targeted_sequencing(targets, min_match_len)
    else:
        mapping = MappingConfig.unknown_sequences(min_match_len)
    return Experiment(kind, mapping)