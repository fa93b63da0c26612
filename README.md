# streamfish

Streamfish is the configuration and decision layer of a streaming adaptive
sampling setup for nanopore sequencing. It reads the TOML configuration of a
run, builds the experiment preset (host depletion, targeted sequencing or
unknown sequences), turns read alignments into sequencing decisions, prepares
the argument lists for the basecaller client and server, splits a flow cell
into channel slices, proposes new targets for a running experiment, and
watches an output directory for new run folders.

## Installation

```
pip install .
```

To run the test suite:

```
pip install ".[test]"
pytest
```

Python 3.11 or later is required; there are no third-party dependencies.

## Configuration

A run is described by one TOML file with the tables `meta`, `debug`,
`minknow`, `icarust`, `basecaller`, `dori`, `dynamic`, `readuntil` and
`experiment`. Load it with `streamfish.config.StreamfishConfig`:

```python
from pathlib import Path
from streamfish.config import StreamfishConfig

config = StreamfishConfig.from_toml(Path("streamfish.toml"), None)
mapping = config.experiment.experiment.mapping_config
```

`StreamfishConfig.from_dict` builds the same dataclasses from already parsed
data without deriving anything. `from_toml` does more than parse:

- `STREAMFISH_MINKNOW_HOST` in the environment replaces `minknow.host`;
- `experiment.config` may point to a separate TOML file that replaces the
  whole `experiment` table;
- `experiment.target_file` may name a file of targets, one per line;
- the experiment preset is built from `experiment.mode` (only `mapping`)
  and `experiment.type`;
- `StreamfishConfig.configure` derives the `readuntil.unblock_all_*`
  switches from `readuntil.unblock_all_mode` and builds the argument lists
  `basecaller.client.args` and `basecaller.server.args`. With the
  `minimap2-rs` classifier the reference must be an existing `.mmi` file,
  and only the `guppy` basecaller is accepted.

Command-line style overrides are passed as a `StreamfishConfigArgs` in place
of `None`: control mode, dynamic mode, debug mapping, Icarust output
directory, prefix and simulation, reference, basecaller model and server
path, a separate experiment file, and a data seed (0 picks a random one).
A configuration can be written out with `StreamfishConfig.to_json(path)`.

Problems with the file, its syntax, its targets or its settings raise
`StreamfishConfigError` or one of its subclasses from `streamfish.errors`:
`ConfigFileError`, `ConfigParseError`, `TargetFormatError`,
`TargetBoundsError` and `TargetFileNotFoundError`. All of them derive from
`StreamfishError`.

### Targets

In the configuration, a target is either a sequence name or
`name::start::end::label`. In a target file each line is whitespace
separated, either a sequence name alone or `name start end label`; a range
of `0 0` targets the whole sequence.

```python
from streamfish.experiment import Target, read_target_file

target = Target.from_line("chr1 1000 5000 region_a")
same_kind = Target.from_config_string("chr1::1000::5000::region_a")
targets = read_target_file("targets.txt")
```

## Decisions

`streamfish.experiment.MappingConfig` holds, for each experiment preset, the
`Decision` (`PROCEED`, `STOP_DATA` or `UNBLOCK`) taken when a read maps once
or several times, inside or outside the targets, or not at all:

```python
from streamfish.experiment import Mapping, MappingConfig, Target

config = MappingConfig.targeted_sequencing([Target.from_line("chr1")], 0)
decision = config.decision_from_mapping(
    [Mapping(target_name="chr1", target_start=100, target_end=600, match_len=450)]
)
```

With a non-zero `min_match_len`, shorter alignments are ignored before
deciding. `decision_from_sam(flag, tid)` decides from a single SAM flag and
sequence name instead. `build_experiment(mode, kind, targets, min_match_len)`
returns an `Experiment` holding the preset's `MappingConfig`.

## Slices

A slice-and-dice file splits the channels of one device between several
clients, each with its own socket path and basecaller address:

```python
from streamfish.slices import SliceDiceConfig

slices = SliceDiceConfig.from_toml(Path("slices.toml"))
per_slice = slices.get_configs(config)
```

Each returned configuration is a reconfigured copy of the base one.

## Dynamic feedback

`streamfish.dynamic.DynamicFeedbackService` takes a configuration and, from
an iterable of `DynamicFeedbackRequest`, yields a `DynamicFeedbackResponse`
for every data request, holding the configured `dynamic.test_targets` that
the request does not already carry. Initiation requests get no response.

## Watching for runs

`streamfish.watcher.watch_production(watch_path, interval, timeout,
timeout_interval, stop)` polls a directory until the `threading.Event`
`stop` is set. Each new folder directly below it is handed to a background
thread, which waits with `watch_event_timeout` until the folder has not
changed for `timeout` seconds and then runs
`streamfish.launcher.WorkflowLauncher.validate_inputs` on it. The function
returns the threads it started. `snapshot` and `created_paths` expose the
polling itself.

## Basecaller input and logging

`streamfish.signal.get_basecall_client_input` turns a read's raw
little-endian 16-bit signal and its calibration into the single text line
the basecaller client reads on standard input. `streamfish.signal.init_logger`
installs a coloured console handler on the root logger.

## What this package does not do

- It installs no command; everything is used from Python.
- It runs no RPC servers and no read-until client: there is no connection
  to the sequencing control software, no basecaller process management and
  no aligner. `Mapping` records must come from an aligner of your choice.
- `WorkflowLauncher.validate_inputs` does not yet check anything on disk;
  none of its checks pass, so it always raises `WorkflowLauncherError`, and
  no workflow is launched after validation.
- There are no evaluation tools for simulated community runs.