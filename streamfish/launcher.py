"""Input validation and workflow launching for production runs."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from os import PathLike
from pathlib import Path

from streamfish.errors import StreamfishError


class WorkflowLauncherError(StreamfishError):
    """A workflow could not be prepared or its inputs failed validation."""

    FILE_IO = "failed to read file"
    INPUT_VALIDATION_FAILED = "failed input validation"
    FASTQ_DIRECTORY_NOT_FOUND = "failed to detect fastq sub-directory"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    @classmethod
    def path_base_name(cls, path: str) -> WorkflowLauncherError:
        return cls(f"failed to parse base name of: {path}")


@dataclass
class InputValidationCheck:
    """Outcome of one input check."""

    passed: bool = False
    checked: bool = False
    error_message: str = ""


@dataclass
class InputValidation:
    """All checks applied to a run's input directory."""

    sample_sheet_detected: InputValidationCheck = field(
        default_factory=InputValidationCheck
    )
    fastq_subdir_detected: InputValidationCheck = field(
        default_factory=InputValidationCheck
    )
    sample_sheet_parsed: InputValidationCheck = field(
        default_factory=InputValidationCheck
    )
    sample_sheet_not_empty: InputValidationCheck = field(
        default_factory=InputValidationCheck
    )

    def passed(self) -> bool:
        """True only when every check passed."""
        return (
            self.sample_sheet_detected.passed
            and self.fastq_subdir_detected.passed
            and self.sample_sheet_parsed.passed
            and self.sample_sheet_not_empty.passed
        )


def _run_id(input_path: Path) -> str:
    name = input_path.name
    if not name or name == "..":
        raise WorkflowLauncherError.path_base_name(str(input_path))
    try:
        name.encode("utf-8")
    except UnicodeEncodeError:
        raise WorkflowLauncherError.path_base_name(str(input_path)) from None
    return name


class WorkflowLauncher:
    """Prepares a workflow run for an input directory named by its run identifier."""

    def __init__(
        self, base_path: str | PathLike[str], input_path: str | PathLike[str]
    ) -> None:
        self.base_path = Path(base_path)
        self.input_path = Path(input_path)
        self.run_id = _run_id(self.input_path)
        self.launch_id = uuid.uuid4()

    def validate_inputs(self) -> None:
        """Check the sample sheet and read files; raise if any check fails."""
        validation = InputValidation()
        _sample_sheet = (self.input_path / self.run_id).with_suffix(".csv")
        validation.sample_sheet_detected.checked = True
        if not validation.passed():
            raise WorkflowLauncherError(WorkflowLauncherError.INPUT_VALIDATION_FAILED)