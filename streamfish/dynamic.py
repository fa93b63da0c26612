"""Dynamic feedback service that proposes new targets for a running experiment."""

from __future__ import annotations

import copy
import enum
import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, Iterator

from streamfish.experiment import DynamicTarget

logger = logging.getLogger(__name__)


class DynamicRequestType(enum.IntEnum):
    INIT = 0
    DATA = 1


@dataclass
class DynamicFeedbackRequest:
    """A request carrying the client's current targets and recent read identifiers."""

    request: DynamicRequestType
    targets: list[DynamicTarget] = field(default_factory=list)
    reads: list[str] = field(default_factory=list)


@dataclass
class DynamicFeedbackResponse:
    """Targets the client should switch to."""

    targets: list[DynamicTarget] = field(default_factory=list)


class DynamicFeedbackService:
    """Answers each data request with the configured test targets not yet in use."""

    def __init__(self, config: Any) -> None:
        self._config = copy.deepcopy(config)

    def respond(
        self, requests: Iterable[DynamicFeedbackRequest]
    ) -> Iterator[DynamicFeedbackResponse]:
        """Yield one response per data request; initiation requests get none."""
        logger.info("Starting dynamic request stream handler")
        for request in requests:
            if request.request == DynamicRequestType.INIT:
                logger.info("Received initiation request on dynamic test endpoint")
                continue
            test_targets = [
                target.to_dynamic_target() for target in self._config.dynamic.test_targets
            ]
            yield DynamicFeedbackResponse(
                [target for target in test_targets if target not in request.targets]
            )