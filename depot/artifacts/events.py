"""Step events emitted by the artifact service.

The service reports every major step (and every tolerated failure) through a
sink callable instead of logging inline. The default sink writes to the module
logger; tests and deployments can swap it with ``set_event_sink``.
"""
from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from typing import Any, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)

# Steps whose occurrence means something was tolerated rather than done.
DEGRADED_STEPS = frozenset(
    {
        "icon_upload_failed",
        "icon_skipped",
        "already_removed",
        "stale_object_delete_failed",
        "blob_delete_failed",
        "orphaned_objects",
        "catalog_delete_retry",
    }
)

# A catalog record may still point at deleted blobs.
CRITICAL_STEPS = frozenset({"dangling_reference"})


@dataclass
class ArtifactEvent:
    action: str
    step: str
    artifact_id: Optional[str] = None
    keys: List[str] = field(default_factory=list)
    error: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)

    @property
    def degraded(self) -> bool:
        return self.step in DEGRADED_STEPS or self.step in CRITICAL_STEPS

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


EventSink = Callable[[ArtifactEvent], None]


def log_event(event: ArtifactEvent) -> None:
    if event.step in CRITICAL_STEPS:
        level = logging.ERROR
    elif event.degraded:
        level = logging.WARNING
    else:
        level = logging.INFO
    logger.log(level, "artifact.%s.%s", event.action, event.step, extra={"artifact_event": event.to_dict()})


_event_sink: EventSink = log_event


def set_event_sink(sink: EventSink) -> None:
    global _event_sink
    _event_sink = sink


def get_event_sink() -> EventSink:
    return _event_sink


class RecordingSink:
    """Collects events in memory."""

    def __init__(self) -> None:
        self.events: List[ArtifactEvent] = []

    def __call__(self, event: ArtifactEvent) -> None:
        self.events.append(event)

    def steps(self, action: Optional[str] = None) -> List[str]:
        return [e.step for e in self.events if action is None or e.action == action]
