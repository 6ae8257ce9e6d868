"""
Trace Events Module
===================
In-memory event model and Perfetto / Chrome trace-event JSON serializer.

Each reconciled syscall becomes one TraceEvent record; the collection of
records is written as a `{"traceEvents": [...]}` document that
https://ui.perfetto.dev/ and chrome://tracing open directly.
"""

import json
import logging
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Optional, Union
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)


class TraceSerializationError(RuntimeError):
    """Events could not be encoded as JSON."""


class TraceWriteError(OSError):
    """The encoded document could not be written to its destination."""


class Phase(Enum):
    """Trace-event phase markers used by this tool."""
    COMPLETE = "X"
    BEGIN = "B"
    INSTANT = "i"
    METADATA = "M"


@dataclass
class EventArgs:
    """Payload carried in the `args` object of a record."""
    first: str = ""
    second: str = ""
    return_value: str = ""
    name: str = ""

    def to_dict(self) -> Dict[str, str]:
        data = {
            'first': self.first,
            'second': self.second,
            'returnValue': self.return_value,
            'name': self.name,
        }
        return {k: v for k, v in data.items() if v}

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> 'EventArgs':
        data = data or {}
        return cls(
            first=data.get('first', ''),
            second=data.get('second', ''),
            return_value=data.get('returnValue', ''),
            name=data.get('name', '')
        )


@dataclass
class TraceEvent:
    """One timeline record."""
    name: str
    ph: str
    pid: int
    tid: int
    ts: int = 0
    dur: int = 0
    cat: str = ""
    args: EventArgs = field(default_factory=EventArgs)

    def __repr__(self):
        return f"TraceEvent(name={self.name}, ph={self.ph}, tid={self.tid}, ts={self.ts}, dur={self.dur})"

    @property
    def key(self) -> tuple:
        """Pending-table key: (thread id, syscall name)."""
        return (self.tid, self.name)

    def to_dict(self) -> Dict[str, Any]:
        """Convert event to a trace-event record, omitting empty optional fields."""
        result = {
            'name': self.name,
            'ph': self.ph,
            'pid': self.pid,
            'tid': self.tid,
            'ts': self.ts,
        }
        if self.cat:
            result['cat'] = self.cat
        if self.dur:
            result['dur'] = self.dur
        result['args'] = self.args.to_dict()
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'TraceEvent':
        """Create TraceEvent from a trace-event record."""
        for field_name in ('name', 'ph', 'pid', 'tid'):
            if field_name not in data:
                raise ValueError(f"Missing required field: {field_name}")

        return cls(
            name=data['name'],
            ph=data['ph'],
            pid=int(data['pid']),
            tid=int(data['tid']),
            ts=int(data.get('ts', 0)),
            dur=int(data.get('dur', 0)),
            cat=data.get('cat', ''),
            args=EventArgs.from_dict(data.get('args'))
        )

    @classmethod
    def thread_name(cls, pid: int, tid: int, name: str) -> 'TraceEvent':
        """Build a metadata record naming a thread."""
        return cls(
            name='thread_name',
            ph=Phase.METADATA.value,
            pid=pid,
            tid=tid,
            args=EventArgs(name=name)
        )


class TraceEventCollection:
    """Ordered sequence of events, serialized as one trace-event document."""

    def __init__(self, events: Optional[Iterable[TraceEvent]] = None):
        self.events: List[TraceEvent] = list(events) if events else []

    def __len__(self) -> int:
        return len(self.events)

    def __iter__(self) -> Iterator[TraceEvent]:
        return iter(self.events)

    def __getitem__(self, index):
        return self.events[index]

    def append(self, event: TraceEvent) -> None:
        self.events.append(event)

    def extend(self, events: Iterable[TraceEvent]) -> None:
        self.events.extend(events)

    def get_events_by_phase(self, phase: Union[Phase, str]) -> List[TraceEvent]:
        """Filter events by phase marker."""
        ph = phase.value if isinstance(phase, Phase) else phase
        return [e for e in self.events if e.ph == ph]

    def to_dict(self) -> Dict[str, Any]:
        return {'traceEvents': [e.to_dict() for e in self.events]}

    def to_json(self, indent: Optional[int] = 1) -> str:
        """
        Encode the collection as a trace-event JSON document.

        Raises:
            TraceSerializationError: encoding failed
        """
        try:
            return json.dumps(self.to_dict(), indent=indent)
        except (TypeError, ValueError) as e:
            raise TraceSerializationError(f"Error encoding events to JSON: {e}") from e

    def save(self, destination: Union[str, Path]) -> Path:
        """
        Serialize the collection and write it to a file.

        Args:
            destination: Output JSON file path

        Returns:
            The path written

        Raises:
            TraceSerializationError: encoding failed
            TraceWriteError: the file could not be written
        """
        destination = Path(destination)
        document = self.to_json()

        try:
            with open(destination, 'w', encoding='utf-8') as f:
                f.write(document)
        except OSError as e:
            raise TraceWriteError(f"Error creating JSON file {destination}: {e}") from e

        logger.info(f"Saved {len(self.events)} events to {destination}")
        return destination

    @classmethod
    def from_json(cls, document: str) -> 'TraceEventCollection':
        """
        Decode a trace-event document.

        Accepts both the object form with a `traceEvents` field and a bare
        JSON array of records.
        """
        data = json.loads(document)
        if isinstance(data, dict) and 'traceEvents' in data:
            records = data['traceEvents']
        elif isinstance(data, list):
            records = data
        elif data is None:
            records = []
        else:
            raise ValueError("Invalid trace format: expected 'traceEvents' field or array")

        return cls(TraceEvent.from_dict(record) for record in records or [])

    @classmethod
    def load(cls, source: Union[str, Path]) -> 'TraceEventCollection':
        """Read a trace-event document from a file."""
        with open(source, 'r', encoding='utf-8') as f:
            return cls.from_json(f.read())
