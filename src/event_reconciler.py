"""
Event Reconciler Module
=======================
Stitches strace lines into timeline events.

This module implements the core "resume stitching" logic:
- Emits complete events for syscalls reported on a single line
- Holds `<unfinished ...>` syscalls in a pending table keyed by (tid, syscall)
- Merges each `<... resumed>` line with its pending start
- Demotes calls that never resumed to instant events at end of stream

Author: strace-perfetto Project
Date: October 16, 2026
"""

import logging
from typing import Dict, Iterable, List, Optional, Tuple

from strace_parser import LineShape, RawFields, StraceParser, classify, convert_timestamp, extract
from trace_events import Phase, TraceEvent, TraceEventCollection

logger = logging.getLogger(__name__)


class EventReconciler:
    """Turns one stream of strace lines into an ordered event collection."""

    def __init__(self, pid: Optional[int] = None):
        """
        Initialize event reconciler.

        Args:
            pid: Attached process id. When given, it replaces the thread id
                 in the `pid` field of every timeline event so the viewer
                 groups all threads under one process.
        """
        self.pid = pid
        self._reset()

    def _reset(self) -> None:
        """Start a fresh pass: empty output, pending table and counters."""
        self.events: List[TraceEvent] = []

        # (tid, syscall) -> begin-phase event waiting for its resume line
        self.pending: Dict[Tuple[int, str], TraceEvent] = {}

        self.complete_events = 0
        self.merged_events = 0
        self.unmatched_resumes = 0
        self.overwritten_pending = 0
        self.instant_events = 0
        self.parser: Optional[StraceParser] = None

    def _build_event(self, shape: LineShape, fields: RawFields) -> TraceEvent:
        """Create the event for a freshly classified line."""
        event = TraceEvent(
            name=fields.name,
            ph=Phase.BEGIN.value if shape == LineShape.UNFINISHED else Phase.COMPLETE.value,
            pid=self.pid if self.pid is not None else fields.tid,
            tid=fields.tid,
            ts=convert_timestamp(fields.timestamp),
            cat=shape.value
        )

        if fields.duration is not None:
            event.dur = convert_timestamp(fields.duration)
        if fields.return_value is not None:
            event.args.return_value = fields.return_value

        if shape == LineShape.DETACHED:
            event.args.second = fields.args
        else:
            event.args.first = fields.args

        return event

    def process(self, shape: LineShape, fields: RawFields) -> None:
        """Apply one classified line to the output and the pending table."""
        if shape == LineShape.OTHER:
            return

        event = self._build_event(shape, fields)

        if shape == LineShape.UNFINISHED:
            if event.key in self.pending:
                self.overwritten_pending += 1
                logger.warning(f"Replacing unresolved {event.name} call on thread {event.tid}; "
                               f"earlier start at ts={self.pending[event.key].ts} is dropped")
            self.pending[event.key] = event

        elif shape == LineShape.DETACHED:
            started = self.pending.pop(event.key, None)
            if started is None:
                self.unmatched_resumes += 1
                logger.warning(f"Resumed {event.name} on thread {event.tid} has no matching start")
            else:
                event.args.first = started.args.first
                self.merged_events += 1
            self.events.append(event)
            self.complete_events += 1

        else:
            self.events.append(event)
            self.complete_events += 1

    def process_line(self, line: str) -> None:
        """Classify, extract and apply a single raw line."""
        shape = classify(line)
        self.process(shape, extract(line, shape))

    def finish(self) -> List[TraceEvent]:
        """
        Flush calls that never resumed.

        Returns:
            The demoted instant events, in no particular order
        """
        flushed = []
        for event in self.pending.values():
            event.ph = Phase.INSTANT.value
            flushed.append(event)
        self.pending.clear()

        if flushed:
            logger.info(f"{len(flushed)} syscalls never resumed; emitted as instant events")
        self.instant_events += len(flushed)
        self.events.extend(flushed)
        return flushed

    def reconcile(self, lines: Iterable[str],
                  metadata: Iterable[TraceEvent] = ()) -> TraceEventCollection:
        """
        Run a complete pass over a trace stream.

        Args:
            lines: Line-oriented strace output
            metadata: Thread-naming events to place ahead of the timeline

        Returns:
            TraceEventCollection with metadata, stream-ordered events and
            instant events for unresolved calls, in that order
        """
        self._reset()
        collection = TraceEventCollection(metadata)
        logger.info(f"Reconciling trace with {len(collection)} metadata events")

        self.parser = StraceParser(lines)
        for shape, fields in self.parser.parse():
            self.process(shape, fields)
        self.finish()

        collection.extend(self.events)
        logger.info(f"Reconciliation complete: {self.complete_events} complete events "
                    f"({self.merged_events} merged, {self.unmatched_resumes} unmatched resumes), "
                    f"{self.instant_events} instant events")
        return collection

    def get_statistics(self) -> Dict[str, any]:
        """Get reconciliation statistics."""
        stats = {
            'complete_events': self.complete_events,
            'merged_events': self.merged_events,
            'unmatched_resumes': self.unmatched_resumes,
            'overwritten_pending': self.overwritten_pending,
            'instant_events': self.instant_events,
            'pending': len(self.pending)
        }
        if self.parser:
            stats['parser'] = self.parser.get_statistics()
        return stats
