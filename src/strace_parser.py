"""
Strace Parser Module
====================
Classifies raw strace output lines and extracts their structured fields.

This module handles the first stage of the pipeline:
- Recognising the shape of every trace line
- Extracting thread id, timestamp, syscall, arguments, return value, duration
- Converting strace's fractional-second timestamps to integer ticks

Author: strace-perfetto Project
Date: October 16, 2026
"""

import re
import logging
from enum import Enum
from datetime import datetime
from typing import Dict, Iterable, Iterator, List, Optional, Tuple
from dataclasses import dataclass

logger = logging.getLogger(__name__)


class TraceFormatError(ValueError):
    """A recognised field could not be converted to its numeric form."""


class LineShapeMismatchError(RuntimeError):
    """A line was classified as a shape whose pattern does not match it."""


class LineShape(Enum):
    """Structural shapes of a strace line, in classification priority order."""
    SUCCESSFUL = "successful"
    FAILED = "failed"
    UNFINISHED = "unfinished"
    DETACHED = "detached"
    OTHER = "other"


@dataclass
class RawFields:
    """Fields pulled out of one recognised trace line."""
    tid: int
    timestamp: str
    name: str
    args: str
    return_value: Optional[str] = None
    duration: Optional[str] = None
    raw_line: str = ""

    def __repr__(self):
        return f"RawFields(tid={self.tid}, ts={self.timestamp}, name={self.name}, ret={self.return_value})"


# Line prefix written by `strace -f -ttt`: "<tid> <seconds.fraction> "
_PREFIX = r'^(?P<tid>\d+)\s+(?P<ts>\d+\.\d+)\s+'
_DURATION = r'\s+<(?P<dur>\d+\.\d+)>$'

LINE_PATTERNS: Tuple[Tuple[LineShape, "re.Pattern"], ...] = (
    # 1234 100.500000 open("/tmp/x", O_RDONLY) = 3 <0.000010>
    (LineShape.SUCCESSFUL, re.compile(
        _PREFIX +
        r'(?P<name>\w+)\((?P<args>.*)\)\s+=\s+'
        r'(?P<ret>\d[^\s]*(?:\s.*?)?)' +
        _DURATION
    )),
    # 1234 100.500000 open("/nope", O_RDONLY) = -1 ENOENT (No such file or directory) <0.000010>
    (LineShape.FAILED, re.compile(
        _PREFIX +
        r'(?P<name>\w+)\((?P<args>.*)\)\s+=\s+'
        r'(?P<ret>-.*?)' +
        _DURATION
    )),
    # 1234 100.500000 read(3, <unfinished ...>
    (LineShape.UNFINISHED, re.compile(
        _PREFIX +
        r'(?P<name>\w+)\((?P<args>.*?)\s*<unfinished \.\.\.>$'
    )),
    # 1234 100.600000 <... read resumed>, "data", 4) = 4 <0.000020>
    (LineShape.DETACHED, re.compile(
        _PREFIX +
        r'<\.\.\.\s+(?P<name>\w+) resumed>(?P<args>(?:.*\))?)\s+=\s+'
        r'(?P<ret>.+?)' +
        _DURATION
    )),
)

_PATTERN_BY_SHAPE: Dict[LineShape, "re.Pattern"] = dict(LINE_PATTERNS)


def _match_line(line: str) -> Tuple[LineShape, Optional["re.Match"]]:
    """Return the first shape whose pattern matches, with its match object."""
    for shape, pattern in LINE_PATTERNS:
        match = pattern.match(line)
        if match:
            return shape, match
    return LineShape.OTHER, None


def classify(line: str) -> LineShape:
    """
    Decide which shape a trace line has.

    Shapes are tried in a fixed order and the first match wins, so a line
    is never reported as a later, more permissive shape.
    """
    return _match_line(line.rstrip())[0]


def convert_id(id_str: str) -> int:
    """Parse a base-10 thread id."""
    try:
        return int(id_str, 10)
    except (TypeError, ValueError) as e:
        raise TraceFormatError(f"Invalid thread id: {id_str!r}") from e


def convert_timestamp(ts_str: str) -> int:
    """
    Convert a "<seconds>.<fraction>" string to integer ticks.

    The integer and fractional digits are concatenated and parsed as one
    integer, so "100.500000" becomes 100500000. Values are only comparable
    when every fraction in the trace has the same digit width (six with
    `strace -ttt -T`, which makes the unit microseconds).

    Args:
        ts_str: Timestamp or duration text as printed by strace

    Returns:
        Integer tick value
    """
    seconds, sep, fraction = ts_str.partition('.')
    if not sep or not seconds.isdigit() or not fraction.isdigit():
        raise TraceFormatError(f"Invalid timestamp: {ts_str!r}")
    return int(seconds + fraction)


def _clean_args(shape: LineShape, args: str) -> str:
    if shape == LineShape.DETACHED:
        args = args.strip()
        if args.endswith(')'):
            args = args[:-1]
        if args.startswith(','):
            args = args[1:]
        return args.strip()
    return args.rstrip()


def extract(line: str, shape: LineShape) -> Optional[RawFields]:
    """
    Extract structured fields from a line of a known shape.

    Args:
        line: Raw trace line
        shape: Shape previously returned by classify()

    Returns:
        RawFields, or None when the shape is OTHER

    Raises:
        LineShapeMismatchError: the shape's pattern does not match the line
    """
    if shape == LineShape.OTHER:
        return None

    line = line.rstrip()
    match = _PATTERN_BY_SHAPE[shape].match(line)
    if not match:
        raise LineShapeMismatchError(f"Line does not have shape {shape.value}: {line[:100]}")

    return _fields_from_match(shape, match)


def _fields_from_match(shape: LineShape, match: "re.Match") -> RawFields:
    groups = match.groupdict()
    return RawFields(
        tid=convert_id(groups['tid']),
        timestamp=groups['ts'],
        name=groups['name'],
        args=_clean_args(shape, groups['args']),
        return_value=groups.get('ret'),
        duration=groups.get('dur'),
        raw_line=match.string
    )


class StraceParser:
    """Classifies a stream of strace lines and yields their extracted fields."""

    def __init__(self, lines: Iterable[str]):
        """
        Initialize strace parser.

        Args:
            lines: Line-oriented text stream (open file, list of strings, pipe)
        """
        self.lines = lines
        self.total_lines = 0
        self.shape_counts: Dict[LineShape, int] = {shape: 0 for shape in LineShape}

    def parse(self) -> Iterator[Tuple[LineShape, RawFields]]:
        """
        Walk the stream in arrival order.

        Unrecognised lines are counted and skipped.

        Yields:
            (shape, fields) for every recognised line
        """
        logger.info("Starting trace parsing")
        start_time = datetime.now()

        for line in self.lines:
            self.total_lines += 1

            if self.total_lines % 10000 == 0:
                logger.debug(f"Processed {self.total_lines} lines")

            line = line.rstrip()
            shape, match = _match_line(line)
            self.shape_counts[shape] += 1
            if shape == LineShape.OTHER:
                if line:
                    logger.debug(f"Skipping unrecognised line: {line[:100]}")
                continue

            yield shape, _fields_from_match(shape, match)

        duration = (datetime.now() - start_time).total_seconds()
        recognised = self.total_lines - self.shape_counts[LineShape.OTHER]
        logger.info(f"Parsing complete: {recognised} syscall lines from {self.total_lines} lines in {duration:.2f}s")

    def get_statistics(self) -> Dict[str, any]:
        """Get parsing statistics."""
        other = self.shape_counts[LineShape.OTHER]
        return {
            'total_lines': self.total_lines,
            'recognised_lines': self.total_lines - other,
            'other_lines': other,
            'recognition_rate': (1 - other / max(self.total_lines, 1)) * 100,
            'shape_distribution': {shape.value: count for shape, count in self.shape_counts.items()}
        }


def main():
    """Classify a trace capture independently."""
    import sys

    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    if len(sys.argv) < 2:
        print("Usage: python strace_parser.py <trace_file>")
        sys.exit(1)

    with open(sys.argv[1], 'r', encoding='utf-8', errors='replace') as f:
        parser = StraceParser(f)
        lines: List[Tuple[LineShape, RawFields]] = list(parser.parse())

    stats = parser.get_statistics()
    print("\nParsing Statistics:")
    print(f"  Total lines: {stats['total_lines']}")
    print(f"  Syscall lines: {len(lines)}")
    print(f"  Recognition rate: {stats['recognition_rate']:.1f}%")
    for shape, count in stats['shape_distribution'].items():
        print(f"  {shape}: {count}")


if __name__ == "__main__":
    main()
