"""Tests for strace line classification and field extraction."""

from unittest.mock import patch

import pytest

from strace_parser import (
    LineShape,
    LineShapeMismatchError,
    StraceParser,
    TraceFormatError,
    classify,
    convert_id,
    convert_timestamp,
    extract,
)


SUCCESSFUL_LINES = [
    '1234 100.500000 open("/tmp/x", O_RDONLY) = 3 <0.000010>',
    '1234 100.500000 getpid() = 1234 <0.000002>',
    '1234 100.500000 openat(AT_FDCWD, "/etc/hosts", O_RDONLY|O_CLOEXEC) = 3</etc/hosts> <0.000011>',
    '1234 100.500000 mmap(NULL, 8192, PROT_READ|PROT_WRITE, MAP_PRIVATE|MAP_ANONYMOUS, -1, 0) = 0x7f5c2a1e3000 <0.000009>',
    '1234 100.500000 poll([{fd=3, events=POLLIN}], 1, 100) = 0 (Timeout) <0.100123>',
]

FAILED_LINES = [
    '1235 100.500200 openat(AT_FDCWD, "/nope", O_RDONLY) = -1 ENOENT (No such file or directory) <0.000005>',
    '1235 100.500200 connect(3, {sa_family=AF_UNIX, sun_path="/run/x"}, 110) = -1 ECONNREFUSED (Connection refused) <0.000030>',
]

UNFINISHED_LINES = [
    '1234 100.500100 read(3, <unfinished ...>',
    '1236 100.500300 futex(0x7f00, FUTEX_WAIT, 0, NULL <unfinished ...>',
]

DETACHED_LINES = [
    '1234 100.600000 <... read resumed>, "data", 4) = 4 <0.000020>',
    '1236 100.900000 <... futex resumed>) = -1 EAGAIN (Resource temporarily unavailable) <0.399700>',
]

OTHER_LINES = [
    '',
    '1235 100.550000 --- SIGCHLD {si_signo=SIGCHLD, si_code=CLD_EXITED} ---',
    '1235 100.700000 +++ exited with 0 +++',
    '1234 100.800000 exit_group(0) = ?',
    'strace: Process 1234 attached',
]


class TestClassify:
    """Tests for line shape classification."""

    @pytest.mark.parametrize("line", SUCCESSFUL_LINES)
    def test_successful(self, line):
        assert classify(line) == LineShape.SUCCESSFUL

    @pytest.mark.parametrize("line", FAILED_LINES)
    def test_failed(self, line):
        assert classify(line) == LineShape.FAILED

    @pytest.mark.parametrize("line", UNFINISHED_LINES)
    def test_unfinished(self, line):
        assert classify(line) == LineShape.UNFINISHED

    @pytest.mark.parametrize("line", DETACHED_LINES)
    def test_detached(self, line):
        assert classify(line) == LineShape.DETACHED

    @pytest.mark.parametrize("line", OTHER_LINES)
    def test_other(self, line):
        assert classify(line) == LineShape.OTHER

    def test_trailing_newline_ignored(self):
        """Test that lines read from a file classify the same."""
        assert classify(SUCCESSFUL_LINES[0] + "\n") == LineShape.SUCCESSFUL

    def test_complete_lines_match_only_one_shape(self):
        """Test that complete lines never fall through to later shapes."""
        from strace_parser import LINE_PATTERNS

        for line in SUCCESSFUL_LINES + FAILED_LINES:
            matching = [shape for shape, pattern in LINE_PATTERNS if pattern.match(line)]
            assert len(matching) == 1
            assert matching[0] in (LineShape.SUCCESSFUL, LineShape.FAILED)


class TestExtract:
    """Tests for field extraction."""

    def test_successful_fields(self):
        fields = extract(SUCCESSFUL_LINES[0], LineShape.SUCCESSFUL)
        assert fields.tid == 1234
        assert fields.timestamp == "100.500000"
        assert fields.name == "open"
        assert fields.args == '"/tmp/x", O_RDONLY'
        assert fields.return_value == "3"
        assert fields.duration == "0.000010"

    def test_empty_args(self):
        fields = extract(SUCCESSFUL_LINES[1], LineShape.SUCCESSFUL)
        assert fields.name == "getpid"
        assert fields.args == ""

    def test_fd_decoration_kept_in_return_value(self):
        fields = extract(SUCCESSFUL_LINES[2], LineShape.SUCCESSFUL)
        assert fields.return_value == "3</etc/hosts>"

    def test_return_annotation(self):
        fields = extract(SUCCESSFUL_LINES[4], LineShape.SUCCESSFUL)
        assert fields.return_value == "0 (Timeout)"
        assert fields.duration == "0.100123"

    def test_failed_fields(self):
        fields = extract(FAILED_LINES[0], LineShape.FAILED)
        assert fields.tid == 1235
        assert fields.name == "openat"
        assert fields.args == 'AT_FDCWD, "/nope", O_RDONLY'
        assert fields.return_value == "-1 ENOENT (No such file or directory)"
        assert fields.duration == "0.000005"

    def test_unfinished_fields(self):
        fields = extract(UNFINISHED_LINES[0], LineShape.UNFINISHED)
        assert fields.tid == 1234
        assert fields.name == "read"
        assert fields.args == "3,"
        assert fields.return_value is None
        assert fields.duration is None

    def test_detached_fields(self):
        fields = extract(DETACHED_LINES[0], LineShape.DETACHED)
        assert fields.tid == 1234
        assert fields.timestamp == "100.600000"
        assert fields.name == "read"
        assert fields.args == '"data", 4'
        assert fields.return_value == "4"
        assert fields.duration == "0.000020"

    def test_detached_without_continuation_args(self):
        fields = extract(DETACHED_LINES[1], LineShape.DETACHED)
        assert fields.name == "futex"
        assert fields.args == ""
        assert fields.return_value == "-1 EAGAIN (Resource temporarily unavailable)"

    def test_detached_data_containing_equals_sign(self):
        """Test that resumed data containing an equals sign keeps the real return value."""
        line = '1234 100.600000 <... read resumed>"key = value\\n", 4096) = 12 <0.000020>'
        assert classify(line) == LineShape.DETACHED

        fields = extract(line, LineShape.DETACHED)
        assert fields.args == '"key = value\\n", 4096'
        assert fields.return_value == "12"
        assert fields.duration == "0.000020"

    def test_detached_failure_with_equals_in_data(self):
        line = '7 1.000001 <... recvfrom resumed>"a) = 1", 64, 0, NULL, NULL) = -1 EINTR (Interrupted system call) <0.000300>'
        fields = extract(line, LineShape.DETACHED)
        assert fields.args == '"a) = 1", 64, 0, NULL, NULL'
        assert fields.return_value == "-1 EINTR (Interrupted system call)"

    def test_other_has_no_fields(self):
        assert extract(OTHER_LINES[1], LineShape.OTHER) is None

    def test_shape_mismatch_raises(self):
        with pytest.raises(LineShapeMismatchError):
            extract(UNFINISHED_LINES[0], LineShape.SUCCESSFUL)


class TestConversions:
    """Tests for id and timestamp conversion."""

    def test_convert_id(self):
        assert convert_id("1234") == 1234

    def test_convert_id_invalid(self):
        with pytest.raises(TraceFormatError):
            convert_id("12a4")

    def test_timestamp_concatenation(self):
        assert convert_timestamp("100.500000") == 100500000
        assert convert_timestamp("0.000010") == 10
        assert convert_timestamp("1697462400.123456") == 1697462400123456

    def test_timestamp_depends_on_fraction_width(self):
        """Test that digits are concatenated rather than scaled."""
        assert convert_timestamp("1.5") == 15
        assert convert_timestamp("1.500") == 1500

    @pytest.mark.parametrize("value", ["100", "abc.def", "1.2.3", ".5", ""])
    def test_timestamp_invalid(self, value):
        with pytest.raises(TraceFormatError):
            convert_timestamp(value)


class TestStraceParser:
    """Tests for stream parsing."""

    def test_parse_skips_other_lines(self, sample_trace):
        parser = StraceParser(sample_trace)
        results = list(parser.parse())

        assert [shape for shape, _ in results] == [
            LineShape.SUCCESSFUL,
            LineShape.UNFINISHED,
            LineShape.FAILED,
            LineShape.UNFINISHED,
            LineShape.DETACHED,
        ]

    def test_statistics(self, sample_trace):
        parser = StraceParser(sample_trace)
        list(parser.parse())
        stats = parser.get_statistics()

        assert stats['total_lines'] == 7
        assert stats['recognised_lines'] == 5
        assert stats['other_lines'] == 2
        assert stats['shape_distribution']['unfinished'] == 2

    def test_parse_matches_each_line_once(self, sample_trace):
        from strace_parser import LINE_PATTERNS

        calls = []

        class CountingPattern:
            def __init__(self, pattern):
                self.pattern = pattern

            def match(self, line):
                calls.append(line)
                return self.pattern.match(line)

        counted = tuple((shape, CountingPattern(pattern)) for shape, pattern in LINE_PATTERNS)
        with patch("strace_parser.LINE_PATTERNS", counted), \
                patch("strace_parser._PATTERN_BY_SHAPE", dict(counted)):
            results = list(StraceParser(sample_trace[:1]).parse())

        assert results[0][1].name == "open"
        assert calls == [sample_trace[0]]

    def test_empty_stream(self):
        parser = StraceParser([])
        assert list(parser.parse()) == []
        assert parser.get_statistics()['total_lines'] == 0
