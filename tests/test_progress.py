"""Tests for FFmpeg diagnostic stream parsing."""

import pytest

from timeline_render.render.progress import (
    DiagnosticTail,
    parse_progress_time,
    progress_percent,
    split_lines,
)


class TestParseProgressTime:
    def test_stats_line(self):
        line = "frame=  120 fps= 60 q=28.0 size=     256kB time=00:00:04.00 bitrate= 524.3kbits/s speed=2x"
        assert parse_progress_time(line) == pytest.approx(4.0)

    def test_hours_and_minutes(self):
        assert parse_progress_time("time=01:02:03.50") == pytest.approx(3723.5)

    def test_last_marker_wins(self):
        assert parse_progress_time("time=00:00:01.00 ... time=00:00:02.00") == pytest.approx(2.0)

    def test_progress_pipe_format(self):
        assert parse_progress_time("out_time_us=2500000") == pytest.approx(2.5)
        assert parse_progress_time("out_time_ms=2500000") == pytest.approx(2.5)

    @pytest.mark.parametrize(
        "line",
        ["", "Input #0, lavfi, from 'color=c=black':", "time=N/A bitrate=N/A", "progress=end"],
    )
    def test_no_marker(self, line):
        assert parse_progress_time(line) is None


class TestProgressPercent:
    def test_ratio(self):
        assert progress_percent(2.5, 10) == pytest.approx(25.0)

    def test_clamped(self):
        assert progress_percent(12, 10) == 100.0
        assert progress_percent(-1, 10) == 0.0

    def test_zero_duration(self):
        assert progress_percent(5, 0) == 0.0


class TestSplitLines:
    def test_carriage_returns_split(self):
        lines, rest = split_lines("time=00:00:01.00\rtime=00:00:02.00\rtime=00:00")
        assert lines == ["time=00:00:01.00", "time=00:00:02.00"]
        assert rest == "time=00:00"

    def test_crlf_has_no_empty_lines(self):
        lines, rest = split_lines("a\r\nb\n")
        assert lines == ["a", "b"]
        assert rest == ""


class TestDiagnosticTail:
    def test_keeps_last_chars(self):
        tail = DiagnosticTail(max_chars=10)
        tail.append("0123456789")
        tail.append("abcde")
        assert tail.text == "56789abcde"
        assert len(tail) == 10

    def test_short_stream(self):
        tail = DiagnosticTail(max_chars=500)
        tail.append("Error initializing complex filters.\n")
        assert str(tail) == "Error initializing complex filters.\n"
