"""
Envelope stripping: every known wrapper must come back to the canonical line.
"""

from datetime import datetime, timezone

import pytest

from fraglog.envelope import extract_canonical, wrap_line

from conftest import GG_LINE, UUID

BODY = '"P<1><[U:1:1]><CT>" say "gg wp"'


class TestRoundTrip:
    """Wrapped lines extract back to the original canonical line."""

    @pytest.mark.parametrize("wrapped", [
        wrap_line(GG_LINE, UUID, datetime(2025, 8, 19, 15, 12, 44, tzinfo=timezone.utc)),
        f"{UUID}: {GG_LINE}",
        "08/19/2025 - 19:03:31: " + BODY,
        "L 08/19/2025 - 19:03:31.735 - " + BODY,
        "L 08/19/2025 - 19:03:31 - " + BODY,
        "L 08/19/2025 - 19:03:31.735: " + BODY,
        f"[2025-08-19T15:12:44Z] {UUID}: 08/19/2025 - 19:03:31.735 - " + BODY,
        "[2025-08-19T15:12:44Z] " + GG_LINE,
    ])
    def test_variant(self, wrapped):
        assert extract_canonical(wrapped) == GG_LINE

    def test_canonical_line_unchanged(self):
        assert extract_canonical(GG_LINE) == GG_LINE

    def test_body_with_dashes_and_dots_untouched(self):
        line = "L 08/19/2025 - 19:03:31: Match pause is enabled - mp_pause_match. ok"
        assert extract_canonical(line) == line


class TestBestEffort:
    """Unknown shapes fall through without raising."""

    @pytest.mark.parametrize("line", [
        "",
        "hello world",
        "[no closing bracket",
        "[2025-08-19T15:12:44Z]no-space",
        "not-a-uuid-token: payload",
    ])
    def test_passthrough(self, line):
        assert extract_canonical(line) == line

    def test_bracket_without_colon_is_noop(self):
        assert extract_canonical("[x] plain text") == "[x] plain text"

    def test_surrounding_whitespace_stripped(self):
        assert extract_canonical("  " + GG_LINE + "\r\n") == GG_LINE


class TestWrapLine:

    def test_format(self):
        ts = datetime(2025, 8, 19, 15, 12, 44, tzinfo=timezone.utc)
        assert wrap_line("L x", UUID, ts) == f"[2025-08-19T15:12:44Z] {UUID}: L x"
