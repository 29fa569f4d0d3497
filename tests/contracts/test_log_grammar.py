# tests/contracts/test_log_grammar.py
"""The worker log formatters must stay parseable by the monitor patterns."""

import pytest

from certshare.contracts import log_grammar
from certshare.contracts.enums import ShareStatus, SkipReason


class TestFormattersMatchPatterns:
    def test_granted(self) -> None:
        line = log_grammar.granted(
            12, "reader", "ani@gmail.com", dry_run=False, total_ms=900, folder_ms=10, permission_ms=20, grant_ms=30
        )
        assert line == (
            "Row 12 GRANTED reader -> ani@gmail.com - Time: 900ms (folder: 10ms, permission: 20ms, grant: 30ms)"
        )
        match = log_grammar.SUCCESS_RE.search(line)
        assert match is not None
        assert (match.group("row"), match.group("status"), match.group("email")) == ("12", "GRANTED", "ani@gmail.com")

    def test_dry_run_marker(self) -> None:
        line = log_grammar.granted(3, "reader", "a@gmail.com", dry_run=True, total_ms=1, folder_ms=0, permission_ms=0, grant_ms=0)
        assert log_grammar.SUCCESS_RE.search(line).group("status") == "DRY_RUN"  # type: ignore[union-attr]

    @pytest.mark.parametrize("reason", list(SkipReason))
    def test_every_skip_reason(self, reason: SkipReason) -> None:
        line = log_grammar.skipped(7, reason, "someone@gmail.com", total_ms=4)
        match = log_grammar.SKIP_RE.search(line)
        assert match is not None
        assert match.group("reason") == reason.value
        assert match.group("token") == "someone@gmail.com"
        assert log_grammar.SUCCESS_RE.search(line) is None

    def test_skip_with_blank_email_uses_dash(self) -> None:
        line = log_grammar.skipped(7, SkipReason.INVALID_FORMAT, "  ", total_ms=0)
        assert log_grammar.SKIP_RE.search(line).group("token") == "-"  # type: ignore[union-attr]

    def test_skip_token_has_no_whitespace(self) -> None:
        line = log_grammar.skipped(7, SkipReason.INVALID_EMAIL_FORMAT, "bad email@x", total_ms=0)
        assert log_grammar.SKIP_RE.search(line).group("token") == "bademail@x"  # type: ignore[union-attr]

    def test_folder_not_found(self) -> None:
        line = log_grammar.folder_not_found(9, "Budi Santoso", total_ms=30100, folder_ms=30000)
        match = log_grammar.ERROR_RE.search(line)
        assert match is not None
        assert match.group("name") == "Budi Santoso"

    def test_failed(self) -> None:
        line = log_grammar.failed(9, "No permission", total_ms=50, folder_ms=0, technical="HTTP 403 permissionDenied - x")
        assert line == "Row 9 ERROR: No permission - Time: 50ms | Technical: HTTP 403 permissionDenied - x"
        match = log_grammar.ERROR_RE.search(line)
        assert match is not None
        assert match.group("name") is None

    def test_processing_marker(self) -> None:
        line = log_grammar.processing(10, "")
        assert log_grammar.PROCESSING_RE.search(line).group("count") == "10"  # type: ignore[union-attr]

    def test_summary(self) -> None:
        line = log_grammar.summary(4, 2, 1, 1, 50.0)
        assert line == "Summary: total=4 done=2 skipped=1 errors=1 successRate=50.0%"
        assert log_grammar.ERROR_RE.search(line) is None
        assert log_grammar.SKIP_RE.search(line) is None


class TestShareStatus:
    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("", ShareStatus.UNSET),
            (None, ShareStatus.UNSET),
            ("  ", ShareStatus.UNSET),
            ("TRUE", ShareStatus.TRUE),
            ("true", ShareStatus.TRUE),
            (" False ", ShareStatus.FALSE),
            ("yes", ShareStatus.UNSET),
        ],
    )
    def test_parse(self, raw: str | None, expected: ShareStatus) -> None:
        assert ShareStatus.parse(raw) is expected
