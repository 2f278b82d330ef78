"""Tests for checksums and single ids."""

from __future__ import annotations

from circlesync.core.checksum import SINGLE_ID_LENGTH, compute_checksum, generate_single_id


class TestComputeChecksum:
    """Tests for compute_checksum()."""

    def test_is_sha256_hex(self) -> None:
        """Should return a 64-character hex digest."""
        checksum = compute_checksum({"id": "42"})
        assert len(checksum) == 64
        int(checksum, 16)

    def test_key_order_does_not_matter(self) -> None:
        """Two serializations of the same state should agree."""
        assert compute_checksum({"a": 1, "b": {"x": 1, "y": 2}}) == compute_checksum(
            {"b": {"y": 2, "x": 1}, "a": 1}
        )

    def test_different_payloads_differ(self) -> None:
        assert compute_checksum({"name": "Projects"}) != compute_checksum({"name": "Archive"})

    def test_none_is_empty_payload(self) -> None:
        assert compute_checksum(None) == compute_checksum({})

    def test_non_json_values(self) -> None:
        """Values without a JSON form are stringified."""
        from datetime import date

        assert compute_checksum({"d": date(2024, 1, 2)}) == compute_checksum({"d": "2024-01-02"})


class TestGenerateSingleId:
    """Tests for generate_single_id()."""

    def test_default_length(self) -> None:
        single_id = generate_single_id()
        assert len(single_id) == SINGLE_ID_LENGTH == 31
        assert single_id.isalnum()

    def test_custom_length(self) -> None:
        assert len(generate_single_id(8)) == 8

    def test_unique(self) -> None:
        """Should not repeat across calls."""
        assert len({generate_single_id() for _ in range(100)}) == 100
