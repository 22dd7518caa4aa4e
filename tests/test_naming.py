"""Tests for filename sanitization, target resolution and exclusive moves."""

from __future__ import annotations

from datetime import datetime
from pathlib import Path

import pytest

from panoptes.config.models import NamingRules
from panoptes.organization.moves import claim_path, exclusive_move, release_claim
from panoptes.organization.naming import (
    CollisionUnresolved,
    NameResolver,
    sanitize_filename,
    split_extension,
)

FIXED_NOW = datetime(2024, 3, 15, 14, 30, 22)


def _resolver(**rules: object) -> NameResolver:
    return NameResolver(NamingRules(**rules), now=lambda: FIXED_NOW)


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("Sunset Over Mountains", "sunset_over_mountains"),
        ("Filename: quarterly_report", "quarterly_report"),
        ('"beach_trip"', "beach_trip"),
        ("'beach_trip'", "beach_trip"),
        ("hello   world!!", "hello_world"),
        ("a - b", "a-b"),
        ("__leading_and_trailing__", "leading_and_trailing"),
        ("Café Menu", "café_menu"),
        ("", ""),
        ("!!!", ""),
    ],
)
def test_sanitize_filename(raw: str, expected: str) -> None:
    assert sanitize_filename(raw) == expected


@pytest.mark.parametrize(
    "raw",
    ["Sunset Over Mountains", "a - b _ c", "Title: x__y--z", "  'quoted name'  "],
)
def test_sanitize_filename_is_idempotent(raw: str) -> None:
    once = sanitize_filename(raw)
    assert sanitize_filename(once) == once


def test_colon_outside_prefix_window_is_kept_as_content() -> None:
    text = "a sentence that is clearly longer than thirty characters: tail"

    cleaned = sanitize_filename(text)

    assert cleaned.startswith("a_sentence_that")
    assert cleaned.endswith("tail")


def test_split_extension_keeps_compound_archive_suffix() -> None:
    assert split_extension(Path("backup.tar.gz")) == ("backup", ".tar.gz")
    assert split_extension(Path("photo.JPG")) == ("photo", ".JPG")
    assert split_extension(Path("README")) == ("README", "")


def test_resolve_adds_date_prefix_and_keeps_extension(tmp_path: Path) -> None:
    source = tmp_path / "IMG_0001.jpg"
    source.write_bytes(b"x")

    target = _resolver().resolve(source, "Trip Photo")

    assert target == tmp_path / "2024-03-15_trip_photo.jpg"


def test_resolve_does_not_repeat_date_prefix(tmp_path: Path) -> None:
    source = tmp_path / "scan.pdf"
    source.write_bytes(b"x")

    target = _resolver().resolve(source, "2024-03-15_invoice")

    assert target == tmp_path / "2024-03-15_invoice.pdf"


def test_resolve_truncates_to_max_length(tmp_path: Path) -> None:
    source = tmp_path / "notes.txt"
    source.write_text("x", encoding="utf-8")
    resolver = _resolver(date_prefix=False, max_length=10)

    target = resolver.resolve(source, "an extremely long suggested name")

    assert target is not None
    assert target.name == "an_extreme.txt"


@pytest.mark.parametrize(
    ("max_length", "expected"),
    [
        (8, "meeting"),
        (16, "2024-03-15_meeti"),
        (50, "2024-03-15_meeting_notes"),
    ],
)
def test_date_prefix_never_crowds_out_the_suggestion(max_length: int, expected: str) -> None:
    resolver = _resolver(date_prefix=True, max_length=max_length)

    assert resolver.compose_stem("meeting notes") == expected


def test_truncation_does_not_leave_trailing_separator(tmp_path: Path) -> None:
    source = tmp_path / "notes.txt"
    source.write_text("x", encoding="utf-8")

    target = _resolver(date_prefix=False, max_length=9).resolve(source, "abcdefgh_ijk")

    assert target is not None
    assert target.name == "abcdefgh.txt"


def test_collision_uses_time_suffix(tmp_path: Path) -> None:
    (tmp_path / "trip_photo.jpg").write_bytes(b"existing")
    source = tmp_path / "IMG_0002.jpg"
    source.write_bytes(b"new")

    target = _resolver(date_prefix=False).resolve(source, "trip photo")

    assert target == tmp_path / "trip_photo_143022.jpg"


def test_double_collision_raises(tmp_path: Path) -> None:
    (tmp_path / "trip_photo.jpg").write_bytes(b"one")
    (tmp_path / "trip_photo_143022.jpg").write_bytes(b"two")
    source = tmp_path / "IMG_0003.jpg"
    source.write_bytes(b"three")

    with pytest.raises(CollisionUnresolved):
        _resolver(date_prefix=False).resolve(source, "trip photo")


def test_resolve_returns_none_when_name_is_unchanged(tmp_path: Path) -> None:
    source = tmp_path / "trip_photo.jpg"
    source.write_bytes(b"x")

    assert _resolver(date_prefix=False).resolve(source, "Trip Photo") is None


def test_resolve_returns_none_for_empty_suggestion(tmp_path: Path) -> None:
    source = tmp_path / "file.txt"
    source.write_text("x", encoding="utf-8")

    assert _resolver().resolve(source, "???") is None


def test_resolve_keeps_compound_extension(tmp_path: Path) -> None:
    source = tmp_path / "backup.tar.gz"
    source.write_bytes(b"x")

    target = _resolver(date_prefix=False).resolve(source, "project sources")

    assert target == tmp_path / "project_sources.tar.gz"


def test_exclusive_move_never_overwrites(tmp_path: Path) -> None:
    source = tmp_path / "a.txt"
    source.write_text("source", encoding="utf-8")
    destination = tmp_path / "b.txt"
    destination.write_text("keep me", encoding="utf-8")

    with pytest.raises(CollisionUnresolved):
        exclusive_move(source, destination)

    assert source.read_text(encoding="utf-8") == "source"
    assert destination.read_text(encoding="utf-8") == "keep me"


def test_exclusive_move_moves_into_free_target(tmp_path: Path) -> None:
    source = tmp_path / "a.txt"
    source.write_text("payload", encoding="utf-8")
    destination = tmp_path / "b.txt"

    exclusive_move(source, destination)

    assert not source.exists()
    assert destination.read_text(encoding="utf-8") == "payload"


def test_release_claim_only_removes_empty_placeholder(tmp_path: Path) -> None:
    placeholder = tmp_path / "claimed.txt"
    claim_path(placeholder)
    assert placeholder.exists()

    release_claim(placeholder)
    assert not placeholder.exists()

    real = tmp_path / "real.txt"
    real.write_text("data", encoding="utf-8")
    release_claim(real)
    assert real.exists()
