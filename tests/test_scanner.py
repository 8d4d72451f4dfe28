"""Tests for source discovery, loading and the directory scanner."""
from pathlib import Path

import pytest

from aptotect import (
    Analyzer,
    MoveScanner,
    ScanUnit,
    SourceReadError,
    aggregate,
    default_registry,
    discover_sources,
    read_source,
    should_ignore_path,
)

FIXTURES = Path(__file__).parent / "fixtures" / "contracts"
VULNERABLE = FIXTURES / "vulnerable_vault.move"


def test_discover_sources_skips_build_directories():
    assert discover_sources(FIXTURES) == [
        FIXTURES / "nested" / "pool.move",
        FIXTURES / "safe_vault.move",
        FIXTURES / "vulnerable_vault.move",
    ]


def test_discover_sources_without_ignore_patterns():
    assert FIXTURES / "build" / "compiled.move" in discover_sources(FIXTURES, ignore_patterns=[])


def test_discover_sources_accepts_a_single_file():
    assert discover_sources(VULNERABLE) == [VULNERABLE]


def test_discover_sources_only_picks_move_files(tmp_path):
    (tmp_path / "Move.toml").write_text("[package]\n", encoding="utf-8")
    (tmp_path / "notes.md").write_text("# notes\n", encoding="utf-8")
    (tmp_path / "sources").mkdir()
    (tmp_path / "sources" / "m.move").write_text("module 0x1::m {}\n", encoding="utf-8")
    assert discover_sources(tmp_path) == [tmp_path / "sources" / "m.move"]


@pytest.mark.parametrize("path,ignored", [
    ("build/pkg/m.move", True),
    ("sources/build/m.move", True),
    (".git/objects/m.move", True),
    ("sources/builder.move", False),
    ("sources/m.move", False),
])
def test_should_ignore_path(path, ignored):
    assert should_ignore_path(Path(path), [r'(^|/)build(/|$)', r'(^|/)\.git(/|$)']) is ignored


def test_read_source_rejects_binary_and_invalid_text(tmp_path):
    binary = tmp_path / "binary.move"
    binary.write_bytes(b"module\x00")
    latin = tmp_path / "latin.move"
    latin.write_bytes(b"module \xff\xfe")

    with pytest.raises(SourceReadError):
        read_source(binary)
    with pytest.raises(SourceReadError):
        read_source(latin)
    with pytest.raises(SourceReadError):
        read_source(tmp_path / "missing.move")


def test_directory_scan_matches_per_file_analysis():
    report = MoveScanner(FIXTURES).scan()

    analyzer = Analyzer(default_registry())
    expected = aggregate(
        analyzer.analyze(ScanUnit(path=str(path), text=path.read_text(encoding="utf-8")))
        for path in discover_sources(FIXTURES)
    )
    assert report.findings == expected.findings
    assert report.total == 18


def test_parallel_scan_matches_sequential_scan():
    sequential = MoveScanner(FIXTURES, jobs=1).scan()
    parallel = MoveScanner(FIXTURES, jobs=4).scan()
    assert parallel.findings == sequential.findings


def test_scanner_tracks_files_scanned():
    scanner = MoveScanner(FIXTURES)
    scanner.scan()
    assert scanner.files_scanned == 3
    assert scanner.skipped == []


def test_extra_ignore_patterns_are_applied():
    scanner = MoveScanner(FIXTURES, ignore_patterns=[r'^nested/'])
    report = scanner.scan()
    assert scanner.files_scanned == 2
    assert report.total == 7


def test_unreadable_files_are_skipped(tmp_path):
    (tmp_path / "vault.move").write_text(VULNERABLE.read_text(encoding="utf-8"), encoding="utf-8")
    (tmp_path / "binary.move").write_bytes(b"module\x00")
    (tmp_path / "latin.move").write_bytes(b"module \xff\xfe")

    scanner = MoveScanner(tmp_path)
    report = scanner.scan()

    assert scanner.files_scanned == 1
    assert len(scanner.skipped) == 2
    assert report.total == 7
    assert {f.location.file for f in report.findings} == {str(tmp_path / "vault.move")}


def test_empty_directory_yields_empty_report(tmp_path):
    report = MoveScanner(tmp_path).scan()
    assert report.total == 0
