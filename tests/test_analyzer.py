"""Tests for the pattern registry, analyzer and location resolution."""
import re
from pathlib import Path

import pytest

from aptotect import (
    BUILTIN_PATTERNS,
    Analyzer,
    DuplicatePatternError,
    LineIndex,
    Match,
    Pattern,
    PatternRegistry,
    PatternRegistryError,
    RegistryFrozenError,
    ScanUnit,
    Severity,
    aggregate,
    default_registry,
    resolve_location,
)

FIXTURES = Path(__file__).parent / "fixtures" / "contracts"


def _pattern(pattern_id: str, detect, description: str = "Found {detail}.") -> Pattern:
    return Pattern(
        id=pattern_id,
        title=f"{pattern_id} title",
        severity=Severity.INFO,
        description=description,
        recommendation="Fix it.",
        detect=detect,
    )


def _unit(name: str) -> ScanUnit:
    path = FIXTURES / name
    return ScanUnit(path=str(path), text=path.read_text(encoding="utf-8"))


# --- location resolution ---

def test_line_index_handles_all_terminators():
    index = LineIndex("a\nb\r\nc\rd")
    assert index.locate(0) == (1, 0)
    assert index.locate(2) == (2, 0)
    assert index.locate(5) == (3, 0)
    assert index.locate(7) == (4, 0)
    assert index.locate(8) == (4, 1)


@pytest.mark.parametrize("offset", [-1, 9, 100])
def test_line_index_rejects_out_of_range_offsets(offset):
    with pytest.raises(ValueError):
        LineIndex("a\nb\r\nc\rd").locate(offset)


def test_resolve_location_uses_zero_based_columns():
    location = resolve_location("x.move", "ab\n  cd", 5)
    assert (location.file, location.line, location.column) == ("x.move", 2, 2)


# --- registry ---

def test_default_registry_keeps_catalog_order():
    registry = default_registry()
    assert [p.id for p in registry.all()] == [p.id for p in BUILTIN_PATTERNS]
    assert registry.all()[0].id == "reentrancy"
    assert len({p.id for p in registry}) == len(registry)
    assert not registry.frozen


def test_registry_rejects_duplicate_ids():
    registry = default_registry()
    with pytest.raises(DuplicatePatternError, match="reentrancy"):
        registry.register(_pattern("reentrancy", lambda text: []))


def test_registry_rejects_malformed_description():
    with pytest.raises(PatternRegistryError, match="malformed"):
        PatternRegistry([_pattern("broken", lambda text: [], description="{missing}")])


def test_registry_rejects_attribute_lookup_in_description():
    with pytest.raises(PatternRegistryError, match="malformed"):
        PatternRegistry([_pattern("broken", lambda text: [], description="{detail.x}")])


def test_analyzer_freezes_registry():
    registry = default_registry()
    Analyzer(registry)
    assert registry.frozen
    with pytest.raises(RegistryFrozenError):
        registry.register(_pattern("late", lambda text: []))


def test_registered_pattern_extends_catalog():
    def detect_debug_print(text):
        return [Match(m.start(), m.group(0)) for m in re.finditer(r"debug::print", text)]

    registry = default_registry()
    registry.register(_pattern("debug-print", detect_debug_print))
    source = "module 0x1::m {\n    fun f() { debug::print(&1); }\n}\n"
    findings = Analyzer(registry).analyze(ScanUnit(path="m.move", text=source))

    assert len(findings) == 1
    finding = findings[0]
    assert finding.title == "debug-print title"
    assert finding.description == "Found debug::print."
    assert (finding.location.line, finding.location.column) == (2, 14)
    assert registry.get("debug-print").severity is Severity.INFO


# --- analyzer ---

def test_vulnerable_fixture_report():
    unit = _unit("vulnerable_vault.move")
    report = aggregate([Analyzer(default_registry()).analyze(unit)])

    summary = [(f.severity, f.title, f.location.line, f.location.column) for f in report.findings]
    assert summary == [
        (Severity.CRITICAL, "Reentrancy Vulnerability", 20, 8),
        (Severity.HIGH, "Access Control Vulnerability", 14, 8),
        (Severity.HIGH, "Business Logic Flaw Vulnerability", 17, 4),
        (Severity.HIGH, "Unchecked Arithmetic Vulnerability", 21, 8),
        (Severity.HIGH, "Access Control Vulnerability", 21, 8),
        (Severity.MEDIUM, "Missing Error Handling Vulnerability", 25, 14),
        (Severity.LOW, "Improper Resource Management Vulnerability", 6, 4),
    ]
    assert all(f.location.file == unit.path for f in report.findings)


def test_clean_fixture_has_no_findings():
    assert Analyzer(default_registry()).analyze(_unit("safe_vault.move")) == []


def test_nested_fixture_covers_remaining_patterns():
    findings = Analyzer(default_registry()).analyze(_unit("nested/pool.move"))
    by_title = {}
    for finding in findings:
        by_title.setdefault(finding.title, []).append(finding.location.line)

    assert by_title["Price Oracle Manipulation Vulnerability"] == [13]
    assert by_title["Arithmetic Precision Error Vulnerability"] == [18]
    assert by_title["Incorrect Standard Function Usage Vulnerability"] == [20]
    assert by_title["Lack of Account Registration Check Vulnerability"] == [21, 21]
    assert by_title["Lack of Generics Type Checking Vulnerability"] == [24]
    assert by_title["Unbounded Execution Vulnerability"] == [26]
    assert by_title["Integer Overflow Vulnerability"] == [27]
    assert by_title["Missing Error Handling Vulnerability"] == [13, 19, 20]


def test_analyze_is_deterministic():
    analyzer = Analyzer(default_registry())
    unit = _unit("nested/pool.move")
    assert analyzer.analyze(unit) == analyzer.analyze(unit)
    assert Analyzer(default_registry()).analyze(unit) == analyzer.analyze(unit)


def test_reentrancy_finding_is_critical_and_describes_mutation():
    findings = Analyzer(default_registry()).analyze(_unit("vulnerable_vault.move"))
    reentrancy = [f for f in findings if f.title == "Reentrancy Vulnerability"]
    assert len(reentrancy) == 1
    assert reentrancy[0].severity is Severity.CRITICAL
    assert "coin::transfer" in reentrancy[0].description
    assert "vault.balance = vault.balance - amount;" in reentrancy[0].description


def test_failing_pattern_is_treated_as_no_match():
    def explode(text):
        raise RuntimeError("boom")

    registry = PatternRegistry([_pattern("explode", explode), *BUILTIN_PATTERNS])
    unit = _unit("vulnerable_vault.move")
    findings = Analyzer(registry).analyze(unit)
    assert len(findings) == 7
    assert all(f.title != "explode title" for f in findings)


def test_out_of_range_offsets_are_dropped():
    registry = PatternRegistry([
        _pattern("bad-offset", lambda text: [Match(len(text) + 10, "x"), Match(-1, "y"), Match(0, "z")]),
    ])
    findings = Analyzer(registry).analyze(ScanUnit(path="m.move", text="module"))
    assert [f.description for f in findings] == ["Found z."]


def test_plain_offset_detail_pairs_are_accepted():
    registry = PatternRegistry([_pattern("pairs", lambda text: [(0, "x")])])
    findings = Analyzer(registry).analyze(ScanUnit(path="m.move", text="module"))
    assert [f.description for f in findings] == ["Found x."]
    assert (findings[0].location.line, findings[0].location.column) == (1, 0)


def test_malformed_matches_are_dropped_without_aborting_the_unit():
    registry = PatternRegistry([
        _pattern("malformed", lambda text: [object(), (1, 2, 3), ("x", "y"), Match(0, "ok")]),
        *BUILTIN_PATTERNS,
    ])
    findings = Analyzer(registry).analyze(_unit("vulnerable_vault.move"))
    assert len(findings) == 8
    assert findings[0].description == "Found ok."


def test_duplicate_findings_are_preserved():
    registry = PatternRegistry([_pattern("twice", lambda text: [Match(0, "a"), Match(0, "a")])])
    findings = Analyzer(registry).analyze(ScanUnit(path="m.move", text="module"))
    assert len(findings) == 2
    assert findings[0] == findings[1]
