#!/usr/bin/env python3
"""
Aptotect - Static security scanner for Move smart contracts.

This tool performs lexical analysis of Move source files to identify insecure
idioms such as reentrancy-prone call ordering, unchecked arithmetic and missing
access control, and reports each finding with a severity, location,
description and remediation hint.

License: MIT
"""

# === Imports ===
import argparse
import bisect
import json
import logging
import re
import sys
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
from functools import lru_cache
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, NamedTuple, Optional, Sequence, Tuple

from pydantic import BaseModel, TypeAdapter, ValidationError, field_validator
from rich.console import Console
from rich.panel import Panel
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table
from rich.text import Text

# === Constants ===
VERSION = "0.1.0"
TOOL_NAME = "Aptotect"

SECURITY_WARNING = """
This tool performs LEXICAL ANALYSIS only and may produce false positives/negatives.
Findings describe textual heuristics, not proofs of exploitability.

- No type checking, control-flow or data-flow analysis is performed
- Manual review and the Move Prover remain essential
- Deploy to devnet/testnet before mainnet
"""

# File extensions to scan
MOVE_EXTENSIONS = {'.move'}

# Default ignore patterns, matched against the path relative to the scan root
DEFAULT_IGNORE_PATTERNS = [
    r'(^|/)\.git(/|$)',
    r'(^|/)build(/|$)',
    r'(^|/)node_modules(/|$)',
]

OUTPUT_FORMATS = ('text', 'json')

# Calls that move value out of the module or into another account
EXTERNAL_CALLS = (
    'coin::transfer',
    'coin::withdraw',
    'account::withdraw',
    'aptos_account::transfer',
    'aptos_account::transfer_coins',
    'primary_fungible_store::transfer',
    'fungible_asset::withdraw',
)

PRIVILEGED_FIELDS = {'owner', 'admin', 'authority', 'balance', 'balances', 'paused', 'treasury'}

AUTHORITY_NAMES = ('owner', 'admin', 'authority')

PRICE_TOKENS = {'price', 'ratio', 'rate'}

PRECISION_TOKENS = ('fee', 'amount', 'size', 'reward', 'share')

VALUE_FLOW_NAMES = ('withdraw', 'deposit', 'transfer', 'claim', 'redeem', 'mint', 'burn')

INTEGER_TYPES = {'u8', 'u16', 'u32', 'u64', 'u128', 'u256'}

NON_OPERANDS = INTEGER_TYPES | {'as', 'true', 'false', 'move', 'copy', 'mut', 'let', 'if', 'else'}


# === Enums ===
class Severity(Enum):
    """Severity levels for findings."""
    CRITICAL = "Critical"
    HIGH = "High"
    MEDIUM = "Medium"
    LOW = "Low"
    INFO = "Info"

    @property
    def rank(self) -> int:
        """Return the precedence of this severity, higher is more severe."""
        return _SEVERITY_RANK[self]


_SEVERITY_RANK = {
    Severity.CRITICAL: 4,
    Severity.HIGH: 3,
    Severity.MEDIUM: 2,
    Severity.LOW: 1,
    Severity.INFO: 0,
}

SEVERITY_COLORS = {
    Severity.CRITICAL: "red bold",
    Severity.HIGH: "red",
    Severity.MEDIUM: "yellow",
    Severity.LOW: "blue",
    Severity.INFO: "green",
}


# === Errors ===
class AptotectError(Exception):
    """Base class for scanner errors."""


class PatternRegistryError(AptotectError):
    """Raised when a pattern cannot be added to a registry."""


class DuplicatePatternError(PatternRegistryError):
    """Raised when two patterns share an id."""


class RegistryFrozenError(PatternRegistryError):
    """Raised when registering into a registry that is already in use."""


class SourceReadError(AptotectError):
    """Raised when a source file cannot be read as text."""


class ReportFormatError(AptotectError):
    """Raised for unknown output formats or malformed JSON reports."""


# === Data Models ===
@dataclass(frozen=True)
class Location:
    """Position of a finding. ``line`` is 1-based, ``column`` is 0-based."""
    file: str
    line: int
    column: int

    def to_dict(self) -> Dict[str, Any]:
        return {"file": self.file, "line": self.line, "column": self.column}


@dataclass(frozen=True)
class Finding:
    """Represents a single detected issue."""
    severity: Severity
    title: str
    description: str
    location: Location
    recommendation: str

    def sort_key(self) -> Tuple[int, str, int, int]:
        return (-self.severity.rank, self.location.file, self.location.line, self.location.column)

    def to_dict(self) -> Dict[str, Any]:
        """Convert finding to its wire representation."""
        return {
            "severity": self.severity.value,
            "title": self.title,
            "description": self.description,
            "location": self.location.to_dict(),
            "recommendation": self.recommendation,
        }


class Match(NamedTuple):
    """One occurrence reported by a detection rule."""
    offset: int
    detail: str


@dataclass(frozen=True)
class Pattern:
    """
    A named, severity-tagged detector.

    ``description`` may reference ``{detail}``, which is filled with the
    detail of each match. ``detect`` maps source text to matches ordered
    by offset.
    """
    id: str
    title: str
    severity: Severity
    description: str
    recommendation: str
    detect: Callable[[str], List[Match]] = field(compare=False, repr=False)

    def describe(self, detail: str) -> str:
        return self.description.format(detail=detail)


@dataclass(frozen=True)
class ScanUnit:
    """One source file's path and content."""
    path: str
    text: str


@dataclass
class Report:
    """Ordered findings of one scan invocation."""
    findings: List[Finding] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.findings)

    def get_summary(self) -> Dict[str, int]:
        """Get finding counts per severity."""
        summary = {"total": self.total}
        for severity in Severity:
            summary[severity.value.lower()] = 0
        for finding in self.findings:
            summary[finding.severity.value.lower()] += 1
        return summary

    def summary_line(self) -> str:
        return f"Summary: {self.total} vulnerabilities found"


class LocationRecord(BaseModel):
    """Wire schema of a finding location."""
    file: str
    line: int
    column: int

    @field_validator('line')
    @classmethod
    def line_is_one_based(cls, value: int) -> int:
        if value < 1:
            raise ValueError("line must be >= 1")
        return value

    @field_validator('column')
    @classmethod
    def column_is_zero_based(cls, value: int) -> int:
        if value < 0:
            raise ValueError("column must be >= 0")
        return value


class FindingRecord(BaseModel):
    """Wire schema of a finding, as emitted by the json format."""
    severity: Severity
    title: str
    description: str
    location: LocationRecord
    recommendation: str

    def to_finding(self) -> Finding:
        return Finding(
            severity=self.severity,
            title=self.title,
            description=self.description,
            location=Location(
                file=self.location.file,
                line=self.location.line,
                column=self.location.column,
            ),
            recommendation=self.recommendation,
        )


_FINDING_LIST_ADAPTER = TypeAdapter(List[FindingRecord])


# === Utility Functions ===
def setup_logging(verbose: bool = False, log_file: Optional[str] = None) -> logging.Logger:
    """
    Configure logging for the application.

    Args:
        verbose: Enable debug logging on stderr
        log_file: Optional file that receives the same records

    Returns:
        Configured logger instance
    """
    log_level = logging.DEBUG if verbose else logging.INFO
    handlers: List[logging.Handler] = [
        logging.StreamHandler(sys.stderr) if verbose else logging.NullHandler()
    ]
    if log_file:
        handlers.append(logging.FileHandler(log_file))
    logging.basicConfig(
        level=log_level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=handlers,
        force=True,
    )
    return logging.getLogger(__name__)


def should_ignore_path(path: Path, ignore_patterns: List[str]) -> bool:
    """
    Check if path should be ignored based on patterns.

    Args:
        path: Path to check, relative to the scan root
        ignore_patterns: List of regex patterns to ignore

    Returns:
        True if should be ignored
    """
    path_str = path.as_posix()
    for pattern in ignore_patterns:
        if re.search(pattern, path_str):
            return True
    return False


class LineIndex:
    """Map character offsets of one text to line/column positions.

    ``\\r\\n``, ``\\r`` and ``\\n`` each terminate a line.
    """

    _TERMINATOR_RE = re.compile(r'\r\n|\r|\n')

    def __init__(self, text: str):
        self._length = len(text)
        self._starts = [0] + [m.end() for m in self._TERMINATOR_RE.finditer(text)]

    def locate(self, offset: int) -> Tuple[int, int]:
        """Return the 1-based line and 0-based column of ``offset``."""
        if not 0 <= offset <= self._length:
            raise ValueError(f"offset {offset} outside text of length {self._length}")
        line = bisect.bisect_right(self._starts, offset)
        return line, offset - self._starts[line - 1]


def resolve_location(path: str, text: str, offset: int) -> Location:
    line, column = LineIndex(text).locate(offset)
    return Location(file=path, line=line, column=column)


# === Lexical Helpers ===
_MASK_RE = re.compile(r'//[^\r\n]*|/\*.*?\*/|"(?:\\.|[^"\\\r\n])*"', re.DOTALL)

_FUNCTION_RE = re.compile(
    r'(?P<modifiers>(?:\b(?:public(?:\s*\(\s*\w+\s*\))?|entry|inline|native|private)\s+)*)'
    r'\bfun\s+(?P<name>\w+)\s*(?P<generics><[^(){};]*>)?\s*\('
)

_BODY_START_RE = re.compile(r'[{;]')

_ASSIGN_RE = re.compile(
    r'(?P<lhs>(?:\*\s*)?(?<![\w.])[A-Za-z_]\w*(?:\s*\.\s*\w+)*)'
    r'(?:\s*:\s*[\w:<>,&\s]+?)?'
    r'\s*(?P<op>[+\-*/]?)=(?![=>])'
    r'(?P<rhs>[^;{}]*);'
)

_CONDITION_RE = re.compile(r'\b(?:assert!|if|while)\s*\(')
_TYPE_ARGS_RE = re.compile(r'(?<=\w)<[\w:,\s]*>(?=\s*\()')
_COMPARISON_RE = re.compile(r'[<>]=?')
_NONZERO_RE = re.compile(r'(?:!=|>)\s*0(?:u\d+)?\b|>=\s*1(?:u\d+)?\b|\b0(?:u\d+)?\s*(?:<|!=)|\b1(?:u\d+)?\s*<=')
_IDENTIFIER_RE = re.compile(r'[A-Za-z_]\w*')
_LEADING_OPERAND_RE = re.compile(r'\s*\(?\s*\*?\s*(?P<name>[A-Za-z_][\w.]*)')
_INTEGER_LITERAL_RE = re.compile(r'^(?:0x[0-9a-fA-F_]+|[0-9_]+)(?:u\d+)?$')
_CONSTANT_RE = re.compile(r'^[A-Z][A-Z0-9_]*$')

_BINARY_PLUS_RE = re.compile(r'[\w)\]]\s*\+')
_BINARY_STAR_RE = re.compile(r'[\w)\]]\s*\*(?![/*=])')
_BINARY_MINUS_RE = re.compile(r'(?<=[\w)\]])\s*-(?![-=>])')
_DIVISION_RE = re.compile(r'(?<=[\w)\]])(?P<space>\s*)/(?![/*=])\s*(?P<divisor>\(|[\w.:]+)')
_DIV_THEN_MUL_RE = re.compile(r'[\w)\]]\s*/(?![/*=])[^;]*?[\w)\]]\s*\*(?![/*=])')
_DIV_BY_LITERAL_RE = re.compile(r'[\w)\]]\s*/(?![/*=])\s*\d[\d_]*(?:u\d+)?\b')


class FunctionSpan(NamedTuple):
    """A ``fun`` declaration and the extent of its body."""
    name: str
    start: int
    body_start: int
    body_end: int
    modifiers: str
    generics: str

    @property
    def is_public(self) -> bool:
        return bool(re.search(r'\bpublic\b(?!\s*\()', self.modifiers))

    @property
    def is_entry(self) -> bool:
        return bool(re.search(r'\bentry\b', self.modifiers))

    @property
    def exposed(self) -> bool:
        return self.is_public or self.is_entry


class Assignment(NamedTuple):
    start: int
    end: int
    lhs: str
    op: str
    rhs: str

    @property
    def leaf(self) -> str:
        return self.lhs.split('.')[-1].strip().lstrip('*').strip()


def _blank(match: 're.Match[str]') -> str:
    return re.sub(r'[^\r\n]', ' ', match.group(0))


@lru_cache(maxsize=64)
def mask_source(text: str) -> str:
    """
    Blank out comments and string literals.

    The result has the same length and line breaks as ``text``, so offsets
    found in it are valid offsets into the original source.
    """
    return _MASK_RE.sub(_blank, text)


def find_closing(text: str, open_index: int, opening: str = '(', closing: str = ')') -> int:
    """Return the index of the bracket closing the one at ``open_index``, or -1."""
    depth = 0
    for index in range(open_index, len(text)):
        char = text[index]
        if char == opening:
            depth += 1
        elif char == closing:
            depth -= 1
            if depth == 0:
                return index
    return -1


@lru_cache(maxsize=64)
def find_functions(masked: str) -> Tuple[FunctionSpan, ...]:
    """
    Locate every function body in masked source.

    Native declarations (no body) are skipped. An unterminated body extends
    to the end of the text.
    """
    spans = []
    for match in _FUNCTION_RE.finditer(masked):
        params_end = find_closing(masked, match.end() - 1)
        if params_end < 0:
            continue
        body = _BODY_START_RE.search(masked, params_end + 1)
        if body is None or body.group(0) == ';':
            continue
        body_end = find_closing(masked, body.start(), '{', '}')
        if body_end < 0:
            body_end = len(masked)
        spans.append(FunctionSpan(
            name=match.group('name'),
            start=match.start(),
            body_start=body.start(),
            body_end=body_end,
            modifiers=match.group('modifiers') or '',
            generics=match.group('generics') or '',
        ))
    return tuple(spans)


def function_assignments(masked: str, function: FunctionSpan) -> List[Assignment]:
    assignments = []
    for m in _ASSIGN_RE.finditer(masked, function.body_start, function.body_end):
        assignments.append(Assignment(
            start=m.start('lhs'),
            end=m.end(),
            lhs=' '.join(m.group('lhs').split()),
            op=m.group('op'),
            rhs=m.group('rhs'),
        ))
    return assignments


def conditions_before(masked: str, function: FunctionSpan, offset: int) -> List[str]:
    """Return the text of ``assert!``/``if``/``while`` conditions preceding ``offset``."""
    conditions = []
    for m in _CONDITION_RE.finditer(masked, function.body_start, offset):
        close = find_closing(masked, m.end() - 1)
        if close < 0:
            continue
        conditions.append(_TYPE_ARGS_RE.sub('', masked[m.end():close]))
    return conditions


def mentions(text: str, name: str) -> bool:
    return re.search(r'(?<![\w@])' + re.escape(name) + r'(?!\w)', text) is not None


def operand_names(expression: str) -> List[str]:
    return [name for name in _IDENTIFIER_RE.findall(expression) if name not in NON_OPERANDS]


def leading_operand(expression: str) -> Optional[str]:
    """Return the leaf name of the first operand of ``expression``, if it is an identifier."""
    m = _LEADING_OPERAND_RE.match(expression)
    if not m:
        return None
    return m.group('name').split('.')[-1]


def snippet(text: str, start: int, end: int, limit: int = 80) -> str:
    collapsed = ' '.join(text[start:end].split())
    if len(collapsed) > limit:
        return collapsed[:limit - 3] + '...'
    return collapsed


def line_snippet(text: str, offset: int) -> str:
    start = max(text.rfind('\n', 0, offset), text.rfind('\r', 0, offset)) + 1
    ends = [i for i in (text.find('\n', offset), text.find('\r', offset)) if i >= 0]
    return snippet(text, start, min(ends) if ends else len(text))


def _has_comparison_between(conditions: Iterable[str], left: Iterable[str], right: Iterable[str]) -> bool:
    """Return True if an ordering comparison mentions a name from each group."""
    left, right = list(left), list(right)
    for condition in conditions:
        if not _COMPARISON_RE.search(condition):
            continue
        if any(mentions(condition, name) for name in left) and any(mentions(condition, name) for name in right):
            return True
    return False


def _has_bound_on(conditions: Iterable[str], names: Iterable[str]) -> bool:
    # two distinct operands must appear in the same comparison
    names = list(dict.fromkeys(names))
    needed = min(2, len(names))
    if not needed:
        return False
    for condition in conditions:
        if not _COMPARISON_RE.search(condition):
            continue
        if sum(mentions(condition, name) for name in names) >= needed:
            return True
    return False


# === Detection Rules ===
_EXTERNAL_CALL_RE = re.compile(r'\b(?:' + '|'.join(re.escape(c) for c in EXTERNAL_CALLS) + r')\b')
_STATE_CHANGE_RE = re.compile(
    r'\bmove_to\b'
    r'|\bborrow_global_mut\b'
    r'|\b(?:table|smart_table|Table)::(?:add|upsert|remove)\b'
    r'|\bvector::(?:push_back|remove|swap_remove)\b'
    r'|[\w\]]\s*\.\s*\w+\s*[+\-*]?=(?![=>])'
)


def detect_reentrancy(text: str) -> List[Match]:
    """External value transfer followed by a state change in the same function."""
    masked = mask_source(text)
    matches = []
    for function in find_functions(masked):
        for call in _EXTERNAL_CALL_RE.finditer(masked, function.body_start, function.body_end):
            change = _STATE_CHANGE_RE.search(masked, call.end(), function.body_end)
            if change is None:
                continue
            matches.append(Match(
                call.start(),
                f"`{call.group(0)}` is followed by the state change `{line_snippet(text, change.start())}`",
            ))
    return matches


def detect_integer_overflow(text: str) -> List[Match]:
    """Addition or multiplication without a preceding bound check."""
    masked = mask_source(text)
    matches = []
    for function in find_functions(masked):
        for assignment in function_assignments(masked, function):
            compound = assignment.op in ('+', '*')
            if not (compound or _BINARY_PLUS_RE.search(assignment.rhs) or _BINARY_STAR_RE.search(assignment.rhs)):
                continue
            names = operand_names(assignment.rhs)
            if compound:
                names.append(assignment.leaf)
            conditions = conditions_before(masked, function, assignment.start)
            if _has_bound_on(conditions, names):
                continue
            matches.append(Match(assignment.start, snippet(text, assignment.start, assignment.end)))
    return matches


def detect_unchecked_arithmetic(text: str) -> List[Match]:
    """Subtraction whose subtrahend is never compared beforehand."""
    masked = mask_source(text)
    matches = []
    for function in find_functions(masked):
        for assignment in function_assignments(masked, function):
            if assignment.op == '-':
                subtrahend = leading_operand(assignment.rhs)
                minuend = [assignment.leaf]
            else:
                minus = _BINARY_MINUS_RE.search(assignment.rhs)
                if minus is None:
                    continue
                subtrahend = leading_operand(assignment.rhs[minus.end():])
                minuend = operand_names(assignment.rhs[:minus.start()])
            subtrahends = [subtrahend] if subtrahend and subtrahend not in NON_OPERANDS else minuend
            conditions = conditions_before(masked, function, assignment.start)
            if _has_comparison_between(conditions, subtrahends, minuend):
                continue
            matches.append(Match(assignment.start, snippet(text, assignment.start, assignment.end)))
    return matches


_CALLER_BINDING_RE = re.compile(r'\blet\s+(?P<name>\w+)\s*(?::[^=;]*)?=\s*signer::address_of\b')
_AUTHORITY_RE = re.compile('|'.join(AUTHORITY_NAMES))


def _has_caller_check(masked: str, function: FunctionSpan, offset: int) -> bool:
    callers = ['address_of']
    callers.extend(m.group('name') for m in _CALLER_BINDING_RE.finditer(masked, function.body_start, offset))
    for condition in conditions_before(masked, function, offset):
        if '==' not in condition or not _AUTHORITY_RE.search(condition):
            continue
        if any(mentions(condition, caller) for caller in callers):
            return True
    return False


def detect_access_control(text: str) -> List[Match]:
    """Privileged field mutation in an exposed function without a caller check."""
    masked = mask_source(text)
    matches = []
    for function in find_functions(masked):
        if not function.exposed:
            continue
        for assignment in function_assignments(masked, function):
            is_field = '.' in assignment.lhs or assignment.lhs.startswith('*')
            if not is_field or assignment.leaf not in PRIVILEGED_FIELDS:
                continue
            if _has_caller_check(masked, function, assignment.start):
                continue
            matches.append(Match(
                assignment.start,
                f"`{assignment.lhs}` is modified in `{function.name}`",
            ))
    return matches


_TABLE_LOOKUP_RE = re.compile(
    r'\b(?P<module>table|smart_table)::borrow(?:_mut)?\s*\(\s*&?\s*(?:mut\s+)?(?P<target>[\w.]+)'
)
_OPTION_UNWRAP_RE = re.compile(
    r'\boption::(?P<op>extract|borrow|borrow_mut)\s*\(\s*&\s*(?:mut\s+)?(?P<target>[\w.]+)'
)


_CALL_OPEN_RE = re.compile(r'\s*\(')
_LITERAL_DIGITS_RE = re.compile(r'^(?:0x(?P<hex>[0-9a-fA-F_]+)|(?P<dec>[0-9_]+))(?:u\d+)?$')


def _divisor_expression(masked: str, match: 're.Match[str]') -> str:
    """Return the divisor text, including a call's argument list or a parenthesized group."""
    token = match.group('divisor')
    if token == '(':
        open_index = match.start('divisor')
    else:
        call = _CALL_OPEN_RE.match(masked, match.end())
        if call is None:
            return token
        open_index = call.end() - 1
    close = find_closing(masked, open_index)
    if close < 0:
        return token
    prefix = '' if token == '(' else token
    return prefix + masked[open_index:close + 1]


def _is_nonzero_literal(token: str) -> bool:
    m = _LITERAL_DIGITS_RE.match(token)
    if m is None:
        return False
    digits = (m.group('hex') or m.group('dec')).replace('_', '')
    return bool(digits.strip('0'))


def detect_missing_error_handling(text: str) -> List[Match]:
    """Division, table lookup or option unwrap without a preceding guard."""
    masked = mask_source(text)
    matches = []
    for function in find_functions(masked):
        for division in _DIVISION_RE.finditer(masked, function.body_start, function.body_end):
            divisor = _divisor_expression(masked, division)
            token = division.group('divisor')
            if _is_nonzero_literal(token):
                continue
            names = operand_names(divisor) if token == '(' else [token.split('.')[-1]]
            offset = division.start() + len(division.group('space'))
            guarded = any(
                _NONZERO_RE.search(condition) and any(mentions(condition, name) for name in names)
                for condition in conditions_before(masked, function, offset)
            )
            if not guarded:
                matches.append(Match(offset, f"division by `{' '.join(divisor.split()) or token}`"))

        for lookup in _TABLE_LOOKUP_RE.finditer(masked, function.body_start, function.body_end):
            target = lookup.group('target')
            contains = re.compile(
                r'\b' + lookup.group('module') + r'::contains\s*\(\s*&?\s*(?:mut\s+)?' + re.escape(target) + r'\b'
            )
            if not contains.search(masked, function.body_start, lookup.start()):
                matches.append(Match(lookup.start(), f"table lookup on `{target}`"))

        for unwrap in _OPTION_UNWRAP_RE.finditer(masked, function.body_start, function.body_end):
            target = unwrap.group('target')
            check = re.compile(r'\boption::is_(?:some|none)\s*\(\s*&\s*' + re.escape(target) + r'\b')
            if not check.search(masked, function.body_start, unwrap.start()):
                matches.append(Match(unwrap.start(), f"`option::{unwrap.group('op')}` on `{target}`"))
    return sorted(matches)


_LOOP_RE = re.compile(r'\bloop\s*\{')
_WHILE_RE = re.compile(r'\bwhile\s*\(')
_FOR_RANGE_RE = re.compile(r'\bfor\s*\(\s*\w+\s+in\s+(?P<start>[^;)]*?)\.\.(?P<end>[^;)]*)\)')
# a literal or constant upper bound: `i < 10`, `i <= MAX`, `10 > i`, `MAX >= i`
_BOUND_RE = re.compile(
    r'(?<![<>])<=?\s*(?:\d[\d_]*(?:u\d+)?|[A-Z][A-Z0-9_]*)\b'
    r'|\b(?:\d[\d_]*(?:u\d+)?|[A-Z][A-Z0-9_]*)\s*>=?(?![>])'
)


def _is_static_bound(expression: str) -> bool:
    expression = expression.strip()
    return bool(_INTEGER_LITERAL_RE.match(expression) or _CONSTANT_RE.match(expression))


def detect_unbounded_execution(text: str) -> List[Match]:
    """Loops without a statically visible iteration bound."""
    masked = mask_source(text)
    matches = []
    for loop in _LOOP_RE.finditer(masked):
        matches.append(Match(loop.start(), "`loop` without a static iteration bound"))
    for loop in _WHILE_RE.finditer(masked):
        close = find_closing(masked, loop.end() - 1)
        if close < 0:
            continue
        condition = ' '.join(masked[loop.end():close].split())
        if not _BOUND_RE.search(condition):
            matches.append(Match(loop.start(), f"`while ({condition})`"))
    for loop in _FOR_RANGE_RE.finditer(masked):
        if not _is_static_bound(loop.group('end')):
            matches.append(Match(loop.start(), f"`for` over `{' '.join(loop.group(0).split())}`"))
    return sorted(matches)


def detect_generics_type_check(text: str) -> List[Match]:
    """Public generic functions that never inspect their type argument."""
    masked = mask_source(text)
    matches = []
    for function in find_functions(masked):
        if not function.is_public or not function.generics:
            continue
        body = masked[function.body_start:function.body_end]
        if re.search(r'\btype_info::type_(?:of|name)\b', body):
            continue
        matches.append(Match(function.start, f"`{function.name}{function.generics}`"))
    return matches


def detect_price_oracle_manipulation(text: str) -> List[Match]:
    """Prices derived from on-chain ratios without an oracle."""
    masked = mask_source(text)
    matches = []
    for function in find_functions(masked):
        for assignment in function_assignments(masked, function):
            tokens = set(assignment.leaf.lower().split('_'))
            if not tokens & PRICE_TOKENS:
                continue
            if not _DIVISION_RE.search(assignment.rhs):
                continue
            statement = masked[assignment.start:assignment.end].lower()
            if 'oracle' in statement or 'twap' in statement:
                continue
            matches.append(Match(assignment.start, snippet(text, assignment.start, assignment.end)))
    return matches


def detect_arithmetic_precision(text: str) -> List[Match]:
    """Division before multiplication, or amounts truncated by literal divisors."""
    masked = mask_source(text)
    matches = []
    for function in find_functions(masked):
        for assignment in function_assignments(masked, function):
            statement = snippet(text, assignment.start, assignment.end)
            if _DIV_THEN_MUL_RE.search(assignment.rhs):
                matches.append(Match(assignment.start, f"division before multiplication in `{statement}`"))
                continue
            if not _DIV_BY_LITERAL_RE.search(assignment.rhs):
                continue
            lowered = (assignment.lhs + ' ' + assignment.rhs).lower()
            if any(token in lowered for token in PRECISION_TOKENS):
                matches.append(Match(assignment.start, f"literal divisor truncates `{statement}`"))
    return matches


_COIN_OP_RE = re.compile(r'\bcoin::(?:deposit|withdraw)\b')
_REGISTRATION_RE = re.compile(r'\bcoin::(?:is_account_registered|register)\b')


def detect_account_registration(text: str) -> List[Match]:
    """Coin deposits and withdrawals without a registration check."""
    masked = mask_source(text)
    matches = []
    for function in find_functions(masked):
        for op in _COIN_OP_RE.finditer(masked, function.body_start, function.body_end):
            if _REGISTRATION_RE.search(masked, function.body_start, op.start()):
                continue
            matches.append(Match(op.start(), f"`{op.group(0)}` in `{function.name}`"))
    return matches


_KEY_STRUCT_RE = re.compile(
    r'\bstruct\s+(?P<name>\w+)(?:\s*<[^>{]*>)?\s+has\s+(?P<abilities>[\w\s,]+?)\s*\{(?P<fields>[^}]*)\}'
)


def detect_resource_management(text: str) -> List[Match]:
    """Global ``key`` resources that collect per-user data in a vector."""
    masked = mask_source(text)
    matches = []
    for struct in _KEY_STRUCT_RE.finditer(masked):
        if not re.search(r'\bkey\b', struct.group('abilities')):
            continue
        if 'vector<' not in struct.group('fields'):
            continue
        matches.append(Match(struct.start(), f"`{struct.group('name')}`"))
    return matches


def detect_business_logic_flaw(text: str) -> List[Match]:
    """Value-moving entry points that assert no invariant at all."""
    masked = mask_source(text)
    matches = []
    for function in find_functions(masked):
        if not function.exposed:
            continue
        lowered = function.name.lower()
        if not any(name in lowered for name in VALUE_FLOW_NAMES):
            continue
        body = masked[function.body_start:function.body_end]
        if 'assert!' in body or re.search(r'\babort\b', body):
            continue
        matches.append(Match(function.start, f"`{function.name}`"))
    return matches


_OPTION_EXTRACT_RE = re.compile(r'\boption::extract\s*\(\s*&\s*mut\s+(?P<target>[\w.]+)')


def detect_incorrect_std_function(text: str) -> List[Match]:
    """``option::borrow`` on an option that was already emptied by ``extract``."""
    masked = mask_source(text)
    matches = []
    for function in find_functions(masked):
        for extract in _OPTION_EXTRACT_RE.finditer(masked, function.body_start, function.body_end):
            target = re.escape(extract.group('target'))
            borrow = re.compile(r'\boption::borrow(?:_mut)?\s*\(\s*&\s*(?:mut\s+)?' + target + r'\b')
            refill = re.compile(r'\boption::fill\s*\(\s*&\s*mut\s+' + target + r'\b')
            found = borrow.search(masked, extract.end(), function.body_end)
            if found is None:
                continue
            if refill.search(masked, extract.end(), found.start()):
                continue
            matches.append(Match(found.start(), f"`{extract.group('target')}` borrowed after `option::extract`"))
    return sorted(set(matches))


# === Pattern Catalog ===
BUILTIN_PATTERNS: Tuple[Pattern, ...] = (
    Pattern(
        id="reentrancy",
        title="Reentrancy Vulnerability",
        severity=Severity.CRITICAL,
        description=(
            "Potential reentrancy vulnerability detected: {detail}. External call followed by "
            "state change could allow an attacker to re-enter the function before the state is "
            "updated, leading to multiple withdrawals or unauthorized state modifications."
        ),
        recommendation=(
            "Implement the checks-effects-interactions pattern: 1) Validate all conditions first, "
            "2) Update state variables, 3) Make external calls last."
        ),
        detect=detect_reentrancy,
    ),
    Pattern(
        id="integer-overflow",
        title="Integer Overflow Vulnerability",
        severity=Severity.HIGH,
        description=(
            "Potential integer overflow detected: `{detail}` performs arithmetic without a "
            "preceding bound check. The transaction aborts on overflow, which can lock funds "
            "or block critical operations."
        ),
        recommendation=(
            "Add bound checks using assert! before the operation, or use checked math helpers "
            "that handle overflow explicitly."
        ),
        detect=detect_integer_overflow,
    ),
    Pattern(
        id="unchecked-arithmetic",
        title="Unchecked Arithmetic Vulnerability",
        severity=Severity.HIGH,
        description=(
            "Potential unchecked arithmetic detected: `{detail}` subtracts without an underflow "
            "check. The transaction aborts on underflow, potentially causing failed withdrawals "
            "or incorrect accounting."
        ),
        recommendation=(
            "Add underflow checks using assert! (e.g. assert!(balance >= amount, E_INSUFFICIENT)) "
            "before subtracting."
        ),
        detect=detect_unchecked_arithmetic,
    ),
    Pattern(
        id="access-control",
        title="Access Control Vulnerability",
        severity=Severity.HIGH,
        description=(
            "Missing access control detected: {detail} without comparing the caller against the "
            "stored owner. This could allow unauthorized users to modify critical contract state."
        ),
        recommendation=(
            "Implement proper access control: 1) Compare signer::address_of(caller) with the stored "
            "owner before state modifications, 2) Use role-based access control where appropriate, "
            "3) Consider a multi-signature requirement for critical operations."
        ),
        detect=detect_access_control,
    ),
    Pattern(
        id="missing-error-handling",
        title="Missing Error Handling Vulnerability",
        severity=Severity.MEDIUM,
        description=(
            "Missing error handling detected: {detail} has no preceding guard. This could abort "
            "the entire transaction at runtime with an unhelpful error."
        ),
        recommendation=(
            "Guard the operation with assert! (non-zero divisor, table::contains, option::is_some) "
            "and use custom error codes with clear meanings."
        ),
        detect=detect_missing_error_handling,
    ),
    Pattern(
        id="unbounded-execution",
        title="Unbounded Execution Vulnerability",
        severity=Severity.MEDIUM,
        description=(
            "Potential unbounded execution: {detail} may iterate over user-controlled or growing "
            "data, leading to denial of service via gas exhaustion."
        ),
        recommendation=(
            "Limit loop iterations, use data structures that prevent unbounded growth, or add "
            "explicit iteration caps."
        ),
        detect=detect_unbounded_execution,
    ),
    Pattern(
        id="generics-type-check",
        title="Lack of Generics Type Checking Vulnerability",
        severity=Severity.CRITICAL,
        description=(
            "Public function {detail} takes a generic type parameter but never checks it. "
            "Attackers can exploit type mismatches to drain assets."
        ),
        recommendation=(
            "Add type checks (type_info::type_of) or assertions to ensure the generic type matches "
            "the expected or whitelisted type."
        ),
        detect=detect_generics_type_check,
    ),
    Pattern(
        id="price-oracle-manipulation",
        title="Price Oracle Manipulation Vulnerability",
        severity=Severity.CRITICAL,
        description=(
            "Potential price oracle manipulation: `{detail}` derives a price from on-chain ratios "
            "without external validation."
        ),
        recommendation=(
            "Use time-weighted or external oracles, and validate price sources to prevent "
            "manipulation."
        ),
        detect=detect_price_oracle_manipulation,
    ),
    Pattern(
        id="arithmetic-precision",
        title="Arithmetic Precision Error Vulnerability",
        severity=Severity.MEDIUM,
        description=(
            "Potential arithmetic precision error: {detail}. Rounding can let users bypass fees "
            "or receive incorrect payouts."
        ),
        recommendation=(
            "Multiply before dividing, require minimum amounts, and ensure results are non-zero "
            "after division."
        ),
        detect=detect_arithmetic_precision,
    ),
    Pattern(
        id="account-registration",
        title="Lack of Account Registration Check Vulnerability",
        severity=Severity.MEDIUM,
        description=(
            "Potential lack of account registration check: {detail} runs without checking or "
            "registering the account, which can cause failed transactions or stuck funds."
        ),
        recommendation="Always check coin::is_account_registered and register accounts before coin operations.",
        detect=detect_account_registration,
    ),
    Pattern(
        id="resource-management",
        title="Improper Resource Management Vulnerability",
        severity=Severity.LOW,
        description=(
            "Improper resource management: resource {detail} keeps per-user data in a global "
            "vector instead of user accounts, leading to ambiguous ownership and potential DoS."
        ),
        recommendation="Store resources in user accounts whenever possible.",
        detect=detect_resource_management,
    ),
    Pattern(
        id="business-logic-flaw",
        title="Business Logic Flaw Vulnerability",
        severity=Severity.HIGH,
        description=(
            "Potential business logic flaw: {detail} moves value without any invariant check, "
            "which may allow repeated actions such as double withdrawal."
        ),
        recommendation=(
            "Carefully review and test all business logic paths, and enforce invariants with "
            "assertions."
        ),
        detect=detect_business_logic_flaw,
    ),
    Pattern(
        id="incorrect-std-function",
        title="Incorrect Standard Function Usage Vulnerability",
        severity=Severity.MEDIUM,
        description=(
            "Incorrect use of standard library function: {detail}. Borrowing from an emptied "
            "Option aborts at runtime."
        ),
        recommendation="Use each stdlib function as intended and add tests for edge cases.",
        detect=detect_incorrect_std_function,
    ),
)


# === Pattern Registry ===
class PatternRegistry:
    """Ordered catalog of patterns, read-only once frozen."""

    def __init__(self, patterns: Iterable[Pattern] = ()):
        """
        Initialize registry.

        Args:
            patterns: Patterns to register, in order
        """
        self._patterns: List[Pattern] = []
        self._frozen = False
        for pattern in patterns:
            self.register(pattern)

    @property
    def frozen(self) -> bool:
        return self._frozen

    def register(self, pattern: Pattern) -> Pattern:
        """
        Append a pattern to the catalog.

        Args:
            pattern: Pattern to add

        Returns:
            The registered pattern

        Raises:
            RegistryFrozenError: If the registry is already in use by a scan
            DuplicatePatternError: If the id is already registered
            PatternRegistryError: If the description template is malformed
        """
        if self._frozen:
            raise RegistryFrozenError(f"cannot register '{pattern.id}': registry is frozen")
        if any(existing.id == pattern.id for existing in self._patterns):
            raise DuplicatePatternError(f"pattern id '{pattern.id}' is already registered")
        try:
            pattern.describe("")
        except (KeyError, IndexError, ValueError, AttributeError) as e:
            raise PatternRegistryError(f"pattern '{pattern.id}' has a malformed description: {e}") from e
        self._patterns.append(pattern)
        return pattern

    def freeze(self) -> "PatternRegistry":
        self._frozen = True
        return self

    def all(self) -> Tuple[Pattern, ...]:
        return tuple(self._patterns)

    def get(self, pattern_id: str) -> Pattern:
        for pattern in self._patterns:
            if pattern.id == pattern_id:
                return pattern
        raise KeyError(pattern_id)

    def __iter__(self):
        return iter(self.all())

    def __len__(self) -> int:
        return len(self._patterns)


def default_registry() -> PatternRegistry:
    """Build a new, unfrozen registry holding the built-in patterns."""
    return PatternRegistry(BUILTIN_PATTERNS)


# === Analyzer ===
class Analyzer:
    """Runs every registered pattern over one scan unit."""

    def __init__(self, registry: PatternRegistry, logger: Optional[logging.Logger] = None):
        """
        Initialize analyzer.

        Args:
            registry: Pattern catalog; it is frozen for the analyzer's lifetime
            logger: Logger instance
        """
        self.registry = registry.freeze()
        self.logger = logger or logging.getLogger(__name__)

    def analyze(self, unit: ScanUnit) -> List[Finding]:
        """
        Analyze a single source unit.

        Args:
            unit: Path and text of the source file

        Returns:
            Findings in registration order, each pattern's ordered by offset
        """
        index = LineIndex(unit.text)
        findings = []
        for pattern in self.registry.all():
            try:
                matches = list(pattern.detect(unit.text))
            except Exception as e:  # a failing heuristic counts as no match
                self.logger.debug(f"Pattern {pattern.id} failed on {unit.path}: {e!r}")
                continue
            for match in matches:
                try:
                    offset, detail = match
                    line, column = index.locate(offset)
                    description = pattern.describe(detail)
                except (TypeError, ValueError, KeyError, IndexError, AttributeError) as e:
                    self.logger.debug(f"Pattern {pattern.id} produced an unusable match in {unit.path}: {e!r}")
                    continue
                findings.append(Finding(
                    severity=pattern.severity,
                    title=pattern.title,
                    description=description,
                    location=Location(file=unit.path, line=line, column=column),
                    recommendation=pattern.recommendation,
                ))
        return findings


# === Aggregation ===
def aggregate(results: Iterable[Sequence[Finding]]) -> Report:
    """
    Merge per-unit findings into one deterministically ordered report.

    Findings are ordered by severity (descending), file, line and column;
    ties fall back to the position within the unit's list, which follows
    pattern registration order.

    Args:
        results: One finding sequence per scanned unit

    Returns:
        Sorted report
    """
    keyed = []
    for unit_findings in results:
        for position, finding in enumerate(unit_findings):
            keyed.append((finding.sort_key() + (position,), finding))
    keyed.sort(key=lambda item: item[0])
    return Report(findings=[finding for _, finding in keyed])


# === Source Loading ===
def discover_sources(scan_path: Path, ignore_patterns: Optional[List[str]] = None) -> List[Path]:
    """
    Find all Move files to scan.

    Args:
        scan_path: File or directory
        ignore_patterns: Regexes matched against paths relative to ``scan_path``

    Returns:
        Sorted list of Move file paths
    """
    if scan_path.is_file():
        return [scan_path]

    patterns = DEFAULT_IGNORE_PATTERNS if ignore_patterns is None else ignore_patterns
    files_to_scan = []
    for ext in MOVE_EXTENSIONS:
        for file_path in scan_path.rglob(f'*{ext}'):
            if not file_path.is_file():
                continue
            if should_ignore_path(file_path.relative_to(scan_path), patterns):
                continue
            files_to_scan.append(file_path)
    return sorted(files_to_scan)


def read_source(path: Path) -> str:
    """
    Read a source file as UTF-8 text.

    Raises:
        SourceReadError: If the file is unreadable or not text
    """
    try:
        data = path.read_bytes()
    except OSError as e:
        raise SourceReadError(f"cannot read {path}: {e.strerror or e}") from e
    if b'\x00' in data:
        raise SourceReadError(f"{path} looks like a binary file")
    try:
        return data.decode('utf-8')
    except UnicodeDecodeError as e:
        raise SourceReadError(f"{path} is not valid UTF-8: {e.reason}") from e


def load_units(
    paths: Iterable[Path],
    console: Optional[Console] = None,
    logger: Optional[logging.Logger] = None
) -> Tuple[List[ScanUnit], List[str]]:
    """
    Read scan units, skipping files that cannot be read.

    Returns:
        The loaded units and one diagnostic message per skipped file
    """
    logger = logger or logging.getLogger(__name__)
    units = []
    skipped = []
    for path in paths:
        try:
            units.append(ScanUnit(path=str(path), text=read_source(path)))
        except SourceReadError as e:
            logger.warning(f"Skipping {path}: {e}")
            skipped.append(str(e))
            if console is not None:
                console.print(f"[yellow]Skipping: {e}[/yellow]")
    return units, skipped


# === Core Scanner ===
class MoveScanner:
    """Resolves a path to scan units and analyzes them."""

    def __init__(
        self,
        scan_path: Path,
        registry: Optional[PatternRegistry] = None,
        jobs: int = 1,
        ignore_patterns: Optional[List[str]] = None,
        logger: Optional[logging.Logger] = None
    ):
        """
        Initialize scanner.

        Args:
            scan_path: File or directory to scan
            registry: Pattern catalog, defaults to the built-in patterns
            jobs: Number of worker threads used for analysis
            ignore_patterns: Additional ignore patterns
            logger: Logger instance
        """
        self.scan_path = scan_path
        self.jobs = max(1, jobs)
        self.logger = logger or logging.getLogger(__name__)

        self.ignore_patterns = DEFAULT_IGNORE_PATTERNS.copy()
        if ignore_patterns:
            self.ignore_patterns.extend(ignore_patterns)

        self.analyzer = Analyzer(registry or default_registry(), logger=self.logger)
        self.files_scanned = 0
        self.skipped: List[str] = []

    def scan(self, console: Optional[Console] = None) -> Report:
        """
        Run the security scan.

        Args:
            console: Rich console for progress output

        Returns:
            Aggregated report
        """
        console = console or Console(stderr=True, quiet=True)
        files_to_scan = discover_sources(self.scan_path, self.ignore_patterns)
        self.logger.info(f"Discovered {len(files_to_scan)} Move files under {self.scan_path}")

        units, self.skipped = load_units(files_to_scan, console=console, logger=self.logger)
        self.files_scanned = len(units)

        if not units:
            console.print("[yellow]No Move files found to scan[/yellow]")
            return aggregate([])

        results: List[List[Finding]] = []
        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            console=console,
            transient=True
        ) as progress:
            task = progress.add_task("[cyan]Analyzing modules...", total=len(units))
            if self.jobs == 1:
                for unit in units:
                    results.append(self.analyzer.analyze(unit))
                    progress.advance(task)
            else:
                with ThreadPoolExecutor(max_workers=self.jobs) as executor:
                    for findings in executor.map(self.analyzer.analyze, units):
                        results.append(findings)
                        progress.advance(task)

        report = aggregate(results)
        self.logger.info(f"Scanned {self.files_scanned} files, {report.total} findings")
        return report


# === Reporting ===
class Reporter:
    """Renders reports. Rendering is side-effect free."""

    @staticmethod
    def render_text(report: Report) -> str:
        lines: List[str] = []
        for finding in report.findings:
            lines.append(f"[{finding.severity.value}] {finding.title}")
            lines.append(f"Location: {finding.location.file}:{finding.location.line}")
            lines.append(f"Description: {finding.description}")
            lines.append(f"Recommendation: {finding.recommendation}")
            lines.append("")
        lines.append(report.summary_line())
        return "\n".join(lines)

    @staticmethod
    def render_json(report: Report) -> str:
        return json.dumps([finding.to_dict() for finding in report.findings], indent=2, ensure_ascii=False)

    @staticmethod
    def render(report: Report, output_format: str) -> str:
        """
        Render a report.

        Args:
            report: Aggregated report
            output_format: ``text`` or ``json``

        Returns:
            Rendered report

        Raises:
            ReportFormatError: For unsupported formats
        """
        if output_format == 'text':
            return Reporter.render_text(report)
        if output_format == 'json':
            return Reporter.render_json(report)
        raise ReportFormatError(f"unsupported output format: {output_format}")

    @staticmethod
    def parse_json(payload: str) -> List[Finding]:
        """Rebuild the ordered findings from json output."""
        try:
            records = _FINDING_LIST_ADAPTER.validate_json(payload)
        except ValidationError as e:
            raise ReportFormatError(f"malformed report: {e.error_count()} validation error(s)") from e
        return [record.to_finding() for record in records]

    @staticmethod
    def print_summary_table(report: Report, console: Console) -> None:
        """Print the per-severity counts."""
        summary = report.get_summary()
        summary_table = Table(show_header=True, header_style="bold magenta")
        summary_table.add_column("Severity", style="cyan", width=15)
        summary_table.add_column("Count", justify="right", style="yellow", width=8)
        for severity in Severity:
            color = SEVERITY_COLORS[severity]
            count = summary[severity.value.lower()]
            summary_table.add_row(f"[{color}]{severity.value.upper()}[/{color}]", f"[{color}]{count}[/{color}]")
        console.print(summary_table)

    @staticmethod
    def print_pattern_table(registry: PatternRegistry, console: Console) -> None:
        """Print the pattern catalog."""
        table = Table(show_header=True, header_style="bold magenta", title="Detection Patterns")
        table.add_column("ID", style="cyan")
        table.add_column("Title")
        table.add_column("Severity")
        for pattern in registry.all():
            color = SEVERITY_COLORS[pattern.severity]
            table.add_row(pattern.id, pattern.title, f"[{color}]{pattern.severity.value}[/{color}]")
        console.print(table)


# === CLI ===
def print_banner(console: Console) -> None:
    """Print application banner."""
    console.print(Panel.fit(
        f"[bold cyan]{TOOL_NAME} v{VERSION}[/bold cyan]\n"
        "[dim]Security scanner for Move smart contracts[/dim]",
        border_style="cyan"
    ))
    console.print(Panel(Text(SECURITY_WARNING, style="yellow"), title="[yellow]NOTICE[/yellow]", border_style="yellow"))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="aptotect",
        description=f"{TOOL_NAME} - Security scanner for Move smart contracts",
    )
    target = parser.add_mutually_exclusive_group(required=True)
    target.add_argument('-p', '--path', help='Path to the Move source file or directory to analyze')
    target.add_argument('--list-patterns', action='store_true', help='List detection patterns and exit')
    parser.add_argument('-f', '--format', choices=OUTPUT_FORMATS, default='text', help='Output format (default: text)')
    parser.add_argument('-o', '--output', help='Write the report to this file instead of stdout')
    parser.add_argument('-j', '--jobs', type=int, default=1, help='Number of files analyzed in parallel')
    parser.add_argument('--ignore', action='append', help='Additional ignore patterns (can be used multiple times)')
    parser.add_argument('--verbose', action='store_true', help='Verbose logging')
    parser.add_argument('--log-file', help='Also write log records to this file')
    parser.add_argument('--no-banner', action='store_true', help='Skip banner')
    parser.add_argument('--version', action='version', version=f'{TOOL_NAME} v{VERSION}')
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)

    console = Console(stderr=True)

    if args.list_patterns:
        Reporter.print_pattern_table(default_registry(), Console())
        return 0

    logger = setup_logging(args.verbose, args.log_file)

    if not args.no_banner:
        print_banner(console)

    scan_path = Path(args.path)
    if not scan_path.exists():
        console.print(f"[red]Error: Path does not exist: {scan_path}[/red]")
        return 1

    console.print(f"[bold]Analyzing:[/bold] [cyan]{scan_path}[/cyan]")

    try:
        scanner = MoveScanner(
            scan_path=scan_path,
            jobs=args.jobs,
            ignore_patterns=args.ignore,
            logger=logger
        )
        report = scanner.scan(console)
        Reporter.print_summary_table(report, console)

        output = Reporter.render(report, args.format)
        if args.output:
            output_path = Path(args.output)
            output_path.write_text(output + "\n", encoding='utf-8')
            console.print(f"[green]✓[/green] Report saved to: {output_path}")
        else:
            print(output)
        return 0

    except KeyboardInterrupt:
        console.print("\n[yellow]Scan interrupted[/yellow]")
        return 1
    except Exception as e:
        console.print(f"\n[red]Fatal error: {e}[/red]")
        logger.exception("Fatal error")
        return 1


if __name__ == "__main__":
    sys.exit(main())
