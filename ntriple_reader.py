#!/usr/bin/env python3
"""Fault-tolerant N-Triples loader with per-line error recovery.

Input is read as one statement per physical line. Depending on the configured
policy a malformed line either aborts the partition it belongs to, or is logged
and skipped so that parsing resumes at the next line. Optional checking of RDF
terms reports IRIs and literals that are well formed lexically but invalid.

Implementation is self-contained and does not rely on rdflib.
"""

from __future__ import annotations

import argparse
import dataclasses
import functools
import io
import itertools
import logging
import os
import re
from concurrent.futures import ProcessPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
from glob import glob
from pathlib import Path
from typing import Callable, Generic, Iterable, Iterator, Sequence, TypeVar
from urllib.parse import urlsplit

__version__ = "0.1.0"

logger = logging.getLogger(__name__)

DEFAULT_ERROR_LOG = logging.getLogger("ntriple_reader.errors")
DEFAULT_PARTITION_SIZE = 100_000

RDF_NS = "http://www.w3.org/1999/02/22-rdf-syntax-ns#"
XSD_NS = "http://www.w3.org/2001/XMLSchema#"

RDF_LANG_STRING_IRI = f"{RDF_NS}langString"
XSD_STRING_IRI = f"{XSD_NS}string"


class Severity(Enum):
    """How serious a reported parse problem is."""

    WARNING = "warning"
    ERROR = "error"
    FATAL = "fatal"


class ParseError(ValueError):
    """Raised on syntax/semantic problems found while reading a statement."""

    severity = Severity.FATAL

    def __init__(
        self,
        source: str,
        line: int,
        column: int,
        message: str,
        severity: Severity | None = None,
    ):
        """Initialize a parse error with source location details."""
        super().__init__(f"{source}:{line}:{column}: {message}")
        self.source = source
        self.line = line
        self.column = column
        self.message = message
        if severity is not None:
            self.severity = severity

    def __reduce__(self):
        # Partition failures cross process boundaries when collected in parallel.
        return (
            self.__class__,
            (self.source, self.line, self.column, self.message, self.severity),
        )


class LexicalError(ParseError):
    """The tokenizer could not recognize a token."""


class NTriplesSyntaxError(ParseError):
    """A statement is missing a term or its terminating '.' is misplaced."""


class TermValidationError(ParseError):
    """A well-formed token carries a value that violates IRI or literal rules."""

    severity = Severity.ERROR


@dataclass(frozen=True)
class IRI:
    """IRI node value."""
    value: str


@dataclass(frozen=True)
class BNode:
    """Blank node label as written in the source."""
    label: str


@dataclass(frozen=True)
class Literal:
    """RDF literal with an optional language tag or datatype."""
    value: str
    lang: str | None = None
    datatype: str | None = None

    def __post_init__(self) -> None:
        if self.lang is not None and self.datatype not in (
            None,
            XSD_STRING_IRI,
            RDF_LANG_STRING_IRI,
        ):
            raise ValueError("a literal cannot carry both a language tag and a datatype")


Node = IRI | BNode | Literal
Triple = tuple[IRI | BNode, IRI, Node]


class LineByteStream(io.RawIOBase):
    """Readable byte stream over an iterable of text lines.

    Elements are expected without their line terminator; a ``\\n`` is
    re-inserted after each one. Lines are pulled one at a time, so at most a
    single encoded line is held in memory.
    """

    def __init__(self, lines: Iterable[str], encoding: str = "utf-8"):
        super().__init__()
        self._lines = iter(lines)
        self._encoding = encoding
        self._pending = b""
        self._offset = 0
        self._exhausted = False
        self.lines_read = 0

    def readable(self) -> bool:
        return True

    def readinto(self, buffer) -> int:
        if self.closed:
            raise ValueError("I/O operation on closed stream")
        while self._offset >= len(self._pending):
            if self._exhausted:
                return 0
            try:
                line = next(self._lines)
            except StopIteration:
                self._exhausted = True
                return 0
            self.lines_read += 1
            self._pending = (line + "\n").encode(self._encoding)
            self._offset = 0
        end = min(len(self._pending), self._offset + len(buffer))
        size = end - self._offset
        buffer[:size] = self._pending[self._offset : end]
        self._offset = end
        return size

    def close(self) -> None:
        if not self.closed:
            self._pending = b""
            self._exhausted = True
            close_source = getattr(self._lines, "close", None)
            if close_source is not None:
                close_source()
        super().close()


def open_line_reader(lines: Iterable[str], encoding: str = "utf-8") -> io.TextIOWrapper:
    """Wrap a line iterable into a text reader that decodes bytes on demand."""
    raw = LineByteStream(lines, encoding=encoding)
    return io.TextIOWrapper(io.BufferedReader(raw), encoding=encoding, newline="\n")


class Scanner:
    """Character cursor over one physical line with column tracking."""

    def __init__(self, text: str, source: str, line: int):
        self.text = text
        self.source = source
        self.line = line
        self.i = 0

    @property
    def col(self) -> int:
        """1-based column of the next unread character."""
        return self.i + 1

    def eof(self) -> bool:
        return self.i >= len(self.text)

    def peek(self, offset: int = 0) -> str:
        idx = self.i + offset
        if idx >= len(self.text):
            return ""
        return self.text[idx]

    def startswith(self, token: str) -> bool:
        return self.text.startswith(token, self.i)

    def advance(self) -> str:
        """Consume and return one character."""
        if self.eof():
            self.error("unexpected end of line")
        ch = self.text[self.i]
        self.i += 1
        return ch

    def consume(self, token: str) -> bool:
        if not self.startswith(token):
            return False
        self.i += len(token)
        return True

    def expect(
        self,
        token: str,
        message: str | None = None,
        error_cls: type[ParseError] = LexicalError,
    ) -> None:
        if not self.consume(token):
            self.error(message or f"expected '{token}'", error_cls)

    def skip_ws(self) -> None:
        while not self.eof() and self.text[self.i] in " \t\r":
            self.i += 1

    def discard_rest(self) -> None:
        """Drop whatever remains of the line."""
        self.i = len(self.text)

    def error(self, message: str, error_cls: type[ParseError] = LexicalError) -> None:
        """Raise ``error_cls`` at the current position."""
        raise error_cls(self.source, self.line, self.col, message)


PN_BASE_RANGES = (
    (0x00C0, 0x00D6),
    (0x00D8, 0x00F6),
    (0x00F8, 0x02FF),
    (0x0370, 0x037D),
    (0x037F, 0x1FFF),
    (0x200C, 0x200D),
    (0x2070, 0x218F),
    (0x2C00, 0x2FEF),
    (0x3001, 0xD7FF),
    (0xF900, 0xFDCF),
    (0xFDF0, 0xFFFD),
    (0x10000, 0xEFFFF),
)

LANGTAG_RE = re.compile(r"@([a-zA-Z]+(?:-[a-zA-Z0-9]+)*)")


def is_pn_chars_base(ch: str) -> bool:
    """Return whether a character is a valid `PN_CHARS_BASE` code point."""
    if len(ch) != 1:
        return False
    if "A" <= ch <= "Z" or "a" <= ch <= "z":
        return True
    cp = ord(ch)
    return any(lo <= cp <= hi for lo, hi in PN_BASE_RANGES)


def is_pn_chars_u(ch: str) -> bool:
    return ch == "_" or is_pn_chars_base(ch)


def is_pn_chars(ch: str) -> bool:
    """Return whether a character is a valid `PN_CHARS` code point."""
    if len(ch) != 1:
        return False
    if is_pn_chars_u(ch) or ch in "-0123456789":
        return True
    cp = ord(ch)
    return cp == 0x00B7 or 0x0300 <= cp <= 0x036F or 0x203F <= cp <= 0x2040


def is_hex(ch: str) -> bool:
    return ch != "" and ch in "0123456789abcdefABCDEF"


def read_hex(scanner: Scanner, count: int, escape: str) -> int:
    digits = []
    for _ in range(count):
        if not is_hex(scanner.peek()):
            scanner.error(f"invalid \\{escape} escape")
        digits.append(scanner.advance())
    return int("".join(digits), 16)


def decode_uchar(scanner: Scanner) -> str:
    """Decode a ``\\uXXXX`` or ``\\UXXXXXXXX`` escape."""
    if scanner.consume("\\u"):
        codepoint = read_hex(scanner, 4, "u")
        if 0xD800 <= codepoint <= 0xDBFF:
            # A high surrogate is only allowed as the first half of a \u pair.
            if not scanner.consume("\\u"):
                scanner.error("high surrogate must be followed by low surrogate")
            low = read_hex(scanner, 4, "u")
            if not (0xDC00 <= low <= 0xDFFF):
                scanner.error("invalid low surrogate in pair")
            return chr(0x10000 + ((codepoint - 0xD800) << 10) + (low - 0xDC00))
        if 0xDC00 <= codepoint <= 0xDFFF:
            scanner.error("lone low surrogate is not allowed")
        return chr(codepoint)
    if scanner.consume("\\U"):
        codepoint = read_hex(scanner, 8, "U")
        if codepoint > 0x10FFFF:
            scanner.error("code point out of range")
        if 0xD800 <= codepoint <= 0xDFFF:
            scanner.error("surrogate code points are not allowed")
        return chr(codepoint)
    scanner.error("expected unicode escape")
    raise AssertionError("unreachable")


ECHAR_MAP = {
    "t": "\t",
    "b": "\b",
    "n": "\n",
    "r": "\r",
    "f": "\f",
    '"': '"',
    "'": "'",
    "\\": "\\",
}


def decode_escape(scanner: Scanner) -> str:
    """Decode an ECHAR or UCHAR escape inside a string literal."""
    esc = scanner.peek(1)
    if esc in ("u", "U"):
        return decode_uchar(scanner)
    if esc not in ECHAR_MAP:
        scanner.advance()
        scanner.error("invalid escape sequence")
    scanner.i += 2
    return ECHAR_MAP[esc]


def read_iri_ref(scanner: Scanner) -> str:
    """Read an ``<...>`` IRI reference and return its decoded value."""
    scanner.expect("<")
    chars: list[str] = []
    while True:
        if scanner.eof():
            scanner.error("unterminated IRI")
        ch = scanner.peek()
        if ch == ">":
            scanner.advance()
            return "".join(chars)
        if ch == "\\":
            if scanner.peek(1) not in ("u", "U"):
                scanner.error("only \\u and \\U escapes are allowed in IRIs")
            uch = decode_uchar(scanner)
            if uch in '<>"{}|^`\\' or ord(uch) <= 0x20:
                scanner.error("invalid escaped character in IRI")
            chars.append(uch)
            continue
        if ch in '<"{}|^`':
            scanner.error(f"illegal character {ch!r} in IRI")
        if ord(ch) <= 0x20:
            scanner.error("whitespace or control character in IRI")
        chars.append(scanner.advance())


def read_string(scanner: Scanner) -> str:
    """Read a double-quoted string literal and return its decoded value."""
    scanner.expect('"')
    out: list[str] = []
    while True:
        if scanner.eof():
            scanner.error("unterminated string literal")
        ch = scanner.peek()
        if ch == '"':
            scanner.advance()
            return "".join(out)
        if ch == "\\":
            out.append(decode_escape(scanner))
            continue
        out.append(scanner.advance())


def read_blank_node_label(scanner: Scanner) -> str:
    """Read a ``_:label`` blank node and return the label."""
    scanner.expect("_:")
    if not (is_pn_chars_u(scanner.peek()) or scanner.peek().isdigit()):
        scanner.error("invalid blank node label")
    chars = [scanner.advance()]
    while True:
        ch = scanner.peek()
        if is_pn_chars(ch):
            chars.append(scanner.advance())
            continue
        if ch == ".":
            # A label may contain dots but never ends with one.
            nxt = scanner.peek(1)
            if nxt and (nxt == "." or is_pn_chars(nxt)):
                chars.append(scanner.advance())
                continue
        break
    return "".join(chars)


class TokenKind(Enum):
    IRI = "IRI"
    BNODE = "BNODE"
    STRING = "STRING"
    LITERAL_LANG = "LITERAL_LANG"
    LITERAL_DT = "LITERAL_DT"
    DOT = "DOT"


@dataclass(frozen=True)
class Token:
    """One lexed term of a statement.

    ``raw`` is the source span, ``value`` the decoded lexical value and
    ``qualifier`` the language tag or datatype IRI of a literal.
    """
    kind: TokenKind
    raw: str
    line: int
    column: int
    value: str = ""
    qualifier: str | None = None


class TokenizerState(Enum):
    READ_SUBJECT = "read-subject"
    READ_PREDICATE = "read-predicate"
    READ_OBJECT = "read-object"
    EXPECT_TERMINATOR = "expect-terminator"
    RECOVERING = "recovering"


NEXT_STATE = {
    TokenizerState.READ_SUBJECT: TokenizerState.READ_PREDICATE,
    TokenizerState.READ_PREDICATE: TokenizerState.READ_OBJECT,
    TokenizerState.READ_OBJECT: TokenizerState.EXPECT_TERMINATOR,
}

SLOT_NAMES = {
    TokenizerState.READ_SUBJECT: "subject",
    TokenizerState.READ_PREDICATE: "predicate",
    TokenizerState.READ_OBJECT: "object",
}


@dataclass(frozen=True)
class SkippedStatement:
    """Marker for a line the tokenizer gave up on."""
    error: ParseError


class ForgivingTokenizer:
    """Tokenizer that isolates lexical failures to the line they occur on.

    Each call to :meth:`next_statement` consumes exactly one physical line
    holding a statement. When the line cannot be lexed, the rest of it is
    discarded and a :class:`SkippedStatement` is returned, so the following
    line is read from a clean state.
    """

    def __init__(self, reader: io.TextIOBase, source: str = "<stream>", line_offset: int = 0):
        self.reader = reader
        self.source = source
        self.line = line_offset
        self.state = TokenizerState.READ_SUBJECT
        self.skipped = 0
        self._scanner: Scanner | None = None

    @property
    def column(self) -> int:
        return self._scanner.col if self._scanner is not None else 0

    def next_statement(self) -> list[Token] | SkippedStatement | None:
        """Return the next statement's tokens, a skip marker, or ``None`` at end of input."""
        while True:
            raw = self.reader.readline()
            if not raw:
                return None
            self.line += 1
            scanner = Scanner(raw.rstrip("\n"), self.source, self.line)
            self._scanner = scanner
            scanner.skip_ws()
            if scanner.eof() or scanner.peek() == "#":
                continue
            try:
                return self._read_statement(scanner)
            except ParseError as exc:
                self.state = TokenizerState.RECOVERING
                return self._recover(scanner, exc)

    def _recover(self, scanner: Scanner, error: ParseError) -> SkippedStatement:
        scanner.discard_rest()
        self.skipped += 1
        self.state = TokenizerState.READ_SUBJECT
        return SkippedStatement(error)

    def _read_statement(self, scanner: Scanner) -> list[Token]:
        tokens: list[Token] = []
        self.state = TokenizerState.READ_SUBJECT
        while self.state is not TokenizerState.EXPECT_TERMINATOR:
            tokens.append(self._read_term(scanner, SLOT_NAMES[self.state]))
            scanner.skip_ws()
            self.state = NEXT_STATE[self.state]

        line, column = scanner.line, scanner.col
        scanner.expect(".", "expected '.' to end statement", NTriplesSyntaxError)
        tokens.append(Token(TokenKind.DOT, ".", line, column))
        scanner.skip_ws()
        if not scanner.eof() and scanner.peek() != "#":
            scanner.error("unexpected content after '.'", NTriplesSyntaxError)
        self.state = TokenizerState.READ_SUBJECT
        return tokens

    def _read_term(self, scanner: Scanner, slot: str) -> Token:
        start, column = scanner.i, scanner.col
        ch = scanner.peek()
        qualifier = None
        if scanner.eof():
            scanner.error(f"unexpected end of line, expected {slot}", NTriplesSyntaxError)
        if ch == ".":
            scanner.error(f"unexpected '.' in place of {slot}", NTriplesSyntaxError)
        if ch == "<":
            kind, value = TokenKind.IRI, read_iri_ref(scanner)
        elif scanner.startswith("_:"):
            kind, value = TokenKind.BNODE, read_blank_node_label(scanner)
        elif ch == '"':
            kind, value = TokenKind.STRING, read_string(scanner)
            end = scanner.i
            scanner.skip_ws()
            if scanner.consume("^^"):
                if scanner.peek() != "<":
                    scanner.error("expected datatype IRI after '^^'")
                kind, qualifier = TokenKind.LITERAL_DT, read_iri_ref(scanner)
            elif scanner.peek() == "@":
                match = LANGTAG_RE.match(scanner.text, scanner.i)
                if match is None:
                    scanner.error("invalid language tag")
                kind, qualifier = TokenKind.LITERAL_LANG, match.group(1)
                scanner.i = match.end()
            else:
                scanner.i = end
        else:
            scanner.error(f"unexpected character {ch!r} in {slot}")
        return Token(
            kind,
            scanner.text[start : scanner.i],
            scanner.line,
            column,
            value=value,
            qualifier=qualifier,
        )


SCHEME_RE = re.compile(r"[A-Za-z][A-Za-z0-9+.\-]*")
BAD_PERCENT_RE = re.compile(r"%(?![0-9A-Fa-f]{2})")
WELL_FORMED_LANG_RE = re.compile(r"[a-zA-Z]{1,8}(?:-[a-zA-Z0-9]{1,8})*")

_INTEGER_RE = re.compile(r"[+-]?[0-9]+")
_DECIMAL_RE = re.compile(r"[+-]?(?:[0-9]+(?:\.[0-9]*)?|\.[0-9]+)")
_DOUBLE_RE = re.compile(
    r"(?:[+-]?(?:[0-9]+(?:\.[0-9]*)?|\.[0-9]+)(?:[eE][+-]?[0-9]+)?|[+-]?INF|NaN)"
)
_TZ = r"(?:Z|[+-](?:(?:0[0-9]|1[0-3]):[0-5][0-9]|14:00))?"
_DATE = r"-?(?:[1-9][0-9]{4,}|[0-9]{4})-(?:0[1-9]|1[0-2])-(?:0[1-9]|[12][0-9]|3[01])"
_TIME = r"(?:(?:[01][0-9]|2[0-3]):[0-5][0-9]:[0-5][0-9](?:\.[0-9]+)?|24:00:00(?:\.0+)?)"
_DATE_RE = re.compile(_DATE + _TZ)
_TIME_RE = re.compile(_TIME + _TZ)
_DATETIME_RE = re.compile(_DATE + "T" + _TIME + _TZ)
_GYEAR_RE = re.compile(r"-?(?:[1-9][0-9]{4,}|[0-9]{4})" + _TZ)


def _integer_rule(lo: int | None = None, hi: int | None = None) -> Callable[[str], bool]:
    def check(lexical: str) -> bool:
        if not _INTEGER_RE.fullmatch(lexical):
            return False
        number = int(lexical)
        return (lo is None or number >= lo) and (hi is None or number <= hi)

    return check


def _pattern_rule(pattern: re.Pattern[str]) -> Callable[[str], bool]:
    return lambda lexical: pattern.fullmatch(lexical) is not None


XSD_LEXICAL_RULES: dict[str, Callable[[str], bool]] = {
    "string": lambda lexical: True,
    "boolean": lambda lexical: lexical in ("true", "false", "1", "0"),
    "decimal": _pattern_rule(_DECIMAL_RE),
    "double": _pattern_rule(_DOUBLE_RE),
    "float": _pattern_rule(_DOUBLE_RE),
    "integer": _integer_rule(),
    "long": _integer_rule(-(2**63), 2**63 - 1),
    "int": _integer_rule(-(2**31), 2**31 - 1),
    "short": _integer_rule(-(2**15), 2**15 - 1),
    "byte": _integer_rule(-(2**7), 2**7 - 1),
    "nonNegativeInteger": _integer_rule(lo=0),
    "positiveInteger": _integer_rule(lo=1),
    "nonPositiveInteger": _integer_rule(hi=0),
    "negativeInteger": _integer_rule(hi=-1),
    "unsignedLong": _integer_rule(0, 2**64 - 1),
    "unsignedInt": _integer_rule(0, 2**32 - 1),
    "unsignedShort": _integer_rule(0, 2**16 - 1),
    "unsignedByte": _integer_rule(0, 2**8 - 1),
    "date": _pattern_rule(_DATE_RE),
    "time": _pattern_rule(_TIME_RE),
    "dateTime": _pattern_rule(_DATETIME_RE),
    "gYear": _pattern_rule(_GYEAR_RE),
}


def datatype_local_name(iri: str) -> str:
    """Return the part of a datatype IRI after its last '#', '/' or ':'."""
    return re.split(r"[#/:]", iri)[-1]


def check_iri(value: str) -> list[str]:
    """Return the IRI syntax violations found in ``value``."""
    scheme, sep, _ = value.partition(":")
    if not sep:
        return [f"relative IRI: <{value}>"]
    problems = []
    if not SCHEME_RE.fullmatch(scheme):
        problems.append(f"bad IRI scheme {scheme!r}: <{value}>")
    if BAD_PERCENT_RE.search(value):
        problems.append(f"illegal percent-encoding: <{value}>")
    try:
        parts = urlsplit(value)
        parts.port
    except ValueError as exc:
        problems.append(f"invalid IRI authority ({exc}): <{value}>")
    else:
        has_authority = value[len(scheme) + 1 :].startswith("//")
        if has_authority and scheme.lower() in ("http", "https") and not parts.hostname:
            problems.append(f"missing host: <{value}>")
    return problems


def check_literal(literal: Literal) -> list[tuple[Severity, str]]:
    """Return the problems found in a literal with their severity."""
    problems: list[tuple[Severity, str]] = []
    if literal.lang is not None and not WELL_FORMED_LANG_RE.fullmatch(literal.lang):
        problems.append((Severity.WARNING, f"language tag not well formed: @{literal.lang}"))
    if literal.datatype is None:
        return problems
    if literal.datatype == RDF_LANG_STRING_IRI and literal.lang is None:
        problems.append((Severity.ERROR, "rdf:langString literal without a language tag"))
        return problems
    rule = XSD_LEXICAL_RULES.get(datatype_local_name(literal.datatype))
    if rule is not None and not rule(literal.value):
        problems.append(
            (
                Severity.WARNING,
                f'lexical form "{literal.value}" not valid for datatype <{literal.datatype}>',
            )
        )
    return problems


class ErrorParseMode(Enum):
    """What to do with a statement containing a bad term."""

    STOP = "stop"
    SKIP = "skip"


class WarningParseMode(Enum):
    """What to do with a statement that only produced warnings."""

    STOP = "stop"
    SKIP = "skip"
    IGNORE = "ignore"


class HandlerKind(Enum):
    STRICT = "strict"
    STANDARD = "standard"
    PERMISSIVE = "permissive"


HANDLER_TABLE: dict[tuple[ErrorParseMode, WarningParseMode], HandlerKind] = {
    (ErrorParseMode.STOP, WarningParseMode.STOP): HandlerKind.STRICT,
    (ErrorParseMode.STOP, WarningParseMode.SKIP): HandlerKind.STRICT,
    (ErrorParseMode.STOP, WarningParseMode.IGNORE): HandlerKind.STANDARD,
    (ErrorParseMode.SKIP, WarningParseMode.STOP): HandlerKind.PERMISSIVE,
    (ErrorParseMode.SKIP, WarningParseMode.SKIP): HandlerKind.PERMISSIVE,
    (ErrorParseMode.SKIP, WarningParseMode.IGNORE): HandlerKind.PERMISSIVE,
}


def select_handler_kind(
    stop_on_bad_term: ErrorParseMode, stop_on_warnings: WarningParseMode
) -> HandlerKind:
    """Map a pair of parse modes to the handler behaviour they imply."""
    return HANDLER_TABLE[(stop_on_bad_term, stop_on_warnings)]


def fmt_message(message: str, line: int, col: int) -> str:
    return f"[line: {line}, col: {col}] {message}"


class ErrorHandler:
    """Receives parse problems and logs them without ever aborting.

    Subclasses raise from the callbacks whose problems must stop the
    partition. :meth:`report` returns whether the statement may still be
    emitted.
    """

    strict = False

    def __init__(self, log: logging.Logger | None = DEFAULT_ERROR_LOG, skip_on_warning: bool = False):
        self.log = log
        self.skip_on_warning = skip_on_warning

    def _log(self, level: int, problem: ParseError) -> None:
        if self.log is not None:
            self.log.log(level, fmt_message(problem.message, problem.line, problem.column))

    def warning(self, problem: ParseError) -> None:
        self._log(logging.WARNING, problem)

    def error(self, problem: ParseError) -> None:
        self._log(logging.ERROR, problem)

    def fatal(self, problem: ParseError) -> None:
        self._log(logging.ERROR, problem)

    def report(self, problem: ParseError) -> bool:
        """Dispatch ``problem`` by severity; return whether the statement survives."""
        if problem.severity is Severity.WARNING:
            self.warning(problem)
            return not self.skip_on_warning
        if problem.severity is Severity.ERROR:
            self.error(problem)
        else:
            self.fatal(problem)
        return False


class PermissiveErrorHandler(ErrorHandler):
    """Logs every problem; errors drop the statement, nothing aborts."""


class StandardErrorHandler(ErrorHandler):
    """Logs warnings; errors and fatal problems abort."""

    def error(self, problem: ParseError) -> None:
        super().error(problem)
        raise problem

    def fatal(self, problem: ParseError) -> None:
        super().fatal(problem)
        raise problem


class StrictErrorHandler(StandardErrorHandler):
    """Any problem, warnings included, aborts."""

    strict = True

    def warning(self, problem: ParseError) -> None:
        super().warning(problem)
        raise problem


HANDLER_CLASSES: dict[HandlerKind, type[ErrorHandler]] = {
    HandlerKind.STRICT: StrictErrorHandler,
    HandlerKind.STANDARD: StandardErrorHandler,
    HandlerKind.PERMISSIVE: PermissiveErrorHandler,
}


def _coerce_mode(enum_cls, value):
    if isinstance(value, enum_cls):
        return value
    if isinstance(value, str):
        try:
            return enum_cls[value.strip().upper()]
        except KeyError:
            pass
    choices = ", ".join(member.name for member in enum_cls)
    raise ValueError(f"unsupported {enum_cls.__name__} value {value!r}; expected one of {choices}")


@dataclass(frozen=True)
class ParsePolicy:
    """Fault-handling configuration of one load."""
    stop_on_bad_term: ErrorParseMode = ErrorParseMode.STOP
    stop_on_warnings: WarningParseMode = WarningParseMode.IGNORE
    check_rdf_terms: bool = False

    def __post_init__(self) -> None:
        object.__setattr__(
            self, "stop_on_bad_term", _coerce_mode(ErrorParseMode, self.stop_on_bad_term)
        )
        object.__setattr__(
            self, "stop_on_warnings", _coerce_mode(WarningParseMode, self.stop_on_warnings)
        )

    @property
    def strict(self) -> bool:
        return (
            self.stop_on_bad_term is ErrorParseMode.STOP
            and self.stop_on_warnings is WarningParseMode.STOP
        )

    @property
    def check_terms(self) -> bool:
        """Strict mode always checks terms."""
        return self.check_rdf_terms or self.strict

    @property
    def handler_kind(self) -> HandlerKind:
        return select_handler_kind(self.stop_on_bad_term, self.stop_on_warnings)


def build_error_handler(policy: ParsePolicy, log: logging.Logger | None = DEFAULT_ERROR_LOG) -> ErrorHandler:
    """Create the error handler implied by ``policy``."""
    handler_cls = HANDLER_CLASSES[policy.handler_kind]
    return handler_cls(
        log, skip_on_warning=policy.stop_on_warnings is not WarningParseMode.IGNORE
    )


@dataclass
class ParserProfile:
    """Term factory and checker bound to one error handler."""
    handler: ErrorHandler
    check_terms: bool = False
    strict: bool = False

    def create_term(self, token: Token) -> Node:
        """Build the RDF term a token denotes."""
        if token.kind is TokenKind.IRI:
            return IRI(token.value)
        if token.kind is TokenKind.BNODE:
            return BNode(token.value)
        if token.kind is TokenKind.LITERAL_LANG:
            return Literal(token.value, lang=token.qualifier)
        if token.kind is TokenKind.LITERAL_DT:
            return Literal(token.value, datatype=token.qualifier)
        if token.kind is TokenKind.STRING:
            return Literal(token.value)
        raise TypeError(f"token does not denote an RDF term: {token.kind}")

    def check_term(self, term: Node, token: Token, source: str) -> list[TermValidationError]:
        """Return validation problems for ``term``; always empty when checking is off."""
        if not self.check_terms:
            return []
        found: list[tuple[Severity, str]] = []
        if isinstance(term, IRI):
            found.extend((Severity.ERROR, msg) for msg in check_iri(term.value))
        elif isinstance(term, Literal):
            if term.datatype is not None:
                found.extend((Severity.ERROR, msg) for msg in check_iri(term.datatype))
            found.extend(check_literal(term))
        return [
            TermValidationError(source, token.line, token.column, msg, severity)
            for severity, msg in found
        ]


def build_parser_profile(
    policy: ParsePolicy, error_log: logging.Logger | None = DEFAULT_ERROR_LOG
) -> ParserProfile:
    """Construct the handler and profile for one partition."""
    return ParserProfile(
        handler=build_error_handler(policy, error_log),
        check_terms=policy.check_terms,
        strict=policy.strict,
    )


class _Skipped(Enum):
    SKIPPED = "skipped"

    def __repr__(self) -> str:
        return "SKIPPED"


SKIPPED = _Skipped.SKIPPED
"""Placeholder yielded for a statement that was dropped."""


class TripleAssembler:
    """Turns tokenized statements into triples, consulting the error handler.

    Iterating yields one element per statement line: the triple, or
    :data:`SKIPPED` when the handler let the statement be dropped. A handler
    that aborts raises the problem out of ``__next__`` before anything for
    that line is produced.
    """

    def __init__(self, tokenizer: ForgivingTokenizer, profile: ParserProfile):
        self.tokenizer = tokenizer
        self.profile = profile

    def __iter__(self) -> TripleAssembler:
        return self

    def __next__(self) -> Triple | _Skipped:
        statement = self.tokenizer.next_statement()
        if statement is None:
            raise StopIteration
        if isinstance(statement, SkippedStatement):
            self.profile.handler.report(statement.error)
            return SKIPPED
        return self.assemble(statement)

    def _slot_error(self, token: Token, message: str) -> NTriplesSyntaxError:
        return NTriplesSyntaxError(self.tokenizer.source, token.line, token.column, message)

    def assemble(self, tokens: list[Token]) -> Triple | _Skipped:
        handler = self.profile.handler
        subject_token, predicate_token, object_token = tokens[:3]
        if subject_token.kind not in (TokenKind.IRI, TokenKind.BNODE):
            handler.report(self._slot_error(subject_token, "subject must be an IRI or blank node"))
            return SKIPPED
        if predicate_token.kind is not TokenKind.IRI:
            handler.report(self._slot_error(predicate_token, "predicate must be an IRI"))
            return SKIPPED

        terms = []
        keep = True
        for token in (subject_token, predicate_token, object_token):
            term = self.profile.create_term(token)
            for problem in self.profile.check_term(term, token, self.tokenizer.source):
                keep = handler.report(problem) and keep
            terms.append(term)
        if not keep:
            return SKIPPED
        subject, predicate, obj = terms
        return (subject, predicate, obj)


T = TypeVar("T")

_UNSET = object()


class Deferred(Generic[T]):
    """Holds a construction recipe; the value is built on first :meth:`get`.

    Only the recipe is pickled, so the cell can be shipped to a worker
    process while the object it builds (which may not be picklable) is only
    ever created there. Pickling a cell that was already evaluated is an
    error.
    """

    def __init__(self, recipe: Callable[[], T]):
        self._recipe = recipe
        self._value: object = _UNSET

    @property
    def evaluated(self) -> bool:
        return self._value is not _UNSET

    def get(self) -> T:
        if self._value is _UNSET:
            self._value = self._recipe()
        return self._value  # type: ignore[return-value]

    def fresh(self) -> Deferred[T]:
        """Return an unevaluated cell with the same recipe."""
        return Deferred(self._recipe)

    def __getstate__(self) -> dict:
        if self.evaluated:
            raise RuntimeError(
                "deferred value was built before transfer; send an unevaluated cell"
            )
        return {"_recipe": self._recipe}

    def __setstate__(self, state: dict) -> None:
        self._recipe = state["_recipe"]
        self._value = _UNSET


class ParseSession:
    """Drives one partition's tokenizer and assembler to exhaustion.

    The session owns the byte reader built over ``lines`` and closes it when
    iteration ends, when a handler aborts, or when :meth:`close` is called
    before the input is exhausted.
    """

    def __init__(
        self,
        lines: Iterable[str],
        profile: ParserProfile | Deferred[ParserProfile],
        source: str = "<partition>",
        line_offset: int = 0,
    ):
        self.source = source
        self.line_offset = line_offset
        self.emitted = 0
        self.skipped = 0
        self.closed = False
        self.tokenizer: ForgivingTokenizer | None = None
        self._lines = lines
        self._profile = profile
        self._reader: io.TextIOWrapper | None = None
        self._iterator: Iterator[Triple | _Skipped] | None = None

    @property
    def profile(self) -> ParserProfile:
        if isinstance(self._profile, Deferred):
            return self._profile.get()
        return self._profile

    def __iter__(self) -> Iterator[Triple | _Skipped]:
        if self._iterator is None:
            self._iterator = self._run()
        return self._iterator

    def __enter__(self) -> ParseSession:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def _run(self) -> Iterator[Triple | _Skipped]:
        if self.closed:
            return
        try:
            self._reader = open_line_reader(self._lines)
            self.tokenizer = ForgivingTokenizer(self._reader, self.source, self.line_offset)
            for item in TripleAssembler(self.tokenizer, self.profile):
                if item is SKIPPED:
                    self.skipped += 1
                else:
                    self.emitted += 1
                yield item
            logger.debug(
                "%s: %d triples, %d statements skipped",
                self.source,
                self.emitted,
                self.skipped,
            )
        finally:
            self._release()

    def _release(self) -> None:
        if self._reader is not None:
            if not self._reader.closed:
                self._reader.close()
        else:
            close_lines = getattr(self._lines, "close", None)
            if close_lines is not None:
                close_lines()
        self.closed = True

    def close(self) -> None:
        """Stop the session and release its input; safe to call repeatedly."""
        if self._iterator is not None:
            self._iterator.close()
        self._release()


def drop_skipped(items: Iterable[Triple | _Skipped]) -> Iterator[Triple]:
    """Yield only the triples, dropping skipped-statement placeholders."""
    for item in items:
        if item is not SKIPPED:
            yield item


def _split_path_entries(paths: str | os.PathLike | Sequence[str | os.PathLike]) -> list[str]:
    if isinstance(paths, (str, os.PathLike)):
        paths = [paths]
    entries: list[str] = []
    for item in paths:
        if isinstance(item, str):
            entries.extend(part.strip() for part in item.split(",") if part.strip())
        else:
            entries.append(os.fspath(item))
    return entries


def expand_paths(paths: str | os.PathLike | Sequence[str | os.PathLike]) -> list[Path]:
    """Resolve files, directories, comma-separated lists and glob patterns to files.

    Directory members whose names start with '.' or '_' are ignored.
    """
    entries = _split_path_entries(paths)
    if not entries:
        raise ValueError("no input paths given")
    files: list[Path] = []
    for entry in entries:
        if any(ch in entry for ch in "*?["):
            matches = sorted(glob(entry))
        else:
            matches = [entry] if os.path.exists(entry) else []
        if not matches:
            raise FileNotFoundError(f"input path does not exist: {entry}")
        for match in matches:
            path = Path(match)
            if path.is_dir():
                files.extend(
                    sorted(
                        child
                        for child in path.iterdir()
                        if child.is_file() and not child.name.startswith((".", "_"))
                    )
                )
            else:
                files.append(path)
    return files


def count_lines(path: Path, chunk_size: int = 1 << 20) -> int:
    """Count physical lines, including a final line without a terminator.

    ``\\n``, ``\\r\\n`` and a lone ``\\r`` each end a line, the same rule
    :meth:`LinePartition.iter_lines` splits by.
    """
    count = 0
    last = b""
    with open(path, "rb") as handle:
        for chunk in iter(functools.partial(handle.read, chunk_size), b""):
            count += chunk.count(b"\n") + chunk.count(b"\r") - chunk.count(b"\r\n")
            # \r\n split across two chunks
            if last == b"\r" and chunk.startswith(b"\n"):
                count -= 1
            last = chunk[-1:]
    if last and last not in (b"\r", b"\n"):
        count += 1
    return count


@dataclass(frozen=True)
class LinePartition:
    """Half-open range ``[start, stop)`` of 0-based line numbers in one file."""
    path: Path
    start: int = 0
    stop: int | None = None

    def iter_lines(self) -> Iterator[str]:
        """Yield the partition's lines without terminators, reading lazily."""
        # newline="" splits on \n, \r\n and a lone \r, matching count_lines
        with open(self.path, encoding="utf-8", errors="replace", newline="") as handle:
            for line in itertools.islice(handle, self.start, self.stop):
                yield line.rstrip("\r\n")


def plan_partitions(
    files: Iterable[Path], partition_size: int = DEFAULT_PARTITION_SIZE
) -> list[LinePartition]:
    """Slice every file into partitions of at most ``partition_size`` lines."""
    if partition_size < 1:
        raise ValueError("partition_size must be at least 1")
    partitions: list[LinePartition] = []
    for path in files:
        total = count_lines(path)
        for start in range(0, max(total, 1), partition_size):
            partitions.append(LinePartition(path, start, min(start + partition_size, total)))
    return partitions


@dataclass(frozen=True)
class LoadOptions:
    """Options accepted by :func:`load`."""
    stop_on_bad_term: ErrorParseMode = ErrorParseMode.STOP
    stop_on_warnings: WarningParseMode = WarningParseMode.IGNORE
    check_rdf_terms: bool = False
    error_log: logging.Logger | None = field(default=DEFAULT_ERROR_LOG, compare=False)
    partition_size: int = DEFAULT_PARTITION_SIZE

    @property
    def policy(self) -> ParsePolicy:
        return ParsePolicy(self.stop_on_bad_term, self.stop_on_warnings, self.check_rdf_terms)


@dataclass
class TriplePartition:
    """One independently parsed slice of the input."""
    index: int
    lines: LinePartition
    profile: Deferred[ParserProfile]

    def session(self) -> ParseSession:
        return ParseSession(
            self.lines.iter_lines(),
            self.profile,
            source=str(self.lines.path),
            line_offset=self.lines.start,
        )

    def detached(self) -> TriplePartition:
        """Copy with an unevaluated profile cell, ready to send to a worker."""
        return TriplePartition(self.index, self.lines, self.profile.fresh())

    def __iter__(self) -> Iterator[Triple]:
        session = self.session()
        try:
            yield from drop_skipped(session)
        finally:
            session.close()


def _collect_partition(partition: TriplePartition) -> list[Triple]:
    triples = list(partition)
    logger.debug("partition %d: %d triples", partition.index, len(triples))
    return triples


class PartitionedTriples:
    """Triples of a load, grouped by input partition.

    Iteration is lazy and streams partitions in order; a partition that
    aborts raises once the offending line is reached, after the triples
    before it were delivered. :meth:`collect` materializes every partition,
    optionally in parallel, and either returns all of them or raises.
    """

    def __init__(self, partitions: list[TriplePartition]):
        self.partitions = partitions

    def __len__(self) -> int:
        return len(self.partitions)

    def __iter__(self) -> Iterator[Triple]:
        return itertools.chain.from_iterable(self.partitions)

    def collect(self, workers: int = 1) -> list[list[Triple]]:
        """Parse every partition and return their triples in partition order."""
        if workers <= 1 or len(self.partitions) <= 1:
            return [_collect_partition(partition.detached()) for partition in self.partitions]
        with ProcessPoolExecutor(max_workers=workers) as executor:
            return list(
                executor.map(
                    _collect_partition,
                    [partition.detached() for partition in self.partitions],
                )
            )

    def to_list(self, workers: int = 1) -> list[Triple]:
        return [triple for part in self.collect(workers) for triple in part]

    def count(self, workers: int = 1) -> int:
        if workers <= 1:
            return sum(1 for _ in self)
        return sum(len(part) for part in self.collect(workers))

    def take(self, n: int) -> list[Triple]:
        return list(itertools.islice(self, n))


def load(
    paths: str | os.PathLike | Sequence[str | os.PathLike],
    options: LoadOptions | None = None,
    **overrides,
) -> PartitionedTriples:
    """Load N-Triples data from files, directories or glob patterns.

    ``paths`` may contain several comma-separated entries, e.g.
    ``"/my/dir1,/my/paths/part-00[0-5]*,/a/specific/file"``.

    Handling of errors (``stop_on_bad_term``):
      - STOP: the first bad statement fails its partition with a ParseError.
      - SKIP: the statement is logged to ``error_log`` and skipped.

    Handling of warnings (``stop_on_warnings``), which mostly come from
    term checking:
      - IGNORE: the warning is logged and the triple is kept.
      - STOP: like errors under STOP.
      - SKIP: the warning is logged and the statement is skipped.

    With ``check_rdf_terms`` IRIs are checked against IRI syntax rules and
    literal lexical forms against their datatype. Strict mode (STOP/STOP)
    always checks.

    Keyword arguments override the fields of ``options``.
    """
    if options is None:
        options = LoadOptions(**overrides)
    elif overrides:
        options = dataclasses.replace(options, **overrides)

    files = expand_paths(paths)
    partitions = plan_partitions(files, options.partition_size)
    recipe = Deferred(functools.partial(build_parser_profile, options.policy, options.error_log))
    logger.debug("planned %d partitions over %d files", len(partitions), len(files))
    return PartitionedTriples(
        [
            TriplePartition(index, lines, recipe.fresh())
            for index, lines in enumerate(partitions)
        ]
    )


def encode_iri_ref(value: str) -> str:
    """Encode an IRI as an N-Triples ``<...>`` reference."""
    out: list[str] = ["<"]
    for ch in value:
        cp = ord(ch)
        if ch in '<>"{}|^`\\' or cp <= 0x20:
            if cp <= 0xFFFF:
                out.append(f"\\u{cp:04X}")
            else:
                out.append(f"\\U{cp:08X}")
        else:
            out.append(ch)
    out.append(">")
    return "".join(out)


def escape_string_value(value: str) -> str:
    """Escape a literal's lexical form for a double-quoted string."""
    out: list[str] = []
    for ch in value:
        cp = ord(ch)
        if ch == "\\":
            out.append("\\\\")
        elif ch == '"':
            out.append('\\"')
        elif ch == "\n":
            out.append("\\n")
        elif ch == "\r":
            out.append("\\r")
        elif cp < 0x20 or cp == 0x7F:
            out.append(f"\\u{cp:04X}")
        else:
            out.append(ch)
    return "".join(out)


def format_node_nt(node: Node) -> str:
    """Format an RDF node using N-Triples syntax."""
    if isinstance(node, IRI):
        return encode_iri_ref(node.value)
    if isinstance(node, BNode):
        return f"_:{node.label}"
    if isinstance(node, Literal):
        base = f'"{escape_string_value(node.value)}"'
        if node.lang is not None:
            return f"{base}@{node.lang}"
        if node.datatype is not None:
            return f"{base}^^{encode_iri_ref(node.datatype)}"
        return base
    raise TypeError(f"unsupported node type: {type(node)!r}")


def format_triple(triple: Triple) -> str:
    """Render one triple as an N-Triples line without the newline."""
    subject, predicate, obj = triple
    return f"{format_node_nt(subject)} {format_node_nt(predicate)} {format_node_nt(obj)} ."


def serialize_ntriples(triples: Iterable[Triple]) -> str:
    """Serialize triples to N-Triples text."""
    lines = [format_triple(triple) for triple in triples]
    if not lines:
        return ""
    return "\n".join(lines) + "\n"


def build_parser() -> argparse.ArgumentParser:
    """Create the command-line argument parser for the debug loader."""
    parser = argparse.ArgumentParser(
        prog="ntriple-reader",
        description=(
            "Load an N-Triples file with bad statements skipped and RDF term "
            "checking on, then print how many triples were accepted."
        ),
    )
    parser.add_argument("path", help="N-Triples file, directory, or glob pattern.")
    parser.add_argument(
        "--limit",
        type=int,
        default=1000,
        help="Maximum number of triples to print (default: 1000).",
    )
    parser.add_argument(
        "--workers",
        type=int,
        default=1,
        help="Worker processes used to parse partitions (default: 1).",
    )
    parser.add_argument(
        "--partition-size",
        type=int,
        default=DEFAULT_PARTITION_SIZE,
        help=f"Lines per partition (default: {DEFAULT_PARTITION_SIZE}).",
    )
    parser.add_argument(
        "--log-level",
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level for parse diagnostics (default: WARNING).",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    """Run the debug command-line interface."""
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(level=args.log_level, format="%(levelname)s %(name)s: %(message)s")

    try:
        triples = load(
            args.path,
            stop_on_bad_term=ErrorParseMode.SKIP,
            stop_on_warnings=WarningParseMode.SKIP,
            check_rdf_terms=True,
            partition_size=args.partition_size,
        )
        total = triples.count(workers=args.workers)
        shown = triples.take(max(args.limit, 0))
    except (OSError, ValueError) as exc:
        parser.exit(status=1, message=f"Error: {exc}\n")

    print(total)
    print("result:")
    for triple in shown:
        print(format_triple(triple))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
