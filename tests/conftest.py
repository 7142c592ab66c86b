from __future__ import annotations

from pathlib import Path
from typing import Callable, Iterable

import pytest

from ntriple_reader import (
    ParsePolicy,
    ParseSession,
    build_parser_profile,
    drop_skipped,
)


@pytest.fixture
def write_nt(tmp_path: Path) -> Callable[..., Path]:
    """Write lines to an N-Triples file under ``tmp_path`` and return its path."""

    def _write(lines: Iterable[str], name: str = "data.nt") -> Path:
        path = tmp_path / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text("".join(f"{line}\n" for line in lines), encoding="utf-8")
        return path

    return _write


@pytest.fixture
def parse() -> Callable[..., list]:
    """Parse a list of lines in one session and return the accepted triples."""

    def _parse(lines: Iterable[str], **policy) -> list:
        profile = build_parser_profile(ParsePolicy(**policy))
        with ParseSession(list(lines), profile, source="<test>") as session:
            return list(drop_skipped(session))

    return _parse
