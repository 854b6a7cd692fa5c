"""Query resolution for test descriptors.

Queries come either inline from the descriptor (``query``) or from a
file (``query_file``):

- ``*.tsv`` files hold one query per line, TSV-escaped (``\\n``, ``\\t``,
  ``\\\\`` ...) so that multi-line queries fit on one line
- any other file is a single query, read verbatim
"""

from __future__ import annotations

import re
from pathlib import Path

from perfbench.config.schema import TestSpec
from perfbench.errors import FILE_DOESNT_EXIST, TestConfigError

_ESCAPES = {
    "b": "\b",
    "f": "\f",
    "n": "\n",
    "r": "\r",
    "t": "\t",
    "0": "\0",
    "a": "\a",
    "v": "\v",
    "\\": "\\",
    "'": "'",
    '"': '"',
}

_ESCAPE_RE = re.compile(r"\\(x[0-9A-Fa-f]{2}|.)", re.DOTALL)


def unescape_tsv(value: str) -> str:
    """Decode one TSV-escaped field."""

    def _replace(match: re.Match[str]) -> str:
        seq = match.group(1)
        if seq.startswith("x") and len(seq) == 3:
            return chr(int(seq[1:], 16))
        return _ESCAPES.get(seq, seq)

    return _ESCAPE_RE.sub(_replace, value)


def read_query_file(path: Path) -> list[str]:
    """Read queries from a file, one per line for ``.tsv``, else the whole file."""
    if not path.is_file():
        raise TestConfigError(f"Query file '{path}' does not exist", code=FILE_DOESNT_EXIST)

    content = path.read_text()
    if path.suffix != ".tsv":
        return [content]

    lines = content.split("\n")
    if lines and lines[-1] == "":
        lines.pop()
    return [unescape_tsv(line) for line in lines]


def resolve_query_file_path(spec: TestSpec) -> Path:
    """Locate ``query_file``; relative paths are taken from the descriptor's folder."""
    assert spec.query_file is not None
    path = Path(spec.query_file)
    if not path.is_absolute() and spec.source_path is not None:
        path = spec.source_path.parent / path
    return path


def resolve_queries(spec: TestSpec) -> list[str]:
    """Return the raw (not yet substituted) queries of a test.

    Raises:
        TestConfigError: Neither or both query sources are declared, the
            file name is empty, or no query was found.
    """
    has_query = spec.query is not None
    has_file = spec.query_file is not None

    if not has_query and not has_file:
        raise TestConfigError(f"Missing query fields in test's config: {spec.name}")
    if has_query and has_file:
        raise TestConfigError(
            f"Found both query and query_file fields in {spec.name}. Choose only one"
        )

    if has_file:
        if not spec.query_file:
            raise TestConfigError(f"Empty query file name in {spec.name}")
        queries = read_query_file(resolve_query_file_path(spec))
    else:
        queries = list(spec.query or [])

    if not queries:
        raise TestConfigError(f"Did not find any query to execute: {spec.name}")
    return queries
