"""Test selection by tag, name and name pattern."""

from __future__ import annotations

import re
from collections.abc import Sequence
from enum import Enum

from perfbench.config.schema import TestSpec
from perfbench.errors import TestConfigError


class FilterType(str, Enum):
    """What a filter value is matched against."""

    TAG = "tag"
    NAME = "name"
    NAME_REGEXP = "name_regexp"


def _compile_patterns(patterns: Sequence[str]) -> list[re.Pattern[str]]:
    compiled = []
    for pattern in patterns:
        try:
            compiled.append(re.compile(pattern))
        except re.error as e:
            raise TestConfigError(f"Invalid test name pattern {pattern!r}: {e}")  # noqa: B904
    return compiled


def _matches(spec: TestSpec, filter_type: FilterType, values: Sequence) -> bool:
    if filter_type == FilterType.TAG:
        return any(tag in values for tag in spec.tags)
    if filter_type == FilterType.NAME:
        return spec.name in values
    if filter_type == FilterType.NAME_REGEXP:
        return any(pattern.search(spec.name) for pattern in values)
    raise ValueError(f"Unknown filter type: {filter_type}")


def remove_tests_if(
    specs: Sequence[TestSpec],
    filter_type: FilterType,
    values: Sequence[str],
    leave: bool = False,
) -> list[TestSpec]:
    """Drop tests matching ``values``.

    With ``leave=True`` the logic is reversed: tests that do *not* match
    are dropped.  An empty ``values`` list keeps everything either way.

    Raises:
        TestConfigError: A name pattern is not a valid regular expression.
    """
    if not values:
        return list(specs)
    criteria: Sequence = _compile_patterns(values) if filter_type == FilterType.NAME_REGEXP else values
    return [s for s in specs if _matches(s, filter_type, criteria) == leave]


def filter_tests(
    specs: Sequence[TestSpec],
    tags: Sequence[str] = (),
    names: Sequence[str] = (),
    names_regexp: Sequence[str] = (),
    skip_tags: Sequence[str] = (),
    skip_names: Sequence[str] = (),
    skip_names_regexp: Sequence[str] = (),
) -> list[TestSpec]:
    """Apply keep-only filters, then skip filters, preserving input order."""
    # Leave tests
    result = remove_tests_if(specs, FilterType.TAG, tags, leave=True)
    result = remove_tests_if(result, FilterType.NAME, names, leave=True)
    result = remove_tests_if(result, FilterType.NAME_REGEXP, names_regexp, leave=True)

    # Skip tests
    result = remove_tests_if(result, FilterType.TAG, skip_tags)
    result = remove_tests_if(result, FilterType.NAME, skip_names)
    result = remove_tests_if(result, FilterType.NAME_REGEXP, skip_names_regexp)
    return result
