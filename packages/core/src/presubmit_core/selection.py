"""Which presubmit tests run for a set of projects, and test part naming."""

from __future__ import annotations

import re
from typing import Iterable

from presubmit_core.config import PresubmitConfig

_PART_SUFFIX_RE = re.compile(r"(.*)-part(\d+)$")


def select_tests(config: PresubmitConfig, projects: Iterable[str]) -> list[str]:
    """Return the sorted, de-duplicated tests for ``projects``.

    Entries of ``project_tests`` may name a test group, which expands to its
    members. A test listed in ``test_parts`` is split into one job per part,
    named ``<test>-part0`` through ``<test>-part<N>`` where N is the number
    of part selectors; the last part picks up whatever the selectors miss.
    """
    tests: set[str] = set()
    for project in projects:
        for name in config.project_tests.get(project, []):
            tests.update(config.test_groups.get(name, [name]))

    expanded: set[str] = set()
    for test in tests:
        parts = config.test_parts.get(test)
        if parts:
            expanded.update(with_part_suffix(test, i) for i in range(len(parts) + 1))
        else:
            expanded.add(test)
    return sorted(expanded)


def with_part_suffix(test_name: str, part_index: int) -> str:
    if part_index < 0:
        return test_name
    return f"{test_name}-part{part_index}"


def split_part_suffix(test_name: str) -> tuple[str, int]:
    """Inverse of with_part_suffix; -1 when there is no part."""
    match = _PART_SUFFIX_RE.match(test_name)
    if match is None:
        return test_name, -1
    return match.group(1), int(match.group(2))
