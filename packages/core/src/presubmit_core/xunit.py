"""Minimal xUnit report reading and writing."""

from __future__ import annotations

import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from pathlib import Path


@dataclass
class XUnitCase:
    class_name: str
    name: str
    failures: list[str] = field(default_factory=list)

    @property
    def failed(self) -> bool:
        return bool(self.failures)


@dataclass
class XUnitSuite:
    name: str
    cases: list[XUnitCase] = field(default_factory=list)


def parse_report(data: str | bytes) -> list[XUnitSuite]:
    """Parse a report whose root is ``<testsuites>`` or a single ``<testsuite>``."""
    root = ET.fromstring(data)
    suite_elems = [root] if root.tag == "testsuite" else root.findall("testsuite")
    suites = []
    for suite_elem in suite_elems:
        suite = XUnitSuite(name=suite_elem.get("name", ""))
        for case_elem in suite_elem.findall("testcase"):
            failures = [
                f.get("message") or (f.text or "") for f in case_elem if f.tag in ("failure", "error")
            ]
            suite.cases.append(
                XUnitCase(
                    class_name=case_elem.get("classname", ""),
                    name=case_elem.get("name", ""),
                    failures=failures,
                )
            )
        suites.append(suite)
    return suites


def create_failure_report(
    path: Path,
    suite_name: str,
    class_name: str,
    case_name: str,
    message: str,
    output: str,
) -> Path:
    """Write a one-case report recording a failure outside the test itself."""
    root = ET.Element("testsuites")
    suite = ET.SubElement(root, "testsuite", name=suite_name, tests="1", failures="1")
    case = ET.SubElement(suite, "testcase", classname=class_name, name=case_name)
    failure = ET.SubElement(case, "failure", message=message, type="error")
    failure.text = output
    path.parent.mkdir(parents=True, exist_ok=True)
    ET.ElementTree(root).write(path, encoding="utf-8", xml_declaration=True)
    return path
