"""Test results and the per-test status files the result step collects.

Each presubmit test run ends by writing ``status_<test>.json`` next to its
xUnit report ``tests_<test>.xml``. The Jenkins master job gathers them
under ``<workspace>/test_results/<build>/<axis dir>/`` where the result
step reads them back.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

logger = logging.getLogger(__name__)

# Status files written for presubmit-side failures carry this timestamp so
# the postsubmit lookup stops at the first build it inspects.
MAX_TIMESTAMP = 2**63 - 1


class ResultStatus(str, Enum):
    PASSED = "PASSED"
    FAILED = "FAILED"
    TIMED_OUT = "TIMED_OUT"
    SKIPPED = "SKIPPED"
    MERGE_CONFLICT = "MERGE_CONFLICT"
    TOOLS_BUILD_FAILURE = "TOOLS_BUILD_FAILURE"


@dataclass
class TestResult:
    __test__ = False

    status: ResultStatus
    timeout_value: int = 0  # seconds; 0 means "the default timeout"
    merge_conflict_cl: str = ""
    tools_build_failure_msg: str = ""

    def to_dict(self) -> dict:
        return {
            "status": self.status.value,
            "timeoutValue": self.timeout_value,
            "mergeConflictCL": self.merge_conflict_cl,
            "toolsBuildFailureMsg": self.tools_build_failure_msg,
        }

    @classmethod
    def from_dict(cls, d: dict) -> TestResult:
        return cls(
            status=ResultStatus(d.get("status", ResultStatus.FAILED.value)),
            timeout_value=int(d.get("timeoutValue") or 0),
            merge_conflict_cl=d.get("mergeConflictCL", ""),
            tools_build_failure_msg=d.get("toolsBuildFailureMsg", ""),
        )


@dataclass
class AxisValues:
    arch: str = ""
    os: str = ""
    part_index: int = -1

    def as_dict(self) -> dict:
        return {"arch": self.arch, "os": self.os, "part_index": self.part_index}


@dataclass
class TestResultInfo:
    """One status file: the result of one test (part) on one axis combination."""

    __test__ = False

    result: TestResult
    test_name: str  # without the -partN suffix
    timestamp: int  # ms since epoch, when the run started
    axis_values: AxisValues = field(default_factory=AxisValues)
    source_dir: Path | None = None  # where the status file was read from

    def key(self) -> str:
        a = self.axis_values
        return f"{self.test_name}_{a.os}_{a.arch}_{a.part_index}"

    def to_dict(self) -> dict:
        return {
            "result": self.result.to_dict(),
            "testName": self.test_name,
            "timestamp": self.timestamp,
            "axisValues": {
                "arch": self.axis_values.arch,
                "os": self.axis_values.os,
                "partIndex": self.axis_values.part_index,
            },
        }

    @classmethod
    def from_dict(cls, d: dict, source_dir: Path | None = None) -> TestResultInfo:
        axis = d.get("axisValues") or {}
        return cls(
            result=TestResult.from_dict(d.get("result") or {}),
            test_name=d.get("testName", ""),
            timestamp=int(d.get("timestamp", 0)),
            axis_values=AxisValues(
                arch=axis.get("arch", ""),
                os=axis.get("os", ""),
                part_index=int(axis.get("partIndex", -1)),
            ),
            source_dir=source_dir,
        )


def status_file_name(test_name: str) -> str:
    return f"status_{test_name.replace('-', '_')}.json"


def xunit_report_file_name(test_name: str) -> str:
    return f"tests_{test_name.replace('-', '_')}.xml"


def write_status_file(directory: Path, info: TestResultInfo) -> Path:
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / status_file_name(info.test_name)
    path.write_text(json.dumps(info.to_dict(), indent=2))
    logger.info("Wrote %s (%s)", path, info.result.status.value)
    return path


def read_status_files(results_dir: Path) -> list[TestResultInfo]:
    """Read every ``status_*.json`` below ``results_dir``, in path order."""
    if not results_dir.is_dir():
        return []
    infos = []
    for path in sorted(results_dir.rglob("status_*.json")):
        infos.append(TestResultInfo.from_dict(json.loads(path.read_text()), source_dir=path.parent))
    return infos


def read_results_file(path: Path) -> dict[str, TestResult]:
    """Read the ``{testName: result}`` file a test command leaves behind."""
    data = json.loads(path.read_text())
    return {name: TestResult.from_dict(d or {}) for name, d in data.items()}
