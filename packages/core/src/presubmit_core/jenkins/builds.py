"""Typed views of the Jenkins JSON payloads the presubmit engine reads.

Jenkins reports build parameters in two shapes depending on the endpoint:
queue items carry a newline-separated ``params`` string, while builds (and
newer queue items) carry ``actions[].parameters[]`` name/value pairs. Both
are folded into a plain ``{name: value}`` dict here so callers never look at
raw payloads.
"""

from __future__ import annotations

from dataclasses import dataclass, field

INVALID_BUILD_NUMBER = -1

# Older presubmit jobs were launched with a single REF parameter.
_REFS_PARAMS = ("REFS", "REF")

_FAILED_CASE_STATUSES = frozenset({"FAILED", "REGRESSION"})


def _params_from_string(params: str) -> dict[str, str]:
    result = {}
    for line in params.splitlines():
        name, sep, value = line.partition("=")
        if sep:
            result[name.strip()] = value.strip()
    return result


def _params_from_actions(actions: list | None) -> dict[str, str]:
    result = {}
    for action in actions or []:
        for param in (action or {}).get("parameters") or []:
            name = param.get("name")
            if name:
                result[name] = "" if param.get("value") is None else str(param["value"])
    return result


def _refs_param(params: dict[str, str]) -> str:
    for name in _REFS_PARAMS:
        if params.get(name):
            return params[name]
    return ""


@dataclass(frozen=True)
class QueuedBuild:
    id: int
    task_name: str
    params: dict[str, str] = field(default_factory=dict)

    @property
    def refs(self) -> str:
        return _refs_param(self.params)


@dataclass(frozen=True)
class OngoingBuild:
    number: int
    building: bool = False
    params: dict[str, str] = field(default_factory=dict)

    @property
    def refs(self) -> str:
        return _refs_param(self.params)

    @property
    def is_valid(self) -> bool:
        return self.number != INVALID_BUILD_NUMBER


INVALID_BUILD = OngoingBuild(number=INVALID_BUILD_NUMBER)


@dataclass(frozen=True)
class BuildInfo:
    number: int
    result: str | None = None  # None while building
    building: bool = False
    timestamp: int = 0  # ms since epoch
    id: str = ""


@dataclass(frozen=True)
class TestCase:
    __test__ = False

    class_name: str
    name: str
    status: str
    duration: float = 0.0
    error_details: str = ""

    @property
    def failed(self) -> bool:
        return self.status in _FAILED_CASE_STATUSES

    @property
    def full_name(self) -> str:
        return f"{self.class_name}::{self.name}"


def parse_queued_build(item: dict) -> QueuedBuild:
    params = _params_from_string(item.get("params") or "")
    params.update(_params_from_actions(item.get("actions")))
    return QueuedBuild(
        id=int(item.get("id", 0)),
        task_name=(item.get("task") or {}).get("name", ""),
        params=params,
    )


def parse_queue(payload: dict) -> list[QueuedBuild]:
    """Parse ``/queue/api/json``."""
    return [parse_queued_build(item) for item in payload.get("items") or []]


def parse_ongoing_build(payload: dict) -> OngoingBuild:
    """Parse ``/job/<job>/<n>/api/json`` or one entry of a job's ``builds``."""
    return OngoingBuild(
        number=int(payload.get("number", INVALID_BUILD_NUMBER)),
        building=bool(payload.get("building", False)),
        params=_params_from_actions(payload.get("actions")),
    )


def parse_build_listing(payload: dict) -> list[OngoingBuild]:
    """Parse ``/job/<job>/api/json?tree=builds[...]``."""
    return [parse_ongoing_build(b) for b in payload.get("builds") or []]


def parse_build_info(payload: dict) -> BuildInfo:
    return BuildInfo(
        number=int(payload.get("number", INVALID_BUILD_NUMBER)),
        result=payload.get("result"),
        building=bool(payload.get("building", False)),
        timestamp=int(payload.get("timestamp", 0)),
        id=str(payload.get("id", "")),
    )


def _cases_from_suites(suites: list | None) -> list[TestCase]:
    cases = []
    for suite in suites or []:
        for case in suite.get("cases") or []:
            cases.append(
                TestCase(
                    class_name=case.get("className", ""),
                    name=case.get("name", ""),
                    status=case.get("status", ""),
                    duration=float(case.get("duration") or 0.0),
                    error_details=case.get("errorDetails") or "",
                )
            )
    return cases


def parse_test_report(payload: dict) -> list[TestCase]:
    """Flatten a ``testReport/api/json`` payload into its test cases.

    Freestyle jobs report ``suites`` directly; multi-configuration jobs
    report one ``childReports[].result.suites`` per axis combination. Both
    shapes end up as one list.
    """
    if "childReports" in payload:
        cases = []
        for child in payload.get("childReports") or []:
            cases.extend(_cases_from_suites((child.get("result") or {}).get("suites")))
        return cases
    return _cases_from_suites(payload.get("suites"))


def failed_test_cases(payload: dict) -> list[TestCase]:
    return [case for case in parse_test_report(payload) if case.failed]
