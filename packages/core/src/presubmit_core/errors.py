"""Exception taxonomy for presubmit_core.

Everything raised on purpose by this package derives from PresubmitError so
the CLI can turn any of them into a clean usage message with a single
``except`` clause. Per-CL failures (a bad multi-part descriptor, a failed
dispatch) are caught and logged by the callers that iterate over CL lists;
only configuration and snapshot errors are meant to abort a poll round.
"""

from __future__ import annotations


class PresubmitError(Exception):
    """Base class for all presubmit errors."""


class MalformedRefError(PresubmitError, ValueError):
    """A Gerrit ref did not have the ``<prefix>/changes/<shard>/<cl>/<ps>`` shape."""

    def __init__(self, ref: str, reason: str = ""):
        self.ref = ref
        msg = f"invalid ref: {ref!r}"
        if reason:
            msg += f" ({reason})"
        super().__init__(msg)


class MultiPartError(PresubmitError):
    """A change could not be inserted into a multi-part CL set."""


class NotMultiPartError(MultiPartError):
    def __init__(self, ref: str):
        self.ref = ref
        super().__init__(f"{ref} is not a multi-part CL")


class TotalMismatchError(MultiPartError):
    def __init__(self, ref: str, expected: int, got: int):
        self.ref = ref
        self.expected = expected
        self.got = got
        super().__init__(f"inconsistent total number of CLs for {ref}: want {expected}, got {got}")


class TopicMismatchError(MultiPartError):
    def __init__(self, ref: str, expected: str, got: str):
        self.ref = ref
        self.expected = expected
        self.got = got
        super().__init__(f"inconsistent topic for {ref}: want {expected!r}, got {got!r}")


class DuplicateIndexError(MultiPartError):
    def __init__(self, ref: str, index: int):
        self.ref = ref
        self.index = index
        super().__init__(f"duplicate part index {index} for {ref}")


class ProjectNotFoundError(PresubmitError):
    def __init__(self, project: str, ref: str = ""):
        self.project = project
        self.ref = ref
        super().__init__(f"project={project!r} ({ref}) not found")


class DispatchError(PresubmitError):
    """The CI system refused or failed to schedule a presubmit build."""


class MergeConflictError(PresubmitError):
    def __init__(self, ref: str, detail: str = ""):
        self.ref = ref
        self.detail = detail
        super().__init__(f"possible merge conflict detected in {ref}")


class ToolsBuildError(PresubmitError):
    def __init__(self, output: str):
        self.output = output
        super().__init__("failed to build required tools")


class ConfigError(PresubmitError):
    """The configuration file or an override is invalid."""


class SnapshotError(PresubmitError):
    """The snapshot of the previous poll round could not be read."""


class RestError(PresubmitError):
    """A Gerrit or Jenkins REST call failed."""

    def __init__(self, message: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)


class GitError(PresubmitError):
    """A git subprocess exited non-zero."""

    def __init__(self, args: list[str], returncode: int, output: str):
        self.args_ = list(args)
        self.returncode = returncode
        self.output = output
        super().__init__(f"'{' '.join(args)}' failed with exit code {returncode}:\n{output}")
