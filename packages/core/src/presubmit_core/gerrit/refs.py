"""Gerrit change refs: ``refs/changes/<shard>/<cl>/<patchset>``."""

from __future__ import annotations

from presubmit_core.errors import MalformedRefError

_REF_PARTS = 5


def parse_ref(ref: str) -> tuple[int, int]:
    """Return ``(cl_number, patchset)`` for a Gerrit change ref.

    The ref must split on "/" into exactly five segments; the last two are
    the CL number and the patchset and must be base-10 integers.

        >>> parse_ref("refs/changes/12/3412/2")
        (3412, 2)
    """
    parts = ref.split("/")
    if len(parts) != _REF_PARTS:
        raise MalformedRefError(ref, f"expected {_REF_PARTS} segments, got {len(parts)}")
    try:
        cl_number = int(parts[3], 10)
        patchset = int(parts[4], 10)
    except ValueError as e:
        raise MalformedRefError(ref, str(e)) from e
    return cl_number, patchset


def split_refs(refs: str) -> list[str]:
    """Split a colon-separated ref list as passed to Jenkins in ``REFS``."""
    return [r for r in refs.split(":") if r]


def cl_link(gerrit_url: str | None, cl_number: int, patchset: int) -> str:
    base = (gerrit_url or "").rstrip("/")
    return f"{base}/c/{cl_number}/{patchset}"
