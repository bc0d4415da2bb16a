"""Gerrit-backed MessagePoster."""

from __future__ import annotations

import logging
from typing import Sequence

from presubmit_core.actions.base import MessagePoster
from presubmit_core.gerrit.client import GerritClient

logger = logging.getLogger(__name__)

VERIFIED_LABEL = "Verified"


class GerritMessagePoster(MessagePoster):
    """Posts review messages, voting Verified ±1 where the project uses it.

    Not every project has the Verified label; voting on one that does not
    would make Gerrit reject the whole review. The set of refs that carry the
    label is looked up with ``query`` before each post.
    """

    def __init__(self, gerrit: GerritClient, query: str):
        self._gerrit = gerrit
        self._query = query

    def refs_using_verified_label(self) -> set[str]:
        return {cl.ref for cl in self._gerrit.query(self._query) if cl.has_label(VERIFIED_LABEL)}

    def post_message(self, message: str, refs: Sequence[str], success: bool) -> None:
        verified_refs = self.refs_using_verified_label()
        value = "+1" if success else "-1"
        for ref in refs:
            labels = {VERIFIED_LABEL: value} if ref in verified_refs else {}
            self._gerrit.post_review(ref, message, labels)
            logger.info("Review posted for %r with labels %s", ref, labels)
