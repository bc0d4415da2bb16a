"""Gerrit REST client: query open changes, post reviews, submit."""

from __future__ import annotations

import logging

import requests
from requests.auth import HTTPBasicAuth

from presubmit_core.gerrit.change import Change, parse_query_results
from presubmit_core.gerrit.refs import parse_ref
from presubmit_core.rest import BaseRestClient

logger = logging.getLogger(__name__)

_QUERY_OPTIONS = ("CURRENT_REVISION", "CURRENT_COMMIT", "LABELS", "DETAILED_ACCOUNTS")


class GerritClient(BaseRestClient):
    """Authenticated access to one Gerrit host.

    All endpoints go through the ``/a/`` prefix so HTTP basic auth applies.
    """

    def __init__(
        self,
        host: str,
        username: str | None = None,
        password: str | None = None,
        session: requests.Session | None = None,
    ):
        super().__init__(host, session=session)
        self._username = username
        self._password = password

    def _url(self, path: str) -> str:
        return f"{self.host}/a/{path.lstrip('/')}"

    def _auth(self):
        if self._username and self._password:
            return HTTPBasicAuth(self._username, self._password)
        return None

    def query(self, query: str) -> list[Change]:
        """Return the changes matched by a Gerrit search expression."""
        params = [("o", option) for option in _QUERY_OPTIONS]
        params.append(("q", query))
        response = self.request("GET", "changes/", params=params)
        changes = parse_query_results(response.text)
        logger.debug("Query %r returned %d change(s)", query, len(changes))
        return changes

    def post_review(self, ref: str, message: str, labels: dict[str, str] | None = None) -> None:
        """Post a review message (and optional label votes) on the revision ``ref`` points at."""
        cl_number, patchset = parse_ref(ref)
        body: dict = {"message": message}
        if labels:
            body["labels"] = labels
        self.request("POST", f"changes/{cl_number}/revisions/{patchset}/review", json=body)

    def submit(self, change_id: str) -> None:
        self.request("POST", f"changes/{change_id}/submit", json={})
