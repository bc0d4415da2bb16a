"""Gerrit credential resolution with ~/.netrc fallback.

Why the netrc fallback:
- On the Jenkins host GERRIT_USERNAME / GERRIT_PASSWORD are injected by the
  job's credentials binding, no per-host config.
- Developers running `presubmit query` by hand already have a Gerrit HTTP
  password in ~/.netrc (git uses it for https pushes), so they need no
  extra setup.

Resolution order (stops at first success):
  1. GERRIT_USERNAME / GERRIT_PASSWORD environment variables
  2. The ~/.netrc entry for the Gerrit host
"""

from __future__ import annotations

import logging
import netrc
from urllib.parse import urlparse

logger = logging.getLogger(__name__)


def resolve_gerrit_credentials(
    gerrit_url: str | None,
    username: str | None = None,
    password: str | None = None,
    netrc_file: str | None = None,
) -> tuple[str | None, str | None]:
    """Return (username, password) for the Gerrit host, or (None, None).

    Never raises: anonymous access still works for queries, so callers
    decide whether missing credentials are fatal.
    """
    if username and password:
        return username, password

    if not gerrit_url:
        return None, None

    host = urlparse(gerrit_url).hostname or gerrit_url
    try:
        entry = netrc.netrc(netrc_file).authenticators(host)
    except (OSError, netrc.NetrcParseError) as e:
        logger.debug("No usable netrc entry for %s: %s", host, e)
        return None, None

    if entry is None:
        return None, None
    login, _, netrc_password = entry
    logger.debug("Resolved Gerrit credentials for %s via netrc.", host)
    return login, netrc_password
