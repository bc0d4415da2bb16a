"""Base REST client implementing the Template Method pattern.

Gerrit and Jenkins share the same request algorithm:
    request() → _url() + _auth() + _extra_params()
              → _send_with_retry() → session.request()
              → status check

Subclasses implement only how a path maps to a URL and how a request is
authenticated. Retry, backoff and error mapping live here so both clients
behave the same when a server is flaky.
"""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod

import requests

from presubmit_core.errors import RestError

logger = logging.getLogger(__name__)

_MAX_RETRIES = 3
_TIMEOUT = 30


class BaseRestClient(ABC):
    MAX_RETRIES: int = _MAX_RETRIES
    TIMEOUT: int = _TIMEOUT

    def __init__(self, host: str, session: requests.Session | None = None):
        self.host = host.rstrip("/")
        self._session = session or requests.Session()

    # ------------------------------------------------------------------ #
    # Public interface                                                     #
    # ------------------------------------------------------------------ #

    def request(self, method: str, path: str, *, params=None, json=None, data=None) -> requests.Response:
        """Send one logical request and return the successful response.

        Raises RestError on a 4xx response straight away, and on connection
        failures or 5xx responses once MAX_RETRIES attempts are used up.
        """
        all_params = list(self._extra_params())
        if isinstance(params, dict):
            all_params.extend(params.items())
        elif params:
            all_params.extend(params)
        return self._send_with_retry(
            method,
            self._url(path),
            params=all_params or None,
            json=json,
            data=data,
            auth=self._auth(),
            headers={"Accept": "application/json"},
            timeout=self.TIMEOUT,
        )

    def get_json(self, path: str, params=None):
        return self.request("GET", path, params=params).json()

    # ------------------------------------------------------------------ #
    # Abstract: implement in each client                                  #
    # ------------------------------------------------------------------ #

    @abstractmethod
    def _url(self, path: str) -> str:
        """Map an API path to an absolute URL."""

    @abstractmethod
    def _auth(self):
        """Return a requests auth object, or None."""

    def _extra_params(self) -> list[tuple[str, str]]:
        """Query parameters added to every request."""
        return []

    # ------------------------------------------------------------------ #
    # Shared implementations                                               #
    # ------------------------------------------------------------------ #

    def _send_with_retry(self, method: str, url: str, **kwargs) -> requests.Response:
        last_error: Exception | None = None
        for attempt in range(self.MAX_RETRIES):
            try:
                response = self._session.request(method, url, **kwargs)
            except (requests.ConnectionError, requests.Timeout) as e:
                last_error = e
            else:
                if response.status_code < 400:
                    return response
                if response.status_code < 500:
                    raise RestError(
                        f"{method} {url} failed: {response.status_code} {response.text[:200]}",
                        status_code=response.status_code,
                    )
                last_error = RestError(
                    f"{method} {url} failed: {response.status_code}",
                    status_code=response.status_code,
                )

            if attempt == self.MAX_RETRIES - 1:
                break
            delay = 2**attempt
            logger.warning(
                "%s request error (attempt %d/%d): %s. Retrying in %ds...",
                self.__class__.__name__,
                attempt + 1,
                self.MAX_RETRIES,
                last_error,
                delay,
            )
            time.sleep(delay)

        logger.error(
            "%s request failed after %d attempts: %s",
            self.__class__.__name__,
            self.MAX_RETRIES,
            last_error,
        )
        if isinstance(last_error, RestError):
            raise last_error
        raise RestError(f"{method} {url} failed: {last_error}") from last_error
