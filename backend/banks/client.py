"""Caller-side helpers for the bank lookup API.

``BankLookupClient`` is a thin JSON transport. ``IbanResolver`` sits in front
of it for interactive input: it validates locally, debounces keystrokes, keeps
a cache of resolved IBANs, sends at most one request per IBAN at a time, and
drops responses that arrive after the input has changed.
"""

from __future__ import annotations

import json
import logging
import socket
import threading
from json import JSONDecodeError
from typing import Any, Callable
from urllib.error import HTTPError, URLError
from urllib.parse import quote, urlencode, urljoin
from urllib.request import Request, urlopen

from .iban import validate_iban


logger = logging.getLogger(__name__)

DEFAULT_DEBOUNCE_SECONDS = 0.5


class BankClientError(Exception):
    def __init__(self, message: str, status_code: int | None = None, code: str | None = None):
        super().__init__(message)
        self.status_code = status_code
        self.code = code


def _extract_error(raw_body: str) -> tuple[str, str | None]:
    if not raw_body.strip():
        return "No additional details were returned.", None
    try:
        payload = json.loads(raw_body)
    except JSONDecodeError:
        return "Bank API returned a non-JSON error response.", None
    if not isinstance(payload, dict):
        return "Bank API returned an error.", None
    message = payload.get("detail") or payload.get("error") or "Bank API returned an error."
    return str(message), payload.get("code")


class BankLookupClient:
    def __init__(self, base_url: str, *, timeout: float = 5.0):
        self.base_url = f"{str(base_url).rstrip('/')}/"
        self.timeout = timeout

    def _url(self, path: str, query: dict[str, Any] | None = None) -> str:
        url = urljoin(self.base_url, path.lstrip("/"))
        if query:
            url = f"{url}?{urlencode(query)}"
        return url

    def _request_json(self, method: str, url: str, payload: dict[str, Any] | None = None) -> dict[str, Any]:
        request_data = None
        if payload is not None:
            request_data = json.dumps(payload).encode("utf-8")
        request = Request(url=url, data=request_data, method=method.upper())
        request.add_header("Accept", "application/json")
        if request_data is not None:
            request.add_header("Content-Type", "application/json")

        try:
            with urlopen(request, timeout=self.timeout) as response:
                raw_body = response.read().decode("utf-8")
        except HTTPError as exc:
            raw_body = exc.read().decode("utf-8", errors="replace")
            message, code = _extract_error(raw_body)
            raise BankClientError(
                f"Bank API returned HTTP {exc.code}. {message}",
                status_code=exc.code,
                code=code,
            ) from exc
        except (URLError, TimeoutError, socket.timeout) as exc:
            raise BankClientError("Bank API is currently unavailable.") from exc

        if not raw_body.strip():
            return {}
        try:
            parsed_body = json.loads(raw_body)
        except JSONDecodeError as exc:
            raise BankClientError("Bank API returned invalid JSON.") from exc
        if not isinstance(parsed_body, dict):
            raise BankClientError("Bank API returned an unsupported response format.")
        return parsed_body

    def _get_or_none(self, url: str) -> dict[str, Any] | None:
        try:
            return self._request_json("GET", url)
        except BankClientError as exc:
            if exc.status_code == 404:
                return None
            raise

    def lookup_iban(self, iban: str) -> dict[str, Any]:
        return self._request_json("GET", self._url(f"lookup/iban/{quote(iban, safe='')}/"))

    def lookup_sort_code(self, sort_code: str) -> dict[str, Any] | None:
        return self._get_or_none(self._url(f"lookup/sortcode/{quote(sort_code, safe='')}/"))

    def lookup_bic(self, bic: str) -> dict[str, Any] | None:
        return self._get_or_none(self._url(f"lookup/bic/{quote(bic, safe='')}/"))

    def search(self, query: str, limit: int = 10) -> list[dict[str, Any]]:
        payload = self._request_json("GET", self._url("search/", {"query": query, "limit": limit}))
        return list(payload.get("results") or [])

    def batch_lookup(self, ibans: list[str]) -> list[dict[str, Any]]:
        payload = self._request_json("POST", self._url("batch-lookup/"), {"ibans": list(ibans)})
        return list(payload.get("results") or [])

    def validate_iban(self, iban: str) -> dict[str, Any]:
        return self._request_json("POST", self._url("validate-iban/"), {"iban": iban})

    def status(self) -> dict[str, Any]:
        return self._request_json("GET", self._url("status/"))


class IbanResolver:
    IDLE = "idle"
    PENDING = "pending"
    IN_FLIGHT = "in_flight"

    def __init__(
        self,
        client,
        on_result: Callable[[str, dict[str, Any]], None],
        on_error: Callable[[str, Exception], None] | None = None,
        debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS,
        timer_factory=threading.Timer,
    ):
        self.client = client
        self.on_result = on_result
        self.on_error = on_error
        self.debounce_seconds = debounce_seconds
        self.timer_factory = timer_factory
        self._lock = threading.Lock()
        self._cache: dict[str, dict[str, Any]] = {}
        self._in_flight: set[str] = set()
        self._timer = None
        self._seq = 0
        self._current_iban: str | None = None
        self._state = self.IDLE

    @property
    def state(self) -> str:
        return self._state

    @property
    def cache(self) -> dict[str, dict[str, Any]]:
        with self._lock:
            return dict(self._cache)

    def clear_cache(self) -> None:
        with self._lock:
            self._cache.clear()

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def cancel(self) -> None:
        with self._lock:
            self._seq += 1
            self._cancel_timer()
            self._current_iban = None
            self._state = self.IDLE

    def on_input(self, value: str | None) -> None:
        validation = validate_iban(value)
        cached = None
        with self._lock:
            self._seq += 1
            seq = self._seq
            self._cancel_timer()
            if not validation.is_valid or not validation.electronic:
                self._current_iban = None
                self._state = self.IDLE
                return
            iban = validation.electronic
            self._current_iban = iban
            cached = self._cache.get(iban)
            if cached is not None:
                self._state = self.IDLE
            else:
                self._state = self.PENDING
                self._timer = self.timer_factory(self.debounce_seconds, self._fire, args=(seq, iban))
                self._timer.daemon = True
                self._timer.start()
        if cached is not None:
            self.on_result(iban, cached)

    def _fire(self, seq: int, iban: str) -> None:
        with self._lock:
            if seq != self._seq:
                return
            self._timer = None
            cached = self._cache.get(iban)
            if cached is None:
                self._state = self.IN_FLIGHT
                if iban in self._in_flight:
                    # The running request for this IBAN will deliver.
                    return
                self._in_flight.add(iban)
            else:
                self._state = self.IDLE
        if cached is not None:
            self.on_result(iban, cached)
            return
        self._lookup(iban)

    def _lookup(self, iban: str) -> None:
        result = None
        error = None
        try:
            result = self.client.lookup_iban(iban)
        except Exception as exc:  # surfaced through on_error
            error = exc
        with self._lock:
            self._in_flight.discard(iban)
            if result is not None:
                self._cache[iban] = result
            deliver = self._state == self.IN_FLIGHT and self._current_iban == iban
            if deliver:
                self._state = self.IDLE
        if not deliver:
            logger.debug("Discarding stale bank lookup for %s", iban)
            return
        if error is not None:
            if self.on_error is not None:
                self.on_error(iban, error)
            return
        self.on_result(iban, result)
