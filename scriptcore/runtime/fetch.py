# scriptcore/runtime/fetch.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details

"""
Fetch value objects and the fetch entry point.

Architecture:
- Headers is a case-insensitive multimap
- Request and Response share a one-shot body whose readers return promises
- FetchClient turns a Request into a bridge operation on the transport
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any, Callable, Dict, Iterable, Iterator, List, Mapping, Optional, Tuple, Union

import httpx

from scriptcore.core.errors import InvalidStateError, RedirectPolicyError
from scriptcore.core.signals import AbortSignal
from scriptcore.interfaces.protocols import Transport
from scriptcore.interfaces.types import REDIRECT_MODES, HeaderPairs, TransportResponse
from scriptcore.runtime.promise import Promise

if TYPE_CHECKING:
    from scriptcore.runtime.bridge import AsyncBridge, CancelContext
    from scriptcore.runtime.scheduler import TaskScheduler

logger = logging.getLogger(__name__)

REDIRECT_STATUSES = (301, 302, 303, 307, 308)
_BODYLESS_METHODS = ("GET", "HEAD")
_INVALID_HEADER_CHARS = set(' \t\r\n:()<>@,;"/[]?={}')

HeadersInit = Union["Headers", Mapping[str, Any], Iterable[Tuple[str, Any]], None]
BodyInit = Union[str, bytes, bytearray, None]


class Headers:
    """
    Case-insensitive multimap of header names to values. Iteration is
    sorted by lower-cased name, with repeated values joined by ``", "``.
    """

    def __init__(self, init: HeadersInit = None) -> None:
        self._values: Dict[str, List[str]] = {}
        if init is None:
            return
        if isinstance(init, Headers):
            pairs: Iterable[Tuple[str, Any]] = init._pairs()
        elif isinstance(init, Mapping):
            pairs = init.items()
        else:
            pairs = init
        for pair in pairs:
            name, value = tuple(pair)
            self.append(name, value)

    def append(self, name: str, value: Any) -> None:
        self._values.setdefault(self._normalize_name(name), []).append(self._normalize_value(value))

    def set(self, name: str, value: Any) -> None:
        self._values[self._normalize_name(name)] = [self._normalize_value(value)]

    def get(self, name: str) -> Optional[str]:
        values = self._values.get(str(name).lower())
        if not values:
            return None
        return ", ".join(values)

    def get_set_cookie(self) -> List[str]:
        return list(self._values.get("set-cookie", ()))

    def has(self, name: str) -> bool:
        return str(name).lower() in self._values

    def delete(self, name: str) -> None:
        self._values.pop(str(name).lower(), None)

    def keys(self) -> List[str]:
        return sorted(self._values)

    def values(self) -> List[str]:
        return [value for _, value in self.items()]

    def items(self) -> List[Tuple[str, str]]:
        return [(name, ", ".join(self._values[name])) for name in sorted(self._values)]

    def for_each(self, callback: Callable[[str, str, "Headers"], Any]) -> None:
        for name, value in self.items():
            callback(value, name, self)

    def _pairs(self) -> HeaderPairs:
        """Every (name, value) pair without joining, for the transport."""
        return [(name, value) for name in sorted(self._values) for value in self._values[name]]

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and self.has(name)

    def __iter__(self) -> Iterator[Tuple[str, str]]:
        return iter(self.items())

    def __len__(self) -> int:
        return len(self._values)

    def __repr__(self) -> str:
        return f"Headers({self.items()!r})"

    @staticmethod
    def _normalize_name(name: str) -> str:
        text = str(name)
        if not text or any(char in _INVALID_HEADER_CHARS or ord(char) > 126 for char in text):
            raise TypeError(f"Invalid header name: {text!r}")
        return text.lower()

    @staticmethod
    def _normalize_value(value: Any) -> str:
        text = str(value).strip(" \t\r\n")
        if "\n" in text or "\r" in text or "\0" in text:
            raise TypeError(f"Invalid header value: {text!r}")
        return text


def _to_bytes(body: BodyInit) -> Optional[bytes]:
    if body is None:
        return None
    if isinstance(body, str):
        return body.encode("utf-8")
    if isinstance(body, (bytes, bytearray)):
        return bytes(body)
    raise TypeError(f"Unsupported body type: {type(body).__name__}")


class _Body:
    """
    One-shot body shared by Request and Response. Readers return promises;
    a second read rejects with InvalidStateError.
    """

    def __init__(self, body: BodyInit, scheduler: Optional["TaskScheduler"]) -> None:
        self._body = _to_bytes(body)
        self._body_used = False
        self._scheduler = scheduler

    @property
    def body_used(self) -> bool:
        return self._body_used

    @property
    def has_body(self) -> bool:
        return self._body is not None

    def text(self) -> Promise:
        return self._consume(lambda data: data.decode("utf-8", errors="replace"))

    def json(self) -> Promise:
        return self._consume(lambda data: json.loads(data.decode("utf-8")))

    def bytes(self) -> Promise:
        return self._consume(lambda data: data)

    def array_buffer(self) -> Promise:
        return self._consume(bytearray)

    def _consume(self, convert: Callable[[bytes], Any]) -> Promise:
        if self._scheduler is None:
            raise InvalidStateError("Body readers need a scheduler")
        if self._body_used:
            return Promise.rejected(self._scheduler, InvalidStateError("Body has already been consumed"))
        self._body_used = True
        try:
            value = convert(self._body or b"")
        except ValueError as exc:
            return Promise.rejected(self._scheduler, exc)
        return Promise.resolved(self._scheduler, value)


class Request(_Body):
    """
    An outgoing request.

    :param resource: URL string or another Request to copy.
    :param init: Mapping of overrides: method, headers, body, mode,
        credentials, cache, redirect, referrer, referrer_policy, integrity,
        keepalive, signal.
    :param base_url: Base for resolving relative URLs.
    """

    def __init__(
        self,
        resource: Union[str, "Request"],
        init: Optional[Mapping[str, Any]] = None,
        base_url: Optional[str] = None,
        scheduler: Optional["TaskScheduler"] = None,
        **kwargs: Any,
    ) -> None:
        options: Dict[str, Any] = dict(init or {})
        options.update(kwargs)

        if isinstance(resource, Request):
            source = resource
            url = source.url
            defaults: Dict[str, Any] = {
                "method": source.method,
                "headers": source.headers,
                "body": source._body,
                "mode": source.mode,
                "credentials": source.credentials,
                "cache": source.cache,
                "redirect": source.redirect,
                "referrer": source.referrer,
                "referrer_policy": source.referrer_policy,
                "integrity": source.integrity,
                "keepalive": source.keepalive,
                "signal": source.signal,
            }
            scheduler = scheduler or source._scheduler
        else:
            url = resolve_url(str(resource), base_url)
            defaults = {}
        defaults.update(options)

        method = str(defaults.get("method") or "GET").upper()
        body = defaults.get("body")
        if body is not None and method in _BODYLESS_METHODS:
            raise TypeError(f"Request with {method} method cannot have a body")
        redirect = defaults.get("redirect") or "follow"
        if redirect not in REDIRECT_MODES:
            raise TypeError(f"Invalid redirect mode: {redirect!r}")
        signal = defaults.get("signal")
        if signal is not None and not isinstance(signal, AbortSignal):
            raise TypeError("signal must be an AbortSignal")

        super().__init__(body, scheduler)
        self.url = url
        self.method = method
        self.headers = Headers(defaults.get("headers"))
        self.mode = defaults.get("mode") or "cors"
        self.credentials = defaults.get("credentials") or "same-origin"
        self.cache = defaults.get("cache") or "default"
        self.redirect = redirect
        self.referrer = defaults.get("referrer", "about:client")
        self.referrer_policy = defaults.get("referrer_policy", "")
        self.integrity = defaults.get("integrity", "")
        self.keepalive = bool(defaults.get("keepalive", False))
        self.signal: Optional[AbortSignal] = signal

    def clone(self) -> "Request":
        if self._body_used:
            raise TypeError("Cannot clone a Request with a used body")
        return Request(self)

    def __repr__(self) -> str:
        return f"Request(method={self.method!r}, url={self.url!r})"


class Response(_Body):
    """
    A response to a request, or one built by script.

    :param body: Response body.
    :param status: Status code in 200-599.
    :param status_text: Reason phrase.
    :param headers: Initial headers.
    """

    def __init__(
        self,
        body: BodyInit = None,
        status: int = 200,
        status_text: str = "",
        headers: HeadersInit = None,
        scheduler: Optional["TaskScheduler"] = None,
    ) -> None:
        if not 200 <= int(status) <= 599:
            raise ValueError(f"Response status {status} is outside the range 200-599")
        super().__init__(body, scheduler)
        self.status = int(status)
        self.status_text = status_text
        self.headers = Headers(headers)
        self.type = "default"
        self.url = ""
        self.redirected = False

    @property
    def ok(self) -> bool:
        return 200 <= self.status <= 299

    @classmethod
    def error(cls, scheduler: Optional["TaskScheduler"] = None) -> "Response":
        """A network-error response: status 0, type ``error``."""
        response = cls(scheduler=scheduler)
        response.status = 0
        response.type = "error"
        return response

    @classmethod
    def redirect(cls, url: str, status: int = 302, scheduler: Optional["TaskScheduler"] = None) -> "Response":
        if status not in REDIRECT_STATUSES:
            raise ValueError(f"Invalid redirect status code: {status}")
        response = cls(status=status, scheduler=scheduler)
        response.headers.set("location", url)
        return response

    @classmethod
    def json_response(
        cls,
        data: Any,
        status: int = 200,
        status_text: str = "",
        headers: HeadersInit = None,
        scheduler: Optional["TaskScheduler"] = None,
    ) -> "Response":
        try:
            body = json.dumps(data)
        except (TypeError, ValueError) as exc:
            raise TypeError(f"Failed to serialize data to JSON: {exc}") from exc
        response = cls(body, status=status, status_text=status_text, headers=headers, scheduler=scheduler)
        if not response.headers.has("content-type"):
            response.headers.set("content-type", "application/json")
        return response

    @classmethod
    def from_transport(
        cls, result: TransportResponse, request: Request, scheduler: Optional["TaskScheduler"] = None
    ) -> "Response":
        response = cls(
            result.body,
            status_text=httpx.codes.get_reason_phrase(result.status),
            headers=result.headers,
            scheduler=scheduler,
        )
        # Transport statuses are not range checked
        response.status = result.status
        response.type = "basic"
        response.url = result.final_url or request.url
        response.redirected = bool(result.final_url) and result.final_url != request.url
        return response

    def clone(self) -> "Response":
        if self._body_used:
            raise TypeError("Cannot clone a Response with a used body")
        copy = Response(self._body, status_text=self.status_text, headers=self.headers, scheduler=self._scheduler)
        copy.status = self.status
        copy.type = self.type
        copy.url = self.url
        copy.redirected = self.redirected
        return copy

    def __repr__(self) -> str:
        return f"Response(status={self.status}, url={self.url!r})"


def resolve_url(url: str, base_url: Optional[str] = None) -> str:
    """
    Resolve ``url`` against ``base_url``.

    :raises TypeError: If the result is not an absolute URL.
    """
    try:
        parsed = httpx.URL(url)
        if parsed.is_relative_url:
            if not base_url:
                raise TypeError(f"Invalid URL: {url}")
            parsed = httpx.URL(base_url).join(url)
    except httpx.InvalidURL as exc:
        raise TypeError(f"Invalid URL: {url}") from exc
    if parsed.is_relative_url:
        raise TypeError(f"Invalid URL: {url}")
    return str(parsed)


class FetchClient:
    """
    Implements ``fetch`` on top of the bridge and a transport.

    :param bridge: Runs the transport call off the script thread.
    :param scheduler: Scheduler owning the returned promises.
    :param transport: Transport collaborator.
    :param base_url: Base for relative request URLs.
    :param user_agent: Sent as ``User-Agent`` unless the request sets one.
    :param default_redirect: Redirect mode for requests that do not set one.
    """

    def __init__(
        self,
        bridge: "AsyncBridge",
        scheduler: "TaskScheduler",
        transport: Transport,
        base_url: Optional[str] = None,
        user_agent: Optional[str] = None,
        default_redirect: str = "follow",
    ) -> None:
        self._bridge = bridge
        self._scheduler = scheduler
        self._transport = transport
        self._base_url = base_url
        self._user_agent = user_agent
        self._default_redirect = default_redirect

    def fetch(self, resource: Union[str, Request], init: Optional[Mapping[str, Any]] = None, **kwargs: Any) -> Promise:
        """
        Start a request. Always returns a promise; invalid input rejects it.
        """
        options = dict(init or {})
        options.update(kwargs)
        if not isinstance(resource, Request):
            options.setdefault("redirect", self._default_redirect)
        try:
            request = Request(resource, options, base_url=self._base_url, scheduler=self._scheduler)
        except (TypeError, ValueError) as exc:
            return Promise.rejected(self._scheduler, exc)

        headers = Headers(request.headers)
        if self._user_agent and not headers.has("user-agent"):
            headers.set("user-agent", self._user_agent)
        header_pairs = headers._pairs()
        body = request._body
        method, url, redirect = request.method, request.url, request.redirect

        def _perform(cancel_context: "CancelContext") -> TransportResponse:
            result = self._transport.perform_request(
                method, url, header_pairs, body, cancel_context, follow_redirects=redirect == "follow"
            )
            if redirect == "error" and 300 <= result.status < 400:
                raise RedirectPolicyError("Redirect not allowed", details={"url": url, "status": result.status})
            return result

        logger.debug("fetch %s %s", method, url)
        return self._bridge.start_operation(
            _perform,
            request.signal,
            on_success=lambda result: Response.from_transport(result, request, self._scheduler),
        )
