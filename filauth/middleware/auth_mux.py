"""Verification middleware.

``AuthMux`` gates an ASGI application:

1. Requests whose path matches a trust handle go straight to the trusted
   handler. A pattern matches exactly, or as a path prefix when it ends with
   ``/``, or through an optional regular expression.
2. Otherwise the bearer is taken from ``Authorization: Bearer ...``; without
   that header, from a ``token`` query or form field.
3. The verifiers are tried in order; the first that accepts the bearer wins.
4. The request state is annotated with ``perms`` (expanded permission set),
   ``name`` and ``token_location``; handlers read it through
   :func:`caller_from_request`.

Missing or rejected bearers get a bare 401; the reason is only logged.
"""
import re
from typing import Dict, Iterable, List, Optional, Pattern, Sequence, Tuple

from starlette.requests import HTTPConnection, Request
from starlette.responses import Response
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from filauth.client.verifier import Verifier
from filauth.errors import AuthError
from filauth.utils.auth import parse_bearer
from filauth.utils.logger import logger
from filauth.utils.perm import CallerContext, expand_perm

_FORM_CONTENT_TYPES = ("application/x-www-form-urlencoded", "multipart/form-data")


def caller_from_request(request: HTTPConnection) -> CallerContext:
    """Caller identity recorded by :class:`AuthMux`; empty for trusted routes"""
    state = request.state
    return CallerContext(
        name=getattr(state, "name", None),
        perms=getattr(state, "perms", frozenset()),
        token_location=getattr(state, "token_location", None),
    )


async def _read_body(receive: Receive) -> bytes:
    chunks = []
    while True:
        message = await receive()
        if message["type"] != "http.request":
            break
        chunks.append(message.get("body", b""))
        if not message.get("more_body", False):
            break
    return b"".join(chunks)


def _replay(body: bytes, receive: Receive) -> Receive:
    """A receive callable that yields ``body`` once, then defers to ``receive``"""
    sent = False

    async def replay() -> Message:
        nonlocal sent
        if not sent:
            sent = True
            return {"type": "http.request", "body": body, "more_body": False}
        return await receive()

    return replay


class AuthMux:
    def __init__(
        self,
        app: ASGIApp,
        local: Optional[Verifier] = None,
        remote: Optional[Verifier] = None,
        verifiers: Sequence[Verifier] = (),
        trust_handles: Iterable[str] = (),
    ):
        """
        Args:
            app:           The application to protect.
            local:         Verifier tried first (in-process credentials).
            remote:        Verifier tried next (the auth service over HTTP).
            verifiers:     Further verifiers appended to the chain.
            trust_handles: Patterns served by ``app`` without verification.
        """
        self.app = app
        self._verifiers: List[Verifier] = [v for v in (local, remote) if v is not None]
        self._verifiers.extend(verifiers)

        self._exact: Dict[str, ASGIApp] = {}
        self._prefixes: List[Tuple[str, ASGIApp]] = []
        self._regexes: List[Tuple[Pattern[str], ASGIApp]] = []
        for pattern in trust_handles:
            self.trust_handle(pattern)

    # ---------------------------------------------------------------------------
    # Trust handles
    # ---------------------------------------------------------------------------

    def trust_handle(self, pattern: str, handler: Optional[ASGIApp] = None, regex: Optional[str] = None) -> None:
        """Serve ``pattern`` with ``handler`` (default: the wrapped app) and skip verification.

        Handles are registered while the application is being built; the
        maps are only read once requests are served.
        """
        handler = handler or self.app
        if regex is not None:
            self._regexes.append((re.compile(regex), handler))
            return
        self._exact[pattern] = handler
        if pattern.endswith("/"):
            self._prefixes.append((pattern, handler))
            self._prefixes.sort(key=lambda item: len(item[0]), reverse=True)

    def _trusted(self, path: str) -> Optional[ASGIApp]:
        handler = self._exact.get(path)
        if handler is not None:
            return handler
        for prefix, handler in self._prefixes:
            if path.startswith(prefix):
                return handler
        for pattern, handler in self._regexes:
            if pattern.match(path):
                return handler
        return None

    # ---------------------------------------------------------------------------
    # Request handling
    # ---------------------------------------------------------------------------

    async def _extract_token(self, scope: Scope, receive: Receive) -> Tuple[Optional[str], Receive]:
        """Bearer from the header, else the ``token`` query/form field.

        An ``Authorization`` header in any other scheme yields no token; the
        query and form fields are only consulted when the header is absent.
        Reading a form consumes the body, so the returned receive callable
        replays it for the downstream handler.
        """
        request = Request(scope, receive)
        authorization = request.headers.get("authorization")
        if authorization is not None:
            return parse_bearer(authorization), receive

        token = request.query_params.get("token")
        if token:
            return token, receive

        content_type = request.headers.get("content-type", "")
        if not content_type.startswith(_FORM_CONTENT_TYPES):
            return None, receive

        body = await _read_body(receive)
        form = await Request(scope, _replay(body, receive)).form()
        value = form.get("token")
        token = value.strip() if isinstance(value, str) else None
        return token or None, _replay(body, receive)

    async def _reject(self, scope: Scope, receive: Receive, send: Send, reason: str) -> None:
        client = scope.get("client")
        logger.warning(
            f"Rejected request: {reason}",
            extra={
                "path": scope.get("path"),
                "method": scope.get("method"),
                "ip": client[0] if client else "unknown",
                "action": "verify",
            },
        )
        response = Response(status_code=401, headers={"WWW-Authenticate": "Bearer"})
        await response(scope, receive, send)

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        handler = self._trusted(scope["path"])
        if handler is not None:
            await handler(scope, receive, send)
            return

        token, receive = await self._extract_token(scope, receive)
        if not token:
            await self._reject(scope, receive, send, "missing bearer")
            return

        errors = []
        for verifier in self._verifiers:
            try:
                payload = await verifier.verify(token)
            except AuthError as exc:
                errors.append(f"{verifier.location}: {exc.message}")
                continue

            state = scope.setdefault("state", {})
            state["perms"] = expand_perm(payload.perm)
            state["name"] = payload.name
            state["token_location"] = verifier.location
            await self.app(scope, receive, send)
            return

        await self._reject(scope, receive, send, "; ".join(errors) or "no verifier configured")
