"""Request Context Management.

contextvars-backed binding of request, user and session identifiers to log
entries, so push-stream logs can be traced back to the caller.
"""

import time
import uuid
from contextvars import ContextVar
from dataclasses import dataclass, field
from typing import Any


_request_id_var: ContextVar[str] = ContextVar("request_id", default="")
_correlation_id_var: ContextVar[str] = ContextVar("correlation_id", default="")
_user_id_var: ContextVar[str] = ContextVar("user_id", default="")
_session_id_var: ContextVar[str] = ContextVar("session_id", default="")
_extra_context_var: ContextVar[dict] = ContextVar("extra_context", default={})


def generate_request_id() -> str:
    """Generate a unique request ID using UUID4."""
    return str(uuid.uuid4())


def get_request_id() -> str:
    return _request_id_var.get()


def get_correlation_id() -> str:
    return _correlation_id_var.get()


def get_context_dict() -> dict[str, Any]:
    """All bound context values, skipping empty ones."""
    ctx = {}
    for key, var in (
        ("request_id", _request_id_var),
        ("correlation_id", _correlation_id_var),
        ("user_id", _user_id_var),
        ("session_id", _session_id_var),
    ):
        value = var.get()
        if value:
            ctx[key] = value
    extra = _extra_context_var.get()
    if extra:
        ctx.update(extra)
    return ctx


@dataclass
class RequestContext:
    """Context manager binding identifiers to every log line inside it.

    Example:
        with RequestContext(user_id="u-1", session_id="s-1"):
            logger.info("stream opened")  # carries request_id, user_id, session_id
    """

    request_id: str = ""
    correlation_id: str = ""
    user_id: str = ""
    session_id: str = ""
    extra: dict[str, Any] = field(default_factory=dict)
    started_at: float = field(default_factory=time.perf_counter)

    _tokens: list = field(default_factory=list, repr=False)

    def __post_init__(self):
        if not self.request_id:
            self.request_id = generate_request_id()
        if not self.correlation_id:
            self.correlation_id = self.request_id

    def __enter__(self) -> "RequestContext":
        self._tokens = [
            (_request_id_var, _request_id_var.set(self.request_id)),
            (_correlation_id_var, _correlation_id_var.set(self.correlation_id)),
            (_user_id_var, _user_id_var.set(self.user_id)),
            (_session_id_var, _session_id_var.set(self.session_id)),
            (_extra_context_var, _extra_context_var.set(self.extra.copy())),
        ]
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        for var, token in reversed(self._tokens):
            var.reset(token)
        self._tokens.clear()

    @property
    def elapsed_ms(self) -> float:
        return (time.perf_counter() - self.started_at) * 1000

    def bind(self, **kwargs: Any) -> None:
        """Add extra key-value pairs to the context."""
        _extra_context_var.set({**_extra_context_var.get(), **kwargs})
        self.extra.update(kwargs)
