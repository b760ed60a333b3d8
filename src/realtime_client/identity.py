"""Identity provider and navigation collaborators for the client engine."""

import logging
from dataclasses import dataclass
from typing import Any, Callable, FrozenSet, Iterable, List, Optional, Protocol

logger = logging.getLogger(__name__)

IdentityListener = Callable[[Optional["IdentityContext"]], None]


@dataclass(frozen=True)
class IdentityContext:
    """The signed-in user as the client sees it."""

    session_id: str
    user_id: str
    faculty_id: Optional[str] = None
    permissions: FrozenSet[str] = frozenset()
    is_admin: bool = False
    display_name: Optional[str] = None

    @classmethod
    def create(
        cls,
        session_id: str,
        user_id: str,
        faculty_id: Optional[str] = None,
        permissions: Iterable[str] = (),
        is_admin: bool = False,
        display_name: Optional[str] = None,
    ) -> "IdentityContext":
        return cls(
            session_id=session_id,
            user_id=user_id,
            faculty_id=faculty_id,
            permissions=frozenset(permissions),
            is_admin=is_admin,
            display_name=display_name,
        )


class IdentityProvider(Protocol):
    """Source of the current identity, injected into the client.

    ``refresh`` may return an awaitable when reloading claims is asynchronous.
    """

    def current(self) -> Optional[IdentityContext]: ...

    def refresh(self) -> Any: ...

    def sign_out(self) -> None: ...

    def subscribe(self, listener: IdentityListener) -> Callable[[], None]: ...


class Navigator(Protocol):
    def to_login(self, reason: str) -> None: ...


class LoggingNavigator:
    """Navigator for headless use: records and logs login redirects."""

    def __init__(self, login_path: str = "/login"):
        self.login_path = login_path
        self.redirects: List[str] = []

    def to_login(self, reason: str) -> None:
        url = f"{self.login_path}?message={reason}"
        self.redirects.append(url)
        logger.warning("Redirecting to %s", url)


class InMemoryIdentityProvider:
    """Identity provider holding the identity in memory.

    ``loader`` is called by ``refresh`` to fetch updated claims; when absent
    the current identity is kept.
    """

    def __init__(
        self,
        identity: Optional[IdentityContext] = None,
        loader: Optional[Callable[[IdentityContext], Optional[IdentityContext]]] = None,
    ):
        self._identity = identity
        self._loader = loader
        self._listeners: List[IdentityListener] = []
        self.refresh_count = 0
        self.sign_out_count = 0

    def current(self) -> Optional[IdentityContext]:
        return self._identity

    def set(self, identity: Optional[IdentityContext]) -> None:
        self._identity = identity
        self._emit()

    def refresh(self) -> Optional[IdentityContext]:
        self.refresh_count += 1
        if self._identity is not None and self._loader is not None:
            self.set(self._loader(self._identity))
        return self._identity

    def sign_out(self) -> None:
        self.sign_out_count += 1
        if self._identity is not None:
            self.set(None)

    def subscribe(self, listener: IdentityListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _emit(self) -> None:
        for listener in list(self._listeners):
            try:
                listener(self._identity)
            except Exception:
                logger.exception("Identity listener failed")
