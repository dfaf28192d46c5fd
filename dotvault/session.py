# dotvault Session Cache
# Obtains, caches, and invalidates backend authentication tokens

import json
import logging
from enum import Enum
from pathlib import Path
from typing import Optional

from dotvault.backends.base import BackendAdapter, Session
from dotvault.errors import AuthError
from dotvault.utils.paths import OWNER_ONLY, atomic_write, file_mode

logger = logging.getLogger(__name__)


class SessionState(str, Enum):
    """Lifecycle of the cached session."""

    UNINITIALIZED = "uninitialized"
    AUTHENTICATING = "authenticating"
    VALID = "valid"
    EXPIRED = "expired"
    INVALIDATED = "invalidated"


class SessionCache:
    """
    Holds the single session shared by every item in one run.

    The token is reused while valid. An expired token gets exactly one
    re-authentication per run; a second failure is fatal. The on-disk
    cache is owner-only and is deleted on logout, backend switch, or any
    authentication failure.
    """

    def __init__(
        self,
        backend: BackendAdapter,
        cache_path: Optional[Path] = None,
        *,
        env_token: Optional[str] = None,
    ):
        """
        Initialize session cache.

        Args:
            backend: Adapter used to authenticate.
            cache_path: Token cache file. None disables disk persistence.
            env_token: Token supplied by the environment (e.g. BW_SESSION);
                tried before the cache file and never written to disk.
        """
        self.backend = backend
        self.cache_path = cache_path
        self.env_token = env_token
        self.state = SessionState.UNINITIALIZED
        self._session: Optional[Session] = None
        self._reauthenticated = False

    @property
    def session(self) -> Optional[Session]:
        return self._session if self.state == SessionState.VALID else None

    def get(self) -> Session:
        """
        Return a valid session, authenticating if needed.

        Raises:
            AuthError: If authentication fails, or the session expired a
                second time in this run.
        """
        if self.state == SessionState.VALID and self._session is not None:
            if not self._session.is_expired():
                return self._session
            self.mark_expired()

        if self.state == SessionState.EXPIRED:
            if self._reauthenticated:
                raise AuthError(
                    f"{self.backend.display_name} session expired again after re-authentication",
                    "Re-authenticate manually and re-run the command.",
                )
            self._reauthenticated = True
            return self._authenticate(cached_token=None)

        return self._authenticate(cached_token=self.env_token or self._read_cache())

    def cached_token(self) -> Optional[str]:
        """Token that would be tried first, without authenticating."""
        return self.env_token or self._read_cache()

    def mark_expired(self) -> None:
        """Record that the backend rejected the current session."""
        logger.info("%s session expired", self.backend.display_name)
        self._session = None
        self.state = SessionState.EXPIRED
        self._delete_cache()

    def invalidate(self) -> None:
        """Drop the session and its cache file (logout or backend switch)."""
        self._session = None
        self.state = SessionState.INVALIDATED
        self._delete_cache()

    def logout(self) -> None:
        self.invalidate()
        logger.info("Logged out of %s", self.backend.display_name)

    def _authenticate(self, cached_token: Optional[str]) -> Session:
        previous = self.state
        self.state = SessionState.AUTHENTICATING
        try:
            session = self.backend.authenticate(cached_token)
        except AuthError:
            self._session = None
            self.state = SessionState.EXPIRED if previous == SessionState.EXPIRED else SessionState.INVALIDATED
            self._delete_cache()
            raise

        self._session = session
        self.state = SessionState.VALID
        if session.token and session.token != self.env_token:
            self._write_cache(session.token)
        logger.debug("Authenticated with %s", self.backend.display_name)
        return session

    def _read_cache(self) -> Optional[str]:
        if self.cache_path is None or not self.cache_path.is_file():
            return None

        mode = file_mode(self.cache_path)
        if mode is not None and mode & 0o077:
            logger.warning("Ignoring session cache with unsafe mode %o: %s", mode, self.cache_path)
            self._delete_cache()
            return None

        try:
            data = json.loads(self.cache_path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError):
            self._delete_cache()
            return None

        if not isinstance(data, dict) or data.get("backend") != self.backend.kind:
            # Cached for a different backend
            self._delete_cache()
            return None
        return data.get("token") or None

    def _write_cache(self, token: str) -> None:
        if self.cache_path is None:
            return
        payload = json.dumps({"backend": self.backend.kind, "token": token})
        atomic_write(self.cache_path, payload, mode=OWNER_ONLY)

    def _delete_cache(self) -> None:
        if self.cache_path is not None:
            self.cache_path.unlink(missing_ok=True)
