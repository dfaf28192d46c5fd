# dotvault Bitwarden Backend
# Secure notes managed through the Bitwarden CLI (bw)

import base64
import json
import logging
import shutil
import tempfile
from pathlib import Path
from typing import Any, Optional

from dotvault.backends.base import (
    TYPE_SECURE_NOTE,
    BackendAdapter,
    HealthCheck,
    Session,
    VaultItem,
    VaultItemSummary,
)
from dotvault.errors import AuthError, BackendError, BackendUnavailable, ItemNotFound

logger = logging.getLogger(__name__)


def _encode(payload: dict[str, Any]) -> str:
    """Equivalent of 'bw encode': base64 of the JSON document."""
    return base64.b64encode(json.dumps(payload).encode("utf-8")).decode("ascii")


class BitwardenBackend(BackendAdapter):
    """
    Bitwarden via the 'bw' CLI.

    Items are stored as secure notes (type 2) with the secret in the notes
    field. The session key is handed to bw through BW_SESSION so it never
    shows up in the process list.
    """

    kind = "bitwarden"
    display_name = "Bitwarden"
    binary = "bw"
    install_hint = "brew install bitwarden-cli"
    supports_attachments = True
    auth_error_markers = (
        "vault is locked",
        "you are not logged in",
        "session key is invalid",
        "invalid session",
    )

    def init(self) -> None:
        if shutil.which(self.binary) is None:
            raise BackendUnavailable("Bitwarden CLI (bw) is not installed", self.install_hint)

    def authenticate(self, cached_token: Optional[str] = None) -> Session:
        if cached_token and self._is_unlocked(cached_token):
            logger.debug("Reusing cached Bitwarden session")
            return Session(token=cached_token, backend_kind=self.kind)

        if self._run("login", "--check", check=False).returncode != 0:
            raise AuthError("Not logged in to Bitwarden", "Run: bw login")

        logger.info("Unlocking Bitwarden vault")
        result = self._run("unlock", "--raw", check=False, interactive=True, timeout=self.auth_timeout)
        token = (result.stdout or "").strip()
        if result.returncode != 0 or not token:
            raise AuthError("Failed to unlock Bitwarden vault", "Run: bw unlock")

        return Session(token=token, backend_kind=self.kind)

    def _is_unlocked(self, token: str) -> bool:
        result = self._run("unlock", "--check", check=False, env={"BW_SESSION": token})
        return result.returncode == 0

    def _session_env(self, session: Session) -> dict[str, str]:
        return {"BW_SESSION": session.token} if session.token else {}

    def _get_raw(self, name: str, session: Session) -> Optional[dict[str, Any]]:
        """Fetch the native item JSON for an exact name match."""
        result = self._run("get", "item", name, check=False, env=self._session_env(session))

        if result.returncode != 0:
            stderr = (result.stderr or "").lower()
            if "not found" in stderr:
                return None
            if "more than one result" in stderr:
                return self._find_exact(name, session)
            self._raise_for(result, ("get", "item"))

        data = self._parse(result.stdout, "get item")
        # 'bw get' falls back to search, so a partial match is possible
        if data.get("name") != name:
            return self._find_exact(name, session)
        return data

    def _find_exact(self, name: str, session: Session) -> Optional[dict[str, Any]]:
        result = self._run("list", "items", "--search", name, env=self._session_env(session))
        matches = [item for item in self._parse(result.stdout, "list items") if item.get("name") == name]
        if not matches:
            return None
        if len(matches) > 1:
            raise BackendError(f"More than one Bitwarden item is named '{name}'", "Rename or remove the duplicates.")
        return matches[0]

    def _parse(self, stdout: str, action: str) -> Any:
        try:
            return json.loads(stdout or "null")
        except json.JSONDecodeError as e:
            raise BackendError(f"bw {action} returned invalid JSON: {e.msg}")

    def get_item(self, name: str, session: Session) -> Optional[VaultItem]:
        data = self._get_raw(name, session)
        return VaultItem.from_dict(data) if data is not None else None

    def list_items(self, session: Session) -> list[VaultItemSummary]:
        result = self._run("list", "items", env=self._session_env(session))
        return [
            VaultItemSummary(
                id=str(item.get("id") or ""),
                name=str(item.get("name") or ""),
                type_tag=int(item.get("type") or TYPE_SECURE_NOTE),
            )
            for item in self._parse(result.stdout, "list items") or []
        ]

    def _create(self, name: str, content: str, session: Session) -> None:
        payload = {
            "type": TYPE_SECURE_NOTE,
            "secureNote": {"type": 0},
            "name": name,
            "notes": content,
            "favorite": False,
        }
        self._run("create", "item", input=_encode(payload), env=self._session_env(session))

    def update_item(self, name: str, content: str, session: Session) -> None:
        data = self._get_raw(name, session)
        if data is None:
            raise ItemNotFound(name)

        data["notes"] = content
        self._run("edit", "item", str(data["id"]), input=_encode(data), env=self._session_env(session))
        logger.info("Updated Bitwarden item '%s'", name)

    def _delete(self, name: str, session: Session) -> None:
        data = self._get_raw(name, session)
        if data is None:
            raise ItemNotFound(name)
        self._run("delete", "item", str(data["id"]), env=self._session_env(session))

    def refresh(self, session: Session) -> None:
        try:
            result = self._run("sync", check=False, env=self._session_env(session))
        except BackendError as e:
            logger.warning("Failed to sync Bitwarden vault: %s", e.message)
            return
        if result.returncode != 0:
            logger.warning("Failed to sync Bitwarden vault (may be offline)")

    def get_attachment(self, name: str, attachment: str, session: Session) -> bytes:
        data = self._get_raw(name, session)
        if data is None:
            raise ItemNotFound(name)

        with tempfile.TemporaryDirectory(prefix="dotvault-") as tmpdir:
            target = Path(tmpdir) / "attachment"
            self._run(
                "get",
                "attachment",
                attachment,
                "--itemid",
                str(data["id"]),
                "--output",
                str(target),
                env=self._session_env(session),
            )
            return target.read_bytes()

    def health_check(self, cached_token: Optional[str] = None) -> list[HealthCheck]:
        checks: list[HealthCheck] = []

        if shutil.which(self.binary) is None:
            return [HealthCheck("Bitwarden CLI", False, f"not installed ({self.install_hint})")]

        version = self._run("--version", check=False)
        checks.append(HealthCheck("Bitwarden CLI", True, f"v{version.stdout.strip() or 'unknown'}"))

        logged_in = self._run("login", "--check", check=False).returncode == 0
        checks.append(HealthCheck("Logged in", logged_in, "" if logged_in else "run: bw login"))

        if cached_token:
            valid = self._is_unlocked(cached_token)
            checks.append(HealthCheck("Cached session", valid, "valid" if valid else "expired"))
        else:
            checks.append(HealthCheck("Cached session", True, "none cached"))

        return checks
