# dotvault 1Password Backend
# Secure notes managed through the 1Password CLI v2 (op)

import json
import logging
import shutil
from typing import Any, Optional

from dotvault.backends.base import (
    TYPE_LOGIN,
    TYPE_SECURE_NOTE,
    BackendAdapter,
    HealthCheck,
    Session,
    VaultItem,
    VaultItemSummary,
)
from dotvault.errors import AuthError, BackendError, BackendUnavailable, ItemNotFound

logger = logging.getLogger(__name__)

NOTES_FIELD = "notesPlain"


class OnePasswordBackend(BackendAdapter):
    """
    1Password via the 'op' CLI (v2.x).

    Interactive use relies on the desktop app's system authentication, so
    the session token is usually empty. A service account token, when
    present, is passed through OP_SERVICE_ACCOUNT_TOKEN.
    """

    kind = "1password"
    display_name = "1Password"
    binary = "op"
    install_hint = "brew install --cask 1password-cli"
    auth_error_markers = (
        "not currently signed in",
        "you are not signed in",
        "session expired",
        "invalid session token",
        "authorization prompt dismissed",
    )

    def __init__(self, *, vault: str = "Personal", **kwargs: Any):
        super().__init__(**kwargs)
        self.vault = vault

    def init(self) -> None:
        if shutil.which(self.binary) is None:
            raise BackendUnavailable("1Password CLI (op) is not installed", self.install_hint)

        version = self._run("--version", check=False).stdout.strip()
        major = version.split(".", 1)[0]
        if not major.isdigit() or int(major) < 2:
            raise BackendUnavailable(
                f"1Password CLI v2.x required (found v{version or 'unknown'})",
                "brew upgrade 1password-cli",
            )

    def authenticate(self, cached_token: Optional[str] = None) -> Session:
        if cached_token and self._signed_in(cached_token):
            logger.debug("Reusing 1Password service account token")
            return Session(token=cached_token, backend_kind=self.kind)

        if self._signed_in(""):
            return Session(token="", backend_kind=self.kind)

        raise AuthError("Not signed in to 1Password", "Run: op signin")

    def _signed_in(self, token: str) -> bool:
        env = {"OP_SERVICE_ACCOUNT_TOKEN": token} if token else None
        return self._run("whoami", check=False, env=env, timeout=self.auth_timeout).returncode == 0

    def _session_env(self, session: Session) -> Optional[dict[str, str]]:
        return {"OP_SERVICE_ACCOUNT_TOKEN": session.token} if session.token else None

    def _parse(self, stdout: str, action: str) -> Any:
        try:
            return json.loads(stdout or "null")
        except json.JSONDecodeError as e:
            raise BackendError(f"op {action} returned invalid JSON: {e.msg}")

    @staticmethod
    def _type_tag(category: Optional[str]) -> int:
        return TYPE_SECURE_NOTE if category == "SECURE_NOTE" else TYPE_LOGIN

    def _normalize(self, data: dict[str, Any]) -> VaultItem:
        notes = ""
        for item_field in data.get("fields") or []:
            if item_field.get("id") == NOTES_FIELD:
                notes = item_field.get("value") or ""
                break
        return VaultItem(
            id=str(data.get("id") or ""),
            name=str(data.get("title") or ""),
            type_tag=self._type_tag(data.get("category")),
            content=notes,
        )

    def get_item(self, name: str, session: Session) -> Optional[VaultItem]:
        result = self._run(
            "item",
            "get",
            name,
            "--vault",
            self.vault,
            "--format",
            "json",
            check=False,
            env=self._session_env(session),
        )
        if result.returncode != 0:
            stderr = (result.stderr or "").lower()
            if "isn't an item" in stderr or "not found" in stderr:
                return None
            self._raise_for(result, ("item", "get"))

        data = self._parse(result.stdout, "item get")
        # op resolves IDs as well as titles; only exact titles count
        if data.get("title") != name:
            return None
        return self._normalize(data)

    def list_items(self, session: Session) -> list[VaultItemSummary]:
        result = self._run(
            "item", "list", "--vault", self.vault, "--format", "json", env=self._session_env(session)
        )
        return [
            VaultItemSummary(
                id=str(item.get("id") or ""),
                name=str(item.get("title") or ""),
                type_tag=self._type_tag(item.get("category")),
            )
            for item in self._parse(result.stdout, "item list") or []
        ]

    def _create(self, name: str, content: str, session: Session) -> None:
        template = {
            "title": name,
            "category": "SECURE_NOTE",
            "fields": [
                {"id": NOTES_FIELD, "type": "STRING", "purpose": "NOTES", "label": NOTES_FIELD, "value": content},
            ],
        }
        # A template piped on stdin keeps the secret out of argv
        self._run(
            "item",
            "create",
            "--vault",
            self.vault,
            "--format",
            "json",
            input=json.dumps(template),
            env=self._session_env(session),
        )

    def update_item(self, name: str, content: str, session: Session) -> None:
        if not self.item_exists(name, session):
            raise ItemNotFound(name)

        self._run(
            "item",
            "edit",
            name,
            "--vault",
            self.vault,
            f"{NOTES_FIELD}={content}",
            env=self._session_env(session),
        )
        logger.info("Updated 1Password item '%s'", name)

    def _delete(self, name: str, session: Session) -> None:
        if not self.item_exists(name, session):
            raise ItemNotFound(name)
        self._run("item", "delete", name, "--vault", self.vault, env=self._session_env(session))

    def health_check(self, cached_token: Optional[str] = None) -> list[HealthCheck]:
        if shutil.which(self.binary) is None:
            return [HealthCheck("1Password CLI", False, f"not installed ({self.install_hint})")]

        checks: list[HealthCheck] = []
        version = self._run("--version", check=False).stdout.strip()
        checks.append(HealthCheck("1Password CLI", True, f"v{version or 'unknown'}"))

        signed_in = self._signed_in(cached_token or "")
        checks.append(HealthCheck("Signed in", signed_in, "" if signed_in else "run: op signin"))

        env = {"OP_SERVICE_ACCOUNT_TOKEN": cached_token} if cached_token else None
        accessible = self._run("vault", "get", self.vault, check=False, env=env).returncode == 0
        checks.append(
            HealthCheck(f"Vault '{self.vault}'", accessible, "accessible" if accessible else "cannot access")
        )
        return checks
