# dotvault pass Backend
# GPG-encrypted entries in the standard Unix password store

import logging
import shutil
from pathlib import Path
from typing import Any, Optional

from dotvault.backends.base import (
    TYPE_SECURE_NOTE,
    BackendAdapter,
    HealthCheck,
    Session,
    VaultItem,
    VaultItemSummary,
    run_cli,
)
from dotvault.errors import AuthError, BackendError, BackendUnavailable, ItemNotFound

logger = logging.getLogger(__name__)


class PassBackend(BackendAdapter):
    """
    pass (passwordstore.org).

    Items live at <store>/<prefix>/<name>.gpg. There is no session: the
    gpg-agent prompts for the passphrase when needed, so the session token
    is always empty.
    """

    kind = "pass"
    display_name = "pass"
    binary = "pass"
    install_hint = "brew install pass"
    auth_error_markers = ("decryption failed", "no secret key", "operation cancelled")

    def __init__(self, *, store_dir: Path, prefix: str = "dotfiles", **kwargs: Any):
        super().__init__(**kwargs)
        self.store_dir = Path(store_dir)
        self.prefix = prefix.strip("/")

    def _env(self) -> Optional[dict[str, str]]:
        return {"PASSWORD_STORE_DIR": str(self.store_dir)}

    def _pass_path(self, name: str) -> str:
        return f"{self.prefix}/{name}" if self.prefix else name

    def _gpg_file(self, name: str) -> Path:
        return self.store_dir / f"{self._pass_path(name)}.gpg"

    def init(self) -> None:
        if shutil.which(self.binary) is None:
            raise BackendUnavailable("pass is not installed", self.install_hint)
        if shutil.which("gpg") is None:
            raise BackendUnavailable("gpg is not installed (required for pass)", "brew install gnupg")
        if not self.store_dir.is_dir():
            raise BackendUnavailable(
                f"Password store not initialized at {self.store_dir}",
                "pass init <gpg-id>",
            )

    def authenticate(self, cached_token: Optional[str] = None) -> Session:
        if self._run("ls", check=False).returncode != 0:
            raise AuthError(f"Cannot read the password store at {self.store_dir}", "Check gpg-agent, then run: pass ls")
        return Session(token="", backend_kind=self.kind)

    def item_exists(self, name: str, session: Session) -> bool:
        return self._gpg_file(name).is_file()

    def get_item(self, name: str, session: Session) -> Optional[VaultItem]:
        if not self.item_exists(name, session):
            return None

        pass_path = self._pass_path(name)
        result = self._run("show", pass_path)
        return VaultItem(id=pass_path, name=name, type_tag=TYPE_SECURE_NOTE, content=result.stdout)

    def list_items(self, session: Session) -> list[VaultItemSummary]:
        base = self.store_dir / self.prefix if self.prefix else self.store_dir
        if not base.is_dir():
            return []

        summaries = []
        for gpg_file in sorted(base.rglob("*.gpg")):
            name = gpg_file.relative_to(base).with_suffix("").as_posix()
            summaries.append(VaultItemSummary(id=self._pass_path(name), name=name, type_tag=TYPE_SECURE_NOTE))
        return summaries

    def _create(self, name: str, content: str, session: Session) -> None:
        self._gpg_file(name).parent.mkdir(parents=True, exist_ok=True)
        self._run("insert", "--multiline", self._pass_path(name), input=content)

    def update_item(self, name: str, content: str, session: Session) -> None:
        if not self.item_exists(name, session):
            raise ItemNotFound(name)
        self._run("insert", "--multiline", "--force", self._pass_path(name), input=content)
        logger.info("Updated pass item '%s'", name)

    def _delete(self, name: str, session: Session) -> None:
        if not self.item_exists(name, session):
            raise ItemNotFound(name)
        self._run("rm", "--force", self._pass_path(name))

    def refresh(self, session: Session) -> None:
        if not (self.store_dir / ".git").is_dir():
            return
        try:
            result = self._run("git", "pull", "--rebase", check=False)
        except BackendError as e:
            logger.warning("Failed to pull the password store git repository: %s", e.message)
            return
        if result.returncode != 0:
            logger.warning("Failed to pull the password store git repository (may be offline)")

    def health_check(self, cached_token: Optional[str] = None) -> list[HealthCheck]:
        checks: list[HealthCheck] = []

        if shutil.which(self.binary) is None:
            checks.append(HealthCheck("pass", False, f"not installed ({self.install_hint})"))
        else:
            version = self._run("version", check=False).stdout
            checks.append(HealthCheck("pass", True, _first_line(version) or "installed"))

        checks.append(
            HealthCheck("gpg", shutil.which("gpg") is not None, "installed" if shutil.which("gpg") else "not installed")
        )

        if self.store_dir.is_dir():
            count = sum(1 for _ in self.store_dir.rglob("*.gpg"))
            checks.append(HealthCheck("Password store", True, f"{self.store_dir} ({count} items)"))
        else:
            checks.append(HealthCheck("Password store", False, f"not found at {self.store_dir}"))

        try:
            agent = run_cli(["gpg-connect-agent", "/bye"], timeout=self.timeout).returncode == 0
        except BackendError:
            agent = False
        checks.append(HealthCheck("GPG agent", agent, "running" if agent else "not running (may prompt)"))

        return checks


def _first_line(text: str) -> str:
    for line in text.splitlines():
        if line.strip():
            return line.strip()
    return ""
