# dotvault Item Registry
# Ordered, validated view of the declared secrets

from collections.abc import Iterable, Iterator
from pathlib import Path
from typing import Optional

from dotvault.config.loader import load_item_schema
from dotvault.config.schema import SecretSpec
from dotvault.errors import ConfigError


class ItemRegistry:
    """
    Declared secrets in schema order.

    Loaded once per invocation; the sequence never changes during a run.
    """

    def __init__(self, specs: Iterable[SecretSpec], source: Optional[Path] = None):
        self._specs: tuple[SecretSpec, ...] = tuple(specs)
        self._by_name = {spec.name: spec for spec in self._specs}
        self.source = source

    @classmethod
    def from_file(cls, items_path: Path) -> "ItemRegistry":
        """Load the registry from a JSON item schema."""
        schema = load_item_schema(items_path)
        return cls(schema.secrets, source=items_path)

    def __iter__(self) -> Iterator[SecretSpec]:
        return iter(self._specs)

    def __len__(self) -> int:
        return len(self._specs)

    def __contains__(self, name: object) -> bool:
        return name in self._by_name

    @property
    def names(self) -> list[str]:
        return [spec.name for spec in self._specs]

    def select(self, names: Optional[Iterable[str]] = None, *, include_manual: bool = True) -> list[SecretSpec]:
        """
        Select specs for an operation, preserving schema order.

        Args:
            names: Explicit item names. None or empty selects all items.
            include_manual: Whether manual items are part of an unnamed
                selection. Explicitly named items are always included.

        Raises:
            ConfigError: If a requested name is not declared.
        """
        requested = list(names or [])
        if requested:
            unknown = [n for n in requested if n not in self._by_name]
            if unknown:
                raise ConfigError(
                    f"Unknown item(s): {', '.join(unknown)}",
                    [f"declared items: {', '.join(self.names)}"],
                )
            wanted = set(requested)
            return [spec for spec in self._specs if spec.name in wanted]

        if include_manual:
            return list(self._specs)
        return [spec for spec in self._specs if not spec.is_manual]

    def ssh_key_names(self) -> set[str]:
        """Names of items declared as SSH key pairs."""
        return {spec.name for spec in self._specs if spec.is_ssh_key}
