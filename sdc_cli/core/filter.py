"""Query filters for list operations."""

from collections.abc import Iterator, Mapping
from typing import Any


class Filter(Mapping[str, str]):
    """
    Ordered query-parameter constraints for list endpoints.

    Example:
        f = Filter()
        f.set("memory", 1024)
        f.set("tags.role", "db")
        client.machines.list(f)

    """

    def __init__(self, values: Mapping[str, Any] | None = None):
        self._values: dict[str, str] = {}
        for key, value in (values or {}).items():
            self.set(key, value)

    def set(self, key: str, value: Any) -> None:
        """Set a filter value, replacing any previous value for key (None removes it)."""
        if value is None:
            self.delete(key)
            return
        if isinstance(value, bool):
            value = "true" if value else "false"
        self._values[key] = str(value)

    def delete(self, key: str) -> None:
        self._values.pop(key, None)

    def __getitem__(self, key: str) -> str:
        return self._values[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Filter):
            return list(self._values.items()) == list(other._values.items())
        return super().__eq__(other)

    def __repr__(self) -> str:
        return f"Filter({self._values!r})"
