"""
Department sequence - the fixed, totally ordered list of production stages.

The order is process configuration (``WORKFLOW_DEPARTMENTS``), never
per-request input. Call-sites ask the sequence for ``next()`` / ``previous()``
instead of doing index arithmetic on a list.

    gabarito → impressao → batida → costura → embalagem
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator

from prodflow.core.exceptions import ValidationError
from prodflow.utils.helpers import clean_text

DEFAULT_DEPARTMENTS = ("gabarito", "impressao", "batida", "costura", "embalagem")

# Role name reserved for administrators; never a production stage.
ADMIN_ROLE = "admin"


class DepartmentSequence:
    """Immutable ordered enumeration of department names."""

    __slots__ = ("_names", "_index")

    def __init__(self, names: Iterable[str]) -> None:
        cleaned: list[str] = []
        for raw in names:
            name = (raw or "").strip().lower()
            if not name:
                raise ValidationError("Department names must not be blank")
            if name == ADMIN_ROLE:
                raise ValidationError(f"'{ADMIN_ROLE}' is a reserved role, not a department")
            if name in cleaned:
                raise ValidationError(f"Duplicate department in sequence: {name}")
            cleaned.append(name)
        self._names: tuple[str, ...] = tuple(cleaned)
        self._index = {name: i for i, name in enumerate(self._names)}

    @classmethod
    def from_config(cls, value: str | Iterable[str] | None) -> DepartmentSequence:
        """Build from a comma-separated string or an iterable of names."""
        if value is None:
            return cls(DEFAULT_DEPARTMENTS)
        if isinstance(value, str):
            return cls(part for part in value.split(",") if part.strip())
        return cls(value)

    # ── Lookup ──────────────────────────────────────────────────────────

    @property
    def is_empty(self) -> bool:
        return not self._names

    @property
    def first(self) -> str | None:
        return self._names[0] if self._names else None

    @property
    def last(self) -> str | None:
        return self._names[-1] if self._names else None

    def require(self, department: str | None) -> str:
        """Return the normalised department name or raise ValidationError."""
        name = clean_text(department, "department", lower=True)
        if name not in self._index:
            raise ValidationError(
                f"Unknown department '{name}'. Must be one of: {', '.join(self._names)}",
                details={"department": name},
            )
        return name

    def index(self, department: str) -> int:
        return self._index[self.require(department)]

    def next(self, department: str) -> str | None:
        """Department after *department*, or None at the end of the line."""
        i = self.index(department)
        return self._names[i + 1] if i + 1 < len(self._names) else None

    def previous(self, department: str) -> str | None:
        """Department before *department*, or None at the first stage."""
        i = self.index(department)
        return self._names[i - 1] if i > 0 else None

    def as_list(self) -> list[str]:
        return list(self._names)

    # ── Container protocol ──────────────────────────────────────────────

    def __iter__(self) -> Iterator[str]:
        return iter(self._names)

    def __len__(self) -> int:
        return len(self._names)

    def __contains__(self, department: object) -> bool:
        return isinstance(department, str) and department.strip().lower() in self._index

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, DepartmentSequence):
            return NotImplemented
        return self._names == other._names

    def __hash__(self) -> int:
        return hash(self._names)

    def __repr__(self) -> str:
        return f"<DepartmentSequence {' → '.join(self._names) or '(empty)'}>"
