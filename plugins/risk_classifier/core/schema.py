"""Resolve declared column names against the headers of a dataset."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Callable, Iterable, Literal, Sequence

from common.logging import get_logger

from .csv_table import Dataset
from .errors import AmbiguousColumnError, ColumnNotFoundError

logger = get_logger("risk_server.schema")

MissingColumnPolicy = Literal["raise", "skip"]


class ColumnRole(str, enum.Enum):
    NUMERIC = "numeric"
    CATEGORICAL = "categorical"
    TARGET = "target"
    IGNORED = "ignored"


@dataclass(frozen=True, slots=True)
class ColumnSpec:
    name: str
    role: ColumnRole
    declared: str | None = None


@dataclass(frozen=True, slots=True)
class DeclaredSchema:
    """Column names a caller expects, plus the positive target value."""

    target: str
    positive_value: str
    numeric: tuple[str, ...] = ()
    categorical: tuple[str, ...] = ()

    @classmethod
    def from_mapping(cls, payload: dict) -> "DeclaredSchema":
        return cls(
            target=str(payload["target"]),
            positive_value=str(payload.get("positive_value", "1")),
            numeric=tuple(str(name) for name in payload.get("numeric", ()) or ()),
            categorical=tuple(str(name) for name in payload.get("categorical", ()) or ()),
        )

    def to_dict(self) -> dict:
        return {
            "target": self.target,
            "positive_value": self.positive_value,
            "numeric": list(self.numeric),
            "categorical": list(self.categorical),
        }


@dataclass(slots=True)
class ResolvedSchema:
    specs: list[ColumnSpec]
    skipped: list[str] = field(default_factory=list)

    def by_role(self, role: ColumnRole) -> list[ColumnSpec]:
        return [spec for spec in self.specs if spec.role is role]

    @property
    def target(self) -> ColumnSpec:
        return self.by_role(ColumnRole.TARGET)[0]

    @property
    def numeric(self) -> list[ColumnSpec]:
        return self.by_role(ColumnRole.NUMERIC)

    @property
    def categorical(self) -> list[ColumnSpec]:
        return self.by_role(ColumnRole.CATEGORICAL)


def _key(name: str) -> str:
    return name.strip().casefold()


def _exact(declared: str, header: str) -> bool:
    return declared == header


def _case_insensitive(declared: str, header: str) -> bool:
    return _key(declared) == _key(header)


def _substring(declared: str, header: str) -> bool:
    wanted, actual = _key(declared), _key(header)
    if not wanted or not actual:
        return False
    return wanted in actual or actual in wanted


_RULES: tuple[Callable[[str, str], bool], ...] = (_exact, _case_insensitive, _substring)


def match_column(declared: str, headers: Sequence[str]) -> str:
    """Return the header that ``declared`` refers to.

    Rules are tried in order (exact, case-insensitive, substring); the first
    rule with any candidate decides. Several candidates are narrowed to the
    one whose length is closest to the declared name.
    """

    for rule in _RULES:
        candidates = [header for header in headers if rule(declared, header)]
        if not candidates:
            continue
        if len(candidates) == 1:
            return candidates[0]
        target_length = len(declared.strip())
        ranked = sorted(candidates, key=lambda header: abs(len(header.strip()) - target_length))
        best = abs(len(ranked[0].strip()) - target_length)
        tied = [header for header in ranked if abs(len(header.strip()) - target_length) == best]
        if len(tied) == 1:
            return tied[0]
        raise AmbiguousColumnError(
            f"Column '{declared}' matches several headers",
            details={"declared": declared, "candidates": tied},
        )
    raise ColumnNotFoundError(
        f"Column '{declared}' not found",
        details={"declared": declared, "headers": list(headers)},
    )


def _resolve_group(
    names: Iterable[str],
    role: ColumnRole,
    available: list[str],
    on_missing: MissingColumnPolicy,
    skipped: list[str],
) -> list[ColumnSpec]:
    specs: list[ColumnSpec] = []
    for declared in names:
        try:
            header = match_column(declared, available)
        except ColumnNotFoundError:
            if on_missing != "skip":
                raise
            logger.warning("skipping declared %s column %r: no matching header", role.value, declared)
            skipped.append(declared)
            continue
        available.remove(header)
        specs.append(ColumnSpec(name=header, role=role, declared=declared))
    return specs


def resolve(
    dataset: Dataset,
    numeric: Sequence[str],
    categorical: Sequence[str],
    target: str,
    *,
    on_missing: MissingColumnPolicy = "raise",
) -> ResolvedSchema:
    """Partition the dataset's columns into roles.

    The target is matched first and never skipped. Headers claimed by one
    declaration are not offered to later ones.
    """

    available = list(dict.fromkeys(dataset.header))
    target_header = match_column(target, available)
    available.remove(target_header)
    skipped: list[str] = []

    specs = [ColumnSpec(name=target_header, role=ColumnRole.TARGET, declared=target)]
    specs += _resolve_group(numeric, ColumnRole.NUMERIC, available, on_missing, skipped)
    specs += _resolve_group(categorical, ColumnRole.CATEGORICAL, available, on_missing, skipped)
    specs += [ColumnSpec(name=header, role=ColumnRole.IGNORED) for header in available]
    return ResolvedSchema(specs=specs, skipped=skipped)


def resolve_declared(
    dataset: Dataset,
    schema: DeclaredSchema,
    *,
    on_missing: MissingColumnPolicy = "raise",
) -> ResolvedSchema:
    return resolve(
        dataset,
        schema.numeric,
        schema.categorical,
        schema.target,
        on_missing=on_missing,
    )


__all__ = [
    "ColumnRole",
    "ColumnSpec",
    "DeclaredSchema",
    "ResolvedSchema",
    "match_column",
    "resolve",
    "resolve_declared",
]
