"""Minimal quote-aware CSV reader producing immutable row records."""

from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType
from typing import Iterator, Mapping, Sequence

import pandas as pd

from .errors import MalformedInputError

Row = Mapping[str, str]

_SEPARATOR = ","
_QUOTE = '"'


@dataclass(frozen=True, slots=True)
class Dataset:
    """Ordered rows sharing one header."""

    header: tuple[str, ...]
    rows: tuple[Row, ...]

    def __len__(self) -> int:
        return len(self.rows)

    def __iter__(self) -> Iterator[Row]:
        return iter(self.rows)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Dataset):
            return NotImplemented
        return self.header == other.header and [dict(row) for row in self.rows] == [
            dict(row) for row in other.rows
        ]

    @property
    def is_empty(self) -> bool:
        return not self.rows

    def column(self, name: str) -> list[str]:
        if name not in self.header:
            raise KeyError(f"Column '{name}' does not exist")
        return [row[name] for row in self.rows]


def split_fields(line: str) -> list[str]:
    """Split one line on commas, honouring double-quoted sections."""

    fields: list[str] = []
    current: list[str] = []
    in_quotes = False
    for char in line:
        if char == _QUOTE:
            in_quotes = not in_quotes
        elif char == _SEPARATOR and not in_quotes:
            fields.append("".join(current).strip())
            current = []
        else:
            current.append(char)
    fields.append("".join(current).strip())
    return fields


def make_row(header: Sequence[str], values: Sequence[str]) -> Row:
    record = {name: values[index] if index < len(values) else "" for index, name in enumerate(header)}
    return MappingProxyType(record)


def parse(text: str) -> Dataset:
    """Parse CSV text into a :class:`Dataset`.

    Blank lines are skipped, short lines are padded with empty strings and
    surplus fields are ignored. Text holding only a header yields an empty
    dataset.
    """

    if text.startswith("\ufeff"):
        text = text[1:]
    lines = [line.rstrip("\r") for line in text.split("\n")]
    lines = [line for line in lines if line.strip()]
    if not lines:
        raise MalformedInputError("CSV input has no header line")

    header = tuple(split_fields(lines[0]))
    if not any(header):
        raise MalformedInputError("CSV header has no column names")
    rows = tuple(make_row(header, split_fields(line)) for line in lines[1:])
    return Dataset(header=header, rows=rows)


def decode_bytes(data: bytes) -> str:
    try:
        return data.decode("utf-8")
    except UnicodeDecodeError:
        return data.decode("latin-1")


def _quote(value: str) -> str:
    # Quote characters never survive the reader's toggle rule, so none are kept.
    value = value.replace(_QUOTE, "")
    if _SEPARATOR in value:
        return _QUOTE + value + _QUOTE
    return value


def unparse(dataset: Dataset) -> str:
    """Serialise ``dataset`` back to CSV text readable by :func:`parse`."""

    lines = [_SEPARATOR.join(_quote(name) for name in dataset.header)]
    for row in dataset.rows:
        lines.append(_SEPARATOR.join(_quote(row[name]) for name in dataset.header))
    return "\n".join(lines) + "\n"


def to_frame(dataset: Dataset) -> pd.DataFrame:
    """Return the dataset as a string-typed DataFrame.

    Repeated header names collapse to one column holding the row value, the
    same value `parse` kept for that name.
    """

    columns = list(dict.fromkeys(dataset.header))
    records = [[row[name] for name in columns] for row in dataset.rows]
    return pd.DataFrame(records, columns=columns, dtype=str)


__all__ = [
    "Dataset",
    "Row",
    "decode_bytes",
    "make_row",
    "parse",
    "split_fields",
    "to_frame",
    "unparse",
]
