"""Directive parsing and configuration resolution.

A reference such as ``photo.jpg?w=100;200&format=webp`` carries directives in
its query. :func:`parse_url` splits the reference, :func:`extract_entries`
turns the query into ``(key, values)`` entries and :func:`resolve_configs`
expands those entries into one :class:`ImageConfig` per output variant.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from itertools import product
from typing import Container, Iterable, List, Optional, Sequence, Tuple
from urllib.parse import SplitResult, parse_qsl, urlsplit

Entry = Tuple[str, List[str]]


class ValueKind(enum.Enum):
    ABSENT = "absent"
    FLAG = "flag"
    VALUE = "value"


@dataclass(frozen=True)
class ConfigValue:
    """Tagged view of a single configuration value."""

    kind: ValueKind
    text: Optional[str] = None

    @property
    def is_flag(self) -> bool:
        # ``?flip`` and ``?flip=true`` both switch a boolean directive on
        return self.kind is ValueKind.FLAG or (self.kind is ValueKind.VALUE and self.text == "true")


ABSENT = ConfigValue(ValueKind.ABSENT)
FLAG = ConfigValue(ValueKind.FLAG)


class ImageConfig(dict):
    """One resolved combination of directive values.

    Stages read values through :meth:`lookup`, :meth:`flag` and :meth:`value`
    instead of comparing raw strings, so that "present without argument" and
    "not given" can never be confused.
    """

    def lookup(self, key: str) -> ConfigValue:
        if key not in self:
            return ABSENT
        raw = self[key]
        if raw == "":
            return FLAG
        return ConfigValue(ValueKind.VALUE, raw)

    def flag(self, key: str) -> bool:
        return self.lookup(key).is_flag

    def value(self, key: str) -> Optional[str]:
        v = self.lookup(key)
        return v.text if v.kind is ValueKind.VALUE else None

    def flag_keys(self) -> List[str]:
        """Keys present without an argument, in insertion order."""
        return [k for k in self if self.lookup(k).kind is ValueKind.FLAG]


def parse_url(raw_url: str) -> SplitResult:
    """Split a reference, escaping ``#`` so colours like ``tint=#ff0000`` survive."""

    parts = urlsplit(raw_url.replace("#", "%23"))
    if not parts.scheme:
        parts = parts._replace(scheme="file")
    return parts


def search_params(url: SplitResult) -> List[Tuple[str, str]]:
    return parse_qsl(url.query, keep_blank_values=True)


def extract_entries(params: Iterable[Tuple[str, str]]) -> List[Entry]:
    entries: List[Entry] = []
    for key, value in params:
        # ``:`` is reserved for ratios like ``aspect=16:9`` and argument lists like ``as=picture:webp;jpg``
        values = [value] if ":" in value else value.split(";")
        entries.append((key, values))
    return entries


def resolve_configs(entries: Sequence[Entry], output_formats: Container[str]) -> List[ImageConfig]:
    """Expand entries into the cartesian product of their values.

    Entries whose key names an output format are never multiplied; their
    ``(key, value)`` pairs are appended to every resulting configuration.
    """

    axes = [[(key, v) for v in values] for key, values in entries if key not in output_formats]
    addons = [(key, ";".join(values)) for key, values in entries if key in output_formats]

    if not axes:
        return [ImageConfig(addons)]
    return [ImageConfig([*combo, *addons]) for combo in product(*axes)]
