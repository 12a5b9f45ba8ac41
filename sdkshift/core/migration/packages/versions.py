"""NuGet version parsing and ordering.

Versions are ``major.minor[.patch[.revision]][-prerelease][+metadata]``.
Build metadata is ignored for ordering; a release sorts above any
prerelease of the same numbers; prerelease labels compare dot-part by
dot-part, numeric parts numerically and below alphanumeric parts.
A range string ``[1.2.3, )`` or ``[1.2.3]`` orders by its lower bound.
"""

import re
from dataclasses import dataclass
from functools import total_ordering
from typing import Iterable, Optional, Tuple

_VERSION_RE = re.compile(
    r"^\s*v?(?P<numbers>\d+(?:\.\d+){0,3})"
    r"(?:-(?P<pre>[0-9A-Za-z\-.]+))?"
    r"(?:\+(?P<meta>[0-9A-Za-z\-.]+))?\s*$"
)
_RANGE_RE = re.compile(r"^\s*\[\s*(?P<low>[^,\]\s]+)\s*(?:,\s*\)|\])\s*$")


@total_ordering
@dataclass(frozen=True)
class NuGetVersion:
    major: int
    minor: int = 0
    patch: int = 0
    revision: int = 0
    prerelease: Tuple[str, ...] = ()
    original: str = ""

    @property
    def is_prerelease(self) -> bool:
        return bool(self.prerelease)

    @property
    def release(self) -> Tuple[int, int, int, int]:
        return (self.major, self.minor, self.patch, self.revision)

    def _prerelease_key(self):
        # A release (no labels) sorts after every prerelease.
        if not self.prerelease:
            return (1,)
        parts = []
        for label in self.prerelease:
            if label.isdigit():
                parts.append((0, int(label), ""))
            else:
                parts.append((1, 0, label.lower()))
        return (0, tuple(parts))

    def sort_key(self):
        return (self.release, self._prerelease_key())

    def __eq__(self, other) -> bool:
        if not isinstance(other, NuGetVersion):
            return NotImplemented
        return self.sort_key() == other.sort_key()

    def __lt__(self, other: "NuGetVersion") -> bool:
        if not isinstance(other, NuGetVersion):
            return NotImplemented
        return self.sort_key() < other.sort_key()

    def __hash__(self) -> int:
        return hash(self.sort_key())

    def __str__(self) -> str:
        return self.original or ".".join(str(n) for n in self.release[:3])


def parse_version(text: str) -> NuGetVersion:
    """Parse *text*; raises ``ValueError`` for anything unrecognised."""
    if text is None:
        raise ValueError("version is None")
    range_match = _RANGE_RE.match(text)
    candidate = range_match.group("low") if range_match else text
    match = _VERSION_RE.match(candidate)
    if not match:
        raise ValueError(f"Not a NuGet version: {text!r}")
    numbers = [int(n) for n in match.group("numbers").split(".")]
    numbers += [0] * (4 - len(numbers))
    pre = match.group("pre")
    return NuGetVersion(
        major=numbers[0],
        minor=numbers[1],
        patch=numbers[2],
        revision=numbers[3],
        prerelease=tuple(pre.split(".")) if pre else (),
        original=text.strip(),
    )


def try_parse_version(text: str) -> Optional[NuGetVersion]:
    try:
        return parse_version(text)
    except ValueError:
        return None


def is_prerelease(text: str) -> bool:
    parsed = try_parse_version(text)
    return parsed is not None and parsed.is_prerelease


def _ordering_key(text: str):
    # Equal versions written differently (1.3 vs 1.3.0, +meta) tie-break on the text.
    return (parse_version(text).sort_key(), text)


def highest(versions: Iterable[str]) -> str:
    """Highest of *versions* by NuGet ordering; raises on bad input."""
    candidates = list(versions)
    if not candidates:
        raise ValueError("no versions given")
    return max(candidates, key=_ordering_key)


def lowest(versions: Iterable[str]) -> str:
    candidates = list(versions)
    if not candidates:
        raise ValueError("no versions given")
    return min(candidates, key=_ordering_key)


def normalize_assembly_version(version: str) -> str:
    """``12.0.3.0`` -> ``12.0.3``; shorter versions are returned as-is."""
    parts = version.strip().split(".")
    if len(parts) == 4 and parts[3] == "0":
        return ".".join(parts[:3])
    return version.strip()
