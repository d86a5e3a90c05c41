"""Ledger release version parsing and comparison.

Versions are written ``major.minor.fixpack[-tag]`` with an optional leading
``v``. Missing components default to 0 and non-numeric segments parse as 0;
either case is reported through a ``version_coerced`` warning so malformed
input is visible without breaking reconciliation.
"""

from __future__ import annotations

from dataclasses import dataclass

from ledgerctl.observability.logging import get_logger

_log = get_logger("fabricversion")

V1 = "1"
V2 = "2"

V1_4_9 = "1.4.9"
V2_2_1 = "2.2.1"
V2_4_1 = "2.4.1"
V2_5_1 = "2.5.1"


def _strip_prefix(raw: str) -> str:
    raw = raw.strip().lower()
    return raw[1:] if raw.startswith("v") else raw


def _to_int_list(raw: str) -> tuple[list[int], bool]:
    """Split a version string into integers; the flag is True when any segment was coerced."""
    coerced = False
    tag = ""
    if "-" in raw:
        raw, tag = raw.split("-", 2)[:2]

    parts = raw.split(".")
    if tag:
        parts.append(tag)

    numbers: list[int] = []
    for part in parts:
        try:
            numbers.append(int(part))
        except ValueError:
            coerced = True
            numbers.append(0)
    return numbers, coerced


@dataclass(frozen=True)
class Version:
    major: int = 0
    minor: int = 0
    fixpack: int = 0
    tag: int = 0

    @classmethod
    def parse(cls, raw: str | Version) -> Version:
        if isinstance(raw, Version):
            return raw
        text = _strip_prefix(raw or "")
        if not text:
            return cls()

        numbers, coerced = _to_int_list(text)
        if coerced or not 1 <= len(numbers) <= 4:
            _log.warning("version_coerced", version=raw, components=len(numbers))
        if len(numbers) > 4:
            return cls()
        return cls(*numbers)

    def _key(self) -> tuple[int, int, int, int]:
        return (self.major, self.minor, self.fixpack, self.tag)

    def equal(self, other: str | Version) -> bool:
        return self._key() == Version.parse(other)._key()

    def equal_without_tag(self, other: str | Version) -> bool:
        return self._key()[:3] == Version.parse(other)._key()[:3]

    def less_than(self, other: str | Version) -> bool:
        return self._key() < Version.parse(other)._key()

    def greater_than(self, other: str | Version) -> bool:
        return self._key() > Version.parse(other)._key()

    def at_least(self, other: str | Version) -> bool:
        """``>=`` where the boundary itself matches regardless of tag."""
        return self.equal_without_tag(other) or self.greater_than(other)

    def major_release(self) -> str:
        return V2 if self.major == 2 else V1

    def __str__(self) -> str:
        return f"{self.major}.{self.minor}.{self.fixpack}-{self.tag}"


def get_major_release_version(raw: str) -> str:
    """Bucket a version string into a coarse epoch, ``"1"`` or ``"2"``."""
    return Version.parse(raw).major_release()
