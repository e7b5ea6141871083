"""Percentage splits of awarded points across jars."""

from __future__ import annotations

import math
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, Iterator, Mapping, Tuple, Union

from .exceptions import InvalidJarError, InvalidSplitError
from .models import Jar

SplitLike = Union["SplitConfig", Mapping[Union[Jar, str], int]]


def _percentage(jar: Jar, value: object) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, float, Decimal)):
        raise InvalidSplitError(f"Invalid percentage for {jar.value}: must be a number")
    if not math.isfinite(value):
        raise InvalidSplitError(f"Invalid percentage for {jar.value}: must be finite")
    if value != int(value):
        raise InvalidSplitError(f"Invalid percentage for {jar.value}: must be a whole number")
    return int(value)


@dataclass(frozen=True, slots=True)
class SplitConfig:
    """Percentages per jar.

    Construction does not check the total so that stored or legacy splits can
    still be allocated; call :meth:`validate` before writing one.
    """

    current: int = 0
    save: int = 0
    spend: int = 0
    donate: int = 0
    invest: int = 0

    @classmethod
    def from_mapping(cls, mapping: Mapping[Union[Jar, str], object]) -> "SplitConfig":
        values: Dict[str, int] = {}
        for key, value in mapping.items():
            try:
                jar = Jar.parse(key)
            except InvalidJarError as exc:
                raise InvalidSplitError(f"Unknown jar in split: {key!r}") from exc
            values[jar.value] = _percentage(jar, value if value is not None else 0)
        return cls(**values)

    def __getitem__(self, jar: Union[Jar, str]) -> int:
        return getattr(self, Jar.parse(jar).value)

    def items(self) -> Iterator[Tuple[Jar, int]]:
        for jar in Jar:
            yield jar, getattr(self, jar.value)

    def as_dict(self) -> Dict[str, int]:
        return {jar.value: percentage for jar, percentage in self.items()}

    @property
    def total(self) -> int:
        return sum(percentage for _, percentage in self.items())

    def validate(self) -> "SplitConfig":
        for jar, percentage in self.items():
            if percentage < 0 or percentage > 100:
                raise InvalidSplitError(f"Invalid percentage for {jar.value}: must be 0-100")
        if self.total != 100:
            raise InvalidSplitError("Point split percentages must total exactly 100%")
        return self


def validate_split(split: SplitLike) -> SplitConfig:
    """Coerce ``split`` to a :class:`SplitConfig` and reject bad percentages."""

    config = split if isinstance(split, SplitConfig) else SplitConfig.from_mapping(split)
    return config.validate()


def allocate(total_amount: int, split: SplitLike) -> Dict[Jar, int]:
    """Return the per-jar integer share of ``total_amount``.

    Each jar is rounded half-up on its own. The shares are not reconciled, so
    their sum can drift from ``total_amount`` by a point or two when the total
    does not divide evenly (e.g. 7 at 50/50 yields 4 + 4). Jars that receive
    nothing are left out.
    """

    config = split if isinstance(split, SplitConfig) else SplitConfig.from_mapping(split)
    total = Decimal(total_amount)
    allocation: Dict[Jar, int] = {}
    for jar, percentage in config.items():
        if percentage <= 0:
            continue
        share = int((total * percentage / 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
        if share > 0:
            allocation[jar] = share
    return allocation


__all__ = ["SplitConfig", "SplitLike", "allocate", "validate_split"]
