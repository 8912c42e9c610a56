"""
Resource Quantities
===================
Exact CPU and memory amounts using the Kubernetes quantity syntax.

Amounts are stored as fractions so that sums and comparisons near a
ceiling never suffer from floating-point rounding.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from enum import Enum, IntEnum
from fractions import Fraction
from typing import Union

from quota_webhook.errors import QuantityDimensionError, QuantityParseError


class ResourceName(str, Enum):
    """Resource kinds tracked by the group quota."""

    CPU = "cpu"
    MEMORY = "memory"

    @property
    def display_name(self) -> str:
        return "CPU" if self is ResourceName.CPU else "memory"


class Ordering(IntEnum):
    """Result of comparing two quantities."""

    LESS = -1
    EQUAL = 0
    GREATER = 1


BINARY_SUFFIXES = {
    "Ki": 2**10,
    "Mi": 2**20,
    "Gi": 2**30,
    "Ti": 2**40,
    "Pi": 2**50,
    "Ei": 2**60,
}

DECIMAL_SUFFIXES = {
    "n": Fraction(1, 10**9),
    "u": Fraction(1, 10**6),
    "m": Fraction(1, 10**3),
    "": Fraction(1),
    "k": Fraction(10**3),
    "M": Fraction(10**6),
    "G": Fraction(10**9),
    "T": Fraction(10**12),
    "P": Fraction(10**15),
    "E": Fraction(10**18),
}

# Exponents beyond this are not meaningful for CPU or memory
MAX_EXPONENT = 64

_QUANTITY_RE = re.compile(
    r"^(?P<sign>[+-]?)"
    r"(?P<number>\d+(?:\.\d*)?|\.\d+)"
    r"(?P<suffix>[eE][+-]?\d+|[KMGTPE]i|[numkMGTPE]?)$"
)


@dataclass(frozen=True)
class Quantity:
    """An exact amount of one resource (cores for CPU, bytes for memory)."""

    amount: Fraction
    resource: ResourceName

    @classmethod
    def zero(cls, resource: ResourceName) -> "Quantity":
        return cls(Fraction(0), resource)

    @classmethod
    def parse(cls, text: str, resource: ResourceName) -> "Quantity":
        return parse(text, resource)

    def __add__(self, other: "Quantity") -> "Quantity":
        if not isinstance(other, Quantity):
            return NotImplemented
        return add(self, other)

    def __lt__(self, other: "Quantity") -> bool:
        return compare(self, other) is Ordering.LESS

    def __le__(self, other: "Quantity") -> bool:
        return compare(self, other) is not Ordering.GREATER

    def __gt__(self, other: "Quantity") -> bool:
        return compare(self, other) is Ordering.GREATER

    def __ge__(self, other: "Quantity") -> bool:
        return compare(self, other) is not Ordering.LESS

    def __str__(self) -> str:
        return format_quantity(self)


def parse(text: str, resource: Union[ResourceName, str]) -> Quantity:
    """Parse a Kubernetes quantity string such as ``500m`` or ``512Mi``.

    Args:
        text: Quantity text
        resource: Resource the quantity measures

    Returns:
        The exact quantity

    Raises:
        QuantityParseError: If the text is empty or malformed
    """
    resource = ResourceName(resource)
    if isinstance(text, bool):
        raise QuantityParseError(str(text), "expected a string, got bool")
    if isinstance(text, int):
        text = str(text)
    elif isinstance(text, float):
        # Unquoted JSON numbers; repr is the shortest exact round trip
        text = repr(text)
    if not isinstance(text, str):
        raise QuantityParseError(str(text), f"expected a string, got {type(text).__name__}")

    value = text.strip()
    if not value:
        raise QuantityParseError(text, "empty quantity")

    match = _QUANTITY_RE.match(value)
    if not match:
        raise QuantityParseError(
            text,
            "expected a number with an optional suffix "
            "(n, u, m, k, M, G, T, P, E, Ki, Mi, Gi, Ti, Pi, Ei or an exponent)",
        )

    try:
        amount = Fraction(Decimal(match.group("number")))
    except InvalidOperation as e:
        raise QuantityParseError(text, "invalid number") from e

    suffix = match.group("suffix")
    if suffix in BINARY_SUFFIXES:
        amount *= BINARY_SUFFIXES[suffix]
    elif suffix in DECIMAL_SUFFIXES:
        amount *= DECIMAL_SUFFIXES[suffix]
    else:
        exponent = int(suffix[1:])
        if abs(exponent) > MAX_EXPONENT:
            raise QuantityParseError(text, f"exponent {exponent} out of range")
        amount *= Fraction(10) ** exponent

    if match.group("sign") == "-":
        amount = -amount
    return Quantity(amount, resource)


def _require_same_resource(a: Quantity, b: Quantity) -> None:
    if a.resource is not b.resource:
        raise QuantityDimensionError(
            f"cannot combine {a.resource.value} quantity with {b.resource.value} quantity"
        )


def add(a: Quantity, b: Quantity) -> Quantity:
    """Exact sum of two quantities of the same resource."""
    _require_same_resource(a, b)
    return Quantity(a.amount + b.amount, a.resource)


def compare(a: Quantity, b: Quantity) -> Ordering:
    """Exact three-way comparison of two quantities of the same resource."""
    _require_same_resource(a, b)
    if a.amount < b.amount:
        return Ordering.LESS
    if a.amount > b.amount:
        return Ordering.GREATER
    return Ordering.EQUAL


def format_quantity(quantity: Quantity) -> str:
    """Render a quantity in canonical Kubernetes form (``2``, ``500m``, ``400Mi``)."""
    amount = quantity.amount
    sign = "-" if amount < 0 else ""
    amount = abs(amount)

    if quantity.resource is ResourceName.MEMORY and amount.denominator == 1:
        whole = amount.numerator
        for suffix, multiplier in reversed(BINARY_SUFFIXES.items()):
            if whole and whole % multiplier == 0:
                return f"{sign}{whole // multiplier}{suffix}"
        return f"{sign}{whole}"

    if amount.denominator == 1:
        return f"{sign}{amount.numerator}"

    milli = amount * 1000
    if milli.denominator == 1:
        return f"{sign}{milli.numerator}m"

    # Sub-nano precision rounds up, matching the API server
    return f"{sign}{math.ceil(amount * 10**9)}n"
