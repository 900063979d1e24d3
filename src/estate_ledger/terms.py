"""Parsing of the free-text deposit and financing terms attached to developers
and stands.

Stored terms stay free text so legacy data keeps loading; callers convert them
into the tagged forms below at the point of use.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional, Union

from .constants import DEFAULT_DURATION_MONTHS

_FIRST_INTEGER = re.compile(r"\d+")
_LEADING_NUMBER = re.compile(r"^\s*(\d+(?:\.\d+)?)")
_ANY_NUMBER = re.compile(r"\d+(?:\.\d+)?")


@dataclass(frozen=True)
class PercentageDeposit:
    """Deposit expressed as a percentage of the stand price."""

    percent: Decimal

    def amount_for(self, price: Decimal) -> Decimal:
        return price * self.percent / Decimal("100")


@dataclass(frozen=True)
class FixedDeposit:
    """Deposit expressed as an absolute amount."""

    amount: Decimal

    def amount_for(self, price: Decimal) -> Decimal:
        return self.amount


DepositTerm = Union[PercentageDeposit, FixedDeposit]


@dataclass(frozen=True)
class FinancingTerm:
    months: int
    label: str


def parse_duration_months(terms: Optional[str]) -> int:
    """Return the first integer found in ``terms``.

    ``"36 Months @ 12% p.a"`` yields 36. Empty text, or text without any
    digit, yields the 12 month default.
    """

    if not terms:
        return DEFAULT_DURATION_MONTHS
    match = _FIRST_INTEGER.search(terms)
    return int(match.group(0)) if match else DEFAULT_DURATION_MONTHS


def parse_financing_terms(terms: Optional[str]) -> FinancingTerm:
    return FinancingTerm(months=parse_duration_months(terms), label=(terms or "").strip())


def parse_deposit_terms(terms: Optional[str]) -> Optional[DepositTerm]:
    """Interpret legacy deposit text such as ``"25%"`` or ``"$5,000 Flat"``.

    Text containing ``%`` is a percentage taken from its leading number. Any
    other text is a fixed amount taken from its first number once thousands
    separators are removed. ``None`` is returned when nothing numeric can be
    recovered.
    """

    if not terms:
        return None
    if "%" in terms:
        match = _LEADING_NUMBER.match(terms)
        return PercentageDeposit(Decimal(match.group(1))) if match else None
    match = _ANY_NUMBER.search(terms.replace(",", ""))
    return FixedDeposit(Decimal(match.group(0))) if match else None


def resolve_deposit(terms: Optional[str], price: Decimal) -> Optional[Decimal]:
    """Deposit required for a stand of ``price`` under the developer's terms."""

    term = parse_deposit_terms(terms)
    return None if term is None else term.amount_for(price)
