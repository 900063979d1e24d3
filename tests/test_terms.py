"""Tests for parsing free-text deposit and financing terms."""

from __future__ import annotations

from decimal import Decimal

import pytest

from estate_ledger import terms


@pytest.mark.parametrize(
    ("text", "months"),
    [
        ("36 Months @ 12% p.a", 36),
        ("12 Months Interest Free", 12),
        ("Payable over 24 months", 24),
        ("Cash only", 12),
        ("", 12),
        (None, 12),
    ],
)
def test_parse_duration_months(text, months):
    assert terms.parse_duration_months(text) == months


def test_parse_financing_terms_keeps_label():
    term = terms.parse_financing_terms("  48 Months @ 9% ")

    assert term == terms.FinancingTerm(months=48, label="48 Months @ 9%")


def test_parse_deposit_terms_percentage():
    term = terms.parse_deposit_terms("25%")

    assert term == terms.PercentageDeposit(Decimal("25"))
    assert term.amount_for(Decimal("120000")) == Decimal("30000")


def test_parse_deposit_terms_fixed_amount_ignores_thousands_separators():
    term = terms.parse_deposit_terms("$5,000 Flat")

    assert term == terms.FixedDeposit(Decimal("5000"))
    assert term.amount_for(Decimal("999999")) == Decimal("5000")


@pytest.mark.parametrize("text", [None, "", "negotiable", "% of price"])
def test_parse_deposit_terms_without_numbers(text):
    assert terms.parse_deposit_terms(text) is None


def test_resolve_deposit():
    assert terms.resolve_deposit("10%", Decimal("150000")) == Decimal("15000")
    assert terms.resolve_deposit("$5000 Flat", Decimal("200000")) == Decimal("5000")
    assert terms.resolve_deposit(None, Decimal("200000")) is None
