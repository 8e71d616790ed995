from __future__ import annotations

from datetime import date
from decimal import Decimal

from duezo.modules.extraction.candidates import (
    SKIP_BELOW_THRESHOLD,
    SKIP_NO_AMOUNT,
    SKIP_PAYMENT_CONFIRMATION,
    SKIP_PROMOTIONAL,
    amount_confidence,
    extract_amount_candidates,
    extract_candidates,
    extract_date_candidates,
    extract_name_candidates,
    parse_date_text,
)

TODAY = date(2026, 3, 1)


def test_comcast_bill_yields_amount_date_and_vendor():
    result = extract_candidates(
        "Comcast <billing@comcast.net>",
        "Your Comcast bill is ready",
        "Hi Alex, your bill is ready.\nAmount due: $89.45\nDue date: March 15, 2026",
        today=TODAY,
    )

    assert result.skip_reason is None
    assert result.best_amount is not None
    assert result.best_amount.value == Decimal("89.45")
    assert result.best_date is not None
    assert result.best_date.value == date(2026, 3, 15)
    assert result.best_name is not None
    assert result.best_name.value == "Xfinity"
    assert result.category == "internet"
    assert result.keyword_score > 0


def test_subject_only_bill_is_found():
    result = extract_candidates(
        "Comcast <billing@comcast.net>",
        "Your Comcast bill is ready - $89.45 due 03/15/2026",
        "",
        today=TODAY,
    )
    assert result.skip_reason is None
    assert result.best_amount.value == Decimal("89.45")
    assert result.best_date.value == date(2026, 3, 15)


def test_promotional_email_is_skipped_before_scanning():
    result = extract_candidates(
        "Shop Deals <deals@shop.example.com>",
        "50% OFF Spring Sale - unsubscribe anytime",
        "Shop now and save up to 50% on everything. Only $19.99!",
        today=TODAY,
    )
    assert result.is_promotional is True
    assert result.skip_reason == SKIP_PROMOTIONAL
    assert result.amounts == []


def test_bill_signal_outweighs_promotional_wording():
    result = extract_candidates(
        "Chase <no-reply@chase.com>",
        "Your statement is ready",
        "Earn rewards with your card.\nNew balance: $1,204.18\nPayment due date: 04/02/2026",
        today=TODAY,
    )
    assert result.is_promotional is False
    assert result.skip_reason is None
    assert result.best_amount.value == Decimal("1204.18")
    assert result.best_date.value == date(2026, 4, 2)


def test_payment_confirmation_is_skipped():
    result = extract_candidates(
        "Netflix <info@netflix.com>",
        "Thank you for your payment",
        "We received your payment of $15.49.",
        today=TODAY,
    )
    assert result.skip_reason == SKIP_PAYMENT_CONFIRMATION


def test_missing_amount_is_skipped():
    result = extract_candidates(
        "Water Utility <notices@citywater.gov>",
        "Your statement is available",
        "Log in to view your statement online.",
        today=TODAY,
    )
    assert result.skip_reason == SKIP_NO_AMOUNT


def test_weak_bill_signal_is_below_threshold():
    result = extract_candidates(
        "Store <orders@store.example.com>",
        "Order update",
        "Your order of $25.00 has shipped.",
        today=TODAY,
    )
    assert result.skip_reason == SKIP_BELOW_THRESHOLD
    assert result.best_amount.value == Decimal("25.00")


def test_total_outranks_minimum_payment():
    text = "Minimum payment: $35.00\nStatement balance: $812.40\nPayment due date: 03/20/2026"
    amounts = extract_amount_candidates(text)
    assert amounts[0].value == Decimal("812.40")
    minimum = next(a for a in amounts if a.value == Decimal("35.00"))
    assert minimum.is_minimum is True
    assert amount_confidence(minimum) < amount_confidence(amounts[0])


def test_zip_code_like_amounts_are_ignored():
    values = [a.value for a in extract_amount_candidates("Mail payments to PO Box, total 10001")]
    assert Decimal("10001.00") not in values


def test_date_without_year_rolls_into_next_year():
    assert parse_date_text("Jan 5", today=date(2026, 12, 20)) == date(2027, 1, 5)
    assert parse_date_text("Dec 10", today=date(2026, 12, 20)) == date(2026, 12, 10)
    assert parse_date_text("March 15, 2026", today=TODAY) == date(2026, 3, 15)
    assert parse_date_text("3/15/26", today=TODAY) == date(2026, 3, 15)
    assert parse_date_text("02/30/2026", today=TODAY) is None


def test_service_period_range_is_not_a_due_date():
    text = "Service period 03/01/2026 - 03/31/2026. Amount due by 04/15/2026"
    dates = extract_date_candidates(text, today=TODAY)
    assert [d.value for d in dates] == [date(2026, 4, 15)]


def test_relative_due_date():
    dates = extract_date_candidates("Your payment is due in 5 days", today=TODAY)
    assert dates[0].value == date(2026, 3, 6)
    assert dates[0].is_relative is True


def test_product_refinement_names_card():
    names = extract_name_candidates(
        "Chase <no-reply@chase.com>", "Your Sapphire statement", "Chase Sapphire Preferred"
    )
    assert names[0].value == "Chase Sapphire"
    assert names[0].category == "credit_card"
