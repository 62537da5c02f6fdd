from decimal import Decimal
import datetime as dt

from schemas import TransactionRead
from utils import compute_stats


def make_tx(amount, type_, category="misc"):
    return TransactionRead(
        id=1,
        user_id=1,
        type=type_,
        amount=Decimal(str(amount)),
        category=category,
        description=None,
        date=dt.date(2025, 1, 1),
        created_at=dt.datetime(2025, 1, 1, 12, 0),
    )


def test_stats_empty():
    result = compute_stats([])
    assert result["totals"] == {"income": 0.0, "expense": 0.0}
    assert result["balance"] == 0.0
    assert result["category_breakdown"] == []


def test_stats_only_income():
    result = compute_stats([make_tx(100, "income"), make_tx(50.55, "income")])
    assert result["totals"]["income"] == 150.55
    assert result["totals"]["expense"] == 0.0
    # income never appears in the breakdown
    assert result["category_breakdown"] == []


def test_stats_only_expenses_negative_balance():
    result = compute_stats([make_tx(40, "expense"), make_tx(10.5, "expense")])
    assert result["totals"]["expense"] == 50.5
    assert result["balance"] == -50.5


def test_breakdown_sorted_by_total_descending():
    txs = [
        make_tx(10, "expense", "coffee"),
        make_tx(200, "expense", "rent"),
        make_tx(15, "expense", "coffee"),
        make_tx(60, "expense", "groceries"),
    ]
    result = compute_stats(txs)
    assert result["category_breakdown"] == [
        {"category": "rent", "total": 200.0},
        {"category": "groceries", "total": 60.0},
        {"category": "coffee", "total": 25.0},
    ]


def test_breakdown_ties_keep_first_seen_order():
    txs = [
        make_tx(30, "expense", "books"),
        make_tx(30, "expense", "art"),
        make_tx(30, "expense", "music"),
    ]
    categories = [e["category"] for e in compute_stats(txs)["category_breakdown"]]
    assert categories == ["books", "art", "music"]


def test_breakdown_adds_up_to_expense_total():
    txs = [
        make_tx(0.10, "expense", "a"),
        make_tx(0.20, "expense", "b"),
        make_tx(19.99, "expense", "a"),
        make_tx(5, "income", "salary"),
    ]
    result = compute_stats(txs)
    total = sum(Decimal(str(e["total"])) for e in result["category_breakdown"])
    assert total == Decimal(str(result["totals"]["expense"]))


def test_unknown_types_are_ignored():
    result = compute_stats([make_tx(5, "transfer"), make_tx(7, "expense")])
    assert result["totals"] == {"income": 0.0, "expense": 7.0}


def test_stats_large_and_small_values():
    result = compute_stats([make_tx(10_000_000.12, "income"), make_tx(0.02, "expense")])

    assert result["totals"]["income"] == 10_000_000.12
    assert result["totals"]["expense"] == 0.02
    assert result["balance"] == 10_000_000.10
