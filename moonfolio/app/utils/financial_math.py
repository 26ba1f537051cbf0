"""
Ledger and valuation arithmetic.

Pure functions (no I/O, no side effects) shared by both ledger store
implementations and the valuation service, so balance and cost-basis
rules live in exactly one place.

Key concepts:
- Balance delta: buy/deposit add the amount, sell/withdraw/swap subtract it
- Cost basis: balance-weighted average of the existing holding and a new lot
  newAvg = (oldBalance * oldAvg + amount * price) / (oldBalance + amount)
- Reversal: removing a lot from the weighted average when a transaction is deleted
- Back-computed previous value: value / (1 + change% / 100)

All inputs and outputs are Decimal; nothing here touches float.
"""
from decimal import Decimal
from typing import Optional, Tuple

from moonfolio.app.db.models import TransactionType
from moonfolio.app.utils.decimal_utils import ZERO, quantize_price

HUNDRED = Decimal("100")

BALANCE_INCREASING_TYPES = frozenset({TransactionType.BUY, TransactionType.DEPOSIT})
BALANCE_DECREASING_TYPES = frozenset({TransactionType.SELL, TransactionType.WITHDRAW, TransactionType.SWAP})


# ============================================================================
# BALANCE AND COST BASIS
# ============================================================================

def balance_delta(tx_type: TransactionType, amount: Decimal) -> Decimal:
    """
    Signed change applied to the source asset by a transaction.

    Example:
        >>> balance_delta(TransactionType.SELL, Decimal("2"))
        Decimal('-2')
    """
    if tx_type in BALANCE_INCREASING_TYPES:
        return amount
    if tx_type in BALANCE_DECREASING_TYPES:
        return -amount
    raise ValueError(f"Unsupported transaction type: {tx_type}")


def weighted_average_price(
    old_balance: Decimal,
    old_avg: Optional[Decimal],
    amount: Decimal,
    price: Optional[Decimal],
    ) -> Optional[Decimal]:
    """
    Average buy price after adding a lot of ``amount`` units at ``price``.

    Rules:
    - no price: the average is unchanged
    - resulting balance <= 0: the average is undefined (None)
    - no usable prior average (None or empty holding): the lot price wins

    Example:
        >>> weighted_average_price(Decimal(2), Decimal(100), Decimal(2), Decimal(200))
        Decimal('150')
    """
    if price is None:
        return old_avg

    new_balance = old_balance + amount
    if new_balance <= ZERO:
        return None

    if old_avg is None or old_balance <= ZERO:
        return quantize_price(price)

    return quantize_price((old_balance * old_avg + amount * price) / new_balance)


def remove_lot_from_average(
    balance: Decimal,
    avg: Optional[Decimal],
    amount: Decimal,
    price: Optional[Decimal],
    ) -> Optional[Decimal]:
    """
    Inverse of weighted_average_price: average after taking a priced lot back out.

    Returns None when nothing meaningful is left (empty holding, unknown
    average, or a non-positive result caused by sells in between).
    """
    if price is None:
        return avg
    if avg is None:
        return None

    remaining = balance - amount
    if remaining <= ZERO:
        return None

    restored = (balance * avg - amount * price) / remaining
    if restored <= ZERO:
        return None
    return quantize_price(restored)


def apply_source_leg(
    balance: Decimal,
    avg: Optional[Decimal],
    tx_type: TransactionType,
    amount: Decimal,
    price: Optional[Decimal],
    ) -> Tuple[Decimal, Optional[Decimal]]:
    """
    New (balance, avg_buy_price) of the source asset after a transaction.

    The caller checks the resulting balance against the non-negative invariant.
    """
    new_balance = balance + balance_delta(tx_type, amount)
    if tx_type == TransactionType.BUY:
        return new_balance, weighted_average_price(balance, avg, amount, price)
    return new_balance, avg


def revert_source_leg(
    balance: Decimal,
    avg: Optional[Decimal],
    tx_type: TransactionType,
    amount: Decimal,
    price: Optional[Decimal],
    ) -> Tuple[Decimal, Optional[Decimal]]:
    """New (balance, avg_buy_price) of the source asset once a transaction is removed."""
    new_balance = balance - balance_delta(tx_type, amount)
    if tx_type == TransactionType.BUY:
        return new_balance, remove_lot_from_average(balance, avg, amount, price)
    return new_balance, avg


# ============================================================================
# VALUATION
# ============================================================================

def previous_value(value: Decimal, change_percentage: Decimal) -> Decimal:
    """
    Value 24h ago reconstructed from today's value and the percent change.

    A change of -100% or below has no finite pre-image; the current value
    is returned so the asset contributes no change.

    Example:
        >>> previous_value(Decimal(110), Decimal(10)) == Decimal(100)
        True
    """
    factor = Decimal(1) + change_percentage / HUNDRED
    if factor <= ZERO:
        return value
    return value / factor


def percentage_change(current: Decimal, previous: Decimal) -> Decimal:
    """(current - previous) / previous * 100, or 0 when previous <= 0."""
    if previous <= ZERO:
        return ZERO
    return (current - previous) / previous * HUNDRED
