from decimal import Decimal, InvalidOperation, localcontext
from typing import Union

from .errors import InvalidAmountError
from .models import WithdrawalBreakdown


DUE_AMOUNT = Decimal("25")
COMMISSION_RATE = Decimal("0.80")
MIN_WITHDRAWAL_AMOUNT = Decimal("1000")
GATEWAY_FEE_PERCENTAGE = Decimal("0.02")
GST_PERCENTAGE = Decimal("0.18")

# Smallest currency unit (one paisa) and the largest amount the ledger accepts
MINOR_UNIT = Decimal("0.01")
MAX_AMOUNT = Decimal("1000000000000")

# Enough digits that MAX_AMOUNT in paise times both rates never rounds
ARITHMETIC_PRECISION = 40

Amount = Union[Decimal, int, float, str]


def to_amount(value: Amount) -> Decimal:
    """
    Parse a money value into a finite, non-negative Decimal.

    Amounts are capped at MAX_AMOUNT and may not carry more precision than
    one paisa, so every product below stays exact.
    """
    if isinstance(value, bool):
        raise InvalidAmountError(f"Invalid amount: {value!r}")
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise InvalidAmountError(f"Invalid amount: {value!r}")
    if not amount.is_finite():
        raise InvalidAmountError(f"Amount must be finite, got {value!r}")
    if amount < 0:
        raise InvalidAmountError(f"Amount must not be negative, got {amount}")
    if amount > MAX_AMOUNT:
        raise InvalidAmountError(f"Amount must not exceed {MAX_AMOUNT}, got {value!r}")
    if amount.quantize(MINOR_UNIT) != amount:
        raise InvalidAmountError(f"Amount must not be finer than {MINOR_UNIT}, got {amount}")
    return amount


def calculate_withdrawal_breakdown(gross_amount: Amount) -> WithdrawalBreakdown:
    """
    Split a gross withdrawal into gateway fee, GST and net payout.

      gateway_fee = gross * 2%
      gst         = gateway_fee * 18%   (levied on the fee, not the gross)
      net_amount  = gross - gateway_fee - gst

    Example:
      2000 => fee 40, gst 7.2, net 1952.8
    """
    gross = to_amount(gross_amount)
    with localcontext() as ctx:
        ctx.prec = ARITHMETIC_PRECISION
        gateway_fee = gross * GATEWAY_FEE_PERCENTAGE
        gst = gateway_fee * GST_PERCENTAGE
        net_amount = gross - gateway_fee - gst
    return WithdrawalBreakdown(
        gross_amount=gross,
        gateway_fee=gateway_fee,
        gst=gst,
        net_amount=net_amount,
    )


def commission_for(gross_amount: Amount) -> Decimal:
    return to_amount(gross_amount) * COMMISSION_RATE


def platform_share_for(gross_amount: Amount) -> Decimal:
    gross = to_amount(gross_amount)
    return gross - commission_for(gross)


def is_withdrawable(amount: Amount) -> bool:
    return to_amount(amount) >= MIN_WITHDRAWAL_AMOUNT
