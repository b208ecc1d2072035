"""
Line-item pricing for sales entry.

A line total is quantity x unit price, minus a discount (percentage or flat),
plus IVA, minus withholding. Tax and withholding are both charged on the
post-discount subtotal. Intermediate math keeps full Decimal precision and
only the returned amounts are rounded to cents.

The same formula backs the calculate-line-total endpoint and the local
fallback used by the sales client, so both sides always agree.
"""
import re
import sys
from dataclasses import dataclass
from decimal import (
    Context, Decimal, DecimalException, ROUND_HALF_DOWN, ROUND_HALF_UP, localcontext,
)

ZERO = Decimal('0')
HUNDRED = Decimal('100')
CENTS = Decimal('0.01')

# Inputs are read like a double: past the largest one they are Infinity,
# below the smallest subnormal they are 0. Both count as 0 here.
MAX_INPUT = Decimal(sys.float_info.max)
MIN_INPUT = Decimal('5e-324')

# Enough digits to keep cents exact for any pair of inputs in that range
MONEY_CONTEXT = Context(prec=2000)

# Ids longer than this cannot name a row (BigAutoField tops out at 19 digits)
MAX_ID_DIGITS = 19

# Leading numeric literal, the part a lenient parser would read ("12abc" -> 12)
_NUMERIC_PREFIX = re.compile(r'^\s*([+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?)')
# Leading integer, the part parseInt reads ("12abc" -> 12, "1e5" -> 1)
_INTEGER_PREFIX = re.compile(r'^\s*([+-]?\d+)')


def to_decimal(value):
    """Coerce loose user input to a Decimal, treating anything unreadable as zero.

    Empty strings, None, booleans, NaN, infinities, magnitudes outside the
    double range and text without a leading number all become 0. Strings
    that start with a number keep that number ("12.5 kg" -> 12.5). This
    never raises.
    """
    if value is None or isinstance(value, bool):
        return ZERO
    if isinstance(value, (Decimal, int)):
        number = Decimal(value)
    else:
        match = _NUMERIC_PREFIX.match(str(value))
        if not match:
            return ZERO
        try:
            number = Decimal(match.group(1))
        except DecimalException:
            return ZERO

    if not number.is_finite():
        return ZERO
    magnitude = number.copy_abs()
    if magnitude > MAX_INPUT or magnitude < MIN_INPUT:
        return ZERO
    return number


def to_int_id(value):
    """Read a row id the way parseInt does: the leading integer, or None.

    "7" -> 7, " 7 " -> 7, "7.9" -> 7, "1e5" -> 1, "abc" -> None. Anything
    too long to be a primary key is None as well.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value if abs(value) < 10 ** MAX_ID_DIGITS else None
    match = _INTEGER_PREFIX.match(str(value))
    if not match:
        return None
    digits = match.group(1)
    if len(digits.lstrip('+-').lstrip('0')) > MAX_ID_DIGITS:
        return None
    return int(digits)


def _round_cents(value):
    """Round a Decimal to cents, halves toward +infinity (Math.round on cents)."""
    rounding = ROUND_HALF_UP if value >= 0 else ROUND_HALF_DOWN
    with localcontext() as ctx:
        # integer digits, two decimals and room for a carry
        ctx.prec = max(value.adjusted(), 0) + 4
        cents = value.quantize(CENTS, rounding=rounding)
    return cents.copy_abs() if cents.is_zero() else cents


def round_money(value):
    """Round to cents, halves going up toward +infinity (2.675 -> 2.68, -2.675 -> -2.67)."""
    return _round_cents(to_decimal(value))


@dataclass(frozen=True)
class LineItemResult:
    """Rounded breakdown of a single sales line"""
    raw_subtotal: Decimal
    discount_amount: Decimal
    subtotal_after_discount: Decimal
    tax_amount: Decimal
    withholding_amount: Decimal
    total: Decimal


@dataclass(frozen=True)
class LineItem:
    """One sales line, already coerced to Decimals"""
    quantity: Decimal = ZERO
    unit_price: Decimal = ZERO
    discount: Decimal = ZERO
    discount_is_percentage: bool = False
    tax_rate_percent: Decimal = ZERO
    withholding_rate_percent: Decimal = ZERO

    @classmethod
    def from_raw(cls, quantity=None, unit_price=None, discount=None, discount_is_percentage=False,
                 tax_rate_percent=None, withholding_rate_percent=None):
        return cls(
            quantity=to_decimal(quantity),
            unit_price=to_decimal(unit_price),
            discount=to_decimal(discount),
            discount_is_percentage=bool(discount_is_percentage),
            tax_rate_percent=to_decimal(tax_rate_percent),
            withholding_rate_percent=to_decimal(withholding_rate_percent),
        )

    @property
    def gross(self):
        with localcontext(MONEY_CONTEXT):
            return self.quantity * self.unit_price

    def compute(self):
        return compute_line_total(
            self.quantity,
            self.unit_price,
            self.discount,
            self.discount_is_percentage,
            self.tax_rate_percent,
            self.withholding_rate_percent,
        )


def compute_line_total(quantity, unit_price, discount=0, discount_is_percentage=False,
                       tax_rate_percent=0, withholding_rate_percent=0):
    """
    Compute the total and breakdown of a sales line.

    Args:
        quantity: Units sold
        unit_price: Price per unit
        discount: Percentage (0-100) when discount_is_percentage, otherwise a flat amount
        discount_is_percentage: How to read ``discount``
        tax_rate_percent: IVA rate in percent, None means no IVA
        withholding_rate_percent: Withholding rate in percent, None means no withholding

    Every numeric argument goes through ``to_decimal``, so unparseable input
    counts as zero. Negative values are accepted as given and a flat discount
    is not capped at the subtotal.

    Returns:
        LineItemResult with every amount rounded to cents
    """
    quantity = to_decimal(quantity)
    unit_price = to_decimal(unit_price)
    discount = to_decimal(discount)
    tax_rate = to_decimal(tax_rate_percent)
    withholding_rate = to_decimal(withholding_rate_percent)

    with localcontext(MONEY_CONTEXT):
        raw_subtotal = quantity * unit_price
        if discount_is_percentage:
            discount_amount = raw_subtotal * discount / HUNDRED
        else:
            discount_amount = discount
        subtotal = raw_subtotal - discount_amount

        tax_amount = subtotal * tax_rate / HUNDRED
        withholding_amount = subtotal * withholding_rate / HUNDRED
        total = subtotal + tax_amount - withholding_amount

    return LineItemResult(
        raw_subtotal=_round_cents(raw_subtotal),
        discount_amount=_round_cents(discount_amount),
        subtotal_after_discount=_round_cents(subtotal),
        tax_amount=_round_cents(tax_amount),
        withholding_amount=_round_cents(withholding_amount),
        total=_round_cents(total),
    )


@dataclass(frozen=True)
class SaleTotals:
    """Footer totals of a sale"""
    gross: Decimal = ZERO
    discount: Decimal = ZERO
    subtotal: Decimal = ZERO
    tax: Decimal = ZERO
    withholding: Decimal = ZERO
    total: Decimal = ZERO


def summarize_lines(lines):
    """Aggregate (LineItem, LineItemResult) pairs into sale totals.

    Per-line amounts are summed as already rounded, so the footer matches the
    figures shown on each line. Lines not yet calculated (result is None)
    count toward gross and subtotal but add nothing to the total.
    """
    gross = discount = subtotal = tax = withholding = total = ZERO
    with localcontext(MONEY_CONTEXT):
        for item, result in lines:
            line_gross = item.gross
            gross += line_gross
            if result is None:
                subtotal += line_gross
                continue
            discount += result.discount_amount
            subtotal += line_gross - result.discount_amount
            tax += result.tax_amount
            withholding += result.withholding_amount
            total += result.total

    return SaleTotals(
        gross=_round_cents(gross),
        discount=_round_cents(discount),
        subtotal=_round_cents(subtotal),
        tax=_round_cents(tax),
        withholding=_round_cents(withholding),
        total=_round_cents(total),
    )


def resolve_rate(rates, rate_id):
    """Look up a percentage in an {id: rate} map; a missing or unknown id means 0.

    ``rate_id`` may arrive as form text ("3", " 3", "") and is read with
    ``to_int_id``.
    """
    key = to_int_id(rate_id)
    if not key:
        return ZERO
    rate = rates.get(key)
    if rate is None:
        return ZERO
    return to_decimal(rate)
