"""
Sale entry view model.

A SaleDraft holds what the sales-entry screen shows: the discount mode, the
editable lines (kept as the raw text the user typed) and the last pricing of
each line. Every edit reprices its line through a LineTotalCalculator.

Pricing can be slow when it goes to the server, so a newer edit may finish
before an older one. Each repricing takes a fresh token for its line and its
result is applied only while that token is still the line's latest one.
"""
import itertools
import logging
import threading
from dataclasses import dataclass
from typing import Optional

from .client import LineCalculation
from .pricing import LineItem, ZERO, summarize_lines

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = frozenset([
    'product_code', 'product_name', 'warehouse',
    'quantity', 'unit_price', 'discount',
    'iva_id', 'retencion_id',
])


class RequestTokens:
    """Monotonically increasing per-key tokens; only the latest one per key is current"""

    def __init__(self):
        self._lock = threading.Lock()
        self._counter = itertools.count(1)
        self._latest = {}

    def issue(self, key):
        with self._lock:
            token = next(self._counter)
            self._latest[key] = token
            return token

    def is_current(self, key, token):
        with self._lock:
            return self._latest.get(key) == token

    def forget(self, key):
        with self._lock:
            self._latest.pop(key, None)

    def clear(self):
        with self._lock:
            self._latest.clear()


@dataclass(eq=False)
class DraftLine:
    id: int
    product_code: str = ''
    product_name: str = ''
    warehouse: str = ''
    quantity: str = ''
    unit_price: str = ''
    discount: str = ''
    iva_id: Optional[int] = None
    retencion_id: Optional[int] = None
    calculation: Optional[LineCalculation] = None

    @property
    def has_amounts(self):
        """Quantity and unit price are both filled in"""
        return self.quantity not in (None, '') and self.unit_price not in (None, '')

    @property
    def total(self):
        return self.calculation.result.total if self.calculation else ZERO

    def as_line_item(self):
        return LineItem.from_raw(quantity=self.quantity, unit_price=self.unit_price, discount=self.discount)


class SaleDraft:
    """Lines of a sale being entered, repriced on every edit"""

    def __init__(self, calculator, discount_is_percentage=False):
        self.calculator = calculator
        self.discount_is_percentage = discount_is_percentage
        self.lines = []
        self._tokens = RequestTokens()
        self.reset()

    def reset(self):
        """Back to a single empty line"""
        self._tokens.clear()
        self.lines = [DraftLine(id=1)]

    def get_line(self, line_id):
        for line in self.lines:
            if line.id == line_id:
                return line
        raise KeyError(f"Line {line_id} not found")

    def add_line(self):
        next_id = max((line.id for line in self.lines), default=0) + 1
        line = DraftLine(id=next_id)
        self.lines.append(line)
        return line

    def remove_line(self, line_id):
        """Remove a line; the last remaining line is never removed"""
        if len(self.lines) <= 1:
            return False
        line = self.get_line(line_id)
        self.lines.remove(line)
        self._tokens.forget(line_id)
        return True

    def update_line(self, line_id, **fields):
        """
        Apply field edits to a line and reprice it.

        Returns:
            True if the new pricing was applied, False if a newer edit of the
            same line superseded it while it was being computed
        """
        unknown = set(fields) - EDITABLE_FIELDS
        if unknown:
            raise ValueError(f"Unknown line fields: {', '.join(sorted(unknown))}")
        line = self.get_line(line_id)
        for name, value in fields.items():
            setattr(line, name, value)
        return self._recalculate(line)

    def set_discount_mode(self, is_percentage):
        """Switch between percentage and flat discounts, repricing lines that have amounts"""
        is_percentage = bool(is_percentage)
        if is_percentage == self.discount_is_percentage:
            return
        self.discount_is_percentage = is_percentage
        for line in list(self.lines):
            if line.has_amounts:
                self._recalculate(line)

    def _recalculate(self, line):
        token = self._tokens.issue(line.id)
        calculation = self.calculator.calculate(
            line.quantity,
            line.unit_price,
            line.discount,
            self.discount_is_percentage,
            line.iva_id,
            line.retencion_id,
        )
        if not self._tokens.is_current(line.id, token) or line not in self.lines:
            logger.debug(f"Discarding stale pricing for line {line.id} (token {token})")
            return False
        line.calculation = calculation
        return True

    def totals(self):
        return summarize_lines(
            (line.as_line_item(), line.calculation.result if line.calculation else None)
            for line in self.lines
        )
