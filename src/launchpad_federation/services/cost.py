"""Cost aggregation for a selection of partner directories."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any

from launchpad_federation.core.errors import ValidationError


@dataclass(frozen=True)
class Money:
    """An amount in a single ISO currency."""

    amount: Decimal
    currency: str

    @classmethod
    def parse(cls, raw: Any, default_currency: str) -> Money:
        """Build Money from a partner fee payload.

        Accepts ``{"amount": .., "currency": ..}``, a bare number, or None
        (free).
        """
        if raw is None:
            return cls(Decimal("0"), default_currency.upper())
        if isinstance(raw, Mapping):
            amount = raw.get("amount", 0)
            currency = raw.get("currency") or default_currency
        else:
            amount, currency = raw, default_currency
        try:
            value = Decimal(str(amount))
        except InvalidOperation as exc:
            raise ValidationError(f"Invalid fee amount: {amount!r}") from exc
        if not value.is_finite():
            raise ValidationError(f"Invalid fee amount: {amount!r}")
        return cls(value, str(currency).upper())


@dataclass(frozen=True)
class SelectedDirectory:
    """A chosen (instance, directory) target with its fee."""

    instance_url: str
    directory_id: str
    fee: Money

    @property
    def key(self) -> tuple[str, str]:
        return (self.instance_url, self.directory_id)


@dataclass(frozen=True)
class CostItem:
    instance_url: str
    directory_id: str
    amount: Decimal


@dataclass(frozen=True)
class CostBreakdown:
    """Total cost plus a per-directory breakdown in input order."""

    total: Decimal
    currency: str
    items: list[CostItem]

    @property
    def requires_payment(self) -> bool:
        return self.total > 0


def calculate(selection: Sequence[SelectedDirectory]) -> CostBreakdown:
    """Sum the fees of the selected directories.

    Raises:
        ValidationError: If the selection is empty, mixes currencies or
            contains a negative fee.
    """
    if not selection:
        raise ValidationError("At least one directory must be selected")

    currencies = {item.fee.currency for item in selection}
    if len(currencies) > 1:
        raise ValidationError(
            "All selected directories must share one currency "
            f"(got {', '.join(sorted(currencies))})"
        )

    items: list[CostItem] = []
    for item in selection:
        if item.fee.amount < 0:
            raise ValidationError(
                f"Negative fee for {item.instance_url} / {item.directory_id}"
            )
        items.append(CostItem(item.instance_url, item.directory_id, item.fee.amount))

    total = sum((cost.amount for cost in items), Decimal("0"))
    return CostBreakdown(total=total, currency=currencies.pop(), items=items)
