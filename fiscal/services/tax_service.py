# fiscal/services/tax_service.py
"""
Agregação de impostos nas cinco faixas fixas da KRA (A–E).

Cálculo por linha:
    net = quantity * unit_price - discount_amount
    tax = round(net * rate / 100, 2)   (half-up)

Cada faixa soma net (valor tributável) e tax; total = Σ net + Σ tax.
A faixa A corresponde ao sufixo posicional 1 nos comandos, B → 2, ... E → 5.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Mapping

from fiscal.kra_codec import format_amount, quantize_amount, to_decimal


TAX_LABELS = ("A", "B", "C", "D", "E")
TOLERANCE = Decimal("0.01")

_ZERO = Decimal("0")


@dataclass
class TaxBucket:
    label: str
    rate: Decimal = _ZERO
    taxable_amount: Decimal = _ZERO
    tax_amount: Decimal = _ZERO

    @property
    def position(self) -> int:
        return TAX_LABELS.index(self.label) + 1


@dataclass
class LineTotals:
    net: Decimal
    rate: Decimal
    tax: Decimal

    @property
    def total(self) -> Decimal:
        return self.net + self.tax


@dataclass
class TaxSummary:
    buckets: Dict[str, TaxBucket]
    lines: List[LineTotals] = field(default_factory=list)

    @property
    def taxable_total(self) -> Decimal:
        return sum((b.taxable_amount for b in self.buckets.values()), _ZERO)

    @property
    def tax_total(self) -> Decimal:
        return sum((b.tax_amount for b in self.buckets.values()), _ZERO)

    @property
    def total_amount(self) -> Decimal:
        return quantize_amount(self.taxable_total + self.tax_total)

    def as_dict(self) -> Dict[str, Dict[str, str]]:
        return {
            label: {
                "rate": format_amount(bucket.rate),
                "taxable_amount": format_amount(bucket.taxable_amount),
                "tax_amount": format_amount(bucket.tax_amount),
            }
            for label, bucket in self.buckets.items()
        }


def line_net(item: Mapping[str, Any]) -> Decimal:
    quantity = to_decimal(item["quantity"])
    unit_price = to_decimal(item["unit_price"])
    discount = to_decimal(item.get("discount_amount") or 0)
    return quantity * unit_price - discount


def compute_tax_summary(
    items: Iterable[Mapping[str, Any]],
    tax_rates: Mapping[str, Any],
) -> TaxSummary:
    """
    Agrega os itens nas faixas A–E usando as alíquotas informadas.
    Faixas sem alíquota informada valem 0%.
    """
    buckets = {
        label: TaxBucket(label=label, rate=to_decimal(tax_rates.get(label) or 0))
        for label in TAX_LABELS
    }
    lines: List[LineTotals] = []

    for item in items:
        label = str(item["tax_designation_code"]).upper()
        bucket = buckets[label]

        net = line_net(item)
        tax = quantize_amount(net * bucket.rate / Decimal("100"))

        bucket.taxable_amount += net
        bucket.tax_amount += tax
        lines.append(LineTotals(net=net, rate=bucket.rate, tax=tax))

    for bucket in buckets.values():
        bucket.taxable_amount = quantize_amount(bucket.taxable_amount)
        bucket.tax_amount = quantize_amount(bucket.tax_amount)

    return TaxSummary(buckets=buckets, lines=lines)


def differs(expected: Any, provided: Any) -> bool:
    return abs(to_decimal(expected) - to_decimal(provided)) > TOLERANCE


# ---------------------------------------------------------------------------
# Mapeamento posicional para os comandos
# ---------------------------------------------------------------------------


def device_tax_fields(summary: TaxSummary) -> Dict[str, str]:
    """
    Campos de imposto do SEND_RECEIPT enviado ao dispositivo:
    TaxRate{n}, Amount{n} (tributável) e Tax{n}.
    """
    fields: Dict[str, str] = {}
    for label in TAX_LABELS:
        bucket = summary.buckets[label]
        fields[f"TaxRate{bucket.position}"] = format_amount(bucket.rate)
    for label in TAX_LABELS:
        bucket = summary.buckets[label]
        fields[f"Amount{bucket.position}"] = format_amount(bucket.taxable_amount)
    for label in TAX_LABELS:
        bucket = summary.buckets[label]
        fields[f"Tax{bucket.position}"] = format_amount(bucket.tax_amount)
    return fields


def journal_tax_fields(summary: TaxSummary) -> Dict[str, str]:
    """
    Campos de imposto do journal na autoridade central:
    TaxRate{n}, TaxableAmount{n} e TaxAmount{n}.
    """
    fields: Dict[str, str] = {}
    for label in TAX_LABELS:
        bucket = summary.buckets[label]
        fields[f"TaxRate{bucket.position}"] = format_amount(bucket.rate)
        fields[f"TaxableAmount{bucket.position}"] = format_amount(bucket.taxable_amount)
        fields[f"TaxAmount{bucket.position}"] = format_amount(bucket.tax_amount)
    return fields
