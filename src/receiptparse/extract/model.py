from __future__ import annotations

import types
from dataclasses import FrozenInstanceError, dataclass, field
from typing import Any, Dict, List, Mapping, Optional

from receiptparse.extract.classifier import ItemCategory, TaxType


class _Freezable:
    """Mutable while a parse fills it in; read-only after ``_freeze()``."""

    def __setattr__(self, name: str, value: Any) -> None:
        if self.__dict__.get("_frozen"):
            raise FrozenInstanceError(f"cannot assign to field {name!r} of a returned result")
        object.__setattr__(self, name, value)

    def _freeze(self) -> None:
        object.__setattr__(self, "_frozen", True)


@dataclass
class Merchant(_Freezable):
    name: Optional[str] = None
    biz_no: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "businessRegistrationNumber": self.biz_no,
            "phone": self.phone,
            "address": self.address,
        }


@dataclass
class Meta(_Freezable):
    sale_date: Optional[str] = None
    sale_time: Optional[str] = None
    receipt_no: Optional[str] = None
    pos_id: Optional[str] = None
    register_id: Optional[str] = None
    cashier: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "saleDate": self.sale_date,
            "saleTime": self.sale_time,
            "receiptOrOrderNumber": self.receipt_no,
            "posId": self.pos_id,
            "registerId": self.register_id,
            "cashier": self.cashier,
        }


@dataclass
class Item(_Freezable):
    line_no: Optional[str] = None
    name: Optional[str] = None
    barcode: Optional[str] = None
    tax_flag: Optional[str] = None
    option: Optional[str] = None
    unit_price: Optional[int] = None
    qty: Optional[int] = None
    amount: Optional[int] = None
    # set by BaseReceiptParser.finalize()
    category: Optional[ItemCategory] = None
    tax_type: Optional[TaxType] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "lineNo": self.line_no,
            "name": self.name,
            "barcode": self.barcode,
            "taxFlag": self.tax_flag,
            "option": self.option,
            "unitPrice": self.unit_price,
            "qty": self.qty,
            "amount": self.amount,
            "itemType": int(self.category) if self.category is not None else None,
            "taxType": int(self.tax_type) if self.tax_type is not None else None,
        }


@dataclass
class Totals(_Freezable):
    subtotal: Optional[int] = None
    total: Optional[int] = None
    discount: Optional[int] = None
    vat: Optional[int] = None
    tax_free: Optional[int] = None
    card: Optional[int] = None
    cash: Optional[int] = None
    change: Optional[int] = None
    taxable: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "subtotal": self.subtotal,
            "total": self.total,
            "discount": self.discount,
            "vat": self.vat,
            "taxFreeAmount": self.tax_free,
            "cardAmount": self.card,
            "cashAmount": self.cash,
            "change": self.change,
            "taxableAmount": self.taxable,
        }


@dataclass
class Payment(_Freezable):
    type: Optional[str] = None
    card_brand: Optional[str] = None
    card_masked: Optional[str] = None
    approval_amt: Optional[str] = None
    installment: Optional[str] = None
    card_no: Optional[str] = None
    approval_time: Optional[str] = None
    merchant: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type,
            "cardBrand": self.card_brand,
            "maskedCardNumber": self.card_masked,
            "approvalAmount": self.approval_amt,
            "installmentPlan": self.installment,
            "cardNumberRaw": self.card_no,
            "approvalTime": self.approval_time,
            "merchantLabel": self.merchant,
        }


@dataclass
class Customer(_Freezable):
    name_or_group: Optional[str] = None
    points_earned: Optional[int] = None
    points_balance: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "nameOrGroup": self.name_or_group,
            "pointsEarned": self.points_earned,
            "pointsBalance": self.points_balance,
        }


@dataclass
class Approval(_Freezable):
    approval_no: Optional[str] = None
    merchant_no: Optional[str] = None
    acquirer: Optional[str] = None
    pos_no: Optional[str] = None
    van: Optional[str] = None
    auth_datetime: Optional[str] = None
    tid: Optional[str] = None
    cash_receipt_no: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "approvalNumber": self.approval_no,
            "merchantNumber": self.merchant_no,
            "acquirer": self.acquirer,
            "posNumber": self.pos_no,
            "vanOperator": self.van,
            "authDateTime": self.auth_datetime,
            "terminalId": self.tid,
            "cashReceiptNumber": self.cash_receipt_no,
        }


@dataclass(frozen=True)
class DebugSnapshot:
    """Closed, typed summary of a result for DEBUG logs."""

    merchant: Optional[str]
    biz_no: Optional[str]
    sale_date: Optional[str]
    sale_time: Optional[str]
    item_count: int
    item_names: tuple[str, ...]
    total: Optional[int]
    vat: Optional[int]
    taxable: Optional[int]
    discount: Optional[int]
    pay_type: Optional[str]
    card_brand: Optional[str]
    approval_no: Optional[str]
    review_reasons: tuple[str, ...]

    def as_log_fields(self) -> Dict[str, Any]:
        return {
            "merchant": self.merchant,
            "biz_no": self.biz_no,
            "sale_date": self.sale_date,
            "sale_time": self.sale_time,
            "item_count": self.item_count,
            "item_names": list(self.item_names[:10]),
            "total": self.total,
            "vat": self.vat,
            "taxable": self.taxable,
            "discount": self.discount,
            "pay_type": self.pay_type,
            "card_brand": self.card_brand,
            "approval_no": self.approval_no,
            "review_reasons": list(self.review_reasons),
        }


def _plain(value: Any) -> Any:
    if isinstance(value, Mapping):
        return {str(k): _plain(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_plain(v) for v in value]
    if hasattr(value, "to_dict"):
        return value.to_dict()
    return value


@dataclass
class ReceiptResult(_Freezable):
    merchant: Merchant = field(default_factory=Merchant)
    meta: Meta = field(default_factory=Meta)
    items: List[Item] = field(default_factory=list)
    totals: Totals = field(default_factory=Totals)
    payment: Payment = field(default_factory=Payment)
    customer: Customer = field(default_factory=Customer)
    approval: Approval = field(default_factory=Approval)
    extra: Dict[str, Any] = field(default_factory=dict)
    review_reasons: List[str] = field(default_factory=list)

    def flag(self, reason: str) -> None:
        if reason not in self.review_reasons:
            self.review_reasons.append(reason)

    @property
    def is_frozen(self) -> bool:
        return bool(self.__dict__.get("_frozen"))

    def freeze(self) -> "ReceiptResult":
        """Seal the result: sections become read-only, items a tuple, extra a read-only mapping."""
        if self.is_frozen:
            return self
        for section in (self.merchant, self.meta, self.totals, self.payment, self.customer, self.approval):
            section._freeze()
        for it in self.items:
            it._freeze()
        object.__setattr__(self, "items", tuple(self.items))
        object.__setattr__(self, "extra", types.MappingProxyType(dict(self.extra)))
        object.__setattr__(self, "review_reasons", tuple(self.review_reasons))
        self._freeze()
        return self

    def debug_snapshot(self) -> DebugSnapshot:
        return DebugSnapshot(
            merchant=self.merchant.name,
            biz_no=self.merchant.biz_no,
            sale_date=self.meta.sale_date,
            sale_time=self.meta.sale_time,
            item_count=len(self.items),
            item_names=tuple(it.name or "" for it in self.items),
            total=self.totals.total,
            vat=self.totals.vat,
            taxable=self.totals.taxable,
            discount=self.totals.discount,
            pay_type=self.payment.type,
            card_brand=self.payment.card_brand,
            approval_no=self.approval.approval_no,
            review_reasons=tuple(self.review_reasons),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "merchant": self.merchant.to_dict(),
            "meta": self.meta.to_dict(),
            "items": [it.to_dict() for it in self.items],
            "totals": self.totals.to_dict(),
            "payment": self.payment.to_dict(),
            "customer": self.customer.to_dict(),
            "approval": self.approval.to_dict(),
            "extra": _plain(self.extra),
            "reviewReasons": list(self.review_reasons),
        }
