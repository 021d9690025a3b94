"""
Deal input model.

A ``DealInput`` is everything the engine needs to price one vehicle
transaction: the vehicle price, trade-in, rebates, fees, F&I products,
cash down and the finance or lease terms.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Any, Optional

from autotax.exceptions import DealInputError
from autotax.money import ZERO, to_decimal
from autotax.policies import ProductCategory, RebateOrigin


class DealType(Enum):
    CASH = "CASH"
    FINANCE = "FINANCE"
    LEASE = "LEASE"


class PaymentFrequency(Enum):
    MONTHLY = "MONTHLY"
    BIWEEKLY = "BIWEEKLY"
    WEEKLY = "WEEKLY"

    @property
    def periods_per_year(self) -> int:
        return {"MONTHLY": 12, "BIWEEKLY": 26, "WEEKLY": 52}[self.value]


# Map common F&I product codes to their policy category
PRODUCT_CATEGORIES: dict[str, ProductCategory] = {
    "SERVICE_CONTRACT": ProductCategory.SERVICE_CONTRACT,
    "VSC": ProductCategory.SERVICE_CONTRACT,
    "EXTENDED_WARRANTY": ProductCategory.SERVICE_CONTRACT,
    "MAINTENANCE": ProductCategory.SERVICE_CONTRACT,
    "TIRE_WHEEL": ProductCategory.SERVICE_CONTRACT,
    "GAP": ProductCategory.GAP,
    "ACCESSORY": ProductCategory.ACCESSORY,
    "PAINT_PROTECTION": ProductCategory.ACCESSORY,
    "THEFT_DETERRENT": ProductCategory.ACCESSORY,
}


@dataclass
class TradeIn:
    allowance: Decimal
    payoff: Decimal = ZERO

    @property
    def net(self) -> Decimal:
        """Equity in the trade; negative when the payoff exceeds the allowance."""
        return self.allowance - self.payoff

    @property
    def negative_equity(self) -> Decimal:
        return max(ZERO, self.payoff - self.allowance)


@dataclass
class Rebate:
    name: str
    amount: Decimal
    origin: RebateOrigin = RebateOrigin.MANUFACTURER
    taxable: Optional[bool] = None  # overrides the jurisdiction default


@dataclass
class Fee:
    code: str
    amount: Decimal
    name: str = ""
    taxable: Optional[bool] = None
    capitalize_in_lease: bool = True

    def __post_init__(self) -> None:
        self.code = self.code.upper()
        if not self.name:
            self.name = self.code.replace("_", " ").title()


@dataclass
class FIProduct:
    """A finance-and-insurance product or dealer accessory."""

    code: str
    price: Decimal
    cost: Decimal = ZERO
    name: str = ""
    taxable: Optional[bool] = None
    finance_with_deal: bool = True

    def __post_init__(self) -> None:
        self.code = self.code.upper()
        if not self.name:
            self.name = self.code.replace("_", " ").title()

    @property
    def category(self) -> ProductCategory:
        return PRODUCT_CATEGORIES.get(self.code, ProductCategory.OTHER)

    @property
    def profit(self) -> Decimal:
        return self.price - self.cost


@dataclass
class FinanceTerms:
    apr: Decimal  # percent, e.g. 6.0 == 6%
    term_months: int
    payment_frequency: PaymentFrequency = PaymentFrequency.MONTHLY
    first_payment_date: Optional[date] = None


@dataclass
class LeaseTerms:
    term_months: int
    money_factor: Decimal
    residual_value: Optional[Decimal] = None
    residual_percent: Optional[Decimal] = None  # percent of MSRP
    acquisition_fee: Decimal = ZERO
    acquisition_fee_capitalized: bool = True
    disposition_fee: Decimal = ZERO
    disposition_fee_waived: bool = False
    security_deposit: Decimal = ZERO
    security_deposit_waived: bool = False
    sign_and_drive: bool = False
    cap_reduction_at_signing: bool = True
    first_payment_at_signing: bool = True
    msd_count: int = 0
    msd_rate_reduction: Decimal = Decimal("0.00007")
    one_pay: bool = False  # every payment prepaid at signing
    one_pay_discount: Decimal = Decimal("0.03")  # fraction off the prepaid payments


@dataclass
class DealInput:
    """A single vehicle transaction to be priced."""

    deal_type: DealType
    jurisdiction_code: str
    msrp: Decimal
    selling_price: Decimal
    invoice: Optional[Decimal] = None
    trade_in: Optional[TradeIn] = None
    rebates: list[Rebate] = field(default_factory=list)
    fees: list[Fee] = field(default_factory=list)
    products: list[FIProduct] = field(default_factory=list)
    cash_down: Decimal = ZERO
    finance_terms: Optional[FinanceTerms] = None
    lease_terms: Optional[LeaseTerms] = None
    postal_code: Optional[str] = None
    deal_date: Optional[date] = None
    registration_state: Optional[str] = None
    registration_postal_code: Optional[str] = None
    origin_tax_paid_date: Optional[date] = None
    origin_same_owner: Optional[bool] = None  # owner unchanged since tax was paid
    vehicle_class: Optional[str] = None
    deal_id: str = ""

    def __post_init__(self) -> None:
        self.jurisdiction_code = self.jurisdiction_code.upper()
        if self.registration_state:
            self.registration_state = self.registration_state.upper()

    @property
    def as_of(self) -> date:
        return self.deal_date or date.today()

    @property
    def is_lease(self) -> bool:
        return self.deal_type == DealType.LEASE

    @property
    def is_out_of_state(self) -> bool:
        return bool(
            self.registration_state
            and self.registration_state != self.jurisdiction_code
        )

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "DealInput":
        """Parse a deal record (for example a JSON document)."""
        try:
            trade = data.get("trade_in")
            finance = data.get("finance_terms")
            lease = data.get("lease_terms")
            return cls(
                deal_type=DealType(str(data["deal_type"]).upper()),
                jurisdiction_code=str(data["jurisdiction_code"]),
                msrp=to_decimal(data["msrp"]),
                selling_price=to_decimal(data["selling_price"]),
                invoice=_opt_decimal(data.get("invoice")),
                trade_in=(
                    TradeIn(
                        allowance=to_decimal(trade["allowance"]),
                        payoff=to_decimal(trade.get("payoff"), ZERO),
                    )
                    if trade
                    else None
                ),
                rebates=[
                    Rebate(
                        name=r.get("name", "Rebate"),
                        amount=to_decimal(r["amount"]),
                        origin=RebateOrigin(
                            str(r.get("origin", "MANUFACTURER")).upper()
                        ),
                        taxable=r.get("taxable"),
                    )
                    for r in data.get("rebates") or []
                ],
                fees=[
                    Fee(
                        code=str(f["code"]),
                        amount=to_decimal(f["amount"]),
                        name=f.get("name", ""),
                        taxable=f.get("taxable"),
                        capitalize_in_lease=bool(f.get("capitalize_in_lease", True)),
                    )
                    for f in data.get("fees") or []
                ],
                products=[
                    FIProduct(
                        code=str(p["code"]),
                        price=to_decimal(p["price"]),
                        cost=to_decimal(p.get("cost"), ZERO),
                        name=p.get("name", ""),
                        taxable=p.get("taxable"),
                        finance_with_deal=bool(p.get("finance_with_deal", True)),
                    )
                    for p in data.get("products") or []
                ],
                cash_down=to_decimal(data.get("cash_down"), ZERO),
                finance_terms=(
                    FinanceTerms(
                        apr=to_decimal(finance["apr"]),
                        term_months=int(finance["term_months"]),
                        payment_frequency=PaymentFrequency(
                            str(finance.get("payment_frequency", "MONTHLY")).upper()
                        ),
                        first_payment_date=_opt_date(finance.get("first_payment_date")),
                    )
                    if finance
                    else None
                ),
                lease_terms=_lease_terms(lease) if lease else None,
                postal_code=data.get("postal_code"),
                deal_date=_opt_date(data.get("deal_date")),
                registration_state=data.get("registration_state"),
                registration_postal_code=data.get("registration_postal_code"),
                origin_tax_paid_date=_opt_date(data.get("origin_tax_paid_date")),
                origin_same_owner=data.get("origin_same_owner"),
                vehicle_class=data.get("vehicle_class"),
                deal_id=str(data.get("deal_id", "")),
            )
        except KeyError as e:
            raise DealInputError(
                f"Deal record missing field {e}", details={"field": str(e)}
            ) from e
        except (TypeError, ValueError) as e:
            raise DealInputError(f"Invalid deal record: {e}") from e


def _opt_decimal(value: Any) -> Optional[Decimal]:
    return None if value is None else to_decimal(value)


def _opt_date(value: Any) -> Optional[date]:
    if value is None or isinstance(value, date):
        return value
    return date.fromisoformat(str(value))


def _lease_terms(data: dict[str, Any]) -> LeaseTerms:
    defaults = LeaseTerms(term_months=0, money_factor=ZERO)
    return LeaseTerms(
        term_months=int(data["term_months"]),
        money_factor=to_decimal(data["money_factor"]),
        residual_value=_opt_decimal(data.get("residual_value")),
        residual_percent=_opt_decimal(data.get("residual_percent")),
        acquisition_fee=to_decimal(data.get("acquisition_fee"), ZERO),
        acquisition_fee_capitalized=bool(
            data.get("acquisition_fee_capitalized", True)
        ),
        disposition_fee=to_decimal(data.get("disposition_fee"), ZERO),
        disposition_fee_waived=bool(data.get("disposition_fee_waived", False)),
        security_deposit=to_decimal(data.get("security_deposit"), ZERO),
        security_deposit_waived=bool(data.get("security_deposit_waived", False)),
        sign_and_drive=bool(data.get("sign_and_drive", False)),
        cap_reduction_at_signing=bool(data.get("cap_reduction_at_signing", True)),
        first_payment_at_signing=bool(data.get("first_payment_at_signing", True)),
        msd_count=int(data.get("msd_count", 0)),
        msd_rate_reduction=to_decimal(
            data.get("msd_rate_reduction"), defaults.msd_rate_reduction
        ),
        one_pay=bool(data.get("one_pay", False)),
        one_pay_discount=to_decimal(
            data.get("one_pay_discount"), defaults.one_pay_discount
        ),
    )
