"""
Jurisdiction policy store.

One immutable policy record per taxing jurisdiction, loaded from a
versioned YAML dataset. Policies describe how a state treats trade-ins,
rebates, fees, F&I products, leases and cross-state reciprocity; the
calculation modules interpret them, so adding or updating a state is a
data change only.

Several versions of a jurisdiction may coexist as long as their
effective dates differ. The store always answers with the latest
version effective on the evaluation date.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum
from pathlib import Path
from types import MappingProxyType
from typing import Any, Mapping, Optional, Union

import yaml

from autotax.exceptions import RuleConfigurationError, UnknownJurisdiction
from autotax.money import ZERO, round_money, to_decimal

logger = logging.getLogger(__name__)


class TradeInPolicyType(Enum):
    FULL = "FULL"
    CAPPED = "CAPPED"  # credit limited to a dollar amount
    PARTIAL = "PARTIAL"  # credit limited to a fraction of the allowance
    NONE = "NONE"


class RebateOrigin(Enum):
    MANUFACTURER = "MANUFACTURER"
    DEALER = "DEALER"


class VehicleTaxScheme(Enum):
    STATE_ONLY = "STATE_ONLY"
    STATE_PLUS_LOCAL = "STATE_PLUS_LOCAL"
    SPECIAL_TAVT = "SPECIAL_TAVT"  # title ad valorem tax
    SPECIAL_HUT = "SPECIAL_HUT"  # highway use tax
    DMV_PRIVILEGE_TAX = "DMV_PRIVILEGE_TAX"

    @property
    def is_title_tax(self) -> bool:
        """One-time tax collected at titling instead of sales tax."""
        return self in TITLE_TAX_SCHEMES


class LeaseTaxMethod(Enum):
    MONTHLY = "MONTHLY"
    FULL_UPFRONT = "FULL_UPFRONT"
    HYBRID = "HYBRID"
    NET_CAP_COST = "NET_CAP_COST"
    REDUCED_BASE = "REDUCED_BASE"


class TitleTaxLeaseBase(Enum):
    GROSS_CAP_COST = "GROSS_CAP_COST"
    AGREED_VALUE = "AGREED_VALUE"


class LeaseRebateBehavior(Enum):
    FOLLOW_RETAIL_RULE = "FOLLOW_RETAIL_RULE"
    ALWAYS_TAXABLE = "ALWAYS_TAXABLE"
    NON_TAXABLE = "NON_TAXABLE"


class LeaseDocFeeTaxability(Enum):
    NEVER = "NEVER"
    ALWAYS = "ALWAYS"


class LeaseTradeInCredit(Enum):
    FULL = "FULL"
    NONE = "NONE"


class ReciprocityScope(Enum):
    RETAIL_ONLY = "RETAIL_ONLY"
    LEASE_ONLY = "LEASE_ONLY"
    BOTH = "BOTH"


class HomeStateBehavior(Enum):
    NONE = "NONE"
    CREDIT_UP_TO_STATE_RATE = "CREDIT_UP_TO_STATE_RATE"
    FULL_CREDIT = "FULL_CREDIT"


class CreditBasis(Enum):
    TAX_PAID = "TAX_PAID"
    RATE_BASED = "RATE_BASED"


class ProductCategory(Enum):
    """Policy category an F&I product falls back to."""

    SERVICE_CONTRACT = "SERVICE_CONTRACT"
    GAP = "GAP"
    ACCESSORY = "ACCESSORY"
    OTHER = "OTHER"


TITLE_TAX_SCHEMES = frozenset(
    {
        VehicleTaxScheme.SPECIAL_TAVT,
        VehicleTaxScheme.SPECIAL_HUT,
        VehicleTaxScheme.DMV_PRIVILEGE_TAX,
    }
)

# Fee codes whose taxability falls back to a global category flag.
DOC_FEE_CODE = "DOC"
SERVICE_CONTRACT_CODE = "SERVICE_CONTRACT"
GAP_CODE = "GAP"
ACQUISITION_FEE_CODE = "ACQUISITION"


def _frozen_map(data: Optional[Mapping[str, Any]]) -> Mapping[str, Any]:
    return MappingProxyType(dict(data or {}))


@dataclass(frozen=True)
class TradeInPolicy:
    """How much of a trade-in allowance may reduce the taxable base."""

    type: TradeInPolicyType
    cap_amount: Optional[Decimal] = None
    limit: Optional[Decimal] = None  # PARTIAL: fraction of allowance, 0-1

    def credit(self, allowance: Decimal, selling_price: Decimal) -> Decimal:
        """Trade credit for an allowance, never above the selling price."""
        if allowance <= ZERO:
            return ZERO
        if self.type == TradeInPolicyType.NONE:
            credit = ZERO
        elif self.type == TradeInPolicyType.CAPPED:
            credit = min(allowance, self.cap_amount or ZERO)
        elif self.type == TradeInPolicyType.PARTIAL:
            credit = round_money(allowance * (self.limit or ZERO))
        else:
            credit = allowance
        return max(ZERO, min(credit, selling_price))

    def describe(self) -> str:
        if self.type == TradeInPolicyType.CAPPED:
            return f"CAPPED (${self.cap_amount:,.2f})"
        if self.type == TradeInPolicyType.PARTIAL:
            return f"PARTIAL ({self.limit:.0%})"
        return self.type.value


@dataclass(frozen=True)
class DocFeeRule:
    taxable: bool
    cap_amount: Optional[Decimal] = None
    cap_percent: Optional[Decimal] = None  # fraction of selling price

    def cap_for(self, selling_price: Decimal) -> Optional[Decimal]:
        """Effective doc fee cap for a price, or None when uncapped."""
        caps = []
        if self.cap_amount is not None:
            caps.append(self.cap_amount)
        if self.cap_percent is not None:
            caps.append(round_money(selling_price * self.cap_percent))
        return min(caps) if caps else None


@dataclass(frozen=True)
class TitleFeeRule:
    taxable: bool
    included_in_cap_cost: bool = True
    included_in_upfront: bool = True
    included_in_monthly: bool = False


@dataclass(frozen=True)
class LeaseRules:
    method: LeaseTaxMethod = LeaseTaxMethod.MONTHLY
    tax_cap_reduction: bool = False
    rebate_behavior: LeaseRebateBehavior = LeaseRebateBehavior.FOLLOW_RETAIL_RULE
    doc_fee_taxability: LeaseDocFeeTaxability = LeaseDocFeeTaxability.ALWAYS
    trade_in_credit: LeaseTradeInCredit = LeaseTradeInCredit.FULL
    negative_equity_taxable: bool = False
    tax_fees_upfront: bool = True
    fee_taxability: Mapping[str, bool] = field(default_factory=_frozen_map)
    title_fees: Mapping[str, TitleFeeRule] = field(default_factory=_frozen_map)


@dataclass(frozen=True)
class TitleTaxRules:
    """Base and rate rules for a one-time title or highway use tax."""

    vehicle_only: bool = False  # fees and F&I products stay outside the base
    lease_base: TitleTaxLeaseBase = TitleTaxLeaseBase.GROSS_CAP_COST
    class_rates: Mapping[str, Decimal] = field(default_factory=_frozen_map)

    def rate_for(self, base_rate: Decimal, vehicle_class: Optional[str]) -> Decimal:
        if vehicle_class and vehicle_class.upper() in self.class_rates:
            return self.class_rates[vehicle_class.upper()]
        return base_rate


@dataclass(frozen=True)
class ReciprocityOverride:
    """Home-state rules for vehicles first taxed in one particular state."""

    disallow_credit: bool = False
    proof_window_days: Optional[int] = None
    requires_mutual_credit: bool = False
    requires_same_owner: bool = False
    home_state_behavior: Optional[HomeStateBehavior] = None
    cap_at_this_states_tax: Optional[bool] = None


@dataclass(frozen=True)
class ReciprocityRules:
    enabled: bool = False
    scope: ReciprocityScope = ReciprocityScope.BOTH
    home_state_behavior: HomeStateBehavior = HomeStateBehavior.NONE
    require_proof_of_tax_paid: bool = False
    basis: CreditBasis = CreditBasis.TAX_PAID
    cap_at_this_states_tax: bool = True
    has_lease_exception: bool = False
    proof_window_days: Optional[int] = None
    exempt_states: frozenset[str] = frozenset()
    non_reciprocal_states: frozenset[str] = frozenset()
    overrides: Mapping[str, ReciprocityOverride] = field(default_factory=_frozen_map)

    def covers(self, is_lease: bool) -> bool:
        """Whether the rules apply to a retail or lease deal."""
        if self.scope == ReciprocityScope.RETAIL_ONLY:
            return not is_lease
        if self.scope == ReciprocityScope.LEASE_ONLY:
            return is_lease
        return True

    def override_for(self, origin_code: str) -> Optional[ReciprocityOverride]:
        return self.overrides.get(origin_code.upper())

    def credits(self, origin_code: str) -> bool:
        """Whether tax paid in ``origin_code`` earns any credit here."""
        if not self.enabled or self.home_state_behavior == HomeStateBehavior.NONE:
            return False
        if origin_code.upper() in self.non_reciprocal_states:
            return False
        override = self.override_for(origin_code)
        if override is None:
            return True
        if override.disallow_credit:
            return False
        return override.home_state_behavior != HomeStateBehavior.NONE


@dataclass(frozen=True)
class JurisdictionPolicy:
    """Complete vehicle tax policy for a single jurisdiction."""

    code: str
    name: str
    version: int
    effective_date: date
    state_rate: Decimal
    average_local_rate: Decimal
    has_local_tax: bool
    vehicle_tax_scheme: VehicleTaxScheme
    trade_in: TradeInPolicy
    rebate_taxable: Mapping[RebateOrigin, bool]
    doc_fee: DocFeeRule
    fee_taxability: Mapping[str, bool]
    tax_on_accessories: bool
    tax_on_negative_equity: bool
    tax_on_service_contracts: bool
    tax_on_gap: bool
    lease: LeaseRules
    reciprocity: ReciprocityRules
    title_tax: Optional[TitleTaxRules] = None
    notes: str = ""

    @property
    def uses_local_rate(self) -> bool:
        return (
            self.has_local_tax
            and self.vehicle_tax_scheme == VehicleTaxScheme.STATE_PLUS_LOCAL
        )

    def is_rebate_taxable(self, origin: RebateOrigin) -> bool:
        return self.rebate_taxable.get(origin, False)

    def is_fee_taxable(self, code: str, lease: bool = False) -> bool:
        """
        Resolve fee taxability from policy data.

        Lease deals consult the lease tables first. Falls back to the
        retail fee table, then the category flag for the code. Raises
        RuleConfigurationError when nothing in the policy decides.
        """
        code = code.upper()
        if lease:
            if code == DOC_FEE_CODE:
                return self.lease.doc_fee_taxability == LeaseDocFeeTaxability.ALWAYS
            if code in self.lease.fee_taxability:
                return self.lease.fee_taxability[code]
            if code in self.lease.title_fees:
                return self.lease.title_fees[code].taxable
            if code == ACQUISITION_FEE_CODE:
                return False
        if code in self.fee_taxability:
            return self.fee_taxability[code]
        if code == DOC_FEE_CODE:
            return self.doc_fee.taxable
        if code == SERVICE_CONTRACT_CODE:
            return self.tax_on_service_contracts
        if code == GAP_CODE:
            return self.tax_on_gap
        raise RuleConfigurationError(
            f"{self.code}: no taxability rule for fee code {code}",
            details={"jurisdiction_code": self.code, "fee_code": code},
        )

    def is_product_taxable(
        self, code: str, category: ProductCategory, lease: bool = False
    ) -> bool:
        """Resolve F&I product taxability: code table, then category flag."""
        code = code.upper()
        if lease:
            for key in (code, category.value):
                if key in self.lease.fee_taxability:
                    return self.lease.fee_taxability[key]
        if code in self.fee_taxability:
            return self.fee_taxability[code]
        if category == ProductCategory.SERVICE_CONTRACT:
            return self.tax_on_service_contracts
        if category == ProductCategory.GAP:
            return self.tax_on_gap
        if category == ProductCategory.ACCESSORY:
            return self.tax_on_accessories
        raise RuleConfigurationError(
            f"{self.code}: no taxability rule for product code {code}",
            details={"jurisdiction_code": self.code, "product_code": code},
        )


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------


def _enum(enum_cls: type[Enum], value: Any, where: str) -> Any:
    try:
        return enum_cls(str(value).upper())
    except ValueError as e:
        raise RuleConfigurationError(
            f"{where}: invalid {enum_cls.__name__} value {value!r}"
        ) from e


def _optional_decimal(value: Any) -> Optional[Decimal]:
    return None if value is None else to_decimal(value)


def _parse_date(value: Any, where: str) -> date:
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value))
    except ValueError as e:
        raise RuleConfigurationError(f"{where}: invalid date {value!r}") from e


def _bool_table(data: Optional[Mapping[str, Any]]) -> Mapping[str, bool]:
    return _frozen_map({str(k).upper(): bool(v) for k, v in (data or {}).items()})


def _parse_trade_in(data: Mapping[str, Any], where: str) -> TradeInPolicy:
    kind = _enum(TradeInPolicyType, data.get("type", "FULL"), where)
    cap = _optional_decimal(data.get("cap_amount"))
    limit = _optional_decimal(data.get("limit"))
    if kind == TradeInPolicyType.CAPPED and cap is None:
        raise RuleConfigurationError(f"{where}: CAPPED trade-in needs cap_amount")
    if kind == TradeInPolicyType.PARTIAL:
        if limit is None or not (ZERO < limit <= 1):
            raise RuleConfigurationError(
                f"{where}: PARTIAL trade-in needs a limit between 0 and 1"
            )
    return TradeInPolicy(type=kind, cap_amount=cap, limit=limit)


def _parse_lease(data: Mapping[str, Any], where: str) -> LeaseRules:
    title_fees = {
        str(code).upper(): TitleFeeRule(
            taxable=bool(rule.get("taxable", False)),
            included_in_cap_cost=bool(rule.get("included_in_cap_cost", True)),
            included_in_upfront=bool(rule.get("included_in_upfront", True)),
            included_in_monthly=bool(rule.get("included_in_monthly", False)),
        )
        for code, rule in (data.get("title_fees") or {}).items()
    }
    return LeaseRules(
        method=_enum(LeaseTaxMethod, data.get("method", "MONTHLY"), where),
        tax_cap_reduction=bool(data.get("tax_cap_reduction", False)),
        rebate_behavior=_enum(
            LeaseRebateBehavior,
            data.get("rebate_behavior", "FOLLOW_RETAIL_RULE"),
            where,
        ),
        doc_fee_taxability=_enum(
            LeaseDocFeeTaxability, data.get("doc_fee_taxability", "ALWAYS"), where
        ),
        trade_in_credit=_enum(
            LeaseTradeInCredit, data.get("trade_in_credit", "FULL"), where
        ),
        negative_equity_taxable=bool(data.get("negative_equity_taxable", False)),
        tax_fees_upfront=bool(data.get("tax_fees_upfront", True)),
        fee_taxability=_bool_table(data.get("fee_taxability")),
        title_fees=_frozen_map(title_fees),
    )


def _optional_bool(value: Any) -> Optional[bool]:
    return None if value is None else bool(value)


def _parse_override(
    data: Mapping[str, Any], where: str
) -> ReciprocityOverride:
    window = data.get("proof_window_days")
    behavior = data.get("home_state_behavior")
    return ReciprocityOverride(
        disallow_credit=bool(data.get("disallow_credit", False)),
        proof_window_days=None if window is None else int(window),
        requires_mutual_credit=bool(data.get("requires_mutual_credit", False)),
        requires_same_owner=bool(data.get("requires_same_owner", False)),
        home_state_behavior=(
            None if behavior is None else _enum(HomeStateBehavior, behavior, where)
        ),
        cap_at_this_states_tax=_optional_bool(data.get("cap_at_this_states_tax")),
    )


def _parse_reciprocity(data: Mapping[str, Any], where: str) -> ReciprocityRules:
    window = data.get("proof_window_days")
    return ReciprocityRules(
        enabled=bool(data.get("enabled", False)),
        scope=_enum(ReciprocityScope, data.get("scope", "BOTH"), where),
        home_state_behavior=_enum(
            HomeStateBehavior, data.get("home_state_behavior", "NONE"), where
        ),
        require_proof_of_tax_paid=bool(data.get("require_proof_of_tax_paid", False)),
        basis=_enum(CreditBasis, data.get("basis", "TAX_PAID"), where),
        cap_at_this_states_tax=bool(data.get("cap_at_this_states_tax", True)),
        has_lease_exception=bool(data.get("has_lease_exception", False)),
        proof_window_days=None if window is None else int(window),
        exempt_states=frozenset(s.upper() for s in data.get("exempt_states") or []),
        non_reciprocal_states=frozenset(
            s.upper() for s in data.get("non_reciprocal_states") or []
        ),
        overrides=_frozen_map(
            {
                str(origin).upper(): _parse_override(
                    rule or {}, f"{where} override {origin}"
                )
                for origin, rule in (data.get("overrides") or {}).items()
            }
        ),
    )


def _parse_title_tax(data: Mapping[str, Any], where: str) -> TitleTaxRules:
    return TitleTaxRules(
        vehicle_only=bool(data.get("vehicle_only", False)),
        lease_base=_enum(
            TitleTaxLeaseBase, data.get("lease_base", "GROSS_CAP_COST"), where
        ),
        class_rates=_frozen_map(
            {
                str(k).upper(): to_decimal(v)
                for k, v in (data.get("class_rates") or {}).items()
            }
        ),
    )


def policy_from_dict(data: Mapping[str, Any]) -> JurisdictionPolicy:
    """Build a policy from one dataset record."""
    try:
        code = str(data["code"]).upper()
    except KeyError as e:
        raise RuleConfigurationError("Policy record without a code") from e
    where = f"policy {code}"

    try:
        rebates = data.get("rebates") or {}
        doc_fee = data.get("doc_fee") or {}
        scheme = _enum(VehicleTaxScheme, data["vehicle_tax_scheme"], where)
        title_tax = data.get("title_tax")
        if title_tax is not None and not scheme.is_title_tax:
            raise RuleConfigurationError(
                f"{where}: title_tax rules do not apply to {scheme.value}"
            )
        return JurisdictionPolicy(
            code=code,
            name=data["name"],
            version=int(data.get("version", 1)),
            effective_date=_parse_date(
                data.get("effective_date", "1970-01-01"), where
            ),
            state_rate=to_decimal(data["state_rate"]),
            average_local_rate=to_decimal(data.get("average_local_rate", 0)),
            has_local_tax=bool(data.get("has_local_tax", False)),
            vehicle_tax_scheme=scheme,
            trade_in=_parse_trade_in(data["trade_in"], where),
            rebate_taxable=_frozen_map(
                {
                    origin: bool(rebates.get(origin.value, False))
                    for origin in RebateOrigin
                }
            ),
            doc_fee=DocFeeRule(
                taxable=bool(doc_fee.get("taxable", False)),
                cap_amount=_optional_decimal(doc_fee.get("cap_amount")),
                cap_percent=_optional_decimal(doc_fee.get("cap_percent")),
            ),
            fee_taxability=_bool_table(data.get("fee_taxability")),
            tax_on_accessories=bool(data.get("tax_on_accessories", True)),
            tax_on_negative_equity=bool(data.get("tax_on_negative_equity", False)),
            tax_on_service_contracts=bool(
                data.get("tax_on_service_contracts", False)
            ),
            tax_on_gap=bool(data.get("tax_on_gap", False)),
            lease=_parse_lease(data.get("lease") or {}, where),
            reciprocity=_parse_reciprocity(data.get("reciprocity") or {}, where),
            title_tax=(
                _parse_title_tax(title_tax or {}, where)
                if scheme.is_title_tax
                else None
            ),
            notes=str(data.get("notes", "")).strip(),
        )
    except KeyError as e:
        raise RuleConfigurationError(f"{where}: missing required field {e}") from e
    except ValueError as e:
        raise RuleConfigurationError(f"{where}: {e}") from e


# ---------------------------------------------------------------------------
# Snapshot and store
# ---------------------------------------------------------------------------


class PolicySnapshot:
    """
    Immutable view over one loaded dataset.

    Holds every version of every jurisdiction, sorted by effective date.
    """

    def __init__(self, label: str, policies: list[JurisdictionPolicy]) -> None:
        grouped: dict[str, list[JurisdictionPolicy]] = {}
        for policy in policies:
            grouped.setdefault(policy.code, []).append(policy)

        versions: dict[str, tuple[JurisdictionPolicy, ...]] = {}
        for code, items in grouped.items():
            items.sort(key=lambda p: p.effective_date)
            dates = [p.effective_date for p in items]
            if len(set(dates)) != len(dates):
                raise RuleConfigurationError(
                    f"{code}: two policy versions share an effective date",
                    details={"jurisdiction_code": code},
                )
            versions[code] = tuple(items)

        self.label = label
        self._versions: Mapping[str, tuple[JurisdictionPolicy, ...]] = (
            MappingProxyType(versions)
        )

    def __contains__(self, code: str) -> bool:
        return code.upper() in self._versions

    def __len__(self) -> int:
        return len(self._versions)

    def codes(self) -> list[str]:
        return sorted(self._versions)

    def versions(self, code: str) -> tuple[JurisdictionPolicy, ...]:
        return self._versions.get(code.upper(), ())

    def get(self, code: str, as_of: Optional[date] = None) -> JurisdictionPolicy:
        """Active policy for a code on a date. Unknown codes fail closed."""
        as_of = as_of or date.today()
        candidates = [
            p for p in self.versions(code) if p.effective_date <= as_of
        ]
        if not candidates:
            raise UnknownJurisdiction(code.upper())
        return candidates[-1]

    def active(self, as_of: Optional[date] = None) -> list[JurisdictionPolicy]:
        """Active policy for every jurisdiction, sorted by code."""
        result = []
        for code in self.codes():
            try:
                result.append(self.get(code, as_of))
            except UnknownJurisdiction:
                continue
        return result


def load_yaml_file(path: Union[str, Path]) -> dict[str, Any]:
    """Read a YAML document. FileNotFoundError and YAMLError propagate."""
    with open(path, encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def snapshot_from_dict(data: Mapping[str, Any], label: str = "") -> PolicySnapshot:
    records = data.get("jurisdictions")
    if not isinstance(records, list):
        raise RuleConfigurationError("Policy dataset needs a 'jurisdictions' list")
    policies = [policy_from_dict(r) for r in records]
    return PolicySnapshot(str(data.get("version", label or "unversioned")), policies)


def load_policies(path: Union[str, Path]) -> PolicySnapshot:
    snapshot = snapshot_from_dict(load_yaml_file(path), label=Path(path).stem)
    logger.info(
        "Loaded policy dataset %s (%d jurisdictions) from %s",
        snapshot.label,
        len(snapshot),
        path,
    )
    return snapshot


class JurisdictionPolicyStore:
    """
    Process-wide holder of the current policy snapshot.

    Readers grab ``snapshot`` once per computation. ``replace`` and
    ``reload`` swap the reference in a single assignment, so a reader
    sees either the old dataset or the new one, never a mix.
    """

    def __init__(self, snapshot: PolicySnapshot) -> None:
        self._snapshot = snapshot

    @classmethod
    def from_yaml(cls, path: Union[str, Path]) -> "JurisdictionPolicyStore":
        return cls(load_policies(path))

    @classmethod
    def from_records(
        cls, records: list[Mapping[str, Any]], label: str = "inline"
    ) -> "JurisdictionPolicyStore":
        return cls(snapshot_from_dict({"version": label, "jurisdictions": records}))

    @classmethod
    def bundled(cls) -> "JurisdictionPolicyStore":
        from autotax.settings import DEFAULT_POLICY_PATH

        return cls.from_yaml(DEFAULT_POLICY_PATH)

    @property
    def snapshot(self) -> PolicySnapshot:
        return self._snapshot

    @property
    def version(self) -> str:
        return self._snapshot.label

    @property
    def jurisdiction_count(self) -> int:
        return len(self._snapshot)

    def replace(self, snapshot: PolicySnapshot) -> None:
        previous = self._snapshot.label
        self._snapshot = snapshot
        logger.info("Policy dataset replaced: %s -> %s", previous, snapshot.label)

    def reload(self, path: Union[str, Path]) -> None:
        self.replace(load_policies(path))

    def get(self, code: str, as_of: Optional[date] = None) -> JurisdictionPolicy:
        return self._snapshot.get(code, as_of)

    def all_policies(self, as_of: Optional[date] = None) -> list[JurisdictionPolicy]:
        return self._snapshot.active(as_of)

    def no_tax_jurisdictions(self, as_of: Optional[date] = None) -> list[str]:
        """Codes with a zero state rate and no local component."""
        return [
            p.code
            for p in self.all_policies(as_of)
            if p.state_rate == 0 and not p.has_local_tax
        ]


def load_store(settings=None) -> JurisdictionPolicyStore:
    """Build a policy store from the dataset named by the engine settings."""
    from autotax.settings import EngineSettings

    settings = settings or EngineSettings()
    return JurisdictionPolicyStore.from_yaml(settings.policy_path)
