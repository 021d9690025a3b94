"""
Postal-code local rate dataset and resolver.

Each record carries the county, city and special-district rates for a
postal code plus the pre-combined local rate. Records are date ranged;
at most one record is active per postal code on any given day.

Resolution never fails:
- exact:   an active record for the postal code in the deal's state
- average: the jurisdiction's state-level average local rate
- none:    the jurisdiction has no local component
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum
from pathlib import Path
from typing import Optional, Union

import pandas as pd

from autotax.exceptions import RuleConfigurationError
from autotax.money import ZERO, to_decimal
from autotax.policies import JurisdictionPolicy

logger = logging.getLogger(__name__)

CSV_COLUMNS = [
    "postal_code",
    "state_code",
    "county",
    "city",
    "county_rate",
    "city_rate",
    "special_districts",
    "combined_rate",
    "effective_date",
    "end_date",
]


class RateSource(Enum):
    EXACT = "exact"
    AVERAGE = "average"
    NONE = "none"


@dataclass(frozen=True)
class SpecialDistrictRate:
    name: str
    rate: Decimal


@dataclass(frozen=True)
class LocalRateRecord:
    """Local rates for one postal code over one effective-date range."""

    postal_code: str
    state_code: str
    county: str
    city: str
    county_rate: Decimal
    city_rate: Decimal
    special_districts: tuple[SpecialDistrictRate, ...]
    combined_rate: Decimal
    effective_date: date
    end_date: Optional[date] = None  # inclusive; None means open-ended

    @property
    def component_total(self) -> Decimal:
        return (
            self.county_rate
            + self.city_rate
            + sum((d.rate for d in self.special_districts), ZERO)
        )

    def is_active(self, as_of: date) -> bool:
        if as_of < self.effective_date:
            return False
        return self.end_date is None or as_of <= self.end_date

    def overlaps(self, other: "LocalRateRecord") -> bool:
        self_end = self.end_date or date.max
        other_end = other.end_date or date.max
        return self.effective_date <= other_end and other.effective_date <= self_end


@dataclass(frozen=True)
class LocalRateResolution:
    """Outcome of a local rate lookup, including the path taken."""

    rate: Decimal
    source: RateSource
    postal_code: Optional[str] = None
    record: Optional[LocalRateRecord] = None
    notes: tuple[str, ...] = field(default_factory=tuple)

    @property
    def county_rate(self) -> Decimal:
        return self.record.county_rate if self.record else ZERO

    @property
    def city_rate(self) -> Decimal:
        return self.record.city_rate if self.record else ZERO

    @property
    def district_rates(self) -> dict[str, Decimal]:
        if self.record is None:
            return {}
        return {d.name: d.rate for d in self.record.special_districts}

    @property
    def is_approximate(self) -> bool:
        return self.source == RateSource.AVERAGE


def normalize_postal_code(postal_code: Optional[str]) -> Optional[str]:
    """Reduce a ZIP or ZIP+4 to its five-digit form."""
    if postal_code is None:
        return None
    digits = "".join(ch for ch in str(postal_code) if ch.isdigit())
    if len(digits) < 5:
        return None
    return digits[:5]


def parse_special_districts(raw: str) -> tuple[SpecialDistrictRate, ...]:
    """Parse ``NAME=rate;NAME=rate`` into district rates."""
    districts = []
    for chunk in (raw or "").split(";"):
        chunk = chunk.strip()
        if not chunk:
            continue
        name, sep, rate = chunk.partition("=")
        if not sep:
            raise ValueError(f"Malformed special district entry: {chunk!r}")
        districts.append(SpecialDistrictRate(name.strip(), to_decimal(rate)))
    return tuple(districts)


class LocalRateTable:
    """Immutable set of local rate records indexed by postal code."""

    def __init__(self, records: list[LocalRateRecord], label: str = "") -> None:
        by_postal: dict[str, list[LocalRateRecord]] = {}
        for record in records:
            if record.combined_rate != record.component_total:
                raise RuleConfigurationError(
                    f"Local rate for {record.postal_code}: combined rate "
                    f"{record.combined_rate} does not equal components "
                    f"{record.component_total}",
                    details={"postal_code": record.postal_code},
                )
            by_postal.setdefault(record.postal_code, []).append(record)

        for postal_code, items in by_postal.items():
            items.sort(key=lambda r: r.effective_date)
            for earlier, later in zip(items, items[1:]):
                if earlier.overlaps(later):
                    raise RuleConfigurationError(
                        f"Local rate for {postal_code}: overlapping effective "
                        f"ranges starting {earlier.effective_date} and "
                        f"{later.effective_date}",
                        details={"postal_code": postal_code},
                    )

        self.label = label
        self._records = {k: tuple(v) for k, v in by_postal.items()}

    def __len__(self) -> int:
        return sum(len(v) for v in self._records.values())

    def postal_codes(self) -> list[str]:
        return sorted(self._records)

    @classmethod
    def empty(cls) -> "LocalRateTable":
        return cls([], label="empty")

    @classmethod
    def from_dataframe(cls, df: pd.DataFrame, label: str = "") -> "LocalRateTable":
        missing = [c for c in CSV_COLUMNS if c not in df.columns]
        if missing:
            raise RuleConfigurationError(
                f"Local rate dataset missing columns: {', '.join(missing)}"
            )

        records = []
        for i, row in enumerate(df.fillna("").to_dict(orient="records")):
            try:
                postal_code = normalize_postal_code(row["postal_code"])
                if postal_code is None:
                    raise ValueError(f"invalid postal code {row['postal_code']!r}")
                records.append(
                    LocalRateRecord(
                        postal_code=postal_code,
                        state_code=str(row["state_code"]).strip().upper(),
                        county=str(row["county"]).strip(),
                        city=str(row["city"]).strip(),
                        county_rate=to_decimal(row["county_rate"] or "0"),
                        city_rate=to_decimal(row["city_rate"] or "0"),
                        special_districts=parse_special_districts(
                            row["special_districts"]
                        ),
                        combined_rate=to_decimal(row["combined_rate"]),
                        effective_date=date.fromisoformat(
                            str(row["effective_date"]).strip()
                        ),
                        end_date=(
                            date.fromisoformat(str(row["end_date"]).strip())
                            if str(row["end_date"]).strip()
                            else None
                        ),
                    )
                )
            except ValueError as e:
                raise RuleConfigurationError(
                    f"Local rate dataset row {i + 1}: {e}",
                    details={"row": i + 1},
                ) from e
        return cls(records, label=label)

    @classmethod
    def from_csv(cls, path: Union[str, Path]) -> "LocalRateTable":
        df = pd.read_csv(path, dtype=str, keep_default_na=False)
        table = cls.from_dataframe(df, label=Path(path).stem)
        logger.info(
            "Loaded %d local rate records (%d postal codes) from %s",
            len(table),
            len(table.postal_codes()),
            path,
        )
        return table

    @classmethod
    def bundled(cls) -> "LocalRateTable":
        from autotax.settings import DEFAULT_LOCAL_RATES_PATH

        return cls.from_csv(DEFAULT_LOCAL_RATES_PATH)

    def find(
        self, postal_code: Optional[str], as_of: Optional[date] = None
    ) -> Optional[LocalRateRecord]:
        """Active record for a postal code, or None."""
        code = normalize_postal_code(postal_code)
        if code is None:
            return None
        as_of = as_of or date.today()
        for record in self._records.get(code, ()):
            if record.is_active(as_of):
                return record
        return None

    def resolve(
        self,
        postal_code: Optional[str],
        policy: JurisdictionPolicy,
        as_of: Optional[date] = None,
    ) -> LocalRateResolution:
        """Local rate for a postal code within a jurisdiction."""
        code = normalize_postal_code(postal_code)

        if not policy.has_local_tax:
            return LocalRateResolution(
                rate=ZERO, source=RateSource.NONE, postal_code=code
            )

        record = self.find(code, as_of)
        if record is not None and record.state_code == policy.code:
            return LocalRateResolution(
                rate=record.combined_rate,
                source=RateSource.EXACT,
                postal_code=code,
                record=record,
            )

        if record is not None:
            note = (
                f"Postal code {code} belongs to {record.state_code}, not "
                f"{policy.code}; used {policy.code} average local rate"
            )
        elif code is None:
            note = f"No postal code given; used {policy.code} average local rate"
        else:
            note = (
                f"No local rate on file for {code}; used {policy.code} "
                "average local rate"
            )
        logger.warning(note)
        return LocalRateResolution(
            rate=policy.average_local_rate,
            source=RateSource.AVERAGE,
            postal_code=code,
            notes=(note,),
        )


def load_local_rates(settings=None) -> LocalRateTable:
    """Build the local rate table named by the engine settings."""
    from autotax.settings import EngineSettings

    settings = settings or EngineSettings()
    return LocalRateTable.from_csv(settings.local_rates_path)
