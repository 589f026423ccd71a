"""Classification thresholds and the configuration read interface.

Thresholds are owned outside the engine. A pass reads every threshold it
needs exactly once, at pass start, through :class:`ConfigProvider` and
freezes them into :class:`ClassificationThresholds`. Classifiers only ever see
the frozen struct, so a configuration change made mid-pass cannot leak into
half of a pass; the next pass picks it up.

There is no silent defaulting: a provider raises :class:`ConfigMissing` for
any key it does not define. :data:`DEFAULT_CONFIG` is a plain mapping that
callers may pass to :class:`StaticConfigProvider` explicitly.
"""

from __future__ import annotations

from datetime import timedelta
from decimal import Decimal, InvalidOperation
from typing import Mapping, Protocol, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator

from retail_metrics.foundation.errors import ConfigMissing

ConfigValue = Union[int, float, Decimal, timedelta]

CLV_TIER_PLATINUM = "clv_tier_platinum"
CLV_TIER_GOLD = "clv_tier_gold"
CLV_TIER_SILVER = "clv_tier_silver"
CLV_TIER_BRONZE = "clv_tier_bronze"
RECENCY_ACTIVE_DAYS = "rfm_recency_active_days"
RECENCY_AT_RISK_DAYS = "rfm_recency_at_risk_days"
RECENCY_CHURNING_DAYS = "rfm_recency_churning_days"
ABC_CLASS_A_CUTOFF = "abc_class_a_cutoff"
ABC_CLASS_B_CUTOFF = "abc_class_b_cutoff"
CHURN_AT_RISK_FLOOR_DAYS = "churn_at_risk_floor_days"

REQUIRED_KEYS = (
    CLV_TIER_PLATINUM,
    CLV_TIER_GOLD,
    CLV_TIER_SILVER,
    CLV_TIER_BRONZE,
    RECENCY_ACTIVE_DAYS,
    RECENCY_AT_RISK_DAYS,
    RECENCY_CHURNING_DAYS,
    ABC_CLASS_A_CUTOFF,
    ABC_CLASS_B_CUTOFF,
    CHURN_AT_RISK_FLOOR_DAYS,
)

#: Packaged thresholds for the retail dataset the engine was built against.
DEFAULT_CONFIG: Mapping[str, ConfigValue] = {
    CLV_TIER_PLATINUM: 50000,
    CLV_TIER_GOLD: 25000,
    CLV_TIER_SILVER: 10000,
    CLV_TIER_BRONZE: 5000,
    RECENCY_ACTIVE_DAYS: 30,
    RECENCY_AT_RISK_DAYS: 90,
    RECENCY_CHURNING_DAYS: 180,
    ABC_CLASS_A_CUTOFF: Decimal("0.80"),
    ABC_CLASS_B_CUTOFF: Decimal("0.95"),
    CHURN_AT_RISK_FLOOR_DAYS: 30,
}


class ConfigProvider(Protocol):
    """Read-only lookup of named thresholds."""

    def get(self, name: str) -> ConfigValue:
        """Return the value for ``name`` or raise :class:`ConfigMissing`."""
        ...


class StaticConfigProvider:
    """Configuration provider backed by an in-memory mapping.

    The mapping is copied at construction; later mutation of the caller's
    dictionary does not affect the provider.
    """

    def __init__(self, values: Mapping[str, ConfigValue]) -> None:
        self._values = dict(values)

    def get(self, name: str) -> ConfigValue:
        try:
            return self._values[name]
        except KeyError:
            raise ConfigMissing(name) from None

    def with_overrides(self, overrides: Mapping[str, ConfigValue]) -> StaticConfigProvider:
        """Return a new provider with ``overrides`` applied on top."""
        return StaticConfigProvider({**self._values, **overrides})


def _as_days(value: ConfigValue) -> int:
    if isinstance(value, timedelta):
        if value != timedelta(days=value.days):
            raise ValueError(f"Expected a whole number of days, got {value!r}")
        return value.days
    try:
        days = Decimal(str(value))
    except InvalidOperation:
        raise ValueError(f"Expected a whole number of days, got {value!r}") from None
    if not days.is_finite() or days != days.to_integral_value():
        raise ValueError(f"Expected a whole number of days, got {value!r}")
    return int(days)


def _as_decimal(value: ConfigValue) -> Decimal:
    if isinstance(value, timedelta):
        raise TypeError(f"Expected a number, got duration {value!r}")
    return Decimal(str(value))


class ClassificationThresholds(BaseModel):
    """Immutable per-pass view of every business threshold.

    Examples
    --------
    >>> thresholds = ClassificationThresholds.from_provider(
    ...     StaticConfigProvider(DEFAULT_CONFIG)
    ... )
    >>> thresholds.recency_active_days
    30
    """

    model_config = ConfigDict(frozen=True)

    clv_tier_platinum: Decimal = Field(ge=0)
    clv_tier_gold: Decimal = Field(ge=0)
    clv_tier_silver: Decimal = Field(ge=0)
    clv_tier_bronze: Decimal = Field(ge=0)
    recency_active_days: int = Field(ge=0)
    recency_at_risk_days: int = Field(ge=0)
    recency_churning_days: int = Field(ge=0)
    abc_class_a_cutoff: Decimal = Field(gt=0, le=1)
    abc_class_b_cutoff: Decimal = Field(gt=0, le=1)
    churn_at_risk_floor_days: int = Field(ge=0)

    @model_validator(mode="after")
    def _check_ordering(self) -> ClassificationThresholds:
        ladder = [
            self.clv_tier_platinum,
            self.clv_tier_gold,
            self.clv_tier_silver,
            self.clv_tier_bronze,
        ]
        if ladder != sorted(ladder, reverse=True):
            raise ValueError(
                "CLV tier thresholds must satisfy platinum >= gold >= silver >= bronze, "
                f"got {[str(v) for v in ladder]}"
            )
        windows = [
            self.recency_active_days,
            self.recency_at_risk_days,
            self.recency_churning_days,
        ]
        if windows != sorted(windows):
            raise ValueError(
                "Recency windows must satisfy active <= at_risk <= churning, "
                f"got {windows}"
            )
        if self.abc_class_a_cutoff > self.abc_class_b_cutoff:
            raise ValueError(
                f"ABC cutoffs must satisfy A <= B, got "
                f"{self.abc_class_a_cutoff} > {self.abc_class_b_cutoff}"
            )
        return self

    @classmethod
    def from_provider(cls, provider: ConfigProvider) -> ClassificationThresholds:
        """Read every required key once and validate the result.

        Raises
        ------
        ConfigMissing
            If any required key is undefined.
        pydantic.ValidationError
            If the values break a range or ordering constraint.
        """
        return cls(
            clv_tier_platinum=_as_decimal(provider.get(CLV_TIER_PLATINUM)),
            clv_tier_gold=_as_decimal(provider.get(CLV_TIER_GOLD)),
            clv_tier_silver=_as_decimal(provider.get(CLV_TIER_SILVER)),
            clv_tier_bronze=_as_decimal(provider.get(CLV_TIER_BRONZE)),
            recency_active_days=_as_days(provider.get(RECENCY_ACTIVE_DAYS)),
            recency_at_risk_days=_as_days(provider.get(RECENCY_AT_RISK_DAYS)),
            recency_churning_days=_as_days(provider.get(RECENCY_CHURNING_DAYS)),
            abc_class_a_cutoff=_as_decimal(provider.get(ABC_CLASS_A_CUTOFF)),
            abc_class_b_cutoff=_as_decimal(provider.get(ABC_CLASS_B_CUTOFF)),
            churn_at_risk_floor_days=_as_days(provider.get(CHURN_AT_RISK_FLOOR_DAYS)),
        )


def default_thresholds() -> ClassificationThresholds:
    """Thresholds built from :data:`DEFAULT_CONFIG`."""
    return ClassificationThresholds.from_provider(StaticConfigProvider(DEFAULT_CONFIG))
