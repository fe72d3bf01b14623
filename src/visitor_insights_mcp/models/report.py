"""Report query and row models shared by the engine and the query adapters."""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from visitor_insights_mcp.core.dates import validate_date_range


class MatchType(str, Enum):
    """String match types supported by dimension filters."""

    EXACT = "EXACT"
    CONTAINS = "CONTAINS"
    BEGINS_WITH = "BEGINS_WITH"
    FULL_REGEXP = "FULL_REGEXP"
    IN_LIST = "IN_LIST"


class DateRange(BaseModel):
    """Inclusive date range in analytics source notation."""

    model_config = ConfigDict(frozen=True)

    start_date: str = Field(default="30daysAgo", description="Start date or token")
    end_date: str = Field(default="today", description="End date or token")

    @model_validator(mode="after")
    def check_order(self) -> "DateRange":
        validate_date_range(self.start_date, self.end_date)
        return self


class FilterClause(BaseModel):
    """A single dimension filter predicate.

    Every clause counts once against the source's per-query term cap,
    including ``IN_LIST`` clauses.
    """

    model_config = ConfigDict(frozen=True)

    field: str
    match_type: MatchType = MatchType.EXACT
    value: str = ""
    values: tuple[str, ...] = ()
    case_sensitive: bool = False

    @model_validator(mode="after")
    def check_operands(self) -> "FilterClause":
        if self.match_type == MatchType.IN_LIST and not self.values:
            raise ValueError("IN_LIST filter requires at least one value")
        return self


class OrderSpec(BaseModel):
    """Ordering on a dimension or metric."""

    model_config = ConfigDict(frozen=True)

    field: str
    desc: bool = False
    is_metric: bool = False


class ReportQuery(BaseModel):
    """A request for the dimensional analytics source."""

    model_config = ConfigDict(frozen=True)

    date_range: DateRange
    dimensions: tuple[str, ...] = ()
    metrics: tuple[str, ...]
    filters: tuple[FilterClause, ...] = ()
    order_by: tuple[OrderSpec, ...] = ()
    limit: int = Field(default=10000, ge=1, le=250000)
    label: str = Field(default="report", description="Name used in logs and errors")

    @field_validator("metrics")
    @classmethod
    def require_metrics(cls, v: tuple[str, ...]) -> tuple[str, ...]:
        if not v:
            raise ValueError("At least one metric is required")
        return v

    @property
    def term_count(self) -> int:
        """Dimensions plus filter predicates, as counted by the upstream cap."""
        return len(self.dimensions) + len(self.filters)


class ReportRow(BaseModel):
    """One row returned by the analytics source.

    Values are positionally aligned with the ``dimensions`` and ``metrics``
    of the query that produced the row. Metric values are kept as the raw
    strings the source returns.
    """

    model_config = ConfigDict(frozen=True)

    dimension_values: tuple[str, ...] = ()
    metric_values: tuple[str, ...] = ()
