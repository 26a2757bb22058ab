from pydantic import BaseModel, Field, TypeAdapter, field_validator
from datetime import datetime, date, timezone
from uuid import UUID, uuid4
from typing import List, Optional, Union

from backend.app.filters import ActionFilters
from shared.enums import Action, ACTION_ALIASES, Granularity

_DATE = TypeAdapter(date)
_DATETIME = TypeAdapter(datetime)


class ActionCreate(BaseModel):
    event_id: UUID = Field(default_factory=uuid4)
    discount_id: int = Field(..., ge=1)
    action: Action
    occurred_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    user_id: Optional[int] = None
    device_type: Optional[str] = Field(None, max_length=50)
    city: Optional[str] = Field(None, max_length=100)
    region: Optional[str] = Field(None, max_length=100)
    age_group: Optional[str] = Field(None, max_length=20)
    gender: Optional[str] = Field(None, max_length=20)

    @field_validator("action", mode="before")
    @classmethod
    def resolve_alias(cls, value):
        if isinstance(value, str):
            return ACTION_ALIASES.get(value, value)
        return value

    @field_validator("device_type", "city", "region", "age_group", "gender", mode="before")
    @classmethod
    def blank_to_none(cls, value):
        if isinstance(value, str) and not value.strip():
            return None
        return value


class ActionsIngestRequest(BaseModel):
    actions: List[ActionCreate]


class ActionsIngestResponse(BaseModel):
    status: str
    message: str
    actions_count: int


class AnalyticsQueryParams(BaseModel):
    from_date: Optional[Union[date, datetime]] = Field(None, alias="from", description="Window start, inclusive")
    to_date: Optional[Union[date, datetime]] = Field(None, alias="to", description="Window end, inclusive")
    device_type: Optional[str] = None
    city: Optional[str] = None
    region: Optional[str] = None
    age_group: Optional[str] = None
    gender: Optional[str] = None

    class Config:
        populate_by_name = True

    @field_validator("from_date", "to_date", mode="before")
    @classmethod
    def keep_time_part(cls, value):
        # A bare YYYY-MM-DD stays a date (whole-day bound); anything longer is a datetime.
        if isinstance(value, str) and value.strip():
            value = value.strip()
            if len(value) > 10:
                return _DATETIME.validate_python(value)
            return _DATE.validate_python(value)
        return value

    def to_filters(self) -> ActionFilters:
        return ActionFilters(
            from_=self.from_date,
            to=self.to_date,
            device_type=self.device_type,
            city=self.city,
            region=self.region,
            age_group=self.age_group,
            gender=self.gender,
        )


class TimeSeriesQueryParams(AnalyticsQueryParams):
    granularity: Granularity = Field(Granularity.DAY, description="Bucket width: day, week or month")


class TopQueryParams(AnalyticsQueryParams):
    action: Action = Field(Action.VIEW, description="Action to rank discounts by")
    limit: int = Field(10, description="Number of discounts, up to TOP_LIMIT_MAX")
    company_id: Optional[int] = Field(None, description="Restrict to one company's discounts")


class ActionCount(BaseModel):
    action: str
    total: int


class SummaryResponse(BaseModel):
    by_action: List[ActionCount]
    ctr: Optional[float]


class DimensionBucket(BaseModel):
    k: str
    total: int


class DimensionResponse(BaseModel):
    data: List[DimensionBucket]
    dimension: str


class DemographicsResponse(BaseModel):
    age: List[DimensionBucket]
    gender: List[DimensionBucket]
    city: List[DimensionBucket]
    region: List[DimensionBucket]
    device: List[DimensionBucket]


class TimeBucket(BaseModel):
    bucket: str
    total: int


class ActionTimeBucket(BaseModel):
    bucket: str
    action: str
    total: int


class TimeSeriesResponse(BaseModel):
    data: List[TimeBucket]
    granularity: str


class TimeSeriesByActionResponse(BaseModel):
    data: List[ActionTimeBucket]
    granularity: str


class HourBucket(BaseModel):
    h: int
    total: int


class WeekdayBucket(BaseModel):
    dow: int
    total: int


class ActiveTimeResponse(BaseModel):
    by_hour: List[HourBucket]
    by_dow: List[WeekdayBucket]


class RetentionResponse(BaseModel):
    unique_users: int
    returning_users: int
    retention_rate: Optional[float]


class TotalsResponse(BaseModel):
    total_views: int
    total_clicks: int
    total_redirects: int
    total_map_open: int
    total_shares: int
    total_favorites: int
    ctr: Optional[float]


class ReportResponse(BaseModel):
    summary: SummaryResponse
    demographics: DemographicsResponse
    timeseries: List[TimeBucket]
    timeseries_by_action: List[ActionTimeBucket]
    active_time: ActiveTimeResponse
    retention: RetentionResponse


class TopItem(BaseModel):
    discount_id: int
    total: int


class TopResponse(BaseModel):
    data: List[TopItem]
    action: str
