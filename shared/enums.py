from enum import Enum


class Action(str, Enum):
    VIEW = "view"
    CLICKED = "clicked"
    REDIRECT = "redirect"
    MAP_OPEN = "map_open"
    SHARE = "share"
    FAVORITE = "favorite"
    NOT_INTERESTED = "not_interested"


# Gamification action types reported by the user app, mapped onto analytics actions.
ACTION_ALIASES = {
    "save-to-favorites": Action.FAVORITE,
    "go-to-website": Action.REDIRECT,
    "view-address": Action.MAP_OPEN,
}


class Dimension(str, Enum):
    """Demographic, device and location columns an event can be grouped by."""

    AGE = "age_group"
    GENDER = "gender"
    CITY = "city"
    REGION = "region"
    DEVICE = "device_type"

    @property
    def report_key(self) -> str:
        return _REPORT_KEYS[self]


_REPORT_KEYS = {
    Dimension.AGE: "age",
    Dimension.GENDER: "gender",
    Dimension.CITY: "city",
    Dimension.REGION: "region",
    Dimension.DEVICE: "device",
}


class Granularity(str, Enum):
    DAY = "day"
    WEEK = "week"
    MONTH = "month"


class ScopeKind(str, Enum):
    DISCOUNT = "discounts"
    COMPANY = "companies"
