"""
Query filter builder.

Turns raw request parameters (strings, mostly) into a ``PlantingFilter``:
a normalized predicate that the store translates into SQL and that can also
be evaluated in memory with ``PlantingFilter.matches``. Every filter implies
``is_active = True``; soft-deleted plantings never match anything.
"""
import datetime
import math
from dataclasses import dataclass
from typing import Optional

from errors import InvalidParameter, ValidationError
from models import utcnow

TIMEFRAMES = ("all", "month", "week")
SEARCH_FIELDS = ("tree_type", "species", "description", "address")
LOCATION_FIELDS = ("city", "state", "country")


@dataclass(frozen=True)
class Bounds:
    min_lat: float
    max_lat: float
    min_lng: float
    max_lng: float

    def contains(self, lat, lng):
        if lat is None or lng is None:
            return False
        return self.min_lat <= lat <= self.max_lat and self.min_lng <= lng <= self.max_lng


@dataclass(frozen=True)
class PlantingFilter:
    verified: Optional[bool] = None
    created_after: Optional[datetime.datetime] = None
    location: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    country: Optional[str] = None
    bounds: Optional[Bounds] = None
    tree_type: Optional[str] = None
    planted_by: Optional[int] = None
    planted_from: Optional[datetime.datetime] = None
    planted_to: Optional[datetime.datetime] = None
    search: Optional[str] = None

    def matches(self, planting) -> bool:
        if not planting.is_active:
            return False
        if self.verified is not None and bool(planting.is_verified) != self.verified:
            return False
        if self.created_after is not None and planting.created_at < self.created_after:
            return False
        if self.location and not any(
            _icontains(getattr(planting, name), self.location) for name in LOCATION_FIELDS
        ):
            return False
        for name in LOCATION_FIELDS:
            term = getattr(self, name)
            if term and not _icontains(getattr(planting, name), term):
                return False
        if self.bounds is not None and not self.bounds.contains(planting.latitude, planting.longitude):
            return False
        if self.tree_type and not _icontains(planting.tree_type, self.tree_type):
            return False
        if self.planted_by is not None and planting.planted_by != self.planted_by:
            return False
        if self.planted_from is not None and planting.planting_date < self.planted_from:
            return False
        if self.planted_to is not None and planting.planting_date > self.planted_to:
            return False
        if self.search and not any(
            _icontains(getattr(planting, name), self.search) for name in SEARCH_FIELDS
        ):
            return False
        return True


def _icontains(value, term):
    return value is not None and term.lower() in value.lower()


def _clean(value):
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def parse_positive_int(value, name, default, maximum=None):
    """Parse a numeric query parameter and clamp it to [1, maximum]."""
    if value is None or (isinstance(value, str) and not value.strip()):
        number = default
    elif isinstance(value, bool):
        raise ValidationError(f"{name} must be an integer", field=name)
    else:
        try:
            number = int(str(value).strip())
        except ValueError:
            raise ValidationError(f"{name} must be an integer", field=name)
    number = max(1, number)
    if maximum is not None:
        number = min(number, maximum)
    return number


def parse_bool(value, name):
    if value is None or isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in ("true", "1", "yes"):
        return True
    if text in ("false", "0", "no"):
        return False
    if not text:
        return None
    raise InvalidParameter(f"{name} must be true or false", field=name)


def parse_bounds(value):
    """Parse ``"lat1,lng1,lat2,lng2"``; the two corners may come in any order."""
    value = _clean(value)
    if value is None:
        return None
    parts = value.split(",")
    if len(parts) != 4:
        raise InvalidParameter("bounds must be 'lat1,lng1,lat2,lng2'", field="bounds")
    try:
        lat1, lng1, lat2, lng2 = (float(p) for p in parts)
    except ValueError:
        raise InvalidParameter("bounds must contain four numbers", field="bounds")
    if not all(math.isfinite(n) for n in (lat1, lng1, lat2, lng2)):
        raise InvalidParameter("bounds must contain four finite numbers", field="bounds")
    return Bounds(
        min_lat=min(lat1, lat2),
        max_lat=max(lat1, lat2),
        min_lng=min(lng1, lng2),
        max_lng=max(lng1, lng2),
    )


def parse_date(value, name, end_of_day=False):
    """Parse an ISO date or datetime into naive UTC.

    A bare date used as an upper bound covers the whole day.
    """
    value = _clean(value)
    if value is None:
        return None
    try:
        if "T" in value or " " in value:
            parsed = datetime.datetime.fromisoformat(value.replace("Z", "+00:00"))
        else:
            day = datetime.date.fromisoformat(value)
            parsed = datetime.datetime.combine(day, datetime.time.max if end_of_day else datetime.time.min)
    except ValueError:
        raise InvalidParameter(f"{name} is not a valid date", field=name)
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(datetime.timezone.utc).replace(tzinfo=None)
    return parsed


def timeframe_start(timeframe, now):
    """Lower bound on ``created_at`` for a leaderboard timeframe."""
    timeframe = _clean(timeframe) or "all"
    if timeframe not in TIMEFRAMES:
        raise InvalidParameter(f"timeframe must be one of {', '.join(TIMEFRAMES)}", field="timeframe")
    if timeframe == "month":
        return now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    if timeframe == "week":
        return now - datetime.timedelta(days=7)
    return None


def build_filter(
    timeframe=None,
    location=None,
    city=None,
    state=None,
    country=None,
    bounds=None,
    tree_type=None,
    verified=None,
    planted_by=None,
    date_from=None,
    date_to=None,
    search=None,
    now=None,
) -> PlantingFilter:
    if now is None:
        now = utcnow()

    planted_from = parse_date(date_from, "dateFrom")
    planted_to = parse_date(date_to, "dateTo", end_of_day=True)
    if planted_from and planted_to and planted_from > planted_to:
        raise InvalidParameter("dateFrom must not be after dateTo", field="dateFrom")

    if not isinstance(planted_by, int):
        planted_by = _clean(planted_by)
    if planted_by is not None and not isinstance(planted_by, int):
        try:
            planted_by = int(planted_by)
        except ValueError:
            raise InvalidParameter("plantedBy must be a user id", field="plantedBy")

    return PlantingFilter(
        verified=parse_bool(verified, "verified"),
        created_after=timeframe_start(timeframe, now),
        location=_clean(location),
        city=_clean(city),
        state=_clean(state),
        country=_clean(country),
        bounds=parse_bounds(bounds),
        tree_type=_clean(tree_type),
        planted_by=planted_by,
        planted_from=planted_from,
        planted_to=planted_to,
        search=_clean(search),
    )
