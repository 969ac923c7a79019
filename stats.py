"""Platform-wide rollups: totals, top countries, monthly growth, regions."""
import datetime
import math
from collections import Counter, defaultdict
from typing import Iterable, Optional

import schemas
from errors import ValidationError
from models import utcnow

RECENT_DAYS = 30
GROWTH_MONTHS = 6
TOP_COUNTRY_LIMIT = 5
REGION_LIMIT = 50
REGION_LEVELS = ("country", "state", "city")


def verification_rate(verified, total):
    """Percentage of verified plantings, rounded half up. 0 when there are none."""
    if not total:
        return 0
    return int(math.floor(verified / total * 100 + 0.5))


def month_key(moment):
    return f"{moment.year:04d}-{moment.month:02d}"


def monthly_growth(plantings: Iterable, now: datetime.datetime):
    """Plantings per ``YYYY-MM`` over the trailing six months, oldest first.

    Months without plantings are left out rather than reported as zero.
    """
    since = now - datetime.timedelta(days=GROWTH_MONTHS * 30)
    counts = Counter(month_key(p.created_at) for p in plantings if p.created_at >= since)
    return [schemas.MonthCount(month=month, count=counts[month]) for month in sorted(counts)]


def top_countries(plantings: Iterable, limit=TOP_COUNTRY_LIMIT):
    counts = Counter(p.country for p in plantings if p.is_verified and p.country)
    ranked = sorted(counts.items(), key=lambda item: (-item[1], item[0]))
    return [schemas.CountryCount(country=country, count=count) for country, count in ranked[:limit]]


def compute_stats(
    total_users: int,
    plantings: Iterable,
    now: Optional[datetime.datetime] = None,
    active_planters: Optional[int] = None,
) -> schemas.PlatformStats:
    if now is None:
        now = utcnow()
    active = [p for p in plantings if p.is_active]
    verified = [p for p in active if p.is_verified]
    recent_since = now - datetime.timedelta(days=RECENT_DAYS)

    totals = schemas.StatsTotals(
        total_users=total_users,
        total_trees=len(active),
        verified_trees=len(verified),
        recent_trees=sum(1 for p in active if p.created_at >= recent_since),
        verification_rate=verification_rate(len(verified), len(active)),
        active_planters=active_planters,
    )
    return schemas.PlatformStats(
        totals=totals,
        top_countries=top_countries(verified),
        monthly_growth=monthly_growth(active, now),
    )


def regional_rollup(plantings: Iterable, level: str = "country") -> schemas.Regions:
    """Group verified plantings by country, state or city.

    Plantings without a value at ``level`` are dropped. Largest regions first,
    at most fifty.
    """
    if level not in REGION_LEVELS:
        raise ValidationError(f"level must be one of {', '.join(REGION_LEVELS)}", field="level")

    groups = defaultdict(list)
    for planting in plantings:
        if not (planting.is_active and planting.is_verified):
            continue
        key = getattr(planting, level)
        if key:
            groups[key].append(planting)

    regions = []
    for key, members in groups.items():
        located = [p for p in members if p.latitude is not None and p.longitude is not None]
        regions.append(schemas.Region(
            region=key,
            tree_count=len(members),
            planter_count=len({p.planted_by for p in members}),
            type_count=len({p.tree_type for p in members}),
            recent_planting=max(p.planting_date for p in members),
            center_lat=math.fsum(p.latitude for p in located) / len(located) if located else 0.0,
            center_lng=math.fsum(p.longitude for p in located) / len(located) if located else 0.0,
        ))
    regions.sort(key=lambda r: (-r.tree_count, r.region))
    return schemas.Regions(regions=regions[:REGION_LIMIT], level=level)
