"""
Leaderboard ranking.

Plantings are grouped by owner, joined to their user (inactive users are
dropped), and put in a strict total order: tree count descending, most recent
contribution descending, user id ascending. Rank is the 1-based position in
that order, so equal counts still get distinct consecutive ranks.

The full order is computed once per request; the page, the podium and the
requesting user's own rank are all slices of it.
"""
import datetime
import logging
import math
from dataclasses import dataclass, field
from typing import Callable, Iterable, List, Optional

import schemas
from errors import ValidationError

logger = logging.getLogger("greenpulse.ranking")

EPOCH = datetime.datetime(1970, 1, 1)
PODIUM_SIZE = 3


@dataclass
class Standing:
    user_id: int
    tree_count: int = 0
    recent_tree: Optional[datetime.datetime] = None
    locations: List[str] = field(default_factory=list)
    user: object = None

    def sort_key(self):
        recency = (self.recent_tree - EPOCH).total_seconds() if self.recent_tree else float("-inf")
        return (-self.tree_count, -recency, self.user_id)


def rank_users(plantings: Iterable, find_user: Callable) -> List[Standing]:
    """Group ``plantings`` by owner and return the full ranked order."""
    groups = {}
    for planting in plantings:
        if not planting.is_active:
            continue
        standing = groups.get(planting.planted_by)
        if standing is None:
            standing = groups[planting.planted_by] = Standing(user_id=planting.planted_by)
        standing.tree_count += 1
        if standing.recent_tree is None or planting.created_at > standing.recent_tree:
            standing.recent_tree = planting.created_at
        if planting.city and planting.city not in standing.locations:
            standing.locations.append(planting.city)

    standings = []
    for standing in groups.values():
        user = find_user(standing.user_id)
        if user is None or not user.is_active:
            continue
        standing.user = user
        standing.locations.sort()
        standings.append(standing)

    standings.sort(key=Standing.sort_key)
    return standings


def _entry(rank, standing):
    user = standing.user
    return schemas.LeaderboardEntry(
        rank=rank,
        user_id=standing.user_id,
        name=user.name,
        profile_picture=user.profile_picture,
        tree_count=standing.tree_count,
        recent_tree=standing.recent_tree,
        locations=standing.locations,
        total_trees=user.trees_planted or 0,
    )


def build_leaderboard(
    plantings: Iterable,
    find_user: Callable,
    page: int = 1,
    limit: int = 50,
    current_user_id: Optional[int] = None,
) -> schemas.Leaderboard:
    """Rank the (already filtered, verified-only) plantings and paginate.

    Args:
        plantings: active, verified plantings matching the request filters.
        find_user: user lookup by id, returning None when absent.
        page: 1-based page number.
        limit: page size.
        current_user_id: when given, their rank in the full order is reported.
    """
    if page < 1 or limit < 1:
        raise ValidationError("page and limit must be positive integers", field="page" if page < 1 else "limit")

    standings = rank_users(plantings, find_user)
    total = len(standings)
    total_pages = math.ceil(total / limit)

    skip = (page - 1) * limit
    entries = [_entry(skip + i + 1, s) for i, s in enumerate(standings[skip:skip + limit])]
    top_three = [_entry(i + 1, s) for i, s in enumerate(standings[:PODIUM_SIZE])]

    current_user_rank = None
    if current_user_id is not None:
        for i, standing in enumerate(standings):
            if standing.user_id == current_user_id:
                current_user_rank = schemas.CurrentUserRank(rank=i + 1, tree_count=standing.tree_count)
                break

    logger.debug("Leaderboard ranked %d users, page %d/%d", total, page, total_pages)

    return schemas.Leaderboard(
        entries=entries,
        top_three=top_three,
        current_user_rank=current_user_rank,
        pagination=schemas.LeaderboardPagination(
            current_page=page,
            total_pages=total_pages,
            total_users=total,
            has_next_page=page < total_pages,
            has_prev_page=page > 1,
        ),
    )
