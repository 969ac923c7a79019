"""
Grid clustering for the tree map.

Points are bucketed on a fixed-origin grid: a coordinate falls in cell
``round(coord / cell_size)``, independently for latitude and longitude. Two
plantings share a cluster iff both indices match. A cluster is placed at the
mean of its members, not at the cell center.

At zoom >= 12 every planting is returned on its own.
"""
import logging
import math
from collections import defaultdict
from typing import Iterable

import schemas
from errors import ValidationError

logger = logging.getLogger("greenpulse.clustering")

CLUSTER_ZOOM_THRESHOLD = 12
COARSE_ZOOM_THRESHOLD = 8
COARSE_CELL_SIZE = 0.1
FINE_CELL_SIZE = 0.05
DETAIL_LIMIT = 5

HEATMAP_GRID_SIZES = {
    "low": 0.01,     # ~1km
    "medium": 0.005, # ~500m
    "high": 0.002,   # ~200m
}
HEATMAP_CELL_LIMIT = 10000


def needs_clustering(zoom):
    return zoom < CLUSTER_ZOOM_THRESHOLD


def cell_size_for_zoom(zoom):
    return COARSE_CELL_SIZE if zoom < COARSE_ZOOM_THRESHOLD else FINE_CELL_SIZE


def grid_cell(latitude, longitude, cell_size):
    """Integer grid indices of the cell holding the point."""
    return round(latitude / cell_size), round(longitude / cell_size)


def _located(plantings):
    for planting in plantings:
        if not planting.is_active:
            continue
        if planting.latitude is None or planting.longitude is None:
            continue
        yield planting


def _owner(planting):
    planter = planting.planter
    if planter is None:
        return None
    return schemas.UserSummary(id=planter.id, name=planter.name, profile_picture=planter.profile_picture)


def point_detail(planting, model=schemas.PointDetail):
    return model(
        id=planting.id,
        tree_type=planting.tree_type,
        planting_date=planting.planting_date,
        coordinates=schemas.Coordinates(latitude=planting.latitude, longitude=planting.longitude),
        image=planting.first_image,
        planted_by=_owner(planting),
        is_verified=bool(planting.is_verified),
    )


def _cluster(members):
    members = sorted(members, key=lambda p: p.id)
    count = len(members)
    return schemas.MapCluster(
        count=count,
        # fsum keeps the centroid independent of input order
        coordinates=schemas.Coordinates(
            latitude=math.fsum(p.latitude for p in members) / count,
            longitude=math.fsum(p.longitude for p in members) / count,
        ),
        types=sorted({p.tree_type for p in members if p.tree_type}),
        recent_date=max(p.planting_date for p in members),
        trees=[point_detail(p) for p in members] if count <= DETAIL_LIMIT else [],
    )


def cluster_plantings(plantings: Iterable, zoom: int, limit: int = 1000) -> schemas.MapResult:
    """Build the map payload for ``plantings`` at ``zoom``.

    ``limit`` caps the number of clusters or points emitted, not the number of
    plantings scanned. Clusters come out densest first.
    """
    if zoom < 1:
        raise ValidationError("zoom must be a positive integer", field="zoom")
    if limit < 1:
        raise ValidationError("limit must be a positive integer", field="limit")

    located = list(_located(plantings))
    clustered = needs_clustering(zoom)

    if clustered:
        size = cell_size_for_zoom(zoom)
        cells = defaultdict(list)
        for planting in located:
            cells[grid_cell(planting.latitude, planting.longitude, size)].append(planting)
        ordered = sorted(cells.items(), key=lambda item: (-len(item[1]), item[0]))
        points = [_cluster(members) for _, members in ordered[:limit]]
        logger.debug("Clustered %d plantings into %d cells (zoom=%d, size=%s)",
                     len(located), len(cells), zoom, size)
    else:
        located.sort(key=lambda p: p.id)
        points = [point_detail(p, schemas.MapPoint) for p in located[:limit]]

    return schemas.MapResult(points=points, clustered=clustered, zoom=zoom, total=len(points))


def heatmap(plantings: Iterable, intensity: str = "medium") -> schemas.Heatmap:
    """Density-only view: one ``{lat, lng, weight}`` triple per occupied cell."""
    if intensity not in HEATMAP_GRID_SIZES:
        raise ValidationError(
            f"intensity must be one of {', '.join(HEATMAP_GRID_SIZES)}", field="intensity"
        )
    size = HEATMAP_GRID_SIZES[intensity]

    weights = defaultdict(int)
    for planting in _located(plantings):
        weights[grid_cell(planting.latitude, planting.longitude, size)] += 1

    cells = [
        schemas.HeatCell(lat=round(lat_idx * size, 6), lng=round(lng_idx * size, 6), weight=weight)
        for (lat_idx, lng_idx), weight in sorted(weights.items())[:HEATMAP_CELL_LIMIT]
    ]
    return schemas.Heatmap(heatmap=cells, intensity=intensity, total=len(cells))
