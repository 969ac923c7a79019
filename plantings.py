"""
Planting write path and response shaping.

Owner-gated mutations (update, soft delete), open social actions (like,
comment) and the verifier-only trust action. Whenever a planting's verified or
active state changes the owner's ``trees_planted`` is recomputed from the
plantings themselves. The recount is a plain read-then-write: two verifications
landing together may leave it briefly off until the next recount.
"""
import datetime
import logging
import math
from dataclasses import replace

import models
import schemas
from errors import NotFoundError, OwnershipError, ValidationError
from filters import PlantingFilter
from models import utcnow
from store import PlantingStore

logger = logging.getLogger("greenpulse.plantings")

MAX_IMAGES = 5
RECENT_DAYS = 30
PROFILE_TREE_LIMIT = 10
VERIFIER_ROLES = ("verifier", "admin")


def _summary(user):
    if user is None:
        return None
    return schemas.UserSummary(id=user.id, name=user.name, profile_picture=user.profile_picture)


def serialize_planting(planting: models.Planting, viewer_id=None, detail=False):
    data = dict(
        id=planting.id,
        tree_type=planting.tree_type,
        species=planting.species,
        description=planting.description or "",
        location=schemas.LocationOut(
            address=planting.address,
            coordinates=schemas.Coordinates(latitude=planting.latitude, longitude=planting.longitude),
            city=planting.city,
            state=planting.state,
            country=planting.country,
        ),
        planting_date=planting.planting_date,
        images=[
            schemas.ImageOut(url=i.url, public_id=i.public_id, caption=i.caption, uploaded_at=i.uploaded_at)
            for i in planting.images
        ],
        height=planting.height,
        diameter=planting.diameter,
        health_status=planting.health_status,
        tags=planting.tags or [],
        is_verified=bool(planting.is_verified),
        verified_by=planting.verified_by,
        verification_date=planting.verification_date,
        planted_by=_summary(planting.planter),
        created_at=planting.created_at,
        like_count=planting.like_count,
        comment_count=planting.comment_count,
        is_liked_by_user=viewer_id is not None and planting.is_liked_by(viewer_id),
    )
    if not detail:
        return schemas.Planting(**data)
    comments = [
        schemas.CommentOut(id=c.id, user=_summary(c.user), text=c.text, created_at=c.created_at)
        for c in planting.comments
    ]
    return schemas.PlantingDetail(comments=comments, **data)


def _naive_utc(moment):
    if moment.tzinfo is not None:
        moment = moment.astimezone(datetime.timezone.utc).replace(tzinfo=None)
    return moment


def _check_planting_date(moment):
    moment = _naive_utc(moment)
    if moment > utcnow():
        raise ValidationError("Planting date cannot be in the future", field="plantingDate")
    return moment


def _apply_location(planting, location: schemas.LocationIn):
    planting.address = location.address.strip()
    planting.latitude = location.latitude
    planting.longitude = location.longitude
    planting.city = location.city
    planting.state = location.state
    planting.country = location.country


def get_active_planting(store: PlantingStore, planting_id) -> models.Planting:
    planting = store.get_planting(planting_id)
    if planting is None:
        raise NotFoundError("Tree not found", field="id")
    return planting


def require_owner(planting: models.Planting, user: models.User):
    if planting.planted_by != user.id:
        raise OwnershipError("Access denied. You can only modify your own trees.")


def recompute_trees_planted(store: PlantingStore, user_id):
    user = store.find_user(user_id)
    if user is None:
        return None
    user.trees_planted = store.count(PlantingFilter(verified=True, planted_by=user_id))
    store.commit()
    logger.info("Recomputed trees_planted=%d for user %s", user.trees_planted, user_id)
    return user.trees_planted


def create_planting(store: PlantingStore, owner: models.User, payload: schemas.PlantingCreate):
    if not payload.images:
        raise ValidationError("At least one image is required", field="images")
    if len(payload.images) > MAX_IMAGES:
        raise ValidationError(f"At most {MAX_IMAGES} images are allowed", field="images")

    planting = models.Planting(
        tree_type=payload.tree_type.strip(),
        species=payload.species,
        description=payload.description or "",
        planting_date=_check_planting_date(payload.planting_date),
        height=payload.height,
        diameter=payload.diameter,
        health_status=payload.health_status,
        tags=payload.tags or [],
        planted_by=owner.id,
        is_verified=False,
        is_active=True,
    )
    _apply_location(planting, payload.location)
    for image in payload.images:
        planting.images.append(models.PlantingImage(url=image.url, public_id=image.public_id, caption=image.caption))

    store.add(planting)
    store.commit(planting)
    logger.info("Planting %s registered by user %s", planting.id, owner.id)
    return planting


def update_planting(store: PlantingStore, user: models.User, planting_id, payload: schemas.PlantingUpdate):
    planting = get_active_planting(store, planting_id)
    require_owner(planting, user)

    changes = payload.model_dump(exclude_unset=True)
    if changes.get("tree_type"):
        planting.tree_type = payload.tree_type.strip()
    if "species" in changes:
        planting.species = payload.species
    if payload.location is not None:
        _apply_location(planting, payload.location)
    if payload.planting_date is not None:
        planting.planting_date = _check_planting_date(payload.planting_date)
    if "description" in changes:
        planting.description = payload.description or ""
    if "height" in changes:
        planting.height = payload.height
    if "diameter" in changes:
        planting.diameter = payload.diameter
    if payload.health_status:
        planting.health_status = payload.health_status
    if "tags" in changes:
        planting.tags = payload.tags or []

    store.commit(planting)
    return planting


def delete_planting(store: PlantingStore, user: models.User, planting_id):
    planting = get_active_planting(store, planting_id)
    require_owner(planting, user)

    planting.is_active = False
    store.commit()
    logger.info("Planting %s soft-deleted by owner %s", planting_id, user.id)
    recompute_trees_planted(store, planting.planted_by)


def toggle_like(store: PlantingStore, user: models.User, planting_id):
    """Like or unlike. Returns ``(is_liked, like_count)`` after the toggle."""
    planting = get_active_planting(store, planting_id)

    existing = next((like for like in planting.likes if like.user_id == user.id), None)
    if existing is not None:
        planting.likes.remove(existing)
    else:
        planting.likes.append(models.Like(user_id=user.id))
    store.commit(planting)
    return existing is None, planting.like_count


def add_comment(store: PlantingStore, user: models.User, planting_id, text: str):
    planting = get_active_planting(store, planting_id)

    text = (text or "").strip()
    if not text or len(text) > 300:
        raise ValidationError("Comment must be between 1 and 300 characters", field="text")

    planting.comments.append(models.Comment(user_id=user.id, text=text))
    store.commit(planting)
    return planting


def verify_planting(store: PlantingStore, verifier: models.User, planting_id):
    planting = get_active_planting(store, planting_id)

    if verifier.role not in VERIFIER_ROLES:
        raise OwnershipError("Verifier privileges required")
    if planting.planted_by == verifier.id:
        raise OwnershipError("You cannot verify your own tree")
    if planting.is_verified:
        raise ValidationError("Tree is already verified", field="id")

    planting.is_verified = True
    planting.verified_by = verifier.id
    planting.verification_date = utcnow()
    store.commit(planting)
    logger.info("Planting %s verified by user %s", planting.id, verifier.id)

    recompute_trees_planted(store, planting.planted_by)
    return planting


def list_plantings(store: PlantingStore, predicate: PlantingFilter, page, limit,
                   sort_by="createdAt", sort_order="desc", viewer_id=None):
    if sort_order not in ("asc", "desc"):
        raise ValidationError("sortOrder must be asc or desc", field="sortOrder")

    skip = (page - 1) * limit
    trees = store.find(predicate, sort_by=sort_by, descending=sort_order == "desc", skip=skip, limit=limit)
    total = store.count(predicate)
    total_pages = math.ceil(total / limit)

    return schemas.PlantingList(
        trees=[serialize_planting(t, viewer_id) for t in trees],
        pagination=schemas.TreePagination(
            current_page=page,
            total_pages=total_pages,
            total_trees=total,
            has_next_page=page < total_pages,
            has_prev_page=page > 1,
        ),
    )


def user_profile(store: PlantingStore, user_id, viewer_id=None):
    user = store.find_active_user(user_id)
    if user is None:
        raise NotFoundError("User not found", field="id")

    own = PlantingFilter(planted_by=user.id)
    recent = store.find(own, sort_by="createdAt", limit=PROFILE_TREE_LIMIT)
    since = utcnow() - datetime.timedelta(days=RECENT_DAYS)

    profile = schemas.UserProfile(
        id=user.id,
        name=user.name,
        profile_picture=user.profile_picture,
        email=user.email,
        role=user.role,
        bio=user.bio,
        location=user.location,
        trees_planted=user.trees_planted or 0,
        join_date=user.join_date,
        is_active=user.is_active,
        # Tied rank on the cached counter, unlike the leaderboard's strict order
        rank=store.count_users_ahead_of(user.trees_planted or 0) + 1,
        stats=schemas.UserStats(
            total_trees=store.count(own),
            verified_trees=store.count(replace(own, verified=True)),
            recent_trees=store.count(replace(own, created_after=since)),
        ),
    )
    return schemas.UserPage(user=profile, trees=[serialize_planting(t, viewer_id) for t in recent])
