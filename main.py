from fastapi import FastAPI, Depends, HTTPException, Query, Request, status
from fastapi.security import OAuth2PasswordRequestForm
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session
from typing import Optional
import models, schemas, auth
import clustering, plantings, ranking, stats
from database import engine, get_db
from errors import GreenPulseError, NotFoundError, ValidationError
from filters import PlantingFilter, build_filter, parse_positive_int
from store import PlantingStore
import logging
import os
from dotenv import load_dotenv

load_dotenv()

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger("greenpulse")

models.Base.metadata.create_all(bind=engine)

app = FastAPI(title="GreenPulse API")

MAX_PAGE_SIZE = 100
MAX_MAP_POINTS = 5000
MAX_ZOOM = 22

# CORS
origins = [os.getenv("FRONTEND_URL", "*")]
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(GreenPulseError)
async def greenpulse_error_handler(request: Request, exc: GreenPulseError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


def _viewer_id(user):
    return user.id if user is not None else None


@app.get("/api/health")
def health():
    return {
        "status": "OK",
        "message": "GreenPulse API is running",
        "timestamp": models.utcnow().isoformat(),
    }

# --- Auth ---

@app.post("/api/auth/register", response_model=schemas.User, status_code=status.HTTP_201_CREATED)
def register(user: schemas.UserCreate, db: Session = Depends(get_db)):
    store = PlantingStore(db)
    email = str(user.email).lower()
    if store.find_user_by_email(email):
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="User already exists with this email")

    db_user = models.User(
        name=user.name,
        email=email,
        hashed_password=auth.get_password_hash(user.password),
        role="planter",
        trees_planted=0,
        is_active=True,
    )
    store.add(db_user)
    store.commit(db_user)
    logger.info("Registered user %s", db_user.id)
    return db_user


@app.post("/api/auth/token", response_model=schemas.Token)
def login_for_access_token(form_data: OAuth2PasswordRequestForm = Depends(), db: Session = Depends(get_db)):
    # OAuth2 form: the username field carries the email
    user = auth.authenticate_user(db, form_data.username, form_data.password)
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect email or password",
            headers={"WWW-Authenticate": "Bearer"},
        )
    if not user.is_active:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Account is deactivated.")

    user.last_login = models.utcnow()
    PlantingStore(db).commit()
    return {"access_token": auth.token_for(user), "token_type": "bearer"}


@app.get("/api/auth/me", response_model=schemas.User)
def read_users_me(current_user: models.User = Depends(auth.get_current_user)):
    return current_user


@app.put("/api/auth/me", response_model=schemas.User)
def update_user_me(
    user_update: schemas.UserUpdate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(auth.get_current_user)
):
    if user_update.name:
        current_user.name = user_update.name.strip()
    if user_update.bio is not None:
        current_user.bio = user_update.bio
    if user_update.location is not None:
        current_user.location = user_update.location

    PlantingStore(db).commit(current_user)
    return current_user


@app.post("/api/auth/change-password", response_model=schemas.MessageResponse)
def change_password(
    password_change: schemas.PasswordChange,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(auth.get_current_user)
):
    if not auth.verify_password(password_change.current_password, current_user.hashed_password):
        raise ValidationError("Current password is incorrect", field="currentPassword")

    current_user.hashed_password = auth.get_password_hash(password_change.new_password)
    PlantingStore(db).commit()
    logger.info("Password changed for user %s", current_user.id)
    return {"message": "Password changed successfully"}

# --- Trees ---

@app.get("/api/trees", response_model=schemas.PlantingList)
def read_trees(
    page: Optional[str] = None,
    limit: Optional[str] = None,
    tree_type: Optional[str] = Query(None, alias="treeType"),
    city: Optional[str] = None,
    state: Optional[str] = None,
    country: Optional[str] = None,
    planted_by: Optional[str] = Query(None, alias="plantedBy"),
    sort_by: str = Query("createdAt", alias="sortBy"),
    sort_order: str = Query("desc", alias="sortOrder"),
    search: Optional[str] = None,
    verified: Optional[str] = None,
    db: Session = Depends(get_db),
    current_user: Optional[models.User] = Depends(auth.get_optional_user),
):
    predicate = build_filter(
        tree_type=tree_type, city=city, state=state, country=country,
        planted_by=planted_by, search=search, verified=verified,
    )
    return plantings.list_plantings(
        PlantingStore(db), predicate,
        page=parse_positive_int(page, "page", 1),
        limit=parse_positive_int(limit, "limit", 10, maximum=MAX_PAGE_SIZE),
        sort_by=sort_by, sort_order=sort_order, viewer_id=_viewer_id(current_user),
    )


@app.get("/api/trees/{tree_id}", response_model=schemas.PlantingDetail)
def read_tree(
    tree_id: int,
    db: Session = Depends(get_db),
    current_user: Optional[models.User] = Depends(auth.get_optional_user),
):
    planting = plantings.get_active_planting(PlantingStore(db), tree_id)
    return plantings.serialize_planting(planting, _viewer_id(current_user), detail=True)


@app.post("/api/trees", response_model=schemas.Planting, status_code=status.HTTP_201_CREATED)
def create_tree(
    tree: schemas.PlantingCreate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(auth.get_current_user)
):
    planting = plantings.create_planting(PlantingStore(db), current_user, tree)
    return plantings.serialize_planting(planting, current_user.id)


@app.put("/api/trees/{tree_id}", response_model=schemas.Planting)
def update_tree(
    tree_id: int,
    tree: schemas.PlantingUpdate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(auth.get_current_user)
):
    planting = plantings.update_planting(PlantingStore(db), current_user, tree_id, tree)
    return plantings.serialize_planting(planting, current_user.id)


@app.delete("/api/trees/{tree_id}", response_model=schemas.MessageResponse)
def delete_tree(
    tree_id: int,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(auth.get_current_user)
):
    plantings.delete_planting(PlantingStore(db), current_user, tree_id)
    return {"message": "Tree deleted successfully"}


@app.post("/api/trees/{tree_id}/like", response_model=schemas.LikeResponse)
def like_tree(
    tree_id: int,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(auth.get_current_user)
):
    is_liked, like_count = plantings.toggle_like(PlantingStore(db), current_user, tree_id)
    return schemas.LikeResponse(
        message="Tree liked" if is_liked else "Tree unliked",
        is_liked=is_liked,
        like_count=like_count,
    )


@app.post("/api/trees/{tree_id}/comment", response_model=schemas.CommentsResponse,
          status_code=status.HTTP_201_CREATED)
def comment_tree(
    tree_id: int,
    comment: schemas.CommentCreate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(auth.get_current_user)
):
    planting = plantings.add_comment(PlantingStore(db), current_user, tree_id, comment.text)
    detail = plantings.serialize_planting(planting, current_user.id, detail=True)
    return schemas.CommentsResponse(message="Comment added successfully", comments=detail.comments)


@app.post("/api/trees/{tree_id}/verify", response_model=schemas.Planting)
def verify_tree(
    tree_id: int,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(auth.get_current_user)
):
    planting = plantings.verify_planting(PlantingStore(db), current_user, tree_id)
    return plantings.serialize_planting(planting, current_user.id)

# --- Users ---

@app.get("/api/users/{user_id}", response_model=schemas.UserPage)
def read_user(
    user_id: int,
    db: Session = Depends(get_db),
    current_user: Optional[models.User] = Depends(auth.get_optional_user),
):
    return plantings.user_profile(PlantingStore(db), user_id, _viewer_id(current_user))


@app.get("/api/users/{user_id}/trees", response_model=schemas.PlantingList)
def read_user_trees(
    user_id: int,
    page: Optional[str] = None,
    limit: Optional[str] = None,
    sort_by: str = Query("createdAt", alias="sortBy"),
    sort_order: str = Query("desc", alias="sortOrder"),
    db: Session = Depends(get_db),
    current_user: Optional[models.User] = Depends(auth.get_optional_user),
):
    store = PlantingStore(db)
    if store.find_active_user(user_id) is None:
        raise NotFoundError("User not found", field="id")
    return plantings.list_plantings(
        store, PlantingFilter(planted_by=user_id),
        page=parse_positive_int(page, "page", 1),
        limit=parse_positive_int(limit, "limit", 10, maximum=MAX_PAGE_SIZE),
        sort_by=sort_by, sort_order=sort_order, viewer_id=_viewer_id(current_user),
    )

# --- Leaderboard ---

@app.get("/api/leaderboard", response_model=schemas.Leaderboard)
def read_leaderboard(
    page: Optional[str] = None,
    limit: Optional[str] = None,
    timeframe: Optional[str] = "all",
    location: Optional[str] = None,
    db: Session = Depends(get_db),
    current_user: Optional[models.User] = Depends(auth.get_optional_user),
):
    page_number = parse_positive_int(page, "page", 1)
    page_size = parse_positive_int(limit, "limit", 50, maximum=MAX_PAGE_SIZE)
    predicate = build_filter(timeframe=timeframe, location=location, verified=True)

    store = PlantingStore(db)
    board = ranking.build_leaderboard(
        store.find(predicate), store.find_user,
        page=page_number, limit=page_size, current_user_id=_viewer_id(current_user),
    )
    board.filters = schemas.LeaderboardFilters(timeframe=timeframe or "all", location=location or None)
    return board


@app.get("/api/leaderboard/stats", response_model=schemas.PlatformStats)
def read_stats(db: Session = Depends(get_db)):
    store = PlantingStore(db)
    return stats.compute_stats(
        total_users=store.count_active_users(),
        plantings=store.find(PlantingFilter()),
        active_planters=store.count_distinct_users(PlantingFilter(verified=True)),
    )

# --- Map ---

@app.get("/api/map/trees", response_model=schemas.MapResult)
def read_map_trees(
    bounds: Optional[str] = None,
    zoom: Optional[str] = None,
    limit: Optional[str] = None,
    tree_type: Optional[str] = Query(None, alias="treeType"),
    verified: Optional[str] = None,
    date_from: Optional[str] = Query(None, alias="dateFrom"),
    date_to: Optional[str] = Query(None, alias="dateTo"),
    db: Session = Depends(get_db),
):
    zoom_level = parse_positive_int(zoom, "zoom", 10, maximum=MAX_ZOOM)
    cap = parse_positive_int(limit, "limit", 1000, maximum=MAX_MAP_POINTS)
    predicate = build_filter(
        bounds=bounds, tree_type=tree_type, verified=verified, date_from=date_from, date_to=date_to,
    )
    return clustering.cluster_plantings(PlantingStore(db).find(predicate), zoom=zoom_level, limit=cap)


@app.get("/api/map/heatmap", response_model=schemas.Heatmap)
def read_heatmap(
    bounds: Optional[str] = None,
    intensity: str = "medium",
    db: Session = Depends(get_db),
):
    predicate = build_filter(bounds=bounds, verified=True)
    return clustering.heatmap(PlantingStore(db).find(predicate), intensity=intensity)


@app.get("/api/map/regions", response_model=schemas.Regions)
def read_regions(level: str = "country", db: Session = Depends(get_db)):
    return stats.regional_rollup(PlantingStore(db).find(PlantingFilter(verified=True)), level=level)


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
