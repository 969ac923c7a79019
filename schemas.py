import re
from pydantic import BaseModel, EmailStr, Field, field_validator
from pydantic.alias_generators import to_camel
from typing import List, Literal, Optional, Union
from datetime import datetime

HealthStatus = Literal["excellent", "good", "fair", "poor", "dead"]

PASSWORD_PATTERN = re.compile(r"^(?=.*[a-z])(?=.*[A-Z])(?=.*\d)")
PASSWORD_RULE = "Password must contain at least one uppercase letter, one lowercase letter, and one number"


class CamelModel(BaseModel):
    """Snake case in Python, camelCase on the wire."""

    class Config:
        from_attributes = True
        populate_by_name = True
        alias_generator = to_camel


class Token(BaseModel):
    access_token: str
    token_type: str


class MessageResponse(BaseModel):
    message: str


# --- Users ---

class UserCreate(CamelModel):
    name: str = Field(..., min_length=2, max_length=50)
    email: EmailStr
    password: str = Field(..., min_length=6)
    confirm_password: str

    @field_validator("name")
    @classmethod
    def strip_name(cls, v):
        v = v.strip()
        if len(v) < 2:
            raise ValueError("Name must be between 2 and 50 characters")
        return v

    @field_validator("password")
    @classmethod
    def password_strength(cls, v):
        if not PASSWORD_PATTERN.match(v):
            raise ValueError(PASSWORD_RULE)
        return v

    @field_validator("confirm_password")
    @classmethod
    def passwords_match(cls, v, info):
        if "password" in info.data and v != info.data["password"]:
            raise ValueError("Password confirmation does not match password")
        return v


class UserUpdate(CamelModel):
    name: Optional[str] = Field(None, min_length=2, max_length=50)
    bio: Optional[str] = Field(None, max_length=200)
    location: Optional[str] = Field(None, max_length=100)


class PasswordChange(CamelModel):
    current_password: str = Field(..., min_length=1)
    new_password: str = Field(..., min_length=6)

    @field_validator("new_password")
    @classmethod
    def password_strength(cls, v):
        if not PASSWORD_PATTERN.match(v):
            raise ValueError(PASSWORD_RULE)
        return v


class UserSummary(CamelModel):
    id: int
    name: str
    profile_picture: Optional[str] = None


class User(UserSummary):
    email: str
    role: str
    bio: Optional[str] = ""
    location: Optional[str] = ""
    trees_planted: int
    join_date: datetime
    is_active: bool


class UserStats(CamelModel):
    total_trees: int
    verified_trees: int
    recent_trees: int


class UserProfile(User):
    rank: int
    stats: UserStats


# --- Plantings ---

class Coordinates(CamelModel):
    latitude: float
    longitude: float


class LocationIn(CamelModel):
    address: str = Field(..., min_length=5, max_length=200)
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    city: Optional[str] = None
    state: Optional[str] = None
    country: Optional[str] = None

    # before-mode so min_length sees the trimmed value
    @field_validator("address", mode="before")
    @classmethod
    def strip_address(cls, v):
        return v.strip() if isinstance(v, str) else v


class LocationOut(CamelModel):
    address: str
    coordinates: Coordinates
    city: Optional[str] = None
    state: Optional[str] = None
    country: Optional[str] = None


class ImageRef(CamelModel):
    """A reference handed back by the image store after upload."""
    url: str = Field(..., min_length=1)
    public_id: Optional[str] = None
    caption: Optional[str] = None


class ImageOut(ImageRef):
    uploaded_at: Optional[datetime] = None


class PlantingBase(CamelModel):
    species: Optional[str] = Field(None, max_length=100)
    description: Optional[str] = Field(None, max_length=500)
    height: Optional[float] = Field(None, ge=0)
    diameter: Optional[float] = Field(None, ge=0)
    tags: Optional[List[str]] = None

    @field_validator("tags")
    @classmethod
    def normalize_tags(cls, v):
        if v is None:
            return v
        return [t.strip().lower() for t in v if t and t.strip()]


class PlantingCreate(PlantingBase):
    tree_type: str = Field(..., min_length=2, max_length=50)
    location: LocationIn
    planting_date: datetime
    images: List[ImageRef] = []
    health_status: HealthStatus = "good"

    @field_validator("tree_type", mode="before")
    @classmethod
    def strip_tree_type(cls, v):
        return v.strip() if isinstance(v, str) else v


class PlantingUpdate(PlantingBase):
    tree_type: Optional[str] = Field(None, min_length=2, max_length=50)
    location: Optional[LocationIn] = None
    planting_date: Optional[datetime] = None
    health_status: Optional[HealthStatus] = None

    @field_validator("tree_type", mode="before")
    @classmethod
    def strip_tree_type(cls, v):
        return v.strip() if isinstance(v, str) else v


class CommentCreate(CamelModel):
    # blank text is left to the write path, which reports it on the "text" field
    text: str = Field(..., max_length=300)

    @field_validator("text", mode="before")
    @classmethod
    def strip_text(cls, v):
        return v.strip() if isinstance(v, str) else v


class CommentOut(CamelModel):
    id: int
    user: Optional[UserSummary] = None
    text: str
    created_at: datetime


class Planting(CamelModel):
    id: int
    tree_type: str
    species: Optional[str] = None
    description: Optional[str] = ""
    location: LocationOut
    planting_date: datetime
    images: List[ImageOut] = []
    height: Optional[float] = None
    diameter: Optional[float] = None
    health_status: str
    tags: List[str] = []
    is_verified: bool
    verified_by: Optional[int] = None
    verification_date: Optional[datetime] = None
    planted_by: Optional[UserSummary] = None
    created_at: datetime
    like_count: int = 0
    comment_count: int = 0
    is_liked_by_user: bool = False


class PlantingDetail(Planting):
    comments: List[CommentOut] = []


class Pagination(CamelModel):
    current_page: int
    total_pages: int
    has_next_page: bool
    has_prev_page: bool


class TreePagination(Pagination):
    total_trees: int


class PlantingList(CamelModel):
    trees: List[Planting]
    pagination: TreePagination


class UserPage(CamelModel):
    user: UserProfile
    trees: List[Planting]


class LikeResponse(CamelModel):
    message: str
    is_liked: bool
    like_count: int


class CommentsResponse(CamelModel):
    message: str
    comments: List[CommentOut]


# --- Leaderboard ---

class LeaderboardEntry(CamelModel):
    rank: int
    user_id: int
    name: str
    profile_picture: Optional[str] = None
    tree_count: int
    recent_tree: datetime
    locations: List[str] = []
    total_trees: int


class CurrentUserRank(CamelModel):
    rank: int
    tree_count: int


class LeaderboardPagination(Pagination):
    total_users: int


class LeaderboardFilters(CamelModel):
    timeframe: str = "all"
    location: Optional[str] = None


class Leaderboard(CamelModel):
    entries: List[LeaderboardEntry]
    top_three: List[LeaderboardEntry]
    current_user_rank: Optional[CurrentUserRank] = None
    pagination: LeaderboardPagination
    filters: Optional[LeaderboardFilters] = None


# --- Map ---

class PointDetail(CamelModel):
    id: int
    tree_type: str
    planting_date: datetime
    coordinates: Coordinates
    image: Optional[str] = None
    planted_by: Optional[UserSummary] = None
    is_verified: bool


class MapPoint(PointDetail):
    cluster: Literal[False] = False
    count: int = 1


class MapCluster(CamelModel):
    cluster: Literal[True] = True
    count: int
    coordinates: Coordinates
    types: List[str]
    recent_date: datetime
    trees: List[PointDetail] = []


class MapResult(CamelModel):
    points: List[Union[MapCluster, MapPoint]]
    clustered: bool
    zoom: int
    total: int


class HeatCell(CamelModel):
    lat: float
    lng: float
    weight: int


class Heatmap(CamelModel):
    heatmap: List[HeatCell]
    intensity: str
    total: int


# --- Statistics ---

class StatsTotals(CamelModel):
    total_users: int
    total_trees: int
    verified_trees: int
    recent_trees: int
    verification_rate: int
    active_planters: Optional[int] = None


class CountryCount(CamelModel):
    country: str
    count: int


class MonthCount(CamelModel):
    month: str
    count: int


class PlatformStats(CamelModel):
    totals: StatsTotals
    top_countries: List[CountryCount]
    monthly_growth: List[MonthCount]


class Region(CamelModel):
    region: str
    tree_count: int
    planter_count: int
    type_count: int
    recent_planting: datetime
    center_lat: float
    center_lng: float


class Regions(CamelModel):
    regions: List[Region]
    level: str
