from sqlalchemy import Boolean, Column, ForeignKey, Integer, String, Float, DateTime, JSON, UniqueConstraint
from sqlalchemy.orm import relationship
from database import Base
import datetime

HEALTH_STATUSES = ("excellent", "good", "fair", "poor", "dead")
ROLES = ("planter", "verifier", "admin")


def utcnow():
    # Naive UTC, SQLite drops tzinfo on the way back anyway
    return datetime.datetime.now(datetime.timezone.utc).replace(tzinfo=None)


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(50))
    email = Column(String, unique=True, index=True)
    hashed_password = Column(String)
    role = Column(String, default="planter") # planter, verifier, admin
    profile_picture = Column(String, nullable=True)
    bio = Column(String(200), default="")
    location = Column(String(100), default="")
    is_active = Column(Boolean, default=True)

    # Cached count of verified, active plantings. Recomputed, never incremented.
    trees_planted = Column(Integer, default=0, index=True)

    join_date = Column(DateTime, default=utcnow)
    last_login = Column(DateTime, default=utcnow)

    plantings = relationship("Planting", back_populates="planter", foreign_keys="Planting.planted_by")


class Planting(Base):
    __tablename__ = "plantings"

    id = Column(Integer, primary_key=True, index=True)
    tree_type = Column(String(50), index=True)
    species = Column(String(100), nullable=True)
    description = Column(String(500), default="")

    # Location
    address = Column(String(200))
    latitude = Column(Float, index=True)
    longitude = Column(Float, index=True)
    city = Column(String, nullable=True)
    state = Column(String, nullable=True)
    country = Column(String, nullable=True)

    planting_date = Column(DateTime, index=True)
    height = Column(Float, nullable=True) # cm
    diameter = Column(Float, nullable=True) # cm
    health_status = Column(String, default="good")
    tags = Column(JSON, default=list)

    # Trust Protocol
    is_verified = Column(Boolean, default=False, index=True)
    verified_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    verification_date = Column(DateTime, nullable=True)

    # Soft delete
    is_active = Column(Boolean, default=True, index=True)

    created_at = Column(DateTime, default=utcnow, index=True)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)
    planted_by = Column(Integer, ForeignKey("users.id"), index=True)

    planter = relationship("User", back_populates="plantings", foreign_keys=[planted_by])
    verifier = relationship("User", foreign_keys=[verified_by])
    images = relationship("PlantingImage", back_populates="planting", cascade="all, delete-orphan",
                          order_by="PlantingImage.id")
    likes = relationship("Like", back_populates="planting", cascade="all, delete-orphan")
    comments = relationship("Comment", back_populates="planting", cascade="all, delete-orphan",
                            order_by="Comment.created_at")

    @property
    def like_count(self):
        return len(self.likes)

    @property
    def comment_count(self):
        return len(self.comments)

    @property
    def first_image(self):
        return self.images[0].url if self.images else None

    def is_liked_by(self, user_id):
        return any(like.user_id == user_id for like in self.likes)


class PlantingImage(Base):
    __tablename__ = "planting_images"

    id = Column(Integer, primary_key=True, index=True)
    planting_id = Column(Integer, ForeignKey("plantings.id"), index=True)
    url = Column(String)
    public_id = Column(String, nullable=True) # blob store handle
    caption = Column(String, nullable=True)
    uploaded_at = Column(DateTime, default=utcnow)

    planting = relationship("Planting", back_populates="images")


class Like(Base):
    __tablename__ = "likes"
    __table_args__ = (
        UniqueConstraint("planting_id", "user_id", name="uq_like_planting_user"),
    )

    id = Column(Integer, primary_key=True, index=True)
    planting_id = Column(Integer, ForeignKey("plantings.id"), index=True)
    user_id = Column(Integer, ForeignKey("users.id"))
    liked_at = Column(DateTime, default=utcnow)

    planting = relationship("Planting", back_populates="likes")


class Comment(Base):
    __tablename__ = "comments"

    id = Column(Integer, primary_key=True, index=True)
    planting_id = Column(Integer, ForeignKey("plantings.id"), index=True)
    user_id = Column(Integer, ForeignKey("users.id"))
    text = Column(String(300))
    created_at = Column(DateTime, default=utcnow)

    planting = relationship("Planting", back_populates="comments")
    user = relationship("User")
