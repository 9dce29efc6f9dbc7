from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy.sql import func

Base = declarative_base()

STATUS_AVAILABLE = "Disponible"
STATUS_RENTED = "Alquilada"


class Movie(Base):
    __tablename__ = "movies"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(255), nullable=False, index=True)
    genre = Column(String(100), nullable=False)
    director = Column(String(255), nullable=False)
    year = Column(Integer, nullable=False)
    description = Column(Text, nullable=True)
    image_url = Column(String(500), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    copies = relationship(
        "Copy",
        back_populates="movie",
        cascade="all, delete-orphan",
        order_by="Copy.id",
    )


class Copy(Base):
    __tablename__ = "copies"

    id = Column(Integer, primary_key=True, index=True)
    movie_id = Column(
        Integer, ForeignKey("movies.id", ondelete="CASCADE"), nullable=False, index=True
    )
    user_id = Column(
        Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, unique=True
    )
    status = Column(String(50), nullable=False, default=STATUS_AVAILABLE)
    medium = Column(String(50), nullable=False, default="DVD")

    movie = relationship("Movie", back_populates="copies")
    user = relationship("User", back_populates="assigned_copy")

    @property
    def is_available(self) -> bool:
        return self.user_id is None


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    username = Column(String(100), nullable=False, unique=True, index=True)
    password_hash = Column(String(255), nullable=False)
    is_admin = Column(Boolean, nullable=False, default=False)

    assigned_copy = relationship("Copy", back_populates="user", uselist=False)
