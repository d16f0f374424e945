"""Core SQLAlchemy models (2.x style) for the playlist schema.

Playlists own songs; songs own threaded comments; users author comments.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum

from sqlalchemy import Boolean, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


def utcnow() -> datetime:
    """Naive UTC timestamp, matching what the columns store."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Role(str, Enum):
    """User roles."""
    ADMIN = "ADMIN"
    VIEWER = "VIEWER"


class Base(DeclarativeBase):
    """Base class for all models."""
    pass


class User(Base):
    """Application users."""
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True, index=True)
    username: Mapped[str | None] = mapped_column(String(100), unique=True, index=True)
    password: Mapped[str | None] = mapped_column(String(255))  # bcrypt hash
    name: Mapped[str | None] = mapped_column(String(255))
    role: Mapped[str] = mapped_column(String(20), default=Role.VIEWER.value, nullable=False)
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)

    comments: Mapped[list[Comment]] = relationship("Comment", back_populates="user")


class Playlist(Base):
    """Curated playlists, usually mirrored from Spotify."""
    __tablename__ = "playlists"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    spotify_link: Mapped[str | None] = mapped_column(String(500))
    artwork_url: Mapped[str | None] = mapped_column(String(500))
    year: Mapped[int | None] = mapped_column(Integer, index=True)
    unrated_playlist_id: Mapped[str | None] = mapped_column(String(100))
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        default=utcnow,
        onupdate=utcnow,
        nullable=False,
    )

    songs: Mapped[list[Song]] = relationship(
        "Song",
        back_populates="playlist",
        order_by="Song.sort_order",
    )


class Song(Base):
    """A track inside a playlist with its rating and notes."""
    __tablename__ = "songs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    artist: Mapped[str] = mapped_column(String(500), nullable=False)
    album: Mapped[str | None] = mapped_column(String(500))
    playlist_id: Mapped[int] = mapped_column(
        ForeignKey("playlists.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    rating: Mapped[int | None] = mapped_column(Integer)  # 0 or NULL = unrated
    sort_order: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    notes: Mapped[str | None] = mapped_column(Text)
    spotify_link: Mapped[str | None] = mapped_column(String(500))
    artwork_url: Mapped[str | None] = mapped_column(String(500))
    genius_song_id: Mapped[int | None] = mapped_column(Integer)
    genius_url: Mapped[str | None] = mapped_column(String(500))
    genius_no_match: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        default=utcnow,
        onupdate=utcnow,
        nullable=False,
    )

    # Relationships
    playlist: Mapped[Playlist] = relationship("Playlist", back_populates="songs")
    comments: Mapped[list[Comment]] = relationship("Comment", back_populates="song")

    __table_args__ = (
        Index("ix_songs_playlist_sort", "playlist_id", "sort_order"),
        Index("ix_songs_updated_at", "updated_at"),
    )


class Comment(Base):
    """Threaded feedback on a song; replies point at their parent."""
    __tablename__ = "comments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    song_id: Mapped[int] = mapped_column(ForeignKey("songs.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    parent_comment_id: Mapped[int | None] = mapped_column(
        ForeignKey("comments.id", ondelete="CASCADE"),
        index=True,
    )
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        default=utcnow,
        onupdate=utcnow,
        nullable=False,
    )

    # Relationships
    song: Mapped[Song] = relationship("Song", back_populates="comments")
    user: Mapped[User] = relationship("User", back_populates="comments")
    parent: Mapped[Comment | None] = relationship(
        "Comment",
        remote_side="Comment.id",
        back_populates="replies",
    )
    replies: Mapped[list[Comment]] = relationship(
        "Comment",
        back_populates="parent",
        order_by="Comment.created_at",
    )

    __table_args__ = (
        Index("ix_comments_created_at", "created_at"),
    )
