"""Pydantic request/response models.

Field names are snake_case in Python and camelCase on the wire, which is
the shape the single-page frontend reads and writes.
"""
from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base for every wire model."""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class ErrorResponse(BaseModel):
    """Error response."""
    error: str
    detail: Any | None = None
    code: str | None = None


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    version: str


# --- Users -----------------------------------------------------------------

class UserOut(CamelModel):
    id: int
    email: str
    username: str | None = None
    role: str
    name: str | None = None


class CommentAuthor(CamelModel):
    id: int
    username: str | None = None
    name: str | None = None
    role: str


class LoginRequest(CamelModel):
    identifier: str | None = None
    password: str | None = None


class LoginResponse(CamelModel):
    token: str
    user: UserOut


class ProfileUpdateRequest(CamelModel):
    username: str | None = None
    current_password: str | None = None
    new_password: str | None = None


class ResetPasswordRequest(CamelModel):
    identifier: str | None = None
    master_code: str | None = None
    new_password: str | None = None


class UserCreateRequest(CamelModel):
    email: str | None = None
    username: str | None = None
    password: str | None = None
    name: str | None = None
    role: str | None = None


class UserRoleUpdateRequest(CamelModel):
    id: int | None = None
    role: str | None = None


class SuccessResponse(CamelModel):
    success: bool = True
    message: str | None = None


# --- Playlists & songs ------------------------------------------------------

class PlaylistSummary(CamelModel):
    id: int
    name: str


class PlaylistOut(CamelModel):
    id: int
    name: str
    spotify_link: str | None = None
    artwork_url: str | None = None
    year: int | None = None
    unrated_playlist_id: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class SongOut(CamelModel):
    id: int
    title: str
    artist: str
    album: str | None = None
    playlist_id: int
    rating: int | None = None
    sort_order: int = 0
    notes: str | None = None
    spotify_link: str | None = None
    artwork_url: str | None = None
    genius_song_id: int | None = None
    genius_url: str | None = None
    genius_no_match: bool = False
    created_at: datetime | None = None
    updated_at: datetime | None = None


class SongWithPlaylist(SongOut):
    playlist: PlaylistOut | None = None


class PlaylistWithSongs(PlaylistOut):
    songs: list[SongOut] = Field(default_factory=list)


class SongCreate(CamelModel):
    title: str = Field(min_length=1)
    artist: str = Field(min_length=1)
    album: str | None = None
    playlist_id: int
    rating: int | None = Field(default=None, ge=0, le=5)
    sort_order: int = 0
    notes: str | None = None
    spotify_link: str | None = None
    artwork_url: str | None = None


class SongUpdate(CamelModel):
    id: int
    title: str | None = Field(default=None, min_length=1)
    artist: str | None = Field(default=None, min_length=1)
    album: str | None = None
    playlist_id: int | None = None
    rating: int | None = Field(default=None, ge=0, le=5)
    sort_order: int | None = None
    notes: str | None = None
    spotify_link: str | None = None
    artwork_url: str | None = None


class PlaylistCreate(CamelModel):
    name: str = Field(min_length=1, max_length=255)
    spotify_link: str | None = None
    artwork_url: str | None = None
    year: int | None = None


class PlaylistUpdate(CamelModel):
    id: int
    name: str | None = Field(default=None, min_length=1, max_length=255)
    spotify_link: str | None = None
    artwork_url: str | None = None
    year: int | None = None
    unrated_playlist_id: str | None = None


class IdRequest(CamelModel):
    id: int


class ImportedTrack(CamelModel):
    title: str
    artist: str
    album: str | None = None
    spotify_link: str | None = None
    artwork_url: str | None = None


class ImportPlaylistRequest(CamelModel):
    playlist_name: str | None = None
    songs: list[ImportedTrack] | None = None


class ImportPlaylistResponse(CamelModel):
    playlist: PlaylistOut
    songs: list[SongOut]


# --- Comments ---------------------------------------------------------------

class CommentOut(CamelModel):
    id: int
    song_id: int
    user_id: int
    content: str
    parent_comment_id: int | None = None
    created_at: datetime
    updated_at: datetime
    user: CommentAuthor


class CommentThread(CommentOut):
    replies: list[CommentOut] = Field(default_factory=list)


class CommentCreate(CamelModel):
    song_id: int | None = None
    content: str | None = None
    parent_comment_id: int | None = None


class CommentUpdate(CamelModel):
    id: int | None = None
    content: str | None = None


class CommentDelete(CamelModel):
    id: int | None = None


# --- Digest -----------------------------------------------------------------

class DigestSong(SongWithPlaylist):
    activity_date: datetime
    comment_count: int = 0
    response_count: int = 0
    has_comments: bool = False
    has_responses: bool = False


# --- Ratings import ---------------------------------------------------------

class ImportedRating(CamelModel):
    title: str
    artist: str
    notes: str
    rating: str


class RatingCandidate(CamelModel):
    score: float
    song: SongOut


class RatingPreviewRow(CamelModel):
    imported: ImportedRating
    matches: list[RatingCandidate]


class RatingPreviewResponse(CamelModel):
    results: list[RatingPreviewRow]


class RatingUpdate(CamelModel):
    song_id: int | None = None
    notes: str | None = None
    rating: Any = None


class ApplyRatingsRequest(CamelModel):
    updates: list[RatingUpdate] | None = None


class ApplyRatingsResponse(CamelModel):
    updated_count: int
    updated: list[SongOut]


# --- Genius matching --------------------------------------------------------

class GeniusMatchInput(CamelModel):
    song_id: int | str | None = None
    genius_id: int | str | None = None
    genius_url: str | None = None


class GeniusMatchSaveRequest(CamelModel):
    matches: list[GeniusMatchInput] | None = None
    resolve_urls: list[str] | None = None


class GeniusMatchPostRequest(CamelModel):
    action: str | None = None
    playlist_id: int | str | None = None
    song_ids: list[int | str] | None = None


# --- Spotify / Apple Music --------------------------------------------------

class PlaylistIdRequest(CamelModel):
    playlist_id: int | None = None


class AppleFetchRequest(CamelModel):
    playlist_id: str | None = None
    user_token: str | None = None


class AppleTrack(CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    position: int | None = None
    title: str = ""
    artist: str = ""
    album: str | None = ""
    apple_music_id: str | None = None
    duration: int | None = None
    artwork_url: str | None = None


class MatchTracksRequest(CamelModel):
    tracks: list[AppleTrack] | None = None


class SpotifySearchRequest(CamelModel):
    query: Any = None


class ConvertTrack(CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    position: int | None = None
    spotify_uri: str | None = None
    uri: str | None = None


class CreateSpotifyPlaylistRequest(CamelModel):
    playlist_name: str | None = None
    playlist_description: str | None = None
    tracks: list[ConvertTrack] | None = None
