"""Reconcile a ratings spreadsheet (CSV) against the songs table.

Rows carry ``Song``, ``Artist``, ``Notes`` and ``Rating`` columns. Each row is
paired with its closest stored songs by fuzzy similarity of the
"<title> - <artist>" key; an admin confirms the pairing, then the chosen
ratings and notes are written back.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, BinaryIO, Iterable

import pandas as pd
from rapidfuzz import fuzz, process, utils
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from trapt import models
from trapt.config import settings
from trapt.errors import RatingsImportError
from trapt.pipelines.normalization import song_key

logger = logging.getLogger(__name__)

_YEAR_RE = re.compile(r"^\d{4}$")
MIN_RATING = 0
MAX_RATING = 5


@dataclass
class ImportedRow:
    """One spreadsheet row, trimmed."""
    title: str
    artist: str
    notes: str
    rating: str


@dataclass
class RatingMatch:
    """A candidate song for an imported row."""
    score: float
    song: models.Song


@dataclass
class RatingPreview:
    imported: ImportedRow
    matches: list[RatingMatch] = field(default_factory=list)


def is_valid_year(year: str | None) -> bool:
    return bool(year and _YEAR_RE.match(year))


def ratings_csv_path(year: str) -> Path:
    """Location of the spreadsheet export for ``year``."""
    filename = settings.imports.ratings_filename_template.format(year=year)
    return Path(settings.imports.ratings_dir) / filename


def _cell(row: dict[str, Any], column: str) -> str:
    value = row.get(column)
    return str(value).strip() if value is not None else ""


def parse_ratings_csv(file_obj: BinaryIO | str | Path) -> list[ImportedRow]:
    """Parse a ratings CSV into rows.

    Raises:
        RatingsImportError: If the file cannot be parsed
    """
    try:
        df = pd.read_csv(
            file_obj,
            encoding="utf-8",
            dtype=str,
            keep_default_na=False,
            skip_blank_lines=True,
        )
    except (pd.errors.ParserError, pd.errors.EmptyDataError, UnicodeDecodeError) as e:
        logger.error(f"Ratings CSV parsing failed: {e}")
        raise RatingsImportError(f"Failed to parse CSV: {e}") from e

    df.columns = [str(c).strip() for c in df.columns]
    rows = [
        ImportedRow(
            title=_cell(record, "Song"),
            artist=_cell(record, "Artist"),
            notes=_cell(record, "Notes"),
            rating=_cell(record, "Rating"),
        )
        for record in df.to_dict("records")
    ]
    logger.info(f"Parsed ratings CSV with {len(rows)} rows")
    return rows


def match_rows(
    rows: Iterable[ImportedRow],
    songs: list[models.Song],
    *,
    top_n: int | None = None,
) -> list[RatingPreview]:
    """Pair every row with its ``top_n`` most similar songs."""
    limit = top_n or settings.matching.ratings_top_n
    choices = [song_key(song.title, song.artist) for song in songs]

    previews: list[RatingPreview] = []
    for row in rows:
        preview = RatingPreview(imported=row)
        if choices:
            extracted = process.extract(
                song_key(row.title, row.artist),
                choices,
                scorer=fuzz.ratio,
                processor=utils.default_process,
                limit=limit,
            )
            preview.matches = [
                RatingMatch(score=round(score / 100.0, 4), song=songs[idx])
                for _, score, idx in extracted
            ]
        previews.append(preview)
    return previews


async def preview_ratings(session: AsyncSession, rows: list[ImportedRow]) -> list[RatingPreview]:
    result = await session.execute(select(models.Song))
    songs = list(result.scalars().all())
    logger.info(f"Matching {len(rows)} imported rows against {len(songs)} songs")
    return match_rows(rows, songs)


def coerce_rating(value: Any) -> int | None:
    """Parse a spreadsheet rating; ``None`` means "leave unchanged"."""
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(str(value).strip())
    except ValueError:
        return None
    if number != number or not number.is_integer():
        return None
    rating = int(number)
    return rating if MIN_RATING <= rating <= MAX_RATING else None


async def apply_rating_updates(
    session: AsyncSession,
    updates: Iterable[Any],
) -> list[models.Song]:
    """Write confirmed ratings/notes; unknown or id-less updates are skipped."""
    updated: list[models.Song] = []
    for update in updates:
        if not update.song_id:
            continue
        song = await session.get(models.Song, update.song_id)
        if song is None:
            logger.warning(f"Skipping rating update for missing song {update.song_id}")
            continue

        if update.notes:
            song.notes = update.notes
        rating = coerce_rating(update.rating)
        if rating is not None:
            song.rating = rating
        updated.append(song)

    await session.commit()
    logger.info(f"Applied {len(updated)} rating updates")
    return updated
