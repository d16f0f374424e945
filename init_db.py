"""Initialize the database schema, optionally with sample data.

Run this before starting the API server:

    python init_db.py            # create missing tables
    python init_db.py --drop     # recreate every table
    python init_db.py --seed     # also add sample playlists and users
"""

import argparse
import asyncio
import sys

from sqlalchemy import select

from trapt import models
from trapt.auth import hash_password
from trapt.config import settings
from trapt.db import AsyncSessionMaker, create_all

SAMPLE_PLAYLISTS = {
    "Chill Vibes": {
        "spotify_link": "https://open.spotify.com/playlist/chillvibes",
        "songs": [
            ("Sunset Lover", "Petit Biscuit", "Presence", 5, "Great for relaxing",
             "https://open.spotify.com/track/sunsetlover"),
        ],
    },
    "Workout Hits": {
        "spotify_link": "https://open.spotify.com/playlist/workouthits",
        "songs": [
            ("Lose Yourself", "Eminem", "8 Mile", 4, "Perfect for motivation",
             "https://open.spotify.com/track/loseyourself"),
            ("Blinding Lights", "The Weeknd", "After Hours", 5, "",
             "https://open.spotify.com/track/blindinglights"),
        ],
    },
}

SAMPLE_USERS = [
    ("admin@example.com", "admin", "Admin User", models.Role.ADMIN),
    ("viewer@example.com", "viewer", "Viewer User", models.Role.VIEWER),
]


async def seed(password: str):
    """Insert sample users and playlists that are not there yet."""
    async with AsyncSessionMaker() as session:
        for email, username, name, role in SAMPLE_USERS:
            existing = await session.execute(select(models.User).where(models.User.email == email))
            if existing.scalars().first() is None:
                session.add(models.User(
                    email=email,
                    username=username,
                    name=name,
                    role=role.value,
                    password=hash_password(password),
                ))
                print(f"✓ Added user {email} ({role.value})")

        for name, data in SAMPLE_PLAYLISTS.items():
            existing = await session.execute(select(models.Playlist).where(models.Playlist.name == name))
            if existing.scalars().first() is not None:
                continue
            playlist = models.Playlist(name=name, spotify_link=data["spotify_link"])
            session.add(playlist)
            await session.flush()
            for order, (title, artist, album, rating, notes, link) in enumerate(data["songs"], start=1):
                session.add(models.Song(
                    title=title,
                    artist=artist,
                    album=album,
                    rating=rating,
                    notes=notes,
                    spotify_link=link,
                    sort_order=order,
                    playlist_id=playlist.id,
                ))
            print(f"✓ Added playlist {name!r} with {len(data['songs'])} songs")

        await session.commit()


async def init_database(drop: bool, with_seed: bool, password: str):
    """Create all database tables."""
    print(f"Initializing database: {settings.db.url}")
    await create_all(drop=drop)
    if drop:
        print("✓ Dropped existing tables")
    print("✓ Created all tables")

    if with_seed:
        await seed(password)

    print("\n✅ Database initialization complete!")
    print(f"Tables: {', '.join(models.Base.metadata.tables.keys())}")


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("--drop", action="store_true", help="drop existing tables first")
    parser.add_argument("--seed", action="store_true", help="insert sample users and playlists")
    parser.add_argument("--password", default="changeme", help="password for seeded users")
    args = parser.parse_args()

    try:
        asyncio.run(init_database(args.drop, args.seed, args.password))
    except Exception as e:
        print(f"\n❌ Error initializing database: {e}")
        import traceback
        traceback.print_exc()
        sys.exit(1)


if __name__ == "__main__":
    main()
