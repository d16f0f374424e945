"""Backend package: DB models, auth, pipelines, APIs.

This package serves the playlist curation API: songs, playlists, comments,
the activity digest, admin tooling and the Spotify/Genius/Apple Music glue.
"""
