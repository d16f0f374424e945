"""Clients for the third-party music services: Spotify, Genius, Apple Music.

Each client takes a shared ``httpx.AsyncClient`` so the application owns the
connection pool and tests can substitute a mock transport.
"""
