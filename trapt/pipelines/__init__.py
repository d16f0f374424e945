"""Pipelines behind the API routes: digest, stats, imports and matching.

Each step takes an ``AsyncSession`` (and, where needed, a service client)
so it can be driven from a route handler or a script alike.
"""
