"""Application package for the Smart Study Planner backend.

This package exposes the resource service, repository and model modules
used by the FastAPI application. Study plans own materials, sessions and
recommendations; every access is scoped to the authenticated user.
"""
