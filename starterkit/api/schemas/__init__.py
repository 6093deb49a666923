"""Pydantic schema models shared across API endpoints.

Resource-specific models live next to their routers (e.g.
:mod:`starterkit.users.schemas`); this package holds the cross-cutting ones
such as the error body.
"""
