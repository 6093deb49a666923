"""Starterkit - user resource API service.

A small FastAPI service exposing read access to user records, built around a
fixed request pipeline and an explicit process lifecycle.

Architecture Overview:
- **API Layer**: FastAPI application, middleware chain and lifecycle manager
- **Core Layer**: Configuration, correlation context, errors, logging, tracing
- **Users**: Service/repository contract for the user resource
- **Infrastructure Layer**: Async PostgreSQL access through SQLAlchemy

Every request passes through origin policy, correlation-identifier injection,
structured logging and panic containment before reaching a route handler.
"""
