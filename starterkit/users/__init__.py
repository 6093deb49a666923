"""User resource: persistence model, store contract, service and HTTP routes.

Layers, from storage up:
- **models**: ``UserRecord`` table mapping
- **repository**: ``UserStore`` capability and its SQLAlchemy implementation
- **service**: pagination bounds and translation of store failures into
  domain errors
- **router**: ``/api/v1/users`` endpoints
"""
