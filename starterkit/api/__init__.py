"""HTTP API layer built on FastAPI.

Key components:
- **main**: Application factory
- **lifecycle**: Listener startup, signal handling and graceful drain
- **middleware**: Cross-cutting stages applied to every request
- **dependencies**: Dependencies shared by route handlers
- **schemas**: Shared response models
- **utils**: orjson response class
"""
