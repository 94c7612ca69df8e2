"""
FastAPI dependencies.
"""
from fastapi import Request

from venue_tracker.services.registry import Registry


def get_registry(request: Request) -> Registry:
    """
    Dependency that provides the process registry.

    The registry is created with the app and lives on ``app.state``; tests
    swap it through ``app.dependency_overrides[get_registry]``.

    Usage in FastAPI:
    ```python
    @router.get("/endpoint")
    async def endpoint(registry: Registry = Depends(get_registry)):
        ...
    ```
    """
    return request.app.state.registry
