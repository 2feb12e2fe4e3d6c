from fastapi import Request

from .registry import SessionRegistry


async def get_registry(request: Request) -> SessionRegistry:
    """
    FastAPI dependency returning the registry created in create_app().

    Tests hand create_app() a registry whose sessions talk to a mock transport.
    """
    return request.app.state.registry
