from medichat.api.routes import create_api_router
from medichat.api.ws import create_ws_router

__all__ = ["create_api_router", "create_ws_router"]
