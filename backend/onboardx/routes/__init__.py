from onboardx.routes.rpc import router as rpc_router
from onboardx.routes.session import router as session_router

__all__ = ["rpc_router", "session_router"]
