# API module - REST routers
from .endpoints import laundry_router, lost_items_router, views_router, get_service, get_session

__all__ = ["laundry_router", "lost_items_router", "views_router", "get_service", "get_session"]
