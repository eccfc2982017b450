from tripshare.handlers.basic import basic_router
from tripshare.handlers.expenses import expenses_router
from tripshare.handlers.trips import trips_router

__all__ = ["basic_router", "expenses_router", "trips_router"]
