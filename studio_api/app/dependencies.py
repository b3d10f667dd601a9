from fastapi import Depends, HTTPException, Request, status

from .database import Database
from .repository import EstimateRepository


def get_database(request: Request) -> Database:
    """
    Dependency that hands the request the app's database capability.
    """
    database = getattr(request.app.state, "database", None)
    if database is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Database not initialized"
        )
    return database


def get_estimate_repository(database: Database = Depends(get_database)) -> EstimateRepository:
    return EstimateRepository(database)
