"""
FastAPI Status Service for the Oracle Coordinator

Exposes liveness and registration state of a running coordinator.
"""

from datetime import datetime, UTC
from typing import List, Optional

from fastapi import FastAPI
from pydantic import BaseModel

from common.schemas import CoordinatorStatus


# Pydantic models
class HealthResponse(BaseModel):
    """Response model for /health endpoint"""
    status: str
    timestamp: str
    state: str


class StatusResponse(BaseModel):
    """Response model for /status endpoint"""
    bootstrapped: bool
    registered_count: int
    last_request_handled_at: Optional[datetime] = None
    state: str
    records_handled: int
    responses_submitted: int
    responses_failed: int


class OracleInfo(BaseModel):
    address: str
    indexes: List[int]


def create_app(coordinator) -> FastAPI:
    """
    Build the status app for a coordinator.

    Args:
        coordinator: Object with a status() -> CoordinatorStatus method and
            a registry attribute listing identities

    Returns:
        FastAPI application
    """
    app = FastAPI(
        title="Flight Status Oracle Coordinator",
        version="1.0.0",
        description="Liveness and status of the oracle response coordinator"
    )

    @app.get("/")
    async def root():
        """Root endpoint - service info"""
        return {
            "message": "Flight Status Oracle Coordinator",
            "version": "1.0.0",
            "endpoints": {
                "health": "/health",
                "status": "/status",
                "oracles": "/oracles"
            }
        }

    @app.get("/api")
    async def api_info():
        return {"message": "An API for use with your Dapp!"}

    @app.get("/health", response_model=HealthResponse)
    async def health_check():
        """Health check endpoint"""
        status: CoordinatorStatus = coordinator.status()
        healthy = status.state not in ("shutting_down", "stopped")
        return HealthResponse(
            status="healthy" if healthy else "unavailable",
            timestamp=datetime.now(UTC).isoformat(),
            state=status.state
        )

    @app.get("/status", response_model=StatusResponse)
    async def get_status():
        """
        Coordinator status.

        Reports whether bootstrapping finished, how many oracles are
        registered and when the last request was handled.
        """
        status: CoordinatorStatus = coordinator.status()
        return StatusResponse(**status.model_dump())

    @app.get("/oracles", response_model=List[OracleInfo])
    async def list_oracles():
        """Registered oracles and their assigned indexes"""
        return [
            OracleInfo(address=identity.address, indexes=sorted(identity.indexes))
            for identity in coordinator.registry.identities()
        ]

    return app
