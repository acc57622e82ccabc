"""
==============================================================================
Health Check Endpoints
==============================================================================

System health status endpoints for monitoring and orchestration.

==============================================================================
"""

from fastapi import APIRouter

from app.config import get_settings
from app.core.dependencies import get_decoder


router = APIRouter(prefix="/health", tags=["Health"])


class HealthController:
    """Controller for health check operations."""

    def check_decoder(self) -> dict:
        """Check decoder backend availability."""
        try:
            decoder = get_decoder()
        except Exception as e:
            return {"status": "unavailable", "backend": None, "error": str(e)}
        return {"status": "healthy", "backend": decoder.name}

    def get_health(self) -> dict:
        """Get full health status."""
        settings = get_settings()
        decoder_info = self.check_decoder()

        overall = "healthy" if decoder_info["status"] == "healthy" else "degraded"

        return {
            "status": overall,
            "components": {
                "api": "healthy",
                "decoder": decoder_info["status"]
            },
            "details": {
                "decoder_backend": decoder_info["backend"],
                "scan_mode": settings.scan_mode,
                "scan_strategy": settings.scan_strategy,
                "dedup_window_ms": settings.dedup_window_ms
            }
        }


@router.get("")
async def health_check():
    """
    Health check endpoint.

    Returns system status including API and decoder backend.
    """
    controller = HealthController()
    return controller.get_health()


@router.get("/ready")
async def readiness_check():
    """Readiness probe for container orchestration."""
    return {"ready": True}


@router.get("/live")
async def liveness_check():
    """Liveness probe for container orchestration."""
    return {"alive": True}
