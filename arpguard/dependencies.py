"""FastAPI dependencies shared by the routers."""

from fastapi import HTTPException, Request, status

from arpguard.services.detector import ARPDetector


def get_detector(request: Request) -> ARPDetector:
    """Return the detector created during application startup."""
    detector = getattr(request.app.state, "detector", None)
    if detector is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Detector is not initialised",
        )
    return detector
