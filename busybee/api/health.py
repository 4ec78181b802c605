from fastapi import APIRouter

from busybee.schemas import HealthResponse

router = APIRouter(tags=["Health"])


@router.get("/health", response_model=HealthResponse)
def health_check():
    """Anonymous liveness probe."""
    return HealthResponse()
