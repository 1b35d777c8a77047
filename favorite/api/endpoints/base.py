from fastapi import APIRouter

router = APIRouter()


@router.get(
    "/health",
    tags=["General"],
    summary="Health Check",
    description="Returns the health status of the application.",
)
async def health():
    return {"status": "ok"}
