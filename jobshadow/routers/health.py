from fastapi import APIRouter, Request

router = APIRouter(prefix="/api", tags=["health"])


@router.get("/health")
def health(request: Request):
    storage = request.app.state.storage
    return {"status": "ok", "storage": storage.name, "ready": storage.ready}
