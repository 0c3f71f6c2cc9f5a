from fastapi import APIRouter

from settings import load_settings

router = APIRouter()

@router.get("/")
def healthcheck():
    settings = load_settings()
    return {"ok": True, "shop": settings.client.shop or None, "credentials": settings.has_credentials}
