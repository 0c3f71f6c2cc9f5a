from fastapi import HTTPException

from pipeline.services import Services, build_services


def get_services() -> Services:
    services = build_services()
    if services is None:
        raise HTTPException(status_code=501, detail="Shopify credentials are not configured")
    return services
