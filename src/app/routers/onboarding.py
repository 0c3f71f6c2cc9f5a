from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse
from pydantic import BaseModel

from app.deps import get_services
from pipeline.nodes.configure_theme import ConfigureRequest, configure_theme_node, fetch_theme_files
from pipeline.nodes.create_collections import CollectionsRequest, create_collections_node
from pipeline.nodes.import_products import ImportRequest, import_products_node
from pipeline.nodes.menus_policies import MenusRequest, menus_policies_node
from pipeline.nodes.publish_theme import PublishRequest, publish_theme_node
from pipeline.nodes.upload_images import ImagesRequest, upload_images_node
from pipeline.nodes.upload_theme import ThemeRequest, upload_theme_node
from pipeline.nodes.validate_catalog import CatalogRequest, validate_catalog_node
from pipeline.services import Services
from pipeline.steps import STEPS
from pipeline.streaming import NDJSON, encode_events

router = APIRouter()


class ThemeFilesRequest(BaseModel):
    theme_id: str


@router.get("/onboarding/steps")
def list_steps():
    return [s.describe() for s in STEPS]


@router.post("/onboarding/step1-csv")
def step1_csv(req: CatalogRequest):
    return validate_catalog_node(req).response()


@router.post("/onboarding/step2-products")
def step2_products(req: ImportRequest, services: Services = Depends(get_services)):
    return StreamingResponse(encode_events(import_products_node(req, services)), media_type=NDJSON)


@router.post("/onboarding/step3-collections")
def step3_collections(req: CollectionsRequest, services: Services = Depends(get_services)):
    return create_collections_node(req, services).response()


@router.post("/onboarding/step4-theme")
def step4_theme(req: ThemeRequest, services: Services = Depends(get_services)):
    return upload_theme_node(req, services).response()


@router.post("/onboarding/step5-images")
def step5_images(req: ImagesRequest, services: Services = Depends(get_services)):
    return upload_images_node(req, services).response()


@router.post("/onboarding/step6-configure")
def step6_configure(req: ConfigureRequest, services: Services = Depends(get_services)):
    return configure_theme_node(req, services).response()


@router.post("/onboarding/step7-publish")
def step7_publish(req: PublishRequest, services: Services = Depends(get_services)):
    return publish_theme_node(req, services).response()


@router.post("/onboarding/step8-menus")
def step8_menus(req: MenusRequest, services: Services = Depends(get_services)):
    return menus_policies_node(req, services).response()


@router.post("/onboarding/theme-files")
def theme_files(req: ThemeFilesRequest, services: Services = Depends(get_services)):
    return fetch_theme_files(services.client, req.theme_id)
