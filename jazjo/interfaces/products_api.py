from fastapi import APIRouter, Depends

from jazjo.interfaces.dependencies import Services, get_services

router = APIRouter()


@router.get("/products")
def list_products(services: Services = Depends(get_services)):
    catalog = services.catalog
    return {"products": [catalog.to_view(p) for p in catalog.list_active_products()]}
