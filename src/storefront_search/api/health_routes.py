from typing import Annotated

from fastapi import APIRouter, Depends

from .dependencies import get_refresh_controller
from ..search.refresh import CacheRefreshController

router = APIRouter(tags=["health"])

@router.get("/health")
def health(
    controller: Annotated[CacheRefreshController, Depends(get_refresh_controller)],
):
    return {"status": "ok", "loaded_tenants": controller.loaded_tenants()}
