from fastapi import APIRouter, Depends

from labreview.container import ServiceContainer
from labreview.infra.functions.local import LocalFunctionInvoker
from labreview.security import get_container

router = APIRouter(prefix="", tags=["system"])


@router.get("/health")
async def health_check_v1() -> dict:
    """API v1 health endpoint."""
    return {"status": "ok", "version": "v1"}


@router.get("/system/backends")
async def backends_v1(container: ServiceContainer = Depends(get_container)) -> dict:
    """Report which collaborator implementations this process is using.

    Only backend names are returned; no URLs or keys.
    """

    config = container.config
    return {
        "session": config.session_backend,
        "functions": "local" if isinstance(container.invoker, LocalFunctionInvoker) else "http",
        "interpretation": config.interpretation_backend,
        "pdf_text": config.pdf_text_backend,
        "repositories": type(container.repositories.analyses).__name__,
    }
