from typing import Any, Dict, Optional

from fastapi import APIRouter, FastAPI

from relay_service.app.http.routers.chat import router as chat_router
from relay_service.app.http.routers.health import router as health_router
from relay_service.app.http.routers.models import router as models_router


def create_app(service: Optional[Any] = None, settings: Optional[Dict[str, Any]] = None) -> FastAPI:
    """Create and configure the FastAPI application with DI.

    `service` replaces the configured GenerationService (tests pass one built
    around a ScriptedProvider).
    """
    from relay_service.core.config import load_settings
    from relay_service.core.factory import ServiceFactory
    from relay_service.core.logging import configure_logging

    settings = settings if settings is not None else load_settings()
    configure_logging((settings.get("logging", {}) or {}).get("level", "INFO"))

    if service is None:
        service = ServiceFactory(settings).get_generation_service()

    app = FastAPI(title="relay-service")
    # store service on app state
    app.state.gen_svc = service

    # Create a new APIRouter for versioning
    v1_router = APIRouter(prefix="/api/v1")

    # include routers
    v1_router.include_router(chat_router)
    v1_router.include_router(health_router)
    v1_router.include_router(models_router)

    app.include_router(v1_router)
    return app
