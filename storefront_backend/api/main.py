from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from storefront_backend.api.routes import health, schema

openapi_tags = [
    {"name": "Health", "description": "Service and dependency health checks."},
    {"name": "Schema", "description": "Tables mapped by the storefront models."},
]


def create_app() -> FastAPI:
    """Build the storefront API with its routers mounted."""
    application = FastAPI(
        title="Storefront Backend API",
        description="Storefront data-model service (carts, referrals, fulfillment, customization).",
        version="0.1.0",
        openapi_tags=openapi_tags,
    )
    application.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    application.include_router(health.router, tags=["Health"])
    application.include_router(schema.router, prefix="/schema", tags=["Schema"])
    return application


app = create_app()
