from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi.middleware import SlowAPIMiddleware

from rentguard.api.v1 import api_router
from rentguard.core.errors import register_exception_handlers
from rentguard.core.health import APP_VERSION
from rentguard.core.limiter import limiter
from rentguard.core.logging import configure_logging
from rentguard.core.settings import settings
from rentguard.events import register_event_handlers
from rentguard.middlewares.request_context import RequestContextMiddleware
from rentguard.middlewares.security_headers import SecurityHeadersMiddleware
from rentguard.middlewares.trust_proxies import TrustedProxiesMiddleware


def create_app() -> FastAPI:
    configure_logging()
    app = FastAPI(title="RentGuard Backend", version=APP_VERSION)
    register_exception_handlers(app)
    app.state.limiter = limiter
    app.add_middleware(SlowAPIMiddleware)
    app.add_middleware(TrustedProxiesMiddleware, proxies_count=settings.proxies_count)
    app.add_middleware(RequestContextMiddleware)
    app.add_middleware(SecurityHeadersMiddleware, enable_hsts=settings.enable_hsts)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.include_router(api_router, prefix="/api/v1")
    register_event_handlers(app)
    return app


app = create_app()
