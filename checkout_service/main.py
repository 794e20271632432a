from fastapi import FastAPI
import structlog
from checkout_service.version import VERSION
from checkout_service.api import routes
from checkout_service.core.config import Settings, settings as default_settings
from checkout_service.core.logging import configure_logging
from checkout_service.db.session import make_engine, make_session_factory
from checkout_service.kafka.producer import OrderEventPublisher
from checkout_service.notifications.mailer import SmtpMailer
from checkout_service.payments.gateway import StripeGateway
from prometheus_fastapi_instrumentator import Instrumentator

log = structlog.get_logger(__name__)

def create_app(
    settings: Settings | None = None,
    *,
    session_factory=None,
    gateway=None,
    mailer=None,
    events=None,
) -> FastAPI:
    settings = settings or default_settings
    configure_logging(settings)

    app = FastAPI(title="Checkout Service", version=VERSION)

    app.state.settings = settings
    app.state.session_factory = session_factory or make_session_factory(make_engine(settings.POSTGRES_DSN))
    app.state.gateway = gateway or StripeGateway(
        settings.STRIPE_SECRET_KEY,
        settings.STRIPE_WEBHOOK_SECRET,
        tolerance=settings.STRIPE_WEBHOOK_TOLERANCE,
        currency=settings.CURRENCY,
    )
    app.state.mailer = mailer or SmtpMailer(settings.SMTP_HOST, settings.SMTP_PORT, settings.FROM_EMAIL)
    if events is None and settings.KAFKA_BOOTSTRAP:
        events = OrderEventPublisher(settings.KAFKA_BOOTSTRAP, settings.TOPIC_ORDER_EVENTS)
    app.state.events = events

    # Health endpoints
    @app.get("/health")
    def health():
        return {"status": "ok"}

    @app.get("/payments/health")
    def payments_health():
        return {"status": "ok"}

    @app.get("/v1/_info")
    def info():
        return {"service": "checkout", "version": VERSION}

    @app.on_event("startup")
    async def startup_event():
        for route in app.routes:
            if hasattr(route, "methods") and hasattr(route, "path"):
                log.info("route", methods=sorted(route.methods), path=route.path)

    @app.on_event("shutdown")
    async def shutdown_event():
        if app.state.events is not None and hasattr(app.state.events, "close"):
            app.state.events.close()

    app.include_router(routes.router, prefix="/payments", tags=["payments"])
    return app

app = create_app()

# Instrument the module-level app only; metric collectors are process-global
Instrumentator().instrument(app).expose(
    app,
    include_in_schema=False,
    endpoint="/payments/metrics",
    should_gzip=True,
)
