"""FastAPI application factory.

Routes are grouped by audience: learner-facing subscription and lesson
endpoints, public site endpoints, the email-dispatch cron hook, and the
admin CRM.
"""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from faloclaro.api.errors import register_exception_handlers
from faloclaro.api.routers import admin, cron, lessons, public, subscription
from faloclaro.constants import CORS_ORIGINS, ENV
from faloclaro.libs.logging_helper import setup_logging


def create_app() -> FastAPI:
    setup_logging()

    app = FastAPI(title="FaloClaro API", version="0.1.0")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    register_exception_handlers(app)

    app.include_router(subscription.router)
    app.include_router(lessons.router)
    app.include_router(public.router)
    app.include_router(cron.router)
    app.include_router(admin.router)

    @app.get("/health")
    def health():
        return {"status": "ok", "env": ENV}

    return app


app = create_app()
