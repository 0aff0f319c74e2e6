from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from doccontrol.core.auth.router import router as auth_router
from doccontrol.core.rbac.router import router as rbac_router
from doccontrol.core.departments.router import router as departments_router
from doccontrol.core.document_types.router import router as document_types_router
from doccontrol.core.documents.router import router as documents_router
from doccontrol.core.notifications.router import router as notifications_router
from doccontrol.core.reminders.router import router as reminders_router
from doccontrol.core.reports.router import router as reports_router
from doccontrol.errors import register_exception_handlers
from doccontrol.logging import setup_app_logging
from doccontrol.settings import get_settings

settings = get_settings()


def create_app() -> FastAPI:
    setup_app_logging()

    app = FastAPI(
        title="Document Control API",
        version="0.1.0",
        docs_url="/docs" if settings.APP_DEBUG else None,
        redoc_url="/redoc" if settings.APP_DEBUG else None,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if settings.APP_DEBUG else [settings.APP_URL],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    register_exception_handlers(app)

    app.include_router(auth_router)
    app.include_router(rbac_router)
    app.include_router(departments_router)
    app.include_router(document_types_router)
    app.include_router(documents_router)
    app.include_router(notifications_router)
    app.include_router(reminders_router)
    app.include_router(reports_router)

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    return app


app = create_app()
