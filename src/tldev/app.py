from fastapi import FastAPI

from tldev.routes.admin import router as admin_router
from tldev.routes.cron import router as cron_router
from tldev.routes.tips import router as tips_router
from tldev.routes.users import router as users_router


def create_app() -> FastAPI:
    app = FastAPI(title="TL;Dev API", version="0.1.0")

    app.include_router(cron_router)
    app.include_router(tips_router)
    app.include_router(users_router)
    app.include_router(admin_router)

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    return app


app = create_app()
