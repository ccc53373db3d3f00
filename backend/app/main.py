# backend/app/main.py

from contextlib import asynccontextmanager

from fastapi import FastAPI

from core.exceptions import register_exception_handlers
from app.startup import configure_logging, run_startup_checks
from modules.menus.routes.menu_routes import router as menu_router

configure_logging()


@asynccontextmanager
async def lifespan(app: FastAPI):
    await run_startup_checks()
    yield


app = FastAPI(
    title="Menus API",
    description="Navigation menus with nested items",
    version="1.0.0",
    lifespan=lifespan,
)

register_exception_handlers(app)

app.include_router(menu_router)


@app.get("/", tags=["health"])
def read_root():
    return {"message": "Menus backend is running"}
