from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger
from tortoise.contrib.fastapi import register_tortoise

from hotel_booking import settings
from hotel_booking.cache import close_redis
from hotel_booking.routers import booking, realtime, room
from hotel_booking.scopes import ADMIN_SCOPE, HOTEL_SCOPE_DESCRIPTIONS

TORTOISE_MODULES = {"models": ["hotel_booking.models"]}


def _describe_scopes() -> str:
    lines = [f"- `{scope}`: {text}" for scope, text in HOTEL_SCOPE_DESCRIPTIONS.items()]
    lines.append(f"- `{ADMIN_SCOPE}`: front-desk administrator.")
    return "Identity is injected by the gateway. Scopes:\n\n" + "\n".join(lines)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Hotel bookings service starting")
    yield
    await close_redis()
    logger.info("Hotel bookings service stopped")


def create_app() -> FastAPI:
    app = FastAPI(
        title="Hotel bookings",
        description=_describe_scopes(),
        lifespan=lifespan,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.include_router(booking.router)
    app.include_router(room.router)
    app.include_router(realtime.router)

    register_tortoise(
        app,
        db_url=settings.db_url,
        modules=TORTOISE_MODULES,
        generate_schemas=settings.GENERATE_SCHEMAS,
        add_exception_handlers=True,
    )
    return app


app = create_app()
