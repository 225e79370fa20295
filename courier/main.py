import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from courier import config
from courier.routers.admin import router as admin_router
from courier.routers.driver import router as driver_router
from courier.routers.internal_cms import router as internal_cms_router
from courier.routers.internal_ros import router as internal_ros_router
from courier.routers.internal_wms import router as internal_wms_router
from courier.routers.orders import router as orders_router
from courier.routers.stock import router as stock_router
from courier.routers.updates import router as updates_router
from courier.services import Services, build_services

logging.basicConfig(
    level=config.LOG_LEVEL,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def create_app(services: Services | None = None) -> FastAPI:
    services = services or build_services()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        services.start()
        logger.info("courier gateway started")
        yield
        services.stop()

    app = FastAPI(title="Courier Gateway", lifespan=lifespan)
    app.state.services = services

    app.include_router(orders_router)
    app.include_router(driver_router)
    app.include_router(stock_router)
    app.include_router(admin_router)
    app.include_router(updates_router)
    app.include_router(internal_cms_router)
    app.include_router(internal_wms_router)
    app.include_router(internal_ros_router)

    app.add_middleware(
        CORSMiddleware,
        allow_origin_regex=config.CORS_ORIGIN_REGEX,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/health")
    def health():
        return {"ok": True}

    return app


app = create_app()

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
