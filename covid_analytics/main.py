# main.py
from fastapi.middleware.cors import CORSMiddleware
import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI
from covid_analytics.api.router import router
from covid_analytics.config import Settings, settings
from covid_analytics.database.repository import (
    ClickHouseRepository, CovidRepository, FrameRepository,
)

import clickhouse_connect
from clickhouse_connect.driver import httputil

logging.basicConfig(level=settings.LOG_LEVEL.upper())
logger = logging.getLogger(__name__)


def create_repository(config: Settings) -> CovidRepository:
    """Build the read-only data source selected by DATA_SOURCE"""
    if config.DATA_SOURCE == "csv":
        return FrameRepository.from_csv(config.DEATHS_CSV, config.VACCINATIONS_CSV)

    # Larger, blocking pool manager shared by every request
    pool = httputil.get_pool_manager(
        maxsize=config.CH_POOL_MAXSIZE,
        num_pools=config.CH_POOL_NUM_POOLS,
        block=True,
    )

    client = clickhouse_connect.get_client(
        host=config.CH_HOST,
        port=config.CH_PORT,
        username=config.CH_USERNAME,
        password=config.CH_PASSWORD,
        database=config.CH_DATABASE,
        secure=config.CH_SECURE,
        verify=config.CH_VERIFY,
        pool_mgr=pool,
        connect_timeout=config.CH_CONNECT_TIMEOUT,
        send_receive_timeout=config.CH_SEND_RECV_TIMEOUT,
    )
    return ClickHouseRepository(
        client,
        deaths_table=config.DEATHS_TABLE,
        vaccinations_table=config.VACCINATIONS_TABLE,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    logger.info("COVID Analytics API starting up...")
    logger.info(f"Data source: {settings.DATA_SOURCE}")

    # One repository per process, reused by every route
    app.state.repository = create_repository(settings)

    try:
        yield
    finally:
        # Shutdown
        try:
            app.state.repository.close()
        except Exception as e:
            logger.warning(f"Error closing repository: {e}")
        logger.info("COVID Analytics API shutting down...")

app = FastAPI(
    title="COVID Analytics API",
    description="Rolling averages, cumulative totals and reporting queries over the OWID COVID-19 deaths and vaccinations tables",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
)

app.include_router(router=router)
