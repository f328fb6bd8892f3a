import logging

from typing import Any

from fastapi import FastAPI
import uvicorn

from fhir_broker.container import setup_container
from fhir_broker.routers.broker_router import router as broker_router
from fhir_broker.routers.client_router import router as client_router
from fhir_broker.routers.event_router import router as event_router
from fhir_broker.routers.health import router as health_router
from fhir_broker.routers.source_router import router as source_router
from fhir_broker.routers.subscription_router import router as subscription_router
from fhir_broker.routers.token_router import router as token_router
from fhir_broker.config import get_config
from fhir_broker.stats import StatsdMiddleware, setup_stats


def get_uvicorn_params() -> dict[str, Any]:
    config = get_config()
    kwargs = {
        "host": config.uvicorn.host,
        "port": config.uvicorn.port,
        "reload": config.uvicorn.reload,
        "reload_delay": config.uvicorn.reload_delay,
        "reload_dirs": config.uvicorn.reload_dirs,
    }
    if (
        config.uvicorn.use_ssl
        and config.uvicorn.ssl_base_dir is not None
        and config.uvicorn.ssl_cert_file is not None
        and config.uvicorn.ssl_key_file is not None
    ):
        kwargs["ssl_keyfile"] = config.uvicorn.ssl_base_dir + "/" + config.uvicorn.ssl_key_file
        kwargs["ssl_certfile"] = config.uvicorn.ssl_base_dir + "/" + config.uvicorn.ssl_cert_file

    return kwargs


def run() -> None:
    uvicorn.run("fhir_broker.application:create_fastapi_app", factory=True, **get_uvicorn_params())


def create_fastapi_app() -> FastAPI:
    if get_config().stats.enabled:
        setup_stats()

    application_init()
    return setup_fastapi()


def application_init() -> None:
    setup_logging()
    setup_container()


def setup_logging() -> None:
    loglevel = logging.getLevelName(get_config().app.loglevel.value.upper())

    if isinstance(loglevel, str):
        raise ValueError(f"Invalid loglevel {loglevel.upper()}")
    logging.basicConfig(
        level=loglevel,
        datefmt="%m/%d/%Y %I:%M:%S %p",
    )


def setup_fastapi() -> FastAPI:
    config = get_config()

    fastapi = (
        FastAPI(docs_url=config.uvicorn.docs_url, redoc_url=config.uvicorn.redoc_url)
        if config.uvicorn.swagger_enabled
        else FastAPI(docs_url=None, redoc_url=None)
    )

    routers = [
        health_router,
        broker_router,
        token_router,
        subscription_router,
        event_router,
        source_router,
        client_router,
    ]
    for router in routers:
        fastapi.include_router(router)

    stats_conf = config.stats
    if stats_conf.enabled:
        fastapi.add_middleware(StatsdMiddleware, module_name=stats_conf.module_name or "fhir_broker")

    return fastapi
