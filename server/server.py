# server/server.py
import os
import sys
import logging
import importlib
import pkgutil

from starlette.applications import Starlette
from starlette.middleware.cors import CORSMiddleware
from starlette.responses import JSONResponse, PlainTextResponse
import uvicorn

from cli import configure_logging
from config import config
from mcp_app import mcp
from db_connector import oracle_connector
from diagnostics import REPORTS

logger = logging.getLogger("server")

PACKAGES = ("tools", "prompts")


def import_submodules(pkg_name: str):
    """Import every module of a package so its @mcp decorators register."""
    pkg = importlib.import_module(pkg_name)
    imported = []
    for _, modname, ispkg in pkgutil.iter_modules(pkg.__path__):
        if not ispkg:
            full_name = f"{pkg_name}.{modname}"
            importlib.import_module(full_name)
            imported.append(full_name)
            logger.info(f"📦 Auto-imported: {full_name}")
    return imported


async def health(request):
    return PlainTextResponse("ok")


async def info(request):
    return JSONResponse({
        "name": config.server_name,
        "reports": sorted(REPORTS),
        "databases": sorted(config.database_presets),
    })


async def version(request):
    return JSONResponse({
        "server": config.server_name,
        "version": os.getenv("APP_VERSION", "1.0.0"),
        "python": sys.version,
    })


def create_app() -> Starlette:
    """Starlette host: plain status routes plus the MCP app mounted at /."""
    mcp_http_app = mcp.http_app()
    app = Starlette(lifespan=mcp_http_app.lifespan)

    app.add_route("/version", version, methods=["GET"])
    app.add_route("/healthz", health, methods=["GET"])
    app.add_route("/_info", info, methods=["GET"])

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )
    app.mount("/", mcp_http_app)
    return app


def main() -> None:
    configure_logging(0, False, "json" if config.log_json else "text")
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("fastmcp").setLevel(logging.WARNING)

    logger.info(f"🚀 MCP Server Starting: {config.server_name} ({len(REPORTS)} reports)")
    for pkg in PACKAGES:
        import_submodules(pkg)

    logger.info("🔍 Performing initial DB connectivity tests...")
    for preset_name in config.database_presets.keys():
        oracle_connector.test_connection(preset_name)

    logger.info(f"🌐 Listening on port: {config.server_port}")
    uvicorn.run(
        create_app(),
        host="0.0.0.0",
        port=config.server_port,
        log_level=config.log_level.lower(),
    )


if __name__ == "__main__":
    main()
