from fastapi import FastAPI

from .api import health, host, servers
from .config import get_settings
from .logging_config import setup_logging

setup_logging(get_settings().log_level)

app = FastAPI(title="Game Server Watch")

app.include_router(health.router, prefix="/health", tags=["health"])
app.include_router(host.router, prefix="/host", tags=["host"])
app.include_router(servers.router, prefix="/servers", tags=["servers"])
