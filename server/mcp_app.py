# server/mcp_app.py

from fastmcp import FastMCP
from config import config


# Shared instance; tools and prompts register against it on import
mcp = FastMCP(config.server_name)
