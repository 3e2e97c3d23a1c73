"""
Database preset tools.
"""

import logging

import oracledb

from mcp_app import mcp
from config import config
from db_connector import oracle_connector

logger = logging.getLogger(__name__)


@mcp.tool(
    name="list_available_databases",
    description=(
        "Lists all configured Oracle database presets and tests their connectivity. "
        "Returns each preset with connection status, version banner and database name. "
        "Use this to see which databases are available before running diagnostic reports."
    ),
)
def list_available_databases():
    """
    Returns configured presets with accessibility status.
    Connects to each one; a missing V$ grant still counts as accessible.
    """
    logger.info("🔍 list_available_databases() called")

    databases = []
    for db_name, db_config in config.database_presets.items():
        db_info = {
            "name": db_name,
            "user": db_config.get("user", ""),
            "dsn": db_config.get("dsn", ""),
            "status": "unknown",
            "message": "",
        }

        try:
            conn = oracle_connector.connect(db_name)
            try:
                cur = conn.cursor()
                version = "Unknown"
                db_instance = "Unknown"

                try:
                    cur.execute("SELECT banner FROM v$version WHERE ROWNUM = 1")
                    row = cur.fetchone()
                    if row:
                        version = row[0]

                    cur.execute("SELECT name FROM v$database")
                    row = cur.fetchone()
                    if row:
                        db_instance = row[0]
                except oracledb.DatabaseError as v_error:
                    # Connected, but no V$ access
                    if "ORA-00942" not in str(v_error):
                        raise
                    logger.info(f"⚠️  {db_name}: Connected but no V$ view access")

                db_info["status"] = "accessible"
                db_info["message"] = "Connected successfully" if version != "Unknown" else "Connected (limited V$ access)"
                db_info["version"] = version
                db_info["instance"] = db_instance
            finally:
                conn.close()
            logger.info(f"✅ {db_name}: accessible")

        except (oracledb.Error, KeyError) as e:
            db_info["status"] = "error"
            db_info["message"] = str(e)
            logger.warning(f"❌ {db_name}: {e}")

        databases.append(db_info)

    return {
        "databases": databases,
        "summary": {
            "total_databases": len(databases),
            "total_accessible": sum(1 for db in databases if db["status"] == "accessible"),
            "total_errors": sum(1 for db in databases if db["status"] == "error"),
        },
    }
