from starlette.testclient import TestClient

import server
from diagnostics import REPORTS


def test_import_does_not_start_anything():
    assert callable(server.main)
    assert not hasattr(server, "app")


def test_health_and_info_routes():
    client = TestClient(server.create_app())
    health = client.get("/healthz")
    assert health.status_code == 200
    assert health.text == "ok"

    info = client.get("/_info").json()
    assert info["reports"] == sorted(REPORTS)
    assert "local_xe" in info["databases"]


def test_version_route():
    data = TestClient(server.create_app()).get("/version").json()
    assert data["server"] == server.config.server_name
    assert data["version"]


def test_tool_modules_discovered():
    imported = server.import_submodules("tools")
    assert "tools.report_tools" in imported
    assert "tools.database_tools" in imported
