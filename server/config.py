import os
import re

import yaml

SETTINGS_PATH = os.getenv(
    "ORADIAG_SETTINGS",
    os.path.join(os.path.dirname(__file__), "config/settings.yaml"),
)

_ENV_REF = re.compile(r"^\$\{([A-Za-z_][A-Za-z0-9_]*)\}$")

OUTPUT_PRESETS = ("standard", "compact", "minimal")


def _expand_env(value):
    """Resolve a whole-value ``${VAR}`` reference from the environment."""
    if isinstance(value, str):
        m = _ENV_REF.match(value.strip())
        if m:
            return os.getenv(m.group(1), "")
    return value


class Config:
    def __init__(self, path: str = None):
        self.path = path or SETTINGS_PATH
        with open(self.path, "r", encoding="utf-8") as f:
            self._raw = yaml.safe_load(f) or {}

        # Read server section
        server = self._raw.get("server", {})
        self.server_name = server.get("name", "oracle_diagnostics_mcp")
        self.server_port = server.get("port", 8310)

        # Logging, env wins over file
        logging_cfg = self._raw.get("logging", {})
        self.log_level = os.getenv("LOG_LEVEL", logging_cfg.get("level", "INFO")).upper()
        self.log_json = os.getenv("LOG_JSON") == "1" or bool(logging_cfg.get("json", False))

        # Database presets
        self.database_presets = self._raw.get("database_presets", {}) or {}

        # Report output
        reports = self._raw.get("reports", {}) or {}
        preset = reports.get("output_preset", "compact")
        self.output_preset = preset if preset in OUTPUT_PRESETS else "compact"
        self.max_rows = int(reports.get("max_rows", 200))
        self.spool_dir = reports.get("spool_dir", ".")
        self.report_defaults = reports.get("defaults", {}) or {}

    def get_db_preset(self, name):
        if name not in self.database_presets:
            raise KeyError(f"DB preset '{name}' is not defined in settings.yaml")
        preset = dict(self.database_presets[name])
        preset["password"] = _expand_env(preset.get("password", ""))
        return preset

    def get_report_defaults(self, report_name: str) -> dict:
        return dict(self.report_defaults.get(report_name, {}) or {})


config = Config()
