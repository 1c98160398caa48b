import json
import os
from dataclasses import dataclass, field

CONFIG_PATH = os.path.expanduser("~/.misan/config.json")


@dataclass
class CorsConfig:
    allow_origins: list = field(default_factory=lambda: ["*"])


@dataclass
class Config:
    cors: CorsConfig = field(default_factory=CorsConfig)
    data_path: str = os.path.expanduser("~/.misan")
    log_level: str = "INFO"
    db_file: str = ""

    @property
    def db_path(self) -> str:
        if self.db_file:
            return self.db_file
        return os.path.join(self.data_path, "misan.db")


def load_config() -> Config:
    """
    Load configuration. Precedence:
    1. MISAN_* environment variables
    2. ~/.misan/config.json (overrides)
    3. dataclass defaults
    """
    overrides: dict = {}
    if os.path.exists(CONFIG_PATH):
        with open(CONFIG_PATH) as f:
            overrides = json.load(f)

    cors_overrides = overrides.get("cors", {})
    cors_cfg = CorsConfig(
        allow_origins=cors_overrides.get("allow_origins", ["*"]),
    )

    return Config(
        cors=cors_cfg,
        data_path=os.path.expanduser(overrides.get("data_path", "~/.misan")),
        log_level=os.getenv("MISAN_LOG_LEVEL", overrides.get("log_level", "INFO")),
        db_file=os.getenv("MISAN_DB_PATH", overrides.get("db_file", "")),
    )
