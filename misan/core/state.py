"""Shared application state (config, datastore)."""
import logging

from config import load_config
from db.store import DataStore

config = load_config()

logging.basicConfig(
    level=getattr(logging, config.log_level.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)

# Global objects
store = DataStore(config.db_path)
store.init_db()
