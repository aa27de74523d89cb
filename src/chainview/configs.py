"""Configuration module."""

import os
from pathlib import Path

import yaml

PROJECT_NAME = "chainview"

_DEFAULT_SETTINGS_PATH = Path(__file__).resolve().parents[2] / "resources" / "sample_settings.yaml"

SETTINGS_PATH = os.getenv("CHAINVIEW_SETTINGS_PATH", str(_DEFAULT_SETTINGS_PATH))


def _load_settings(path: str) -> dict:
    if not os.path.exists(path):
        return {}
    with open(path, "r", encoding="utf-8") as handle:
        return yaml.safe_load(handle) or {}


settings = _load_settings(SETTINGS_PATH)


def _section(name: str) -> dict:
    return settings.get(name) or {}


##########################
#  Project Settings      #
##########################
SERVICE_NAME = os.getenv("SERVICE_NAME", _section("project").get("service_name", PROJECT_NAME))
ENV = os.getenv("CHAINVIEW_ENV", _section("project").get("env", "development"))

##########################
#  Log Settings          #
##########################
_log_settings = _section("log")
LOG_FILE_PATH = _log_settings.get("log_path", "default")
if LOG_FILE_PATH == "default":
    LOG_FILE_PATH = f"{PROJECT_NAME}.log"
LOG_FILE_LEVEL = os.getenv("LOG_FILE_LEVEL", _log_settings.get("log_file_level", "disable")).upper()
LOG_STREAM_LEVEL = os.getenv("LOG_STREAM_LEVEL", _log_settings.get("log_stream_level", "info")).upper()
LOG_FORMAT = _log_settings.get(
    "log_format",
    "[%(name)s][%(levelname)s][%(asctime)s][%(filename)s][%(lineno)d] %(message)s",
)

##########################
#  Web Server Settings   #
##########################
_webserver_settings = _section("web_server")
WEBSERVER_HOST = os.getenv("WEBSERVER_HOST", _webserver_settings.get("host", "0.0.0.0"))
WEBSERVER_PORT = int(os.getenv("PORT", _webserver_settings.get("port", 3000)))

##########################
#  MongoDB Settings      #
##########################
_mongo_settings = _section("mongodb")
MONGO_URI = os.getenv("MONGO_URI", _mongo_settings.get("uri", "mongodb://localhost:27017"))
MONGO_DB = os.getenv("MONGO_DB", _mongo_settings.get("db", "eos"))
MONGO_MAX_POOL_SIZE = int(os.getenv("MONGO_MAX_POOL_SIZE", _mongo_settings.get("max_pool_size", 50)))
MONGO_QUERY_TIMEOUT = float(os.getenv("MONGO_QUERY_TIMEOUT", _mongo_settings.get("query_timeout_seconds", 10)))

##########################
#  Blockchain Node       #
##########################
_node_settings = _section("node")
NODE_URI = os.getenv("NODE_URI", _node_settings.get("uri", "http://localhost:8888")).rstrip("/")
NODE_TIMEOUT = float(os.getenv("NODE_TIMEOUT", _node_settings.get("timeout_seconds", 10)))

##########################
#  Auth Settings         #
##########################
_auth_settings = _section("auth")
JWT_SECRET = os.getenv("JWT_SECRET", _auth_settings.get("jwt_secret", "change-me-to-a-long-random-secret-value"))
JWT_ALGORITHM = _auth_settings.get("jwt_algorithm", "HS256")
JWT_EXPIRATION_MINUTES = int(os.getenv("JWT_EXPIRATION_MINUTES", _auth_settings.get("jwt_expiration_minutes", 60)))
# bcrypt minimum cost under test.
BCRYPT_ROUNDS = 4 if ENV == "test" else int(_auth_settings.get("bcrypt_rounds", 10))

##########################
#  Query Settings        #
##########################
_query_settings = _section("query")
DEFAULT_LIMIT = int(_query_settings.get("default_limit", 30))
MAX_LIST_LIMIT = int(_query_settings.get("max_limit", 100))
