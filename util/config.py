from __future__ import annotations
import os
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional

import pulumi

from util.errors import ConfigurationError

CONFIG_NAMESPACE = "multicloud"

DEFAULT_IMAGE_TAG = "latest"
DEFAULT_APP_PORT = 3000
MIN_PORT, MAX_PORT = 1, 65535

# Only these process variables ever reach the workload.
ENV_WHITELIST = (
    "MAIL_URL",
    "ROOT_URL",
    "MONGO_URL",
    "STORAGE_PATH",
    "TZ",
    "PORT",
    "REFRESH_STATIC_PROFILES",
    "REFRESH_PERMISSIONS",
    "EMAIL_SERVICES",
)

DEFAULT_CLUSTERS: List[Dict[str, Any]] = [{"name": "gke"}]


def require_positive_int(cfg: pulumi.Config, key: str) -> int:
    try:
        val = cfg.get_int(key)
    except pulumi.ConfigTypeError as e:
        raise ConfigurationError(f"Config {cfg.name}:{key} must be an integer") from e
    if val is None:
        raise ConfigurationError(f"Missing required config: {cfg.name}:{key}")
    if val <= 0:
        raise ConfigurationError(f"Config {cfg.name}:{key} must be positive, got {val}")
    return val

# ---- Process environment ----------------------------------------------------

def image_tag(environ: Optional[Mapping[str, str]] = None) -> str:
    environ = os.environ if environ is None else environ
    return environ.get("IMAGE_TAG") or DEFAULT_IMAGE_TAG

def app_port(environ: Optional[Mapping[str, str]] = None) -> int:
    """Container port from PORT; unset, non-numeric or out of range falls back to 3000.

    Only the leading integer counts, so "8080/tcp" yields 8080.
    """
    environ = os.environ if environ is None else environ
    m = re.match(r"\s*([+-]?\d+)", environ.get("PORT") or "")
    port = int(m.group(1)) if m else 0
    return port if MIN_PORT <= port <= MAX_PORT else DEFAULT_APP_PORT

def forwarded_env(environ: Optional[Mapping[str, str]] = None) -> Dict[str, Optional[str]]:
    environ = os.environ if environ is None else environ
    # every whitelisted name is present, unset ones carry None
    return {name: environ.get(name) for name in ENV_WHITELIST}

def database_ip(environ: Optional[Mapping[str, str]] = None) -> Optional[str]:
    environ = os.environ if environ is None else environ
    return environ.get("DATABASE_IP_ADDRESS") or None

# ---- Settings ---------------------------------------------------------------

@dataclass(frozen=True)
class Settings:
    image_tag: str
    app_port: int
    environment: Dict[str, Optional[str]]
    database_ip: Optional[str]
    storage_gb: int
    clusters: List[Dict[str, Any]]

def load_settings(cfg: Optional[pulumi.Config] = None,
                  environ: Optional[Mapping[str, str]] = None) -> Settings:
    cfg = cfg or pulumi.Config(CONFIG_NAMESPACE)

    clusters = cfg.get_object("clusters")
    if clusters is None:
        pulumi.log.info(f"{cfg.name}:clusters not set; deploying to {DEFAULT_CLUSTERS[0]['name']} only")
        clusters = DEFAULT_CLUSTERS
    if not isinstance(clusters, list) or not all(isinstance(c, dict) for c in clusters):
        raise ConfigurationError(f"Config {cfg.name}:clusters must be a list of objects")

    return Settings(
        image_tag=image_tag(environ),
        app_port=app_port(environ),
        environment=forwarded_env(environ),
        database_ip=database_ip(environ),
        storage_gb=require_positive_int(cfg, "filesVolumeSize"),
        clusters=list(clusters),
    )
