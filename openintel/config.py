"""
Configuration: loads settings from .openintel.yaml, environment variables,
and built-in defaults (in that priority order: CLI args > env > YAML > defaults).

Example ``.openintel.yaml``::

    db_path: ~/intel/openintel.db
    vec_backend: auto
    embedding:
      provider: voyage
      api_key: pa-...
      model: voyage-3-lite
      dimensions: 512          # optional; defaults to the model's native size
"""

import os

import yaml

from .embeddings import EmbeddingConfig


_DEFAULTS = {
    "db_path": "openintel.db",
    "vec_backend": "auto",
    "vec_extension_path": "",
    "embedding_provider": "",
    "embedding_api_key": "",
    "embedding_api_url": "",
    "embedding_model": "",
    "embedding_dimensions": None,
    "embedding_timeout": 60.0,
}

# Config file search locations
_CONFIG_FILENAMES = [".openintel.yaml", ".openintel.yml"]


def _find_config_file(explicit_path: str | None = None) -> str | None:
    """Find the config file. Checks explicit path, CWD, then user home."""
    if explicit_path:
        if os.path.isfile(explicit_path):
            return explicit_path
        return None

    search_dirs = [os.getcwd(), os.path.expanduser("~")]
    for d in search_dirs:
        for name in _CONFIG_FILENAMES:
            path = os.path.join(d, name)
            if os.path.isfile(path):
                return path
    return None


def _load_yaml(path: str) -> dict:
    """Load YAML file, returns empty dict on failure."""
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
        return data if isinstance(data, dict) else {}
    except (OSError, yaml.YAMLError):
        return {}


class Config:
    """Store configuration.

    Settings are resolved in priority order:
    1. CLI arguments (handled by caller)
    2. Environment variables (``OPENINTEL_*``)
    3. .openintel.yaml config file
    4. Built-in defaults
    """

    def __init__(self, yaml_data: dict | None = None):
        yd = yaml_data or {}
        emb = yd.get("embedding", {}) if isinstance(yd.get("embedding"), dict) else {}

        def _get(env_key: str, section: dict, yaml_key: str, default, cast=str):
            env_val = os.getenv(env_key)
            if env_val:
                return cast(env_val)
            yaml_val = section.get(yaml_key)
            if yaml_val is not None:
                return cast(yaml_val)
            return default

        self.DB_PATH = os.path.expanduser(
            _get("OPENINTEL_DB", yd, "db_path", _DEFAULTS["db_path"]))
        self.VEC_BACKEND = _get("OPENINTEL_VEC_BACKEND", yd, "vec_backend",
                                _DEFAULTS["vec_backend"]).lower()
        self.VEC_EXTENSION_PATH = _get("OPENINTEL_VEC_EXT", yd, "vec_extension_path",
                                       _DEFAULTS["vec_extension_path"])

        # Embedding provider
        self.EMBEDDING_PROVIDER = _get("OPENINTEL_EMBEDDING_PROVIDER", emb, "provider",
                                       _DEFAULTS["embedding_provider"]).lower()
        self.EMBEDDING_API_KEY = _get("OPENINTEL_EMBEDDING_API_KEY", emb, "api_key",
                                      _DEFAULTS["embedding_api_key"])
        self.EMBEDDING_API_URL = _get("OPENINTEL_EMBEDDING_API_URL", emb, "api_url",
                                      _DEFAULTS["embedding_api_url"])
        self.EMBEDDING_MODEL = _get("OPENINTEL_EMBEDDING_MODEL", emb, "model",
                                    _DEFAULTS["embedding_model"])
        self.EMBEDDING_DIMENSIONS = _get("OPENINTEL_EMBEDDING_DIMENSIONS", emb, "dimensions",
                                         _DEFAULTS["embedding_dimensions"], cast=int)
        self.EMBEDDING_TIMEOUT = _get("OPENINTEL_EMBEDDING_TIMEOUT", emb, "timeout",
                                      _DEFAULTS["embedding_timeout"], cast=float)

    def embedding_config(self) -> EmbeddingConfig | None:
        """Return the remote provider settings, or None when no provider is set."""
        if not self.EMBEDDING_PROVIDER:
            return None
        return EmbeddingConfig(
            provider=self.EMBEDDING_PROVIDER,
            api_key=self.EMBEDDING_API_KEY,
            api_url=self.EMBEDDING_API_URL or None,
            model=self.EMBEDDING_MODEL or None,
            dimensions=self.EMBEDDING_DIMENSIONS,
            timeout=self.EMBEDDING_TIMEOUT,
        )

    @classmethod
    def load(cls, config_path: str | None = None) -> "Config":
        """Load config from YAML file (if found) + env vars + defaults."""
        path = _find_config_file(config_path)
        yaml_data = _load_yaml(path) if path else {}
        return cls(yaml_data)
