"""
Configuration module for the action context runtime.

Loads cluster connection and operator identity settings from environment
variables.
"""

import logging
import os
from dataclasses import dataclass, field
from typing import Optional

SERVICE_ACCOUNT_TOKEN_FILE = "/var/run/secrets/kubernetes.io/serviceaccount/token"
SERVICE_ACCOUNT_CA_FILE = "/var/run/secrets/kubernetes.io/serviceaccount/ca.crt"

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("1", "true", "yes")


@dataclass
class ClusterConfig:
    """Kubernetes API server connection configuration."""

    api_server: str = "https://kubernetes.default.svc"
    token: str = field(default="", repr=False)  # Never log token
    ca_file: Optional[str] = None
    verify_ssl: bool = True
    request_timeout: int = 30  # seconds

    @classmethod
    def from_env(cls):
        """Load from environment variables."""
        token = os.getenv("KUBE_TOKEN", "")
        if not token:
            token_file = os.getenv("KUBE_TOKEN_FILE", SERVICE_ACCOUNT_TOKEN_FILE)
            if os.path.exists(token_file):
                with open(token_file, "r") as f:
                    token = f.read().strip()

        ca_file = os.getenv("KUBE_CA_FILE")
        if ca_file is None and os.path.exists(SERVICE_ACCOUNT_CA_FILE):
            ca_file = SERVICE_ACCOUNT_CA_FILE

        return cls(
            api_server=os.getenv("KUBE_API_SERVER", "https://kubernetes.default.svc"),
            token=token,
            ca_file=ca_file,
            verify_ssl=_env_bool("KUBE_VERIFY_SSL", "true"),
            request_timeout=int(os.getenv("KUBE_REQUEST_TIMEOUT", "30")),
        )


@dataclass
class OperatorConfig:
    """Identity of the operator emitting events and applying resources."""

    name: str = "action-context"
    instance: str = "local"
    field_manager: str = "action-context"
    force_apply: bool = True
    log_level: str = "INFO"

    @classmethod
    def from_env(cls):
        """Load from environment variables."""
        name = os.getenv("OPERATOR_NAME", "action-context")
        return cls(
            name=name,
            instance=os.getenv(
                "OPERATOR_INSTANCE", os.getenv("HOSTNAME", "local")
            ),
            field_manager=os.getenv("FIELD_MANAGER", name),
            force_apply=_env_bool("FORCE_APPLY", "true"),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
        )


@dataclass
class Config:
    """Main configuration object."""

    cluster: ClusterConfig
    operator: OperatorConfig

    @classmethod
    def from_env(cls):
        """Load all configuration from environment variables."""
        return cls(
            cluster=ClusterConfig.from_env(),
            operator=OperatorConfig.from_env(),
        )

    @classmethod
    def default(cls):
        """Return default configuration."""
        return cls(
            cluster=ClusterConfig(),
            operator=OperatorConfig(),
        )


# Global config instance
config: Optional[Config] = None


def load_config() -> Config:
    """Load configuration (singleton pattern)."""
    global config
    if config is None:
        config = Config.from_env()
    return config


def get_config() -> Config:
    """Get the current configuration."""
    if config is None:
        return load_config()
    return config


def reset_config() -> None:
    """Reset configuration (mainly for testing)."""
    global config
    config = None


def configure_logging(level: Optional[str] = None) -> None:
    """Configure root logging with the configured level."""
    level = level or get_config().operator.log_level
    logging.basicConfig(level=level.upper(), format=LOG_FORMAT)
