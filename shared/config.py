"""
Shared configuration management for the federation services.
"""

from typing import Dict, List, Optional

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class SubgraphDefinition(BaseModel):
    """A backend service and the root fields it owns."""

    name: str
    url: str
    query_fields: List[str] = Field(default_factory=list)
    mutation_fields: List[str] = Field(default_factory=list)


# Placeholder cookie-signing secret, accepted only when env is "local".
DEFAULT_SESSION_SECRET = "change-me"

# Root field ownership of the default subgraphs. Schema composition is not
# performed by the gateway, so ownership is declared here or via
# FEDERATION_SUBGRAPHS.
DEFAULT_ROOT_FIELDS: Dict[str, Dict[str, List[str]]] = {
    "products": {
        "query_fields": ["products", "product", "recentlyViewed", "deploymentInfoProducts"],
        "mutation_fields": ["viewProduct"],
    },
    "customers": {
        "query_fields": ["identities", "me"],
        "mutation_fields": ["signOut"],
    },
    "content": {
        "query_fields": ["contents", "footer", "deploymentInfoContent"],
        "mutation_fields": ["setLocale"],
    },
    "orders": {
        "query_fields": ["cart", "deploymentInfoOrders"],
        "mutation_fields": ["addToCart", "clearCart"],
    },
}


class BaseConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_prefix="FEDERATION_",
        env_file=".env",
        case_sensitive=False,
        extra="allow",
    )

    # Environment
    env: str = Field(default="local")
    log_level: str = Field(default="info")
    cors_origins: str = Field(default="")

    # Session store
    redis_url: str = Field(default="redis://localhost:6379/0")
    session_store: str = Field(default="redis")
    session_key_prefix: str = Field(default="sess:")
    session_ttl_seconds: int = Field(default=86400)
    session_cookie_name: str = Field(default="sid")
    session_secret: str = Field(default=DEFAULT_SESSION_SECRET)
    session_cookie_secure: bool = Field(default=False)
    session_cookie_samesite: str = Field(default="lax")
    session_max_header_bytes: int = Field(default=8192)
    session_store_retry_attempts: int = Field(default=2)

    # Subgraphs
    products_url: str = Field(default="http://localhost:4001/graphql")
    customers_url: str = Field(default="http://localhost:4002/graphql")
    content_url: str = Field(default="http://localhost:4003/graphql")
    orders_url: str = Field(default="http://localhost:4004/graphql")
    subgraphs: List[SubgraphDefinition] = Field(default_factory=list)
    subgraph_timeout_seconds: float = Field(default=10.0)
    subgraph_failure_threshold: int = Field(default=5)
    subgraph_recovery_timeout: float = Field(default=30.0)

    # Observability
    enable_tracing: bool = Field(default=False)
    otel_exporter: str = Field(default="http://localhost:4318")
    enable_console_tracing: bool = Field(default=False)

    def get_subgraphs(self) -> List[SubgraphDefinition]:
        """Return the configured subgraphs, falling back to the defaults."""
        if self.subgraphs:
            return list(self.subgraphs)

        urls = {
            "products": self.products_url,
            "customers": self.customers_url,
            "content": self.content_url,
            "orders": self.orders_url,
        }
        return [
            SubgraphDefinition(name=name, url=urls[name], **fields)
            for name, fields in DEFAULT_ROOT_FIELDS.items()
        ]

    def get_cors_origins(self) -> List[str]:
        """Allowed CORS origins; everything is allowed in local mode."""
        origins = [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]
        if not origins and self.env == "local":
            return ["*"]
        return origins


class ServiceConfig(BaseConfig):
    """Service-specific configuration."""

    service_name: str
    port: int
    host: str = "0.0.0.0"

    def __init__(self, service_name: str, port: int, **kwargs):
        super().__init__(service_name=service_name, port=port, **kwargs)


def get_config(service_name: str, port: int, **overrides) -> ServiceConfig:
    """Get configuration for a specific service."""
    return ServiceConfig(service_name=service_name, port=port, **overrides)
