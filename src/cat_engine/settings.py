"""Service settings for cat-engine.

All configuration is read from environment variables with the CAT_ prefix
(or a local .env file) and covers:
- Primary database connection and development schema bootstrap
- Store call timeouts
- Pagination limits per resource
- Identity headers forwarded by the authenticating gateway
- Lifecycle policy switches (terminal validation updates, duplicate assessments)
- Logging
"""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Settings for cat-engine.

    Environment variable prefix: CAT_
    """

    service_name: str = "cat-engine"
    environment: str = Field(
        default="development",
        description="Deployment environment: development | staging | production.",
    )

    # -------------------------------------------------------------------------
    # Database
    # -------------------------------------------------------------------------

    database_url: str = Field(
        default="sqlite+aiosqlite:///./cat.db",
        description="Async SQLAlchemy URL. Use postgresql+asyncpg://... in production.",
    )
    database_echo: bool = Field(
        default=False,
        description="Echo SQL statements to the log.",
    )
    create_schema: bool | None = Field(
        default=None,
        description=(
            "Create missing tables at startup instead of running Alembic migrations. "
            "Unset means enabled in development only."
        ),
    )
    store_timeout_seconds: float = Field(
        default=5.0,
        gt=0,
        description="Upper bound for a single store call. Exceeding it raises UnavailableError.",
    )

    # -------------------------------------------------------------------------
    # Pagination — maximums differ per resource
    # -------------------------------------------------------------------------

    default_page_size: int = Field(default=10, ge=1)
    validations_max_page_size: int = Field(default=100, ge=1)
    assessments_max_page_size: int = Field(default=100, ge=1)
    users_max_page_size: int = Field(default=20, ge=1)
    audit_max_page_size: int = Field(default=100, ge=1)

    # -------------------------------------------------------------------------
    # Identity — resolved upstream, forwarded as headers
    # -------------------------------------------------------------------------

    admin_role: str = Field(
        default="admin",
        description="Role name granting administrative operations.",
    )
    user_id_header: str = Field(
        default="X-User-Id",
        description="Header carrying the caller's stable unique identifier.",
    )
    user_roles_header: str = Field(
        default="X-User-Roles",
        description="Header carrying the caller's comma separated role list.",
    )
    server_url: str = Field(
        default="http://localhost:8080",
        description="Public base URL used to build Location headers for created resources.",
    )

    # -------------------------------------------------------------------------
    # Lifecycle policy
    # -------------------------------------------------------------------------

    allow_terminal_validation_updates: bool = Field(
        default=True,
        description="Allow admins to edit descriptive fields of APPROVED/REJECTED validations.",
    )
    allow_duplicate_assessments: bool = Field(
        default=False,
        description="Allow several assessments for the same owner, organisation, subject and type.",
    )
    authoring_actor_ids: list[int] = Field(
        default_factory=list,
        description="Actors granting assessment-authoring rights. Empty means every actor.",
    )

    # -------------------------------------------------------------------------
    # Logging
    # -------------------------------------------------------------------------

    log_level: str = Field(default="INFO")
    log_json: bool = Field(
        default=False,
        description="Render log lines as JSON instead of the console format.",
    )

    model_config = SettingsConfigDict(
        env_prefix="CAT_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @property
    def schema_bootstrap_enabled(self) -> bool:
        """Whether startup should call create_all() rather than rely on migrations."""
        if self.create_schema is not None:
            return self.create_schema
        return self.environment == "development"


@lru_cache
def get_settings() -> Settings:
    """Return the process-wide settings instance."""
    return Settings()
