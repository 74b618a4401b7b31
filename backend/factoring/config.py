import json
import os
import re
from pathlib import Path
from typing import List, Optional

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict
from typing_extensions import Annotated


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False, extra="ignore")

    app_name: str = Field(default="Factor Operations API", validation_alias="PROJECT_NAME")
    environment: str = Field(default="dev", validation_alias="ENVIRONMENT")
    build_version: Optional[str] = Field(default=None, validation_alias="BUILD_VERSION")
    database_url: str = Field(
        default="sqlite+pysqlite:///./dev-local.db", validation_alias="DATABASE_URL"
    )
    # API prefix used by FastAPI router include (e.g. "/api").
    api_prefix: str = Field(default="/api", validation_alias="API_V1_STR")
    enable_docs: Optional[bool] = Field(default=None, validation_alias="ENABLE_DOCS")
    cors_origins: Annotated[List[str], NoDecode] = Field(
        default_factory=list, validation_alias="CORS_ORIGINS"
    )
    slow_request_ms: int = Field(default=2000, validation_alias="SLOW_REQUEST_MS")

    @field_validator("cors_origins", mode="before")
    @classmethod
    def parse_cors_origins(cls, value):
        def _normalize_origin(o: str) -> str:
            s = str(o).strip().strip('"').strip("'")
            # Browsers send the Origin header without a trailing slash.
            if s.endswith("/"):
                s = s[:-1]
            return s

        if value is None or value == "":
            return []

        if isinstance(value, str):
            s = value.strip()
            if (s.startswith('"') and s.endswith('"')) or (s.startswith("'") and s.endswith("'")):
                s = s[1:-1].strip()

            try:
                parsed = json.loads(s)
                if isinstance(parsed, str):
                    return [_normalize_origin(parsed)]
                if isinstance(parsed, list):
                    return [_normalize_origin(v) for v in parsed if str(v).strip()]
                return [_normalize_origin(str(parsed))]
            except json.JSONDecodeError:
                pass

            # Fall back to comma-separated origins.
            return [_normalize_origin(v) for v in s.split(",") if str(v).strip()]

        return value

    @field_validator("api_prefix", mode="before")
    @classmethod
    def normalize_api_prefix(cls, v) -> str:
        if v is None:
            return ""
        s = str(v).strip()
        if not s:
            return ""
        if s.startswith("/"):
            return s.rstrip("/")
        return f"/{s.rstrip('/')}"

    @field_validator("database_url", mode="before")
    @classmethod
    def normalize_database_url(cls, v):
        """Normalize Postgres URLs for psycopg3 and anchor relative SQLite paths.

        A relative SQLite path such as ``sqlite+pysqlite:///./dev-local.db`` is
        resolved against the backend folder so the same file is used no matter
        where the process was started from.
        """

        if v is None:
            return v

        s = str(v).strip()
        if not s:
            return s

        if s.startswith("postgres://"):
            s = "postgresql://" + s[len("postgres://") :]
        if s.startswith("postgresql://"):
            return "postgresql+psycopg://" + s[len("postgresql://") :]
        if s.startswith("postgresql+psycopg2://"):
            return "postgresql+psycopg://" + s[len("postgresql+psycopg2://") :]

        if not s.startswith("sqlite"):
            return s

        marker = ":///"
        i = s.find(marker)
        if i == -1:
            return s

        path_part = s[i + len(marker) :]
        if not path_part or path_part == ":memory:":
            return s
        if path_part.startswith("/") or re.match(r"^[A-Za-z]:/", path_part):
            return s

        if path_part.startswith("./") or path_part.startswith(".\\"):
            backend_root = Path(__file__).resolve().parents[1]
            abs_path = (backend_root / path_part[2:]).resolve().as_posix()
            return f"{s[: i + len(marker)]}{abs_path}"

        return s

    @model_validator(mode="after")
    def apply_environment_rules(self):
        env = str(self.environment or "dev").strip().lower()

        if self.enable_docs is None:
            self.enable_docs = env in {"dev", "development", "test"}

        if env in {"prod", "production"}:
            if not os.getenv("DATABASE_URL"):
                raise ValueError("DATABASE_URL must be explicitly set in production")
            if self.database_url.startswith("sqlite"):
                raise ValueError("SQLite DATABASE_URL is not allowed in production")
            if not self.cors_origins:
                raise ValueError("CORS_ORIGINS must be explicitly set in production")
        elif not self.cors_origins:
            self.cors_origins = [
                "http://localhost:3000",
                "http://localhost:5173",
                "http://127.0.0.1:3000",
                "http://127.0.0.1:5173",
            ]

        return self


settings = Settings()
