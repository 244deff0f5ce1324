from __future__ import annotations

from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

PositiveInt = Annotated[int, Field(ge=1)]

DEFAULT_PROFILE_URL_TEMPLATE = "https://instagram.com/{username}"


class StorageConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    path: str = "ghosttrace.sqlite"
    enabled: bool = True

    @field_validator("path")
    @classmethod
    def _path_must_be_non_empty(cls, v: str) -> str:
        p = (v or "").strip()
        if not p:
            raise ValueError("must be a non-empty path")
        return p


class ReportConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    out_dir: str = "reports"
    default_format: Literal["csv", "xlsx"] = "csv"
    profile_url_template: str = DEFAULT_PROFILE_URL_TEMPLATE

    @field_validator("profile_url_template")
    @classmethod
    def _template_needs_username(cls, v: str) -> str:
        t = (v or "").strip()
        if "{username}" not in t:
            raise ValueError("must contain the {username} placeholder")
        try:
            t.format(username="example")
        except (KeyError, IndexError, ValueError) as e:
            raise ValueError(f"invalid template: {e}") from e
        return t


class LogConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    path: str = "ghosttrace.log"
    min_level: Literal["DEBUG", "INFO", "WARN", "ERROR"] = "INFO"

    @field_validator("min_level", mode="before")
    @classmethod
    def _upper_level(cls, v: object) -> object:
        return v.strip().upper() if isinstance(v, str) else v


class HistoryConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    limit: PositiveInt = 5


class AppConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    storage: StorageConfig = Field(default_factory=StorageConfig)
    report: ReportConfig = Field(default_factory=ReportConfig)
    log: LogConfig = Field(default_factory=LogConfig)
    history: HistoryConfig = Field(default_factory=HistoryConfig)
