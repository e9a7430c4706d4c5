"""Site configuration: settings schema and _config.yml loader"""

import os
from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field


CONFIG_FILE = "_config.yml"
ENV_PREFIX = "MDSITE_"


class Settings(BaseModel):
    """Build settings; unknown keys from _config.yml are kept and exposed as site variables."""
    model_config = ConfigDict(extra="allow")

    title:       str = "My Blog"
    description: str = ""
    author:      str = ""
    url:         str = Field(default="", description="Scheme and host, e.g. https://example.com")
    baseurl:     str = Field(default="", description="Path prefix the site is served under")

    source:      str = Field(default=".",      description="Site source directory")
    destination: str = Field(default="_site",  description="Directory for rendered HTML")
    db_url:      str = Field(default="sqlite:///mdsite.db", description="Build manifest database")

    permalink:         str = Field(default="date", description="Permalink style name or :placeholder template")
    excerpt_separator: str = Field(default="\n\n", description="Marker ending a post excerpt")
    date_format:       str = Field(default="%b %d, %Y", description="strftime format used by listings")
    parser_config:     str = Field(default="gfm-like",  description="MarkdownIt parser preset name")

    strict_variables: bool = Field(default=False, description="Fail on unresolved template identifiers")
    drafts:  bool = Field(default=False, description="Build posts from the drafts directory")
    future:  bool = Field(default=False, description="Build posts dated after the build time")
    workers: int  = Field(default=1, ge=1, description="Render threads; 1 renders sequentially")

    post_layout:  Optional[str] = Field(default=None, description="Layout for posts without a layout key")
    page_layout:  Optional[str] = Field(default=None, description="Layout for pages without a layout key")
    index_layout: Optional[str] = Field(default=None, description="Layout for the generated post listing")
    exclude: list[str] = Field(default_factory=list, description="Glob patterns skipped during discovery")

    layouts_dir:  str = "_layouts"
    includes_dir: str = "_includes"
    posts_dir:    str = "_posts"
    drafts_dir:   str = "_drafts"
    data_dir:     str = "_data"

    @property
    def source_path(self) -> Path:
        return Path(self.source)

    @property
    def destination_path(self) -> Path:
        dest = Path(self.destination)
        return dest if dest.is_absolute() else self.source_path / dest

    @property
    def database_url(self) -> str:
        """db_url with a relative sqlite file resolved against the source directory."""
        prefix = "sqlite:///"
        if self.db_url.startswith(prefix):
            path = Path(self.db_url[len(prefix):])
            if str(path) != ":memory:" and not path.is_absolute():
                return prefix + (self.source_path / path).as_posix()
        return self.db_url

    def site_variables(self) -> dict[str, Any]:
        """Return every setting (including extra _config.yml keys) for the `site` template variable."""
        return self.model_dump()


def _read_config_file(source: Path) -> dict[str, Any]:
    path = source / CONFIG_FILE
    if not path.exists():
        return {}
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise ValueError(f"Invalid {CONFIG_FILE}: {e}") from e
    if not isinstance(data, dict):
        raise ValueError(f"Invalid {CONFIG_FILE}: expected a mapping, got {type(data).__name__}")
    return data


def load_config(overrides: dict[str, Any] = None) -> Settings:
    """Load Settings from <source>/_config.yml, then MDSITE_<FIELD> env vars, then non-None CLI overrides."""
    overrides = {k: v for k, v in (overrides or {}).items() if v is not None}
    source = overrides.get("source") or os.getenv(f"{ENV_PREFIX}SOURCE") or "."

    data = _read_config_file(Path(source))
    for name in Settings.model_fields:
        if val := os.getenv(f"{ENV_PREFIX}{name.upper()}"):
            data[name] = val

    data.update(overrides)
    data["source"] = str(source)
    return Settings(**data)
