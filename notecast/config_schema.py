from __future__ import annotations

import re
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

_HEX_KEY_RE = re.compile(r"^[0-9a-f]{64}$")
_SERVER_NAME_RE = re.compile(r"^[a-z0-9][a-z0-9_.-]*$")
_ENV_NAME_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

GENERIC_FAILURE_MESSAGE = "Failed to upload the image / video"

# Placeholder identity for configs that only exercise the pipeline offline.
_DEFAULT_PUBKEY = "0" * 64

VariantName = Literal["external_link", "content_addressed"]

NonNegativeFloat = Annotated[float, Field(ge=0.0)]
PositiveFloat = Annotated[float, Field(gt=0.0)]


def _validate_env_var_name(value: str) -> str:
    name = (value or "").strip()
    if not _ENV_NAME_RE.fullmatch(name):
        raise ValueError("must be a valid environment variable name")
    return name


def _normalize_key_list(values: list[str]) -> list[str]:
    out: list[str] = []
    seen: set[str] = set()

    for item in values:
        key = (item or "").strip().lower()
        if not key:
            continue
        if not _HEX_KEY_RE.fullmatch(key):
            raise ValueError(f"not a 64-char hex public key: {item!r}")
        if key in seen:
            continue
        seen.add(key)
        out.append(key)

    return out


def _normalize_tag_list(values: list[str], *, strip_prefix: str | None = None) -> list[str]:
    out: list[str] = []
    seen: set[str] = set()

    for item in values:
        term = (item or "").strip()
        if strip_prefix and term.startswith(strip_prefix):
            term = term[len(strip_prefix) :].strip()
        key = term.lower()
        if not key or key in seen:
            continue
        seen.add(key)
        out.append(key)

    return out


class PipelineConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    image_grace_seconds: NonNegativeFloat = 2.0
    other_grace_seconds: NonNegativeFloat = 15.0
    download_timeout_seconds: PositiveFloat = 30.0
    upload_timeout_seconds: PositiveFloat = 60.0
    failure_message: str = GENERIC_FAILURE_MESSAGE

    @field_validator("failure_message")
    @classmethod
    def _message_must_be_non_empty(cls, v: str) -> str:
        msg = (v or "").strip()
        if not msg:
            raise ValueError("must be non-empty")
        return msg


class ServerConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    name: str
    upload_url: str | None = None
    # Dotted path into the upload response JSON, list indexes allowed ("data.0.url").
    url_field: str = "url"
    file_field: str = "file"
    # Environment variable holding the Authorization header value, if the server needs one.
    auth_env: str | None = None
    variants: list[VariantName] = Field(default_factory=lambda: ["external_link"])

    @field_validator("name")
    @classmethod
    def _name_must_be_slug(cls, v: str) -> str:
        name = (v or "").strip().lower()
        if not _SERVER_NAME_RE.fullmatch(name):
            raise ValueError("must be a lowercase slug")
        return name

    @field_validator("auth_env")
    @classmethod
    def _auth_env_must_be_valid(cls, v: str | None) -> str | None:
        if v is None:
            return None
        return _validate_env_var_name(v)

    @field_validator("variants")
    @classmethod
    def _variants_must_be_unique(cls, v: list[VariantName]) -> list[VariantName]:
        if not v:
            raise ValueError("must list at least one variant")
        if len(set(v)) != len(v):
            raise ValueError("must not repeat a variant")
        return v

    @model_validator(mode="after")
    def _external_link_needs_upload_url(self) -> "ServerConfig":
        if "external_link" in self.variants and not (self.upload_url or "").strip():
            raise ValueError("external_link servers require upload_url")
        return self


def _default_servers() -> list[ServerConfig]:
    return [
        ServerConfig(
            name="imgur",
            upload_url="https://api.imgur.com/3/image",
            url_field="data.link",
            file_field="image",
            auth_env="IMGUR_AUTHORIZATION",
            variants=["external_link", "content_addressed"],
        ),
        ServerConfig(
            name="nostrimg",
            upload_url="https://nostrimg.com/api/upload",
            url_field="imageUrl",
            file_field="image",
            variants=["external_link", "content_addressed"],
        ),
        ServerConfig(
            name="nostr_build",
            upload_url="https://nostr.build/api/v2/upload/files",
            url_field="data.0.url",
            variants=["external_link"],
        ),
        ServerConfig(name="embedded", variants=["content_addressed"]),
    ]


class IdentityConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    pubkey: str = _DEFAULT_PUBKEY
    default_server: str = "nostr_build"

    @field_validator("pubkey")
    @classmethod
    def _pubkey_must_be_hex(cls, v: str) -> str:
        key = (v or "").strip().lower()
        if not _HEX_KEY_RE.fullmatch(key):
            raise ValueError("must be a 64-char hex public key")
        return key

    @field_validator("default_server")
    @classmethod
    def _server_name_lower(cls, v: str) -> str:
        return (v or "").strip().lower()


class FeedConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    viewer: str | None = None
    active_list: str = "global"
    followed_authors: list[str] = Field(default_factory=list)
    followed_hashtags: list[str] = Field(default_factory=list)
    followed_geotags: list[str] = Field(default_factory=list)
    hidden_authors: list[str] = Field(default_factory=list)

    @field_validator("viewer")
    @classmethod
    def _viewer_must_be_hex(cls, v: str | None) -> str | None:
        if v is None:
            return None
        key = v.strip().lower()
        if not _HEX_KEY_RE.fullmatch(key):
            raise ValueError("must be a 64-char hex public key")
        return key

    @field_validator("active_list")
    @classmethod
    def _active_list_non_empty(cls, v: str) -> str:
        value = (v or "").strip()
        if not value:
            raise ValueError("must be non-empty")
        return value

    @field_validator("followed_authors", "hidden_authors")
    @classmethod
    def _normalize_keys(cls, v: list[str]) -> list[str]:
        return _normalize_key_list(v)

    @field_validator("followed_hashtags")
    @classmethod
    def _normalize_hashtags(cls, v: list[str]) -> list[str]:
        return _normalize_tag_list(v, strip_prefix="#")

    @field_validator("followed_geotags")
    @classmethod
    def _normalize_geotags(cls, v: list[str]) -> list[str]:
        return _normalize_tag_list(v)


class AppConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    pipeline: PipelineConfig = Field(default_factory=PipelineConfig)
    servers: list[ServerConfig] = Field(default_factory=_default_servers)
    identity: IdentityConfig = Field(default_factory=IdentityConfig)
    feed: FeedConfig = Field(default_factory=FeedConfig)

    @model_validator(mode="after")
    def _servers_must_be_consistent(self) -> "AppConfig":
        names = [s.name for s in self.servers]
        if len(set(names)) != len(names):
            raise ValueError("server names must be unique")
        if self.identity.default_server not in names:
            raise ValueError(
                f"identity.default_server {self.identity.default_server!r} is not a configured server"
            )
        return self
