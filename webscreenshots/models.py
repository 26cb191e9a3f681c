"""
Configuration models and validation rules.

External configuration (files, environment, CLI overrides) uses camelCase keys
such as 'outputDir' or 'captureOptions.fullPage'; the models expose snake_case
attributes and accept the camelCase names as aliases.
"""

import re
from typing import Any, Dict, List, Literal, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator
from pydantic.alias_generators import to_camel

from .errors import ConfigValidationError

AuthMethod = Literal["basic", "cookie", "form", "token"]
ImageType = Literal["png", "jpeg", "webp"]

ABSOLUTE_URI = re.compile(r"^[a-zA-Z][a-zA-Z\d+\-.]*://[^/?#\s]+")


class _Model(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
        extra="forbid",
    )


class BrowserOptions(_Model):
    headless: bool
    args: Optional[List[str]] = None


class CaptureOptions(_Model):
    full_page: bool
    image_type: ImageType
    quality: Optional[int] = Field(default=None, ge=0, le=100)


class Viewport(_Model):
    name: str = Field(min_length=1)
    width: int = Field(gt=0)
    height: int = Field(gt=0)
    device_scale_factor: Optional[float] = Field(default=None, gt=0)


class CrawlOptions(_Model):
    crawl_limit: Optional[int] = Field(default=None, ge=1)
    exclude_routes: Optional[List[str]] = None
    dynamic_routes_limit: Optional[int] = Field(default=None, ge=1)


class RetryOptions(_Model):
    max_attempts: int = Field(ge=1)
    delay_ms: int = Field(default=0, ge=0)


class BasicAuth(_Model):
    username: str = Field(min_length=1)
    password: str = Field(min_length=1)


class TokenAuth(_Model):
    header: str = Field(min_length=1)
    value: str = Field(min_length=1)


class FormAuth(_Model):
    login_url: str = Field(min_length=1)
    inputs: Dict[str, str]
    submit: str = Field(min_length=1)
    error_selector: Optional[str] = None
    success_selector: Optional[str] = None
    timeout_ms: int = Field(default=5000, gt=0)


class AuthOptions(_Model):
    method: AuthMethod
    basic: Optional[BasicAuth] = None
    cookies_path: Optional[str] = None
    form: Optional[FormAuth] = None
    token: Optional[TokenAuth] = None

    @model_validator(mode="after")
    def _check_method_fields(self) -> "AuthOptions":
        missing = {
            "basic": self.basic is None and "basic",
            "cookie": not self.cookies_path and "cookiesPath",
            "form": self.form is None and "form",
            "token": self.token is None and "token",
        }[self.method]
        if missing:
            raise ValueError(f"'{missing}' is required when method is '{self.method}'")
        return self


class Config(_Model):
    url: str
    output_dir: str = Field(min_length=1)
    output_pattern: str = Field(min_length=1)
    routes: List[str]
    browser_options: BrowserOptions
    capture_options: CaptureOptions
    viewports: List[Viewport] = Field(min_length=1)
    crawl: bool
    crawl_options: Optional[CrawlOptions] = None
    retry_options: RetryOptions
    auth_options: Optional[AuthOptions] = None

    @field_validator("url")
    @classmethod
    def _check_url(cls, value: str) -> str:
        # empty is allowed here; the CLI reports a missing url separately
        if value and not ABSOLUTE_URI.match(value):
            raise ValueError("must be an absolute URI (e.g. https://example.com)")
        return value


def _format_error(error: Mapping[str, Any]) -> str:
    path = ".".join(str(part) for part in error["loc"]) or "root"
    message = error["msg"]
    if error["type"] == "missing":
        return f"{path} is missing"
    return f"{path} {message}"


def validate_config(raw: Mapping[str, Any]) -> Config:
    """
    Validate a merged configuration mapping and build the Config record.
    Raises ConfigValidationError listing every violation, not just the first.
    """
    try:
        return Config.model_validate(raw)
    except ValidationError as e:
        raise ConfigValidationError([_format_error(err) for err in e.errors()]) from e
