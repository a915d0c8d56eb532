"""Rich presence activity models and builder.

The session never inspects activity payloads; validation happens here,
before anything is handed to :meth:`Client.set_activity`.
"""

import time
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .errors import InvalidActivity

MAX_TEXT_LENGTH = 128
MAX_IMAGE_KEY_LENGTH = 256
MAX_BUTTONS = 2

Text = str | None


def _text(description: str) -> Any:
    return Field(None, min_length=1, max_length=MAX_TEXT_LENGTH, description=description)


class ActivityTimestamps(BaseModel):
    """Unix timestamps (seconds) shown as elapsed or remaining time."""

    start: int | None = Field(None, ge=0)
    end: int | None = Field(None, ge=0)


class ActivityAssets(BaseModel):
    large_image: str | None = Field(None, min_length=1, max_length=MAX_IMAGE_KEY_LENGTH)
    large_text: Text = _text("Hover text for the large image")
    small_image: str | None = Field(None, min_length=1, max_length=MAX_IMAGE_KEY_LENGTH)
    small_text: Text = _text("Hover text for the small image")


class ActivityParty(BaseModel):
    """Party id and ``[current, max]`` size."""

    id: str | None = None
    size: tuple[int, int] | None = None

    @field_validator("size")
    @classmethod
    def _check_size(cls, size: tuple[int, int] | None) -> tuple[int, int] | None:
        if size is None:
            return size
        current, maximum = size
        if current < 0 or maximum < 0:
            raise ValueError("party size values must be non-negative")
        if current > maximum:
            raise ValueError(f"party size {current} exceeds maximum {maximum}")
        return size


class ActivitySecrets(BaseModel):
    """Opaque join/spectate/match secrets, passed through as-is."""

    model_config = ConfigDict(populate_by_name=True)

    join: str | None = None
    spectate: str | None = None
    match_secret: str | None = Field(None, alias="match")


class ActivityButton(BaseModel):
    label: str = Field(..., min_length=1, max_length=MAX_TEXT_LENGTH)
    url: str = Field(..., min_length=1)

    @field_validator("url")
    @classmethod
    def _check_url(cls, url: str) -> str:
        if not url.startswith(("http://", "https://")):
            raise ValueError(f"button URL must use http or https: {url!r}")
        return url


class Activity(BaseModel):
    """A rich presence activity."""

    state: Text = _text("Current party status")
    details: Text = _text("What the player is doing")
    timestamps: ActivityTimestamps | None = None
    assets: ActivityAssets | None = None
    party: ActivityParty | None = None
    secrets: ActivitySecrets | None = None
    buttons: list[ActivityButton] | None = Field(None, max_length=MAX_BUTTONS)
    instance: bool | None = None

    def to_payload(self) -> dict[str, Any]:
        """JSON-ready dict without the fields that were never set."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class ActivityBuilder:
    """Fluent construction of an :class:`Activity`.

    Setters only record values; every check runs once, in :meth:`build`.

    >>> activity = ActivityBuilder().state("In a match").details("Ranked").build()
    """

    def __init__(self) -> None:
        self._fields: dict[str, Any] = {}
        self._timestamps: dict[str, int] = {}
        self._assets: dict[str, str] = {}
        self._secrets: dict[str, str] = {}
        self._buttons: list[dict[str, str]] = []

    def state(self, state: str) -> "ActivityBuilder":
        self._fields["state"] = state
        return self

    def details(self, details: str) -> "ActivityBuilder":
        self._fields["details"] = details
        return self

    def start_timestamp(self, timestamp: int) -> "ActivityBuilder":
        self._timestamps["start"] = timestamp
        return self

    def start_timestamp_now(self) -> "ActivityBuilder":
        """Start the elapsed-time counter at the current time."""
        return self.start_timestamp(int(time.time()))

    def end_timestamp(self, timestamp: int) -> "ActivityBuilder":
        self._timestamps["end"] = timestamp
        return self

    def large_image(self, key: str) -> "ActivityBuilder":
        self._assets["large_image"] = key
        return self

    def large_text(self, text: str) -> "ActivityBuilder":
        self._assets["large_text"] = text
        return self

    def small_image(self, key: str) -> "ActivityBuilder":
        self._assets["small_image"] = key
        return self

    def small_text(self, text: str) -> "ActivityBuilder":
        self._assets["small_text"] = text
        return self

    def party(self, party_id: str, current_size: int, max_size: int) -> "ActivityBuilder":
        self._fields["party"] = {"id": party_id, "size": (current_size, max_size)}
        return self

    def button(self, label: str, url: str) -> "ActivityBuilder":
        """Add a button; Discord shows at most two."""
        self._buttons.append({"label": label, "url": url})
        return self

    def join_secret(self, secret: str) -> "ActivityBuilder":
        self._secrets["join"] = secret
        return self

    def spectate_secret(self, secret: str) -> "ActivityBuilder":
        self._secrets["spectate"] = secret
        return self

    def match_secret(self, secret: str) -> "ActivityBuilder":
        self._secrets["match"] = secret
        return self

    def instance(self, instance: bool) -> "ActivityBuilder":
        self._fields["instance"] = instance
        return self

    def build(self) -> Activity:
        """Validate and return the activity.

        Raises:
            InvalidActivity: If any field breaks Discord's limits
        """
        data = dict(self._fields)
        if self._timestamps:
            data["timestamps"] = self._timestamps
        if self._assets:
            data["assets"] = self._assets
        if self._secrets:
            data["secrets"] = self._secrets
        if self._buttons:
            data["buttons"] = self._buttons
        try:
            return Activity.model_validate(data)
        except ValidationError as exc:
            raise InvalidActivity(str(exc)) from exc
