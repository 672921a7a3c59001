"""Pydantic models describing catalog payloads and API schemas."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from typing import Annotated, Literal, Union

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

logger = logging.getLogger(__name__)

ContentType = Literal["movie", "tv"]

RELEASE_DATE_FORMAT = "%Y-%m-%d"


class WatchedStatus(str, Enum):
    WATCHING = "WATCHING"
    FINISHED = "FINISHED"
    PLANNED = "PLANNED"
    ONHOLD = "ONHOLD"
    DROPPED = "DROPPED"


class ActivityType(str, Enum):
    ADDED_WATCHED = "ADDED_WATCHED"
    STATUS_CHANGED = "STATUS_CHANGED"
    RATING_CHANGED = "RATING_CHANGED"


@dataclass(slots=True)
class ContentFields:
    """Catalog metadata flattened into the columns of a cached content row."""

    tmdb_id: int
    type: ContentType
    title: str
    overview: str
    poster_path: str
    release_date: date | None
    popularity: float
    vote_average: float
    vote_count: int
    imdb_id: str
    status: str
    budget: int
    revenue: int

    @property
    def is_usable(self) -> bool:
        return bool(self.tmdb_id) and bool(self.title.strip())


def parse_release_date(value: str | None) -> date | None:
    """Parse a TMDB ``YYYY-MM-DD`` date, returning None when absent or malformed."""

    if not value:
        return None
    try:
        return datetime.strptime(value, RELEASE_DATE_FORMAT).date()
    except ValueError:
        logger.debug("Ignoring unparsable release date %r", value)
        return None


class _CatalogPayload(BaseModel):
    """Fields shared by TMDB movie and show detail responses."""

    model_config = ConfigDict(extra="ignore")

    id: int = 0
    overview: str | None = None
    poster_path: str | None = None
    popularity: float | None = None
    vote_average: float | None = None
    vote_count: int | None = None
    status: str | None = None


class MovieMetadata(_CatalogPayload):
    """Detail response for ``GET /movie/{id}``."""

    kind: Literal["movie"] = "movie"
    title: str | None = None
    release_date: str | None = None
    imdb_id: str | None = None
    budget: int | None = None
    revenue: int | None = None

    def to_content_fields(self) -> ContentFields:
        return ContentFields(
            tmdb_id=self.id,
            type="movie",
            title=self.title or "",
            overview=self.overview or "",
            poster_path=self.poster_path or "",
            release_date=parse_release_date(self.release_date),
            popularity=self.popularity or 0.0,
            vote_average=self.vote_average or 0.0,
            vote_count=self.vote_count or 0,
            imdb_id=self.imdb_id or "",
            status=self.status or "",
            budget=self.budget or 0,
            revenue=self.revenue or 0,
        )


class ShowMetadata(_CatalogPayload):
    """Detail response for ``GET /tv/{id}``. Shows carry no budget, revenue or IMDb id."""

    kind: Literal["tv"] = "tv"
    name: str | None = None
    first_air_date: str | None = None

    def to_content_fields(self) -> ContentFields:
        return ContentFields(
            tmdb_id=self.id,
            type="tv",
            title=self.name or "",
            overview=self.overview or "",
            poster_path=self.poster_path or "",
            release_date=parse_release_date(self.first_air_date),
            popularity=self.popularity or 0.0,
            vote_average=self.vote_average or 0.0,
            vote_count=self.vote_count or 0,
            imdb_id="",
            status=self.status or "",
            budget=0,
            revenue=0,
        )


CatalogMetadata = Annotated[
    Union[MovieMetadata, ShowMetadata], Field(discriminator="kind")
]


class GameCover(BaseModel):
    model_config = ConfigDict(
        extra="ignore", alias_generator=to_camel, populate_by_name=True
    )

    id: int | None = None
    image_id: str | None = None


class Game(BaseModel):
    """A game as returned by the IGDB ``/games`` endpoint."""

    model_config = ConfigDict(
        extra="ignore", alias_generator=to_camel, populate_by_name=True
    )

    id: int
    name: str = ""
    cover: GameCover | None = None
    version_title: str | None = None
    summary: str | None = None
    first_release_date: int | None = None


class TokenResponse(BaseModel):
    """Client-credentials token grant response."""

    model_config = ConfigDict(extra="ignore")

    access_token: str = Field(
        validation_alias=AliasChoices("access_token", "accessToken")
    )
    expires_in: int = Field(validation_alias=AliasChoices("expires_in", "expiresIn"))
    token_type: str | None = Field(
        default=None, validation_alias=AliasChoices("token_type", "tokenType")
    )


class _ApiModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, from_attributes=True
    )


class WatchedAddRequest(_ApiModel):
    """Payload for adding a title to the caller's watched list."""

    content_id: int = Field(gt=0)
    content_type: ContentType
    status: WatchedStatus | None = None
    rating: int = Field(default=0, ge=0, le=10)


class WatchedUpdateRequest(_ApiModel):
    """Partial update. A rating of 0 means "leave the rating alone"."""

    status: WatchedStatus | None = None
    rating: int | None = Field(default=None, ge=0, le=10)

    @model_validator(mode="after")
    def _require_change(self) -> "WatchedUpdateRequest":
        if self.status is None and not self.rating:
            raise ValueError("status or rating is required")
        return self

    def changed_values(self) -> dict[str, object]:
        """Return the columns this request actually changes."""

        values: dict[str, object] = {}
        if self.rating:
            values["rating"] = self.rating
        if self.status is not None:
            values["status"] = self.status
        return values


class ContentOut(_ApiModel):
    id: int
    tmdb_id: int
    type: ContentType
    title: str
    overview: str
    poster_path: str
    release_date: date | None
    popularity: float
    vote_average: float
    vote_count: int
    imdb_id: str
    status: str
    budget: int
    revenue: int


class ActivityOut(_ApiModel):
    id: int
    watched_id: int
    type: ActivityType
    data: str | None = None
    created_at: datetime


class WatchedEntry(_ApiModel):
    id: int
    status: WatchedStatus
    rating: int
    content: ContentOut
    activity: list[ActivityOut] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime

    @field_validator("activity", mode="before")
    @classmethod
    def _none_as_empty(cls, value: object) -> object:
        return [] if value is None else value
