"""Playback session, user and server models."""

from datetime import datetime, timezone

from pydantic import BaseModel, Field, field_validator


def ensure_utc(value: datetime) -> datetime:
    """Interpret naive datetimes as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class VideoDetails(BaseModel):
    """Video stream dimensions and bitrate."""

    width: int | None = Field(default=None, description="Frame width in pixels")
    height: int | None = Field(default=None, description="Frame height in pixels")
    bitrate: int | None = Field(default=None, description="Bitrate in bits per second")


class Session(BaseModel):
    """A playback session reported by a media server."""

    id: str = Field(..., description="Session unique identifier")
    server_id: str = Field(default="", description="Media server the session runs on")
    server_user_id: str = Field(..., description="Server user owning the session")
    started_at: datetime = Field(..., description="Playback start time")
    state: str = Field(default="playing", description="Playback state")

    # Network / location
    ip_address: str = Field(default="", description="Client IP address")
    geo_lat: float | None = Field(default=None, description="Latitude from IP geolocation")
    geo_lon: float | None = Field(default=None, description="Longitude from IP geolocation")
    geo_city: str | None = None
    geo_country: str | None = Field(default=None, description="ISO country code")

    # Client
    device_id: str | None = Field(default=None, description="Stable client device identifier")
    player_name: str | None = None
    product: str | None = Field(default=None, description="Client product, e.g. 'Plex for iOS'")
    device: str | None = Field(default=None, description="Device model, e.g. 'iPhone'")
    platform: str | None = Field(default=None, description="Client platform, e.g. 'iOS'")

    # Media
    media_type: str | None = Field(default=None, description="movie, episode, track, ...")

    # Stream quality
    is_transcode: bool = False
    video_decision: str | None = Field(default=None, description="directplay, copy or transcode")
    audio_decision: str | None = Field(default=None, description="directplay, copy or transcode")
    bitrate: int | None = Field(default=None, description="Session bitrate in bits per second")
    source_video_width: int | None = None
    source_video_height: int | None = None
    source_video_details: VideoDetails | None = None
    stream_video_details: VideoDetails | None = None

    @field_validator("started_at")
    @classmethod
    def _started_at_utc(cls, value: datetime) -> datetime:
        return ensure_utc(value)


class ServerUser(BaseModel):
    """An account on a media server."""

    id: str = Field(..., description="Server user unique identifier")
    username: str = Field(default="", description="Account username")
    trust_score: int = Field(default=100, description="Trust score, lowered by violations")
    created_at: datetime = Field(..., description="Account creation time")
    last_activity_at: datetime | None = Field(
        default=None,
        description="Last playback activity, None if never active",
    )

    @field_validator("created_at", "last_activity_at")
    @classmethod
    def _timestamps_utc(cls, value: datetime | None) -> datetime | None:
        return ensure_utc(value) if value is not None else None


class Server(BaseModel):
    """A media server instance."""

    id: str = Field(..., description="Server unique identifier")
    name: str = Field(default="", description="Display name")
    type: str = Field(default="plex", description="plex, jellyfin or emby")
