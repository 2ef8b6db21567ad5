import re
from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from export_worker.models.export import PACKED_IN_ZIP, AssetType, ExportStatus

_RESOLUTION_RE = re.compile(r"^(\d+)x(\d+)$")


class _CamelModel(BaseModel):
    """JSON columns are written by the dashboard in camelCase."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


class Format(_CamelModel):
    ratio: str = Field(pattern=r"^\d+(\.\d+)?:\d+(\.\d+)?$")
    resolution: str
    bitrate: str | None = None
    fps: int | None = Field(default=None, gt=0)

    @field_validator("resolution")
    @classmethod
    def validate_resolution(cls, v: str) -> str:
        match = _RESOLUTION_RE.match(v)
        if not match or int(match.group(1)) == 0 or int(match.group(2)) == 0:
            raise ValueError(f"resolution must look like WIDTHxHEIGHT, got {v!r}")
        return v

    @property
    def width(self) -> int:
        return int(self.resolution.split("x")[0])

    @property
    def height(self) -> int:
        return int(self.resolution.split("x")[1])

    @property
    def dirname(self) -> str:
        """Ratio usable as a path segment, e.g. ``9:16`` -> ``9x16``."""
        return self.ratio.replace(":", "x")

    @property
    def variant(self) -> str:
        return f"{self.ratio}-{self.resolution}"


class MetadataOverrides(_CamelModel):
    title: str | None = None
    description: str | None = None
    hashtags: list[str] = Field(default_factory=list)


class ExportOptions(_CamelModel):
    generate_thumbnails: bool = False
    thumbnail_timecode: str | None = None
    metadata_overrides: MetadataOverrides = Field(default_factory=MetadataOverrides)
    output_naming: str | None = None

    @field_validator("metadata_overrides", mode="before")
    @classmethod
    def none_to_empty(cls, v):
        return {} if v is None else v


class Overlay(BaseModel):
    """Opaque ffmpeg filter expression supplied by a brand kit."""

    model_config = ConfigDict(frozen=True)

    expression: str = Field(min_length=1)

    @classmethod
    def from_raw(cls, value: str | None) -> "Overlay | None":
        if value is None or not value.strip():
            return None
        return cls(expression=value)


class BrandOverlays(BaseModel):
    model_config = ConfigDict(frozen=True)

    brand_kit_id: UUID
    name: str
    video: Overlay | None = None
    thumbnail: Overlay | None = None


class ClaimedJob(BaseModel):
    """Snapshot of a claimed export job with validated request payload."""

    model_config = ConfigDict(from_attributes=True, frozen=True)

    id: UUID
    user_id: str
    source_video_path: str
    storage_bucket: str | None = None
    formats: list[Format] = Field(min_length=1)
    options: ExportOptions = Field(default_factory=ExportOptions)
    brand_kit_id: UUID | None = None
    retry_count: int = 0
    created_at: datetime | None = None

    @field_validator("options", mode="before")
    @classmethod
    def none_to_empty(cls, v):
        return {} if v is None else v

    @model_validator(mode="after")
    def unique_ratios(self) -> "ClaimedJob":
        # Each ratio owns one directory and one thumbnail name in the zip.
        seen: dict[str, str] = {}
        for fmt in self.formats:
            if fmt.dirname in seen:
                raise ValueError(
                    f"formats {seen[fmt.dirname]} and {fmt.variant} share ratio {fmt.ratio}; "
                    "only one resolution per ratio can be exported"
                )
            seen[fmt.dirname] = fmt.variant
        return self


class AssetRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: AssetType
    variant: str
    storage_path: str = PACKED_IN_ZIP
    size_bytes: int = Field(ge=0)
    checksum: str


class JobStatusView(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    status: ExportStatus
    progress: int
    error: str | None = None
