from .export import (
    AssetRecord,
    BrandOverlays,
    ClaimedJob,
    ExportOptions,
    Format,
    JobStatusView,
    MetadataOverrides,
    Overlay,
)

__all__ = [
    "AssetRecord",
    "BrandOverlays",
    "ClaimedJob",
    "ExportOptions",
    "Format",
    "JobStatusView",
    "MetadataOverrides",
    "Overlay",
]
