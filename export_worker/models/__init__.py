from .base import Base, SessionLocal, check_connection, engine
from .export import (
    ACTIVE_STATUSES,
    PACKED_IN_ZIP,
    TERMINAL_STATUSES,
    AssetType,
    BrandKit,
    ExportAsset,
    ExportJob,
    ExportStatus,
)

__all__ = [
    "Base",
    "SessionLocal",
    "check_connection",
    "engine",
    "ACTIVE_STATUSES",
    "PACKED_IN_ZIP",
    "TERMINAL_STATUSES",
    "AssetType",
    "BrandKit",
    "ExportAsset",
    "ExportJob",
    "ExportStatus",
]
