import hashlib
import zipfile
from pathlib import Path

import structlog

logger = structlog.get_logger()

_CHUNK_SIZE = 1024 * 1024


def create_zip(source_dir: str | Path, output_path: str | Path) -> int:
    """Zip every file under ``source_dir`` with paths relative to it. Returns the archive size."""
    source_dir = Path(source_dir)
    output_path = Path(output_path)
    files = sorted(p for p in source_dir.rglob("*") if p.is_file())

    with zipfile.ZipFile(output_path, "w", zipfile.ZIP_DEFLATED, compresslevel=9) as zf:
        for path in files:
            zf.write(path, path.relative_to(source_dir).as_posix())

    zip_size = output_path.stat().st_size
    logger.info("zip_created", path=str(output_path), file_count=len(files), size=zip_size)
    return zip_size


def file_checksum(path: str | Path) -> str:
    """MD5 hex digest of a file's contents."""
    digest = hashlib.md5()
    with open(path, "rb") as fh:
        for chunk in iter(lambda: fh.read(_CHUNK_SIZE), b""):
            digest.update(chunk)
    return digest.hexdigest()
