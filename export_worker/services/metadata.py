from pathlib import Path

from export_worker.schemas.export import MetadataOverrides

METADATA_FILES = ("title.txt", "description.txt", "hashtags.txt")


def normalize_hashtags(tags: list[str]) -> str:
    return " ".join(tag if tag.startswith("#") else f"#{tag}" for tag in tags)


def write_metadata_files(overrides: MetadataOverrides, metadata_dir: str | Path) -> list[Path]:
    """Write title, description and hashtags text files. Returns the paths in that order."""
    metadata_dir = Path(metadata_dir)
    metadata_dir.mkdir(parents=True, exist_ok=True)

    contents = {
        "title.txt": overrides.title or "",
        "description.txt": overrides.description or "",
        "hashtags.txt": normalize_hashtags(overrides.hashtags),
    }

    paths = []
    for name in METADATA_FILES:
        path = metadata_dir / name
        path.write_text(contents[name], encoding="utf-8")
        paths.append(path)
    return paths
