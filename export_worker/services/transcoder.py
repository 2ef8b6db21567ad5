import subprocess
from pathlib import Path

import structlog

from export_worker.core.config import settings
from export_worker.schemas.export import Format, Overlay

logger = structlog.get_logger()

# ffmpeg reports the actual failure at the end of stderr.
_STDERR_TAIL = 2000


class FFmpegError(Exception):
    """Exception raised when FFmpeg processing fails."""
    pass


def build_filter_chain(fmt: Format, overlay: Overlay | None = None) -> list[str]:
    """Fit the source inside WxH without upscaling, then letterbox to exactly WxH."""
    w, h = fmt.width, fmt.height
    filters = [
        f"scale=w='min({w},iw)':h='min({h},ih)':force_original_aspect_ratio=decrease",
        f"pad={w}:{h}:(ow-iw)/2:(oh-ih)/2",
    ]
    if overlay is not None:
        filters.append(overlay.expression)
    return filters


class RenditionTranscoder:
    """Produces platform renditions and thumbnails by shelling out to FFmpeg."""

    def __init__(
        self,
        binary: str | None = None,
        timeout: int | None = None,
        default_bitrate: str | None = None,
        default_fps: int | None = None,
    ) -> None:
        self.binary = binary or settings.ffmpeg_binary
        self.timeout = timeout or settings.ffmpeg_timeout_seconds
        self.default_bitrate = default_bitrate or settings.default_bitrate
        self.default_fps = default_fps or settings.default_fps

    def _run(self, cmd: list[str], **context) -> None:
        try:
            result = subprocess.run(
                cmd,
                capture_output=True,
                encoding="utf-8",
                errors="replace",
                timeout=self.timeout,
                check=False,
            )
        except subprocess.TimeoutExpired as e:
            raise FFmpegError(f"FFmpeg timeout: {e}") from e
        except OSError as e:
            raise FFmpegError(f"FFmpeg could not be started: {e}") from e

        if result.returncode != 0:
            stderr = (result.stderr or "")[-_STDERR_TAIL:]
            logger.error("ffmpeg_failed", returncode=result.returncode, stderr=stderr[-500:], **context)
            raise FFmpegError(f"FFmpeg failed: {stderr}")

    def transcode(
        self, source: str | Path, output: str | Path, fmt: Format, overlay: Overlay | None = None
    ) -> Path:
        """Render one rendition of ``source`` for ``fmt``."""
        output = Path(output)
        output.parent.mkdir(parents=True, exist_ok=True)

        cmd = [
            self.binary, "-y",
            "-i", str(source),
            "-vf", ",".join(build_filter_chain(fmt, overlay)),
            "-b:v", fmt.bitrate or self.default_bitrate,
            "-r", str(fmt.fps or self.default_fps),
            "-movflags", "+faststart",
            str(output),
        ]

        logger.info("ffmpeg_started", variant=fmt.variant, branded=overlay is not None)
        self._run(cmd, variant=fmt.variant)
        logger.info("rendition_completed", variant=fmt.variant, output=str(output))
        return output

    def extract_thumbnail(
        self,
        video: str | Path,
        destination: str | Path,
        timecode: str,
        overlay: Overlay | None = None,
    ) -> Path:
        """Grab a single frame from ``video`` at ``timecode``.

        With an overlay the frame is extracted to an intermediate file first and
        only the branded image is left at ``destination``.
        """
        destination = Path(destination)
        destination.parent.mkdir(parents=True, exist_ok=True)

        frame_path = destination if overlay is None else destination.with_name(f"{destination.stem}_raw.png")
        cmd = [
            self.binary, "-y",
            "-ss", timecode,
            "-i", str(video),
            "-frames:v", "1",
            str(frame_path),
        ]
        self._run(cmd, thumbnail=destination.name)
        # ffmpeg exits 0 without output when the timecode is past the end
        if not frame_path.exists():
            raise FFmpegError(f"No frame extracted at {timecode}")

        if overlay is not None:
            try:
                self._run(
                    [self.binary, "-y", "-i", str(frame_path), "-vf", overlay.expression, str(destination)],
                    thumbnail=destination.name,
                )
            finally:
                frame_path.unlink(missing_ok=True)
            if not destination.exists():
                raise FFmpegError(f"No frame extracted at {timecode}")

        logger.info("thumbnail_completed", thumbnail=destination.name, timecode=timecode)
        return destination
