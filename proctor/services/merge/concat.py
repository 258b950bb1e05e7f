"""Lossless concatenation of WebM segments with the ffmpeg concat demuxer."""

import asyncio
import logging
import shutil
from pathlib import Path

from proctor.core.exceptions import MergeError

logger = logging.getLogger(__name__)


def ensure_ffmpeg_available(binary: str = "ffmpeg") -> None:
    if shutil.which(binary) is None:
        raise MergeError(f"{binary} not found in PATH; install ffmpeg to enable merging")


def write_concat_list(paths: list[Path], list_file: Path) -> Path:
    """Write an ffmpeg concat list, one ``file '...'`` line per input."""
    lines = []
    for path in paths:
        escaped = str(path.resolve()).replace("'", "'\\''")
        lines.append(f"file '{escaped}'")
    list_file.write_text("\n".join(lines) + "\n", encoding="utf-8")
    return list_file


async def concat_segments(paths: list[Path], output: Path, ffmpeg: str = "ffmpeg") -> Path:
    """Join ``paths`` in the given order into ``output`` without re-encoding.

    Raises:
        MergeError: If ffmpeg is missing or exits with an error.
    """
    if not paths:
        raise MergeError("No segments to concatenate")
    ensure_ffmpeg_available(ffmpeg)

    list_file = write_concat_list(paths, output.with_name(output.stem + "_list.txt"))
    cmd = [
        ffmpeg,
        "-hide_banner",
        "-loglevel",
        "error",
        "-y",
        "-f",
        "concat",
        "-safe",
        "0",
        "-i",
        str(list_file),
        "-c",
        "copy",
        str(output),
    ]
    logger.debug("Running ffmpeg: %s", " ".join(cmd))
    try:
        process = await asyncio.create_subprocess_exec(
            *cmd,
            stdout=asyncio.subprocess.DEVNULL,
            stderr=asyncio.subprocess.PIPE,
        )
        _, stderr = await process.communicate()
    finally:
        list_file.unlink(missing_ok=True)

    if process.returncode != 0:
        message = stderr.decode(errors="replace").strip() if stderr else ""
        raise MergeError(f"ffmpeg concat failed ({process.returncode}): {message}")
    return output
