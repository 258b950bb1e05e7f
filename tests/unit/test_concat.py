"""Unit tests for the ffmpeg concat helpers."""

from unittest.mock import AsyncMock, patch

import pytest

from proctor.core.exceptions import MergeError
from proctor.services.merge import concat
from proctor.services.merge.concat import concat_segments, write_concat_list


def test_concat_list_quotes_paths(tmp_path):
    paths = [tmp_path / "q1.webm", tmp_path / "it's q2.webm"]
    list_file = write_concat_list(paths, tmp_path / "list.txt")

    lines = list_file.read_text().splitlines()
    assert lines[0] == f"file '{(tmp_path / 'q1.webm').resolve()}'"
    assert lines[1].endswith("it'\\''s q2.webm'")


async def test_concat_requires_inputs(tmp_path):
    with pytest.raises(MergeError):
        await concat_segments([], tmp_path / "out.webm")


async def test_concat_missing_ffmpeg(tmp_path):
    with patch.object(concat.shutil, "which", return_value=None):
        with pytest.raises(MergeError, match="not found"):
            await concat_segments([tmp_path / "q1.webm"], tmp_path / "out.webm", ffmpeg="ffmpeg-missing")


async def test_concat_runs_copy_demuxer(tmp_path):
    process = AsyncMock()
    process.communicate.return_value = (b"", b"")
    process.returncode = 0
    paths = [tmp_path / f"q{n}.webm" for n in (1, 2)]

    with (
        patch.object(concat.shutil, "which", return_value="/usr/bin/ffmpeg"),
        patch.object(concat.asyncio, "create_subprocess_exec", AsyncMock(return_value=process)) as spawn,
    ):
        out = await concat_segments(paths, tmp_path / "out.webm")

    args = spawn.await_args.args
    assert args[args.index("-f") + 1] == "concat"
    assert args[args.index("-c") + 1] == "copy"
    assert out == tmp_path / "out.webm"
    assert not (tmp_path / "out_list.txt").exists()


async def test_concat_nonzero_exit(tmp_path):
    process = AsyncMock()
    process.communicate.return_value = (b"", b"Invalid data found")
    process.returncode = 1

    with (
        patch.object(concat.shutil, "which", return_value="/usr/bin/ffmpeg"),
        patch.object(concat.asyncio, "create_subprocess_exec", AsyncMock(return_value=process)),
    ):
        with pytest.raises(MergeError, match="Invalid data found"):
            await concat_segments([tmp_path / "q1.webm"], tmp_path / "out.webm")
