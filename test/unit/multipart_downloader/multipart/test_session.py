"""Tests for the download session in blocking and suspending modes."""

import asyncio
import errno
import io
import time
from pathlib import Path
from unittest.mock import MagicMock

import aiofiles.os
import aiofiles.threadpool
import pytest

from multipart_downloader.multipart.errors import (
    BoundaryMissingError,
    CannotOpenDestinationError,
    HeaderMalformedError,
    InvalidContentTypeError,
    OperationTimeoutError,
    StreamError,
)
from multipart_downloader.multipart.session import Downloader, download_stream, download_stream_async
from multipart_downloader.multipart.settings import DownloadSettings
from multipart_downloader.multipart.sources import AsyncChunkedSource, ChunkedSource, TimeoutSource


def chunks_of(data: bytes, size: int) -> list[bytes]:
    return [data[i : i + size] for i in range(0, len(data), size)]


# -----------------------------------------------------------------------------
# Well-formed bodies
# -----------------------------------------------------------------------------


class TestDownload:
    """Tests for successful decodes."""

    def test_single_file_example(self, output_dir: Path) -> None:
        body = (
            b"--XYZ\r\nContent-Disposition: form-data; name=\"f\"; filename=\"a.txt\"\r\n\r\n"
            b"hello\r\n--XYZ--\r\n"
        )
        settings = DownloadSettings(output_directory=output_dir)

        paths = Downloader(io.BytesIO(body)).download("multipart/form-data; boundary=XYZ", settings)

        assert len(paths) == 1
        assert paths[0].name == "a.txt"
        assert paths[0].read_bytes() == b"hello"

    def test_parts_in_order_with_exact_contents(self, output_dir, make_body, content_type, payload) -> None:
        parts = [("one.bin", payload), ("two.txt", b"second\r\nfile"), ("empty.dat", b""), ("three.bin", payload[::-1])]
        settings = DownloadSettings(output_directory=output_dir)

        paths = download_stream(io.BytesIO(make_body(parts)), content_type, settings)

        assert [path.name for path in paths] == ["one.bin", "two.txt", "empty.dat", "three.bin"]
        for path, (_, data) in zip(paths, parts, strict=True):
            assert path.read_bytes() == data

    def test_preamble_is_discarded(self, output_dir, make_body, content_type) -> None:
        body = make_body([("a.txt", b"data")], preamble=b"This is a multi-part message.\r\n")
        paths = download_stream(io.BytesIO(body), content_type, DownloadSettings(output_directory=output_dir))
        assert paths[0].read_bytes() == b"data"

    @pytest.mark.parametrize("packet_size", [128, 200, 1024, 10 * 1024 * 1024])
    @pytest.mark.parametrize("chunk_size", [1, 7, 4096])
    def test_chunking_is_transparent(
        self, tmp_path, make_body, content_type, payload, packet_size: int, chunk_size: int
    ) -> None:
        """Bodies larger than a packet decode byte-identically, whatever the read sizes."""
        body = make_body([("big.bin", payload), ("small.txt", b"tail")])
        output_dir = tmp_path / f"out-{packet_size}-{chunk_size}"
        output_dir.mkdir()
        settings = DownloadSettings(output_directory=output_dir, packet_size=packet_size)

        paths = download_stream(ChunkedSource(chunks_of(body, chunk_size)), content_type, settings)

        assert paths[0].read_bytes() == payload
        assert paths[1].read_bytes() == b"tail"

    def test_carry_over_bytes_are_decoded_first(self, output_dir, make_body, content_type, payload) -> None:
        body = make_body([("a.bin", payload)])
        settings = DownloadSettings(output_directory=output_dir, packet_size=256)

        paths = Downloader(io.BytesIO(body[700:]), buffer=body[:700]).download(content_type, settings)

        assert paths[0].read_bytes() == payload

    def test_same_name_is_deduplicated(self, output_dir, make_body, content_type) -> None:
        body = make_body([("a.txt", b"1"), ("a.txt", b"2"), ("a.txt", b"3")])

        paths = download_stream(io.BytesIO(body), content_type, DownloadSettings(output_directory=output_dir))

        assert [path.name for path in paths] == ["a.txt", "a(1).txt", "a(2).txt"]
        assert [path.read_bytes() for path in paths] == [b"1", b"2", b"3"]

    def test_hooks(self, tmp_path, output_dir, make_body, content_type) -> None:
        custom = tmp_path / "custom.bin"
        completed = []
        settings = DownloadSettings(
            output_directory=output_dir,
            on_header=lambda name: custom if name == "special.bin" else None,
            on_body_complete=completed.append,
        )
        body = make_body([("special.bin", b"x"), ("plain.txt", b"y")])

        paths = download_stream(io.BytesIO(body), content_type, settings)

        assert paths == [custom, output_dir / "plain.txt"]
        assert completed == paths
        assert custom.read_bytes() == b"x"

    def test_session_is_reusable(self, output_dir, make_body, content_type) -> None:
        settings = DownloadSettings(output_directory=output_dir)
        downloader = Downloader(io.BytesIO(make_body([("a.txt", b"1")])))
        assert downloader.download(content_type, settings) == [output_dir / "a.txt"]

        downloader.reset(io.BytesIO(make_body([("b.txt", b"2")])))
        assert downloader.download(content_type, settings) == [output_dir / "b.txt"]
        assert downloader.paths == [output_dir / "b.txt"]

    async def test_suspending_mode_matches_blocking(self, tmp_path, make_body, content_type, payload) -> None:
        body = make_body([("a.bin", payload), ("b.bin", payload[:100])])
        blocking_dir, suspending_dir = tmp_path / "blocking", tmp_path / "suspending"
        blocking_dir.mkdir()
        suspending_dir.mkdir()

        blocking = download_stream(
            ChunkedSource(chunks_of(body, 97)),
            content_type,
            DownloadSettings(output_directory=blocking_dir, packet_size=300),
        )
        suspending = await download_stream_async(
            AsyncChunkedSource(chunks_of(body, 97)),
            content_type,
            DownloadSettings(output_directory=suspending_dir, packet_size=300),
        )

        assert [path.name for path in blocking] == [path.name for path in suspending]
        for left, right in zip(blocking, suspending, strict=True):
            assert left.read_bytes() == right.read_bytes()

    async def test_asyncio_stream_reader_source(self, output_dir, make_body, content_type) -> None:
        reader = asyncio.StreamReader()
        reader.feed_data(make_body([("a.txt", b"streamed")]))
        reader.feed_eof()

        paths = await Downloader(reader).download_async(content_type, DownloadSettings(output_directory=output_dir))

        assert paths[0].read_bytes() == b"streamed"


# -----------------------------------------------------------------------------
# Failures
# -----------------------------------------------------------------------------


class TestDownloadErrors:
    """Tests for failure handling and rollback."""

    @pytest.mark.parametrize("content_type", ["application/json", "text/plain; boundary=XYZ"])
    def test_invalid_content_type_does_no_io(self, content_type: str) -> None:
        source = MagicMock()
        downloader = Downloader(source)

        with pytest.raises(InvalidContentTypeError) as exc_info:
            downloader.download(content_type)

        assert exc_info.value.paths == []
        assert downloader.paths == []
        source.read.assert_not_called()

    def test_boundary_missing_does_no_io(self) -> None:
        source = MagicMock()
        with pytest.raises(BoundaryMissingError):
            Downloader(source).download("multipart/form-data")
        source.read.assert_not_called()

    def test_packet_too_small_for_boundary(self) -> None:
        with pytest.raises(ValueError):
            Downloader(io.BytesIO(b"")).download(
                "multipart/form-data; boundary=XYZ", DownloadSettings(packet_size=7)
            )

    def test_mid_body_failure_rolls_back_current_part(
        self, output_dir, make_body, content_type, make_failing_source, payload
    ) -> None:
        body = make_body([("first.bin", b"complete"), ("second.bin", payload), ("third.bin", b"never")])
        fail_at = body.index(payload) + 1000
        source = make_failing_source(body, fail_at, ConnectionResetError("peer reset"))
        settings = DownloadSettings(output_directory=output_dir, packet_size=512)

        with pytest.raises(StreamError) as exc_info:
            Downloader(source).download(content_type, settings)

        assert exc_info.value.paths == [output_dir / "first.bin"]
        assert isinstance(exc_info.value.__cause__, ConnectionResetError)
        assert (output_dir / "first.bin").read_bytes() == b"complete"
        assert not (output_dir / "second.bin").exists()

    def test_stream_ending_mid_body(self, output_dir, make_body, content_type) -> None:
        body = make_body([("a.txt", b"1"), ("b.txt", b"truncated body")])
        truncated = body[: body.index(b"truncated") + 5]

        with pytest.raises(StreamError) as exc_info:
            download_stream(io.BytesIO(truncated), content_type, DownloadSettings(output_directory=output_dir))

        assert exc_info.value.paths == [output_dir / "a.txt"]
        assert sorted(p.name for p in output_dir.iterdir()) == ["a.txt"]

    def test_missing_terminator_is_malformed(self, output_dir, make_body, content_type) -> None:
        body = make_body([("a.txt", b"1"), ("b.txt", b"2")], terminal=False)

        with pytest.raises(HeaderMalformedError) as exc_info:
            download_stream(io.BytesIO(body), content_type, DownloadSettings(output_directory=output_dir))

        assert exc_info.value.paths == [output_dir / "a.txt", output_dir / "b.txt"]

    def test_header_failure_keeps_completed_parts(self, output_dir, make_body, content_type) -> None:
        field_part = b"\r\nContent-Disposition: form-data; name=\"x\"\r\n\r\nv"
        body = make_body([("a.txt", b"1")]).replace(b"--\r\n", field_part)

        with pytest.raises(HeaderMalformedError) as exc_info:
            download_stream(io.BytesIO(body), content_type, DownloadSettings(output_directory=output_dir))

        assert exc_info.value.paths == [output_dir / "a.txt"]

    def test_no_boundary_in_stream(self, output_dir, content_type) -> None:
        with pytest.raises(HeaderMalformedError) as exc_info:
            download_stream(
                io.BytesIO(b"not multipart at all"), content_type, DownloadSettings(output_directory=output_dir)
            )
        assert exc_info.value.paths == []

    def test_unwritable_destination(self, tmp_path, make_body, content_type) -> None:
        settings = DownloadSettings(output_directory=tmp_path / "missing")

        with pytest.raises(CannotOpenDestinationError) as exc_info:
            download_stream(io.BytesIO(make_body([("a.txt", b"1")])), content_type, settings)

        assert exc_info.value.paths == []

    def test_hook_errors_propagate_unchanged(self, output_dir, make_body, content_type) -> None:
        def on_body_complete(path: Path) -> None:
            raise KeyError("hook failed")

        settings = DownloadSettings(output_directory=output_dir, on_body_complete=on_body_complete)
        downloader = Downloader(io.BytesIO(make_body([("a.txt", b"1")])))

        with pytest.raises(KeyError):
            downloader.download(content_type, settings)
        assert downloader.paths == [output_dir / "a.txt"]

    async def test_timeout_is_reported(self, output_dir, make_body, content_type) -> None:
        body = make_body([("a.txt", b"1"), ("slow.bin", b"2")])
        head = body[: body.index(b"2\r\n")]

        class StallingSource:
            def __init__(self) -> None:
                self.sent = False

            async def read(self, size: int) -> bytes:
                if not self.sent:
                    self.sent = True
                    return head
                await asyncio.sleep(10)
                return b""

        source = TimeoutSource(StallingSource(), 0.05)
        with pytest.raises(OperationTimeoutError) as exc_info:
            await Downloader(source).download_async(content_type, DownloadSettings(output_directory=output_dir))

        assert isinstance(exc_info.value.__cause__, TimeoutError)
        assert exc_info.value.paths == [output_dir / "a.txt"]
        assert not (output_dir / "slow.bin").exists()

    async def test_cancellation_rolls_back(self, output_dir, make_body, content_type) -> None:
        body = make_body([("a.txt", b"1"), ("b.bin", b"2")])
        head = body[: body.index(b"2\r\n")]
        stalled = asyncio.Event()

        class StallingSource:
            def __init__(self) -> None:
                self.sent = False

            async def read(self, size: int) -> bytes:
                if not self.sent:
                    self.sent = True
                    return head
                stalled.set()
                await asyncio.Event().wait()
                return b""

        downloader = Downloader(StallingSource())
        settings = DownloadSettings(output_directory=output_dir)
        task = asyncio.create_task(downloader.download_async(content_type, settings))
        await stalled.wait()
        assert (output_dir / "b.bin").exists()

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert downloader.paths == [output_dir / "a.txt"]
        assert not (output_dir / "b.bin").exists()

    async def test_one_decode_at_a_time(self, output_dir, content_type) -> None:
        started = asyncio.Event()

        class StallingSource:
            async def read(self, size: int) -> bytes:
                started.set()
                await asyncio.Event().wait()
                return b""

        downloader = Downloader(StallingSource())
        settings = DownloadSettings(output_directory=output_dir)
        task = asyncio.create_task(downloader.download_async(content_type, settings))
        await started.wait()

        with pytest.raises(RuntimeError):
            await downloader.download_async(content_type)

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task


# -----------------------------------------------------------------------------
# Destination I/O
# -----------------------------------------------------------------------------


class TestDestinationIO:
    """Tests for file writes and their rollback."""

    def test_write_failure_rolls_back_current_part(
        self, output_dir, make_body, content_type, payload, monkeypatch
    ) -> None:
        real_open = Path.open

        class FullDisk:
            def __init__(self, handle) -> None:
                self.handle = handle

            def write(self, data: bytes) -> int:
                raise OSError(errno.ENOSPC, "No space left on device")

            def close(self) -> None:
                self.handle.close()

        def open_destination(path: Path, mode: str = "r", *args, **kwargs):
            handle = real_open(path, mode, *args, **kwargs)
            return FullDisk(handle) if path.name == "second.bin" else handle

        monkeypatch.setattr(Path, "open", open_destination)
        body = make_body([("first.bin", b"complete"), ("second.bin", payload), ("third.bin", b"never")])

        with pytest.raises(CannotOpenDestinationError) as exc_info:
            download_stream(io.BytesIO(body), content_type, DownloadSettings(output_directory=output_dir))

        assert exc_info.value.paths == [output_dir / "first.bin"]
        assert isinstance(exc_info.value.__cause__, OSError)
        assert (output_dir / "first.bin").read_bytes() == b"complete"
        assert not (output_dir / "second.bin").exists()
        assert not (output_dir / "third.bin").exists()

    def test_failed_delete_keeps_original_error(
        self, output_dir, make_body, content_type, make_failing_source, payload, monkeypatch
    ) -> None:
        def refuse_unlink(self, missing_ok: bool = False) -> None:
            raise PermissionError(errno.EACCES, "Permission denied", str(self))

        monkeypatch.setattr(Path, "unlink", refuse_unlink)
        body = make_body([("first.bin", b"complete"), ("second.bin", payload)])
        source = make_failing_source(body, body.index(payload) + 100, ConnectionResetError("peer reset"))

        with pytest.raises(StreamError) as exc_info:
            Downloader(source).download(content_type, DownloadSettings(output_directory=output_dir))

        assert exc_info.value.paths == [output_dir / "first.bin"]
        assert isinstance(exc_info.value.__cause__, ConnectionResetError)

    async def test_failed_delete_keeps_original_error_suspending(
        self, output_dir, make_body, content_type, payload, monkeypatch
    ) -> None:
        async def refuse_remove(path, *args, **kwargs) -> None:
            raise PermissionError(errno.EACCES, "Permission denied", str(path))

        monkeypatch.setattr(aiofiles.os, "remove", refuse_remove)
        body = make_body([("first.bin", b"complete"), ("second.bin", payload)])
        truncated = body[: body.index(payload) + 100]

        with pytest.raises(StreamError) as exc_info:
            await download_stream_async(
                AsyncChunkedSource([truncated]), content_type, DownloadSettings(output_directory=output_dir)
            )

        assert exc_info.value.paths == [output_dir / "first.bin"]

    async def test_open_failure_suspending(self, tmp_path, make_body, content_type) -> None:
        settings = DownloadSettings(output_directory=tmp_path / "missing")

        with pytest.raises(CannotOpenDestinationError) as exc_info:
            await download_stream_async(AsyncChunkedSource([make_body([("a.txt", b"1")])]), content_type, settings)

        assert exc_info.value.paths == []

    async def test_file_writes_do_not_stall_the_event_loop(
        self, output_dir, make_body, content_type, payload, monkeypatch
    ) -> None:
        class SlowDisk(io.FileIO):
            def write(self, data) -> int:
                time.sleep(0.2)
                return super().write(data)

        def open_slow_disk(file, mode: str = "r", **kwargs) -> SlowDisk:
            return SlowDisk(file, mode.replace("b", ""))

        monkeypatch.setattr(aiofiles.threadpool, "sync_open", open_slow_disk)
        loop = asyncio.get_running_loop()
        gaps: list[float] = []

        async def tick() -> None:
            last = loop.time()
            while True:
                await asyncio.sleep(0.01)
                now = loop.time()
                gaps.append(now - last)
                last = now

        ticker = asyncio.create_task(tick())
        settings = DownloadSettings(output_directory=output_dir, packet_size=2048)
        try:
            paths = await download_stream_async(
                AsyncChunkedSource([make_body([("big.bin", payload)])]), content_type, settings
            )
        finally:
            ticker.cancel()

        assert paths[0].read_bytes() == payload
        assert len(gaps) > 10
        assert max(gaps) < 0.15
