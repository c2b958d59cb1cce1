import logging
import re
import zlib
from contextlib import aclosing
from typing import AsyncIterator, Optional

import anyio
from anyio import AsyncFile
from starlette.responses import Response, StreamingResponse

from gweld.config import IMAGE_MAX_AGE, RANGE_CHUNK_SIZE
from gweld.models.common_models import ByteRange
from gweld.services.reference_graph import record_reference

logger = logging.getLogger(__name__)

READ_CHUNK_SIZE = 64 * 1024

# The code that is injected into HTML responses to provide live-reload
LIVE_RELOAD_SCRIPT = """
(function () {
    const eventSource = new EventSource("/_has_update");
    eventSource.onmessage = () => {
        console.log("Reloading");
        window.location.reload();
    }
    eventSource.onerror = () => {
      eventSource.close();
    }
})();
"""

PLACEHOLDER_PAGE = """<!DOCTYPE html>
<html>
  <head>
    <meta charset="utf-8" />
    <title>gweld</title>
  </head>
  <body>
    <h1>gweld landing page</h1>
    <p>No index.html found yet. Create one in the served folder and this page will reload.</p>
  </body>
</html>
"""

_RANGE = re.compile(r"^\s*bytes\s*=\s*(\d*)\s*-\s*(\d*)\s*$")


class DeliveryError(Exception):
    """Reading the file failed before any of the response was sent."""


class RangeNotSatisfiable(ValueError):
    def __init__(self, size: int):
        super().__init__(f"range starts past the end of a {size} byte file")
        self.size = size


def inject_live_reload(html: str) -> str:
    tag = f'<script type="text/javascript">{LIVE_RELOAD_SCRIPT}</script>'
    head, sep, tail = html.rpartition("</body>")
    if not sep:
        return html + tag
    return head + tag + sep + tail


def parse_range_header(header: str, size: int) -> Optional[ByteRange]:
    """
    Parse a single "bytes=start-[end]" range.

    The slice is capped at RANGE_CHUNK_SIZE so seeking through a large video
    never reads more than one chunk. Malformed headers return None and the
    whole file is served instead.
    """
    match = _RANGE.match(header)
    if match is None:
        return None
    first, last = match.groups()

    if first:
        start = int(first)
    elif last:
        # suffix range: the final N bytes
        start = max(size - int(last), 0)
        last = ""
    else:
        return None

    if start >= size:
        raise RangeNotSatisfiable(size)

    end = min(start + RANGE_CHUNK_SIZE - 1, size - 1)
    if last:
        if int(last) < start:
            return None
        end = min(end, int(last))
    return ByteRange(start=start, end=end, size=size)


async def _open(path: str) -> AsyncFile:
    try:
        return await anyio.open_file(path, "rb")
    except (FileNotFoundError, IsADirectoryError, NotADirectoryError):
        raise
    except OSError as e:
        raise DeliveryError(f"Could not open {path}: {e}") from e


async def _check_readable(path: str) -> None:
    # Fail while a 404/503 can still be sent; the body opens its own handle
    handle = await _open(path)
    await handle.aclose()


async def _read_all(path: str) -> bytes:
    handle = await _open(path)
    try:
        return await handle.read()
    except OSError as e:
        raise DeliveryError(f"Could not read {path}: {e}") from e
    finally:
        await handle.aclose()


async def _read_chunks(path: str, start: int = 0, remaining: Optional[int] = None) -> AsyncIterator[bytes]:
    handle = await anyio.open_file(path, "rb")
    try:
        if start:
            await handle.seek(start)
        while remaining is None or remaining > 0:
            size = READ_CHUNK_SIZE if remaining is None else min(READ_CHUNK_SIZE, remaining)
            chunk = await handle.read(size)
            if not chunk:
                break
            if remaining is not None:
                remaining -= len(chunk)
            yield chunk
    except OSError:
        # Headers are already out; abort the response instead of ending it cleanly
        logger.exception("Read failed mid-response, abandoning %s", path)
        raise
    finally:
        with anyio.CancelScope(shield=True):
            await handle.aclose()


async def _gzip(chunks: AsyncIterator[bytes]) -> AsyncIterator[bytes]:
    compressor = zlib.compressobj(6, zlib.DEFLATED, 16 + zlib.MAX_WBITS)
    async with aclosing(chunks):
        async for chunk in chunks:
            compressed = compressor.compress(chunk)
            if compressed:
                yield compressed
        # Not reached when the source failed, so a cut-off body has no gzip trailer
        yield compressor.flush()


async def _once(data: bytes) -> AsyncIterator[bytes]:
    yield data


class ClosingStreamingResponse(StreamingResponse):
    """
    Closes the body iterator however the response ends, so a client that
    disconnects early doesn't leave a file handle waiting for the GC.
    """

    async def __call__(self, scope, receive, send) -> None:
        try:
            await super().__call__(scope, receive, send)
        finally:
            with anyio.CancelScope(shield=True):
                await self.body_iterator.aclose()


def build_not_found() -> Response:
    return Response(status_code=404, headers={"Content-Length": "0"})


def build_unavailable() -> Response:
    return Response(status_code=503, headers={"Content-Length": "0"})


def compressed_response(chunks: AsyncIterator[bytes], mime: str) -> StreamingResponse:
    # No Content-Length, so the server falls back to chunked transfer
    return ClosingStreamingResponse(_gzip(chunks), media_type=mime, headers={"Content-Encoding": "gzip"})


def build_placeholder_page() -> StreamingResponse:
    page = inject_live_reload(PLACEHOLDER_PAGE)
    return compressed_response(_once(page.encode("utf-8")), "text/html")


async def deliver_image(path: str, mime: str) -> Response:
    data = await _read_all(path)
    return Response(
        content=data,
        media_type=mime,
        headers={"Cache-Control": f"public, max-age={IMAGE_MAX_AGE}"},
    )


async def deliver_video(path: str, mime: str, range_header: Optional[str]) -> Response:
    try:
        size = (await anyio.Path(path).stat()).st_size
    except (FileNotFoundError, NotADirectoryError):
        raise
    except OSError as e:
        raise DeliveryError(f"Could not stat {path}: {e}") from e

    byte_range = None
    if range_header:
        try:
            byte_range = parse_range_header(range_header, size)
        except RangeNotSatisfiable:
            return Response(status_code=416, headers={"Content-Range": f"bytes */{size}"})

    await _check_readable(path)
    if byte_range is None:
        return ClosingStreamingResponse(
            _read_chunks(path),
            media_type=mime,
            headers={"Accept-Ranges": "bytes", "Content-Length": str(size)},
        )

    return ClosingStreamingResponse(
        _read_chunks(path, start=byte_range.start, remaining=byte_range.length),
        status_code=206,
        media_type=mime,
        headers={
            "Content-Range": byte_range.content_range(),
            "Accept-Ranges": "bytes",
            "Content-Length": str(byte_range.length),
        },
    )


async def deliver_html(path: str) -> StreamingResponse:
    raw = await _read_all(path)
    # surrogateescape keeps non utf-8 bytes intact through the round trip
    html = inject_live_reload(raw.decode("utf-8", "surrogateescape"))
    return compressed_response(_once(html.encode("utf-8", "surrogateescape")), "text/html")


async def deliver_compressed(path: str, mime: str) -> StreamingResponse:
    await _check_readable(path)
    return compressed_response(_read_chunks(path), mime)


async def deliver(path: str, mime: str, origin: str, range_header: Optional[str] = None) -> Response:
    """
    Pick a delivery strategy by content type and record that origin loaded
    this file.

    Raises FileNotFoundError when the file disappeared after the index said
    it exists, DeliveryError when it could not be read.
    """
    if mime.startswith("image/"):
        response = await deliver_image(path, mime)
    elif mime.startswith("video/"):
        response = await deliver_video(path, mime, range_header)
    elif mime == "text/html":
        response = await deliver_html(path)
    else:
        response = await deliver_compressed(path, mime)

    if response.status_code < 400:
        record_reference(path, origin)
    return response
