"""Run decodes off the caller's thread, one request in flight at a time."""

from __future__ import annotations

import logging
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from typing import Optional, Union

from protoc_decoder.decoder import decode_protobuf
from protoc_decoder.errors import InvalidInput
from protoc_decoder.inputs import InputFormat, normalize_input
from protoc_decoder.models import DecodeResult, Projection
from protoc_decoder.projector import project

logger = logging.getLogger(__name__)


@dataclass
class DecodeReply:
    success: bool
    result: Optional[DecodeResult] = None
    projection: Optional[Projection] = None
    error: Optional[str] = None


def run_request(
    data: Union[bytes, str],
    schema_text: str = "",
    fmt: InputFormat = InputFormat.HEX,
    message_name: Optional[str] = None,
    base_offset: int = 0,
) -> DecodeReply:
    """Decode one request and package the complete outcome as a reply."""
    try:
        buffer = normalize_input(data, fmt) if isinstance(data, str) else bytes(data)
    except InvalidInput as exc:
        return DecodeReply(success=False, error=str(exc))
    if not buffer:
        return DecodeReply(success=False, error="No data provided")

    result = decode_protobuf(buffer, schema_text, base_offset, message_name)
    projection = project(result.fields) if result.fields else None
    return DecodeReply(success=True, result=result, projection=projection)


class DecodeWorker:
    """Single background thread that decodes requests in submission order.

    Submitting a new request makes it the `latest`. The previous request is
    cancelled if it is still queued; one already running finishes, since a
    decode cannot be interrupted midway, and callers should only act on the
    reply of the latest future.
    """

    def __init__(self) -> None:
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="protoc-decoder")
        self._latest: Optional[Future] = None

    @property
    def latest(self) -> Optional[Future]:
        return self._latest

    def submit(
        self,
        data: Union[bytes, str],
        schema_text: str = "",
        fmt: InputFormat = InputFormat.HEX,
        message_name: Optional[str] = None,
        base_offset: int = 0,
    ) -> Future:
        """Queue a decode; the returned future resolves to a DecodeReply."""
        previous = self._latest
        if previous is not None and not previous.done():
            if previous.cancel():
                logger.debug("Cancelled a queued decode request")
            else:
                logger.debug("Superseding a running decode request")
        future = self._executor.submit(
            run_request, data, schema_text, fmt, message_name, base_offset
        )
        self._latest = future
        return future

    def is_latest(self, future: Future) -> bool:
        return future is self._latest

    def close(self) -> None:
        self._executor.shutdown(wait=True)

    def __enter__(self) -> DecodeWorker:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()
