"""Streams a multipart/form-data upload into the file store while it arrives."""

from typing import Any, List, Optional, Tuple

from fastapi import Request
from fastapi.concurrency import run_in_threadpool
from python_multipart.exceptions import MultipartParseError
from python_multipart.multipart import MultipartParser, parse_options_header

from common.exceptions import InvalidArgumentError
from common.logging_config import get_logger
from common.types import SharedFile
from peernode.file_store import FileStore, Ingest

logger = get_logger(__name__)

UPLOAD_FIELD_NAME = "file"


def upload_name(filename: str) -> str:
    """Strip any client-side directory from an uploaded file name."""
    name = (filename or "").replace("\\", "/").rsplit("/", 1)[-1].strip()
    if not name:
        raise InvalidArgumentError("Uploaded file must have a name")
    return name


class MultipartUpload:
    """
    Incremental multipart/form-data reader that feeds the 'file' part into an Ingest.

    Only the 'file' part is stored; other form fields are read and dropped.
    Parser callbacks just record events. The events of each received network
    chunk are then applied to the store in one threadpool call, so the body is
    never buffered beyond a single chunk.
    """

    def __init__(self, store: FileStore, content_type: Optional[str], max_bytes: Optional[int] = None):
        """
        Args:
            store: Store receiving the file
            content_type: Value of the request Content-Type header
            max_bytes: Optional size limit for the file part

        Raises:
            InvalidArgumentError: If the body is not multipart/form-data
        """
        mime_type, params = parse_options_header(content_type or "")
        boundary = params.get(b"boundary")
        if mime_type != b"multipart/form-data" or not boundary:
            raise InvalidArgumentError(
                f"Expected a multipart/form-data body with a '{UPLOAD_FIELD_NAME}' field"
            )

        self.store = store
        self.max_bytes = max_bytes
        self._events: List[Tuple[str, Any]] = []
        self._header_field = b""
        self._header_value = b""
        self._part_headers = {}
        self._upload: Optional[Ingest] = None
        self._in_file_part = False
        self._body_complete = False
        self._parser = MultipartParser(boundary, callbacks={
            "on_part_begin": self._on_part_begin,
            "on_header_field": self._on_header_field,
            "on_header_value": self._on_header_value,
            "on_header_end": self._on_header_end,
            "on_headers_finished": self._on_headers_finished,
            "on_part_data": self._on_part_data,
            "on_part_end": self._on_part_end,
            "on_end": self._on_end,
        })

    async def receive(self, request: Request) -> SharedFile:
        """
        Read the request body and store its file part.

        Returns:
            The stored SharedFile

        Raises:
            InvalidArgumentError: Malformed or truncated body, missing or repeated file part
            UploadTooLargeError: File part larger than max_bytes
            StorageIOError: The store cannot write the file
        """
        try:
            async for chunk in request.stream():
                try:
                    self._parser.write(chunk)
                except MultipartParseError as e:
                    raise InvalidArgumentError(f"Malformed multipart body: {e}") from e
                events, self._events = self._events, []
                if events:
                    await run_in_threadpool(self._apply, events)

            if not self._body_complete:
                raise InvalidArgumentError("Multipart body ended before its closing boundary")
        except BaseException as e:
            if self._upload is not None:
                self._upload.abort(e)
            raise

        if self._upload is None:
            raise InvalidArgumentError(f"Missing '{UPLOAD_FIELD_NAME}' form field")
        return self._upload.result

    def _apply(self, events: List[Tuple[str, Any]]) -> None:
        for kind, value in events:
            if kind == "headers":
                self._start_part(value)
            elif kind == "data":
                if self._in_file_part:
                    self._upload.write(value)
            elif kind == "end":
                if self._in_file_part:
                    shared_file = self._upload.commit()
                    logger.debug(f"Upload part '{shared_file.file_name}' complete ({shared_file.size_bytes} bytes)")
                    self._in_file_part = False

    def _start_part(self, headers: dict) -> None:
        _, params = parse_options_header(headers.get(b"content-disposition", b""))
        field_name = params.get(b"name", b"").decode("utf-8", "replace")
        filename = params.get(b"filename")
        if field_name != UPLOAD_FIELD_NAME or filename is None:
            return

        if self._upload is not None:
            raise InvalidArgumentError(f"Only one '{UPLOAD_FIELD_NAME}' part is allowed")
        self._upload = self.store.ingest(
            upload_name(filename.decode("utf-8", "replace")),
            max_bytes=self.max_bytes
        )
        self._upload.open()
        self._in_file_part = True

    def _on_part_begin(self) -> None:
        self._part_headers = {}

    def _on_header_field(self, data: bytes, start: int, end: int) -> None:
        self._header_field += data[start:end]

    def _on_header_value(self, data: bytes, start: int, end: int) -> None:
        self._header_value += data[start:end]

    def _on_header_end(self) -> None:
        self._part_headers[self._header_field.lower()] = self._header_value
        self._header_field = b""
        self._header_value = b""

    def _on_headers_finished(self) -> None:
        self._events.append(("headers", self._part_headers))

    def _on_part_data(self, data: bytes, start: int, end: int) -> None:
        self._events.append(("data", data[start:end]))

    def _on_part_end(self) -> None:
        self._events.append(("end", None))

    def _on_end(self) -> None:
        self._body_complete = True
