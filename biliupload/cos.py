"""Multipart upload to a COS storage line."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Iterator
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass
from pathlib import PurePosixPath
from typing import Any

import requests

from .chunks import retry
from .models import BiliError, Video
from .upos import Body

log = logging.getLogger(__name__)

CHUNK_SIZE = 10485760

_INTERNAL_FROM = "cos.accelerate"
_INTERNAL_TO = "cos-internal.ap-shanghai"
_FETCH_HEADERS = ("X-Upos-Fetch-Source", "X-Upos-Auth", "Fetch-Header-Authorization")
_PART = (
    "<Part>\n"
    + " " * 24
    + "<PartNumber>{number}</PartNumber>\n"
    + " " * 24
    + "<ETag>{etag}</ETag>\n"
    + " " * 23
    + "</Part>"
)


class _SizedBody:
    """A re-iterable request body of known length, produced by a factory."""

    def __init__(self, factory: Callable[[], Iterable[bytes]], length: int) -> None:
        self._factory = factory
        self._length = length

    def __len__(self) -> int:
        return self._length

    def __iter__(self) -> Iterator[bytes]:
        return iter(self._factory())


def parse_upload_id(text: str) -> str:
    """Extract the upload id from an initiate-multipart-upload XML reply."""
    open_tag = "<UploadId>"
    start = text.find(open_tag)
    end = text.rfind("</UploadId>")
    if start < 0 or end < 0:
        raise BiliError(text)
    return text[start + len(open_tag) : end]


def merge_body(parts: Iterable[tuple[int, str]]) -> str:
    """Build the complete-multipart-upload XML for ``(part_number, etag)`` pairs."""
    ordered = sorted(parts, key=lambda part: part[0])
    if not ordered:
        raise ValueError("no parts to merge")
    body = "".join(_PART.format(number=number, etag=etag) for number, etag in ordered)
    return f"<CompleteMultipartUpload>{body}</CompleteMultipartUpload>"


@dataclass
class CosBucket:
    """Upload parameters handed out by the pre-upload request."""

    ok: int
    bili_filename: str
    biz_id: int
    fetch_headers: dict[str, str]
    fetch_url: str
    fetch_urls: list[str]
    post_auth: str
    put_auth: str
    url: str

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CosBucket:
        fields = (
            "OK",
            "bili_filename",
            "biz_id",
            "fetch_headers",
            "fetch_url",
            "fetch_urls",
            "post_auth",
            "put_auth",
            "url",
        )
        missing = [name for name in fields if name not in data]
        if missing:
            raise BiliError(f"cos bucket: missing field(s) {', '.join(missing)}")
        return cls(
            ok=data["OK"],
            bili_filename=data["bili_filename"],
            biz_id=data["biz_id"],
            fetch_headers=dict(data["fetch_headers"]),
            fetch_url=data["fetch_url"],
            fetch_urls=list(data["fetch_urls"]),
            post_auth=data["post_auth"],
            put_auth=data["put_auth"],
            url=data["url"],
        )


@dataclass
class Cos:
    """An initiated multipart upload on a COS line."""

    session: requests.Session
    bucket: CosBucket
    upload_id: str
    retry_delay: float = 1.0

    @classmethod
    def create(cls, session: requests.Session, bucket: CosBucket) -> Cos:
        """Start a multipart upload and return its handle."""
        response = session.post(
            f"{bucket.url}?uploads&output=json",
            headers={"Authorization": bucket.post_auth},
        )
        return cls(session=session, bucket=bucket, upload_id=parse_upload_id(response.text))

    def _put_chunk(self, url: str, index: int, body: Body, length: int) -> tuple[int, str]:
        params = {"uploadId": self.upload_id, "partNumber": index + 1}

        def send() -> requests.Response:
            data = _SizedBody(body, length) if callable(body) else body
            response = self.session.put(
                url,
                headers={"Authorization": self.bucket.put_auth, "Content-Length": str(length)},
                params=params,
                data=data,
            )
            response.raise_for_status()
            return response

        response = retry(send, delay=self.retry_delay)
        etag = response.headers.get("Etag")
        if etag is None:
            raise BiliError(f"upload chunk {index} error: {response.text}")
        return index + 1, etag

    def upload_chunks(
        self,
        chunks: Iterable[tuple[Body, int]],
        limit: int,
        enable_internal: bool = False,
    ) -> list[tuple[int, str]]:
        """Upload ``(body, length)`` chunks, at most ``limit`` at once.

        Returns ``(part_number, etag)`` pairs in order of completion.
        """
        if limit < 1:
            raise ValueError("limit must be at least 1")
        url = self.bucket.url
        if enable_internal:
            url = url.replace(_INTERNAL_FROM, _INTERNAL_TO)
        parts: list[tuple[int, str]] = []
        with ThreadPoolExecutor(max_workers=limit) as pool:
            pending: set[Future[tuple[int, str]]] = set()
            for index, (body, length) in enumerate(chunks):
                pending.add(pool.submit(self._put_chunk, url, index, body, length))
                if len(pending) >= limit:
                    done, pending = wait(pending, return_when=FIRST_COMPLETED)
                    parts.extend(future.result() for future in done)
            while pending:
                done, pending = wait(pending, return_when=FIRST_COMPLETED)
                parts.extend(future.result() for future in done)
        return parts

    def merge_files(self, parts: Iterable[tuple[int, str]]) -> Video:
        """Complete the upload, ask the platform to fetch it, and return the video part."""
        xml = merge_body(parts)
        response = self.session.post(
            self.bucket.url,
            params={"uploadId": self.upload_id},
            data=xml.encode("utf-8"),
            headers={"Authorization": self.bucket.post_auth},
        )
        if not response.ok:
            raise BiliError(response.text)
        missing = [name for name in _FETCH_HEADERS if name not in self.bucket.fetch_headers]
        if missing:
            raise BiliError(f"cos fetch headers: missing {', '.join(missing)}")
        headers = {name: self.bucket.fetch_headers[name] for name in _FETCH_HEADERS}
        res = self.session.post(f"https:{self.bucket.fetch_url}", headers=headers)
        if not res.ok:
            raise BiliError(res.text)
        log.info("cos upload merged: %s", self.bucket.bili_filename)
        return Video(filename=PurePosixPath(self.bucket.bili_filename).stem)