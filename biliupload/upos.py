"""Chunked upload to an UPOS storage line."""

from __future__ import annotations

import json
import os
from collections.abc import Callable, Iterable, Iterator
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass
from pathlib import PurePosixPath
from typing import Any, Union

import requests

from .chunks import retry
from .models import BiliError, Video

Body = Union[bytes, Callable[[], Iterable[bytes]]]

_UPLOAD_TIMEOUT = 240
_TIMEOUT = 60


class _SizedBody:
    """A re-iterable request body of known length, produced by a factory."""

    def __init__(self, factory: Callable[[], Iterable[bytes]], length: int) -> None:
        self._factory = factory
        self._length = length

    def __len__(self) -> int:
        return self._length

    def __iter__(self) -> Iterator[bytes]:
        return iter(self._factory())


@dataclass
class UposBucket:
    """Upload parameters handed out by the pre-upload request."""

    chunk_size: int
    auth: str
    endpoint: str
    biz_id: int
    upos_uri: str

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> UposBucket:
        fields = ("chunk_size", "auth", "endpoint", "biz_id", "upos_uri")
        missing = [name for name in fields if name not in data]
        if missing:
            raise BiliError(f"upos bucket: missing field(s) {', '.join(missing)}")
        return cls(**{name: data[name] for name in fields})


@dataclass
class Upos:
    """An initiated multipart upload on an UPOS line."""

    session: requests.Session
    bucket: UposBucket
    url: str
    upload_id: str
    retry_delay: float = 1.0

    @classmethod
    def create(cls, session: requests.Session, bucket: UposBucket) -> Upos:
        """Start a multipart upload and return its handle."""
        url = f"https:{bucket.endpoint}/{bucket.upos_uri.replace('upos://', '')}"
        response = session.post(
            f"{url}?uploads&output=json",
            headers={"X-Upos-Auth": bucket.auth},
            timeout=_TIMEOUT,
        )
        payload = response.json()
        upload_id = payload.get("upload_id") if isinstance(payload, dict) else None
        if not isinstance(upload_id, str):
            raise BiliError(json.dumps(payload, ensure_ascii=False))
        return cls(session=session, bucket=bucket, url=url, upload_id=upload_id)

    def _put_chunk(
        self, index: int, body: Body, length: int, chunks_num: int, total_size: int
    ) -> tuple[dict[str, Any], int]:
        start = index * self.bucket.chunk_size
        params = {
            "uploadId": self.upload_id,
            "chunks": chunks_num,
            "total": total_size,
            "chunk": index,
            "size": length,
            "partNumber": index + 1,
            "start": start,
            "end": start + length,
        }

        def send() -> None:
            data = _SizedBody(body, length) if callable(body) else body
            response = self.session.put(
                self.url,
                headers={"X-Upos-Auth": self.bucket.auth},
                params=params,
                data=data,
                timeout=_UPLOAD_TIMEOUT,
            )
            response.raise_for_status()

        retry(send, delay=self.retry_delay)
        return {"partNumber": index + 1, "eTag": "etag"}, length

    def upload_chunks(
        self, chunks: Iterable[tuple[Body, int]], total_size: int, limit: int
    ) -> Iterator[tuple[dict[str, Any], int]]:
        """Upload ``(body, length)`` chunks, at most ``limit`` at once.

        A body is either bytes or a callable returning a fresh iterable of bytes
        for every attempt. Yields ``(part, length)`` in order of completion.
        """
        if limit < 1:
            raise ValueError("limit must be at least 1")
        chunk_size = self.bucket.chunk_size
        chunks_num = -(-total_size // chunk_size)
        with ThreadPoolExecutor(max_workers=limit) as pool:
            pending: set[Future[tuple[dict[str, Any], int]]] = set()
            for index, (body, length) in enumerate(chunks):
                pending.add(
                    pool.submit(self._put_chunk, index, body, length, chunks_num, total_size)
                )
                if len(pending) >= limit:
                    done, pending = wait(pending, return_when=FIRST_COMPLETED)
                    for future in done:
                        yield future.result()
            while pending:
                done, pending = wait(pending, return_when=FIRST_COMPLETED)
                for future in done:
                    yield future.result()

    def complete(self, parts: list[dict[str, Any]], path: str | os.PathLike[str]) -> Video:
        """Finish the multipart upload and return the resulting video part."""
        params = {
            "name": os.path.basename(os.fspath(path)),
            "uploadId": self.upload_id,
            "biz_id": self.bucket.biz_id,
            "output": "json",
            "profile": "ugcupos/bup",
        }
        response = self.session.post(
            self.url,
            headers={"X-Upos-Auth": self.bucket.auth},
            params=params,
            json={"parts": parts},
            timeout=_TIMEOUT,
        )
        res = response.json()
        if not isinstance(res, dict) or res.get("OK") != 1:
            raise BiliError(json.dumps(res, ensure_ascii=False))
        return Video(filename=PurePosixPath(self.bucket.upos_uri).stem)