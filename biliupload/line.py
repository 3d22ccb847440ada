"""Upload lines: choosing one, pre-uploading and uploading a file through it."""

from __future__ import annotations

import logging
import os
import time
from collections.abc import Callable, Iterable, Iterator
from dataclasses import dataclass
from enum import Enum
from pathlib import PurePath
from typing import Any

import requests

from .chunks import iter_file_chunks
from .client import BiliBili
from .cos import CHUNK_SIZE as COS_CHUNK_SIZE
from .cos import Cos, CosBucket
from .models import BiliError, Video
from .upos import Body, Upos, UposBucket

log = logging.getLogger(__name__)

_PREUPLOAD = "https://member.bilibili.com/preupload"
_PING_SIZE = int(1024 * 0.1 * 1024)

Progress = Callable[[Iterator[bytes]], Iterable[tuple[Body, int]]]


class Uploader(str, Enum):
    """Storage backend behind an upload line."""

    UPOS = "upos"
    KODO = "kodo"
    BOS = "bos"
    GCS = "gcs"
    COS = "cos"


class UploadLine(str, Enum):
    """Named upload lines that can be chosen explicitly."""

    BDA2 = "bda2"
    WS = "ws"
    QN = "qn"
    KODO = "kodo"
    COS = "cos"
    COS_INTERNAL = "cos-internal"
    BLDSA = "bldsa"


def _plain(chunks: Iterator[bytes]) -> Iterator[tuple[Body, int]]:
    return ((chunk, len(chunk)) for chunk in chunks)


@dataclass
class Parcel:
    """A file that has been pre-uploaded and is ready to be sent."""

    bucket: UposBucket | CosBucket
    path: str | os.PathLike[str]
    total_size: int
    enable_internal: bool = False

    def upload(
        self, session: requests.Session, limit: int, progress: Progress | None = None
    ) -> Video:
        """Upload the file, at most ``limit`` chunks at once, and return the video part.

        ``progress`` receives the iterator of raw chunks and returns the
        ``(body, length)`` pairs to send, e.g. to report progress.
        """
        wrap = progress if progress is not None else _plain
        if isinstance(self.bucket, CosBucket):
            cos = Cos.create(session, self.bucket)
            parts = cos.upload_chunks(
                wrap(iter_file_chunks(self.path, COS_CHUNK_SIZE)), limit, self.enable_internal
            )
            video = cos.merge_files(parts)
        else:
            upos = Upos.create(session, self.bucket)
            chunks = wrap(iter_file_chunks(self.path, self.bucket.chunk_size))
            parts = [part for part, _ in upos.upload_chunks(chunks, self.total_size, limit)]
            video = upos.complete(parts, self.path)
        if video.title is None:
            video.title = PurePath(os.fspath(self.path)).stem
        return video


@dataclass
class Line:
    """An upload line: backend, probe address and pre-upload query."""

    os: Uploader
    probe_url: str
    query: str
    cost: float = 0

    def pre_upload(self, bili: BiliBili, path: str | os.PathLike[str]) -> Parcel:
        """Announce a file to the platform and return the parcel to upload."""
        total_size = os.path.getsize(path)
        file_name = os.path.basename(os.fspath(path))
        profile = "ugcupos/bup" if self.os is Uploader.UPOS else "ugcupos/bupfetch"
        params = {
            "r": self.os.value,
            "profile": profile,
            "ssl": 0,
            "version": "2.11.0",
            "build": 2110000,
            "name": file_name,
            "size": total_size,
        }
        log.info("pre_upload: %s", params)
        response = bili.session.get(f"{_PREUPLOAD}?{self.query}", params=params)
        if not response.ok:
            raise BiliError(f"Failed to pre_upload from {response.text}")
        if self.os is Uploader.UPOS:
            return Parcel(UposBucket.from_dict(response.json()), path, total_size)
        if self.os is Uploader.COS:
            return Parcel(
                CosBucket.from_dict(response.json()),
                path,
                total_size,
                enable_internal=self.probe_url == "internal",
            )
        raise BiliError(f"unsupported upload line: {self.os.value}")


def _line_from_dict(data: Any) -> Line:
    if not isinstance(data, dict):
        raise BiliError(f"probe: invalid line {data!r}")
    missing = [name for name in ("os", "probe_url", "query") if name not in data]
    if missing:
        raise BiliError(f"probe line: missing field(s) {', '.join(missing)}")
    try:
        uploader = Uploader(data["os"])
    except ValueError as exc:
        raise BiliError(f"probe line: unknown backend {data['os']!r}") from exc
    return Line(os=uploader, probe_url=data["probe_url"], query=data["query"])


def probe(session: requests.Session) -> Line:
    """Ping every line the platform offers and return the fastest reachable one."""
    res = session.get(f"{_PREUPLOAD}?r=probe").json()
    lines = res.get("lines") if isinstance(res, dict) else None
    if not isinstance(lines, list):
        raise BiliError(f"probe: unexpected response {res!r}")
    probe_info = res.get("probe")
    use_get = isinstance(probe_info, dict) and probe_info.get("get") is not None
    choice = default_line()
    for entry in lines:
        line = _line_from_dict(entry)
        url = f"https:{line.probe_url}"
        started = time.monotonic()
        if use_get:
            response = session.get(url)
        else:
            response = session.post(url, data=bytes(_PING_SIZE))
        if response.ok:
            line.cost = int((time.monotonic() - started) * 1000)
            log.info("%s: %s", line.query, line.cost)
            if choice.cost > line.cost:
                choice = line
    return choice


def default_line() -> Line:
    """The line used when probing finds nothing better."""
    return Line(
        os=Uploader.UPOS,
        probe_url="//upos-cs-upcdnbda2.bilivideo.com/OK",
        query="probe_version=20221109&upcdn=bda2&zone=cs",
        cost=float("inf"),
    )


def kodo() -> Line:
    return Line(
        os=Uploader.KODO,
        query="bucket=bvcupcdnkodobm&probe_version=20211012",
        probe_url="//up-na0.qbox.me/crossdomain.xml",
    )


def bda2() -> Line:
    return Line(
        os=Uploader.UPOS,
        query="probe_version=20221109&upcdn=bda2&zone=cs",
        probe_url="//upos-cs-upcdnbda2.bilivideo.com/OK",
    )


def ws() -> Line:
    return Line(
        os=Uploader.UPOS,
        query="probe_version=20221109&upcdn=ws&zone=cs",
        probe_url="//upos-cs-upcdnws.bilivideo.com/OK",
    )


def qn() -> Line:
    return Line(
        os=Uploader.UPOS,
        query="probe_version=20221109&upcdn=qn&zone=cs",
        probe_url="//upos-cs-upcdnqn.bilivideo.com/OK",
    )


def cos() -> Line:
    return Line(
        os=Uploader.COS,
        query=(
            "&probe_version=20211012&r=cos&profile=ugcupos%2Fbupfetch&ssl=0"
            "&version=2.10.4.0&build=2100400&webVersion=2.0.0"
        ),
        probe_url="",
    )


def cos_internal() -> Line:
    return Line(os=Uploader.COS, query="", probe_url="internal")


def bldsa() -> Line:
    return Line(
        os=Uploader.UPOS,
        query="zone=cs&upcdn=bldsa&probe_version=20221109",
        probe_url="//upos-cs-upcdnbldsa.bilivideo.com/OK",
    )


_LINES: dict[UploadLine, Callable[[], Line]] = {
    UploadLine.KODO: kodo,
    UploadLine.BDA2: bda2,
    UploadLine.WS: ws,
    UploadLine.QN: qn,
    UploadLine.COS: cos,
    UploadLine.COS_INTERNAL: cos_internal,
    UploadLine.BLDSA: bldsa,
}


def line_for(upload_line: UploadLine | str) -> Line:
    """Return the line for a named upload line (enum member or its value)."""
    return _LINES[UploadLine(upload_line)]()