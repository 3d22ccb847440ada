"""Data types exchanged with the video platform's member API."""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from typing import Any

_INT_RE = re.compile(r"\+?[0-9]+")


class BiliError(Exception):
    """Raised when the platform rejects a request or returns unexpected data."""


def _require(data: dict[str, Any], keys: tuple[str, ...], what: str) -> None:
    missing = [key for key in keys if key not in data]
    if missing:
        raise BiliError(f"{what}: missing field(s) {', '.join(missing)}")


@dataclass
class Credit:
    """One entry of a structured description (text or mention)."""

    type_id: int
    raw_text: str
    biz_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type_id, "raw_text": self.raw_text, "biz_id": self.biz_id}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Credit:
        if "type_id" in data:
            type_id = data["type_id"]
        elif "type" in data:
            type_id = data["type"]
        else:
            raise BiliError("credit: missing field type_id")
        _require(data, ("raw_text",), "credit")
        return cls(type_id=type_id, raw_text=data["raw_text"], biz_id=data.get("biz_id"))


@dataclass
class Video:
    """A part of a submission, referring to an uploaded file."""

    filename: str
    title: str | None = None
    desc: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {"title": self.title, "filename": self.filename, "desc": self.desc}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Video:
        _require(data, ("filename", "desc"), "video")
        return cls(filename=data["filename"], title=data.get("title"), desc=data["desc"])


@dataclass
class Subtitle:
    open: int = 0
    lan: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {"open": self.open, "lan": self.lan}


_STUDIO_REQUIRED = (
    "copyright",
    "source",
    "tid",
    "cover",
    "title",
    "desc_format_id",
    "desc",
    "dynamic",
    "tag",
)


@dataclass
class Studio:
    """A submission: metadata plus the list of uploaded videos."""

    copyright: int = 1
    source: str = ""
    tid: int = 171
    cover: str = ""
    title: str = ""
    desc_format_id: int = 0
    desc: str = ""
    desc_v2: list[Credit] | None = None
    dynamic: str = ""
    subtitle: Subtitle = field(default_factory=Subtitle)
    tag: str = ""
    videos: list[Video] = field(default_factory=list)
    dtime: int | None = None
    open_subtitle: bool = False
    interactive: int = 0
    mission_id: int | None = None
    dolby: int = 0
    lossless_music: int = 0
    no_reprint: int = 0
    open_elec: int = 0
    aid: int | None = None
    up_selection_reply: bool = False
    up_close_reply: bool = False
    up_close_danmu: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "copyright": self.copyright,
            "source": self.source,
            "tid": self.tid,
            "cover": self.cover,
            "title": self.title,
            "desc_format_id": self.desc_format_id,
            "desc": self.desc,
            "desc_v2": None
            if self.desc_v2 is None
            else [credit.to_dict() for credit in self.desc_v2],
            "dynamic": self.dynamic,
            "subtitle": self.subtitle.to_dict(),
            "tag": self.tag,
            "videos": [video.to_dict() for video in self.videos],
            "dtime": self.dtime,
            "open_subtitle": self.open_subtitle,
            "interactive": self.interactive,
            "mission_id": self.mission_id,
            "dolby": self.dolby,
            "lossless_music": self.lossless_music,
            "no_reprint": self.no_reprint,
            "open_elec": self.open_elec,
            "aid": self.aid,
            "up_selection_reply": self.up_selection_reply,
            "up_close_reply": self.up_close_reply,
            "up_close_danmu": self.up_close_danmu,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Studio:
        _require(data, _STUDIO_REQUIRED, "studio")
        desc_v2 = data.get("desc_v2")
        subtitle = data.get("subtitle") or {}
        return cls(
            copyright=data["copyright"],
            source=data["source"],
            tid=data["tid"],
            cover=data["cover"],
            title=data["title"],
            desc_format_id=data["desc_format_id"],
            desc=data["desc"],
            desc_v2=None if desc_v2 is None else [Credit.from_dict(c) for c in desc_v2],
            dynamic=data["dynamic"],
            subtitle=Subtitle(open=subtitle.get("open", 0), lan=subtitle.get("lan", "")),
            tag=data["tag"],
            videos=[Video.from_dict(v) for v in data.get("videos") or []],
            dtime=data.get("dtime"),
            open_subtitle=data.get("open_subtitle", False),
            interactive=data.get("interactive", 0),
            mission_id=data.get("mission_id"),
            dolby=data.get("dolby", 0),
            lossless_music=data.get("lossless_music", 0),
            no_reprint=data.get("no_reprint", 0),
            open_elec=data.get("open_elec", 0),
            aid=data.get("aid"),
            up_selection_reply=data.get("up_selection_reply", False),
            up_close_reply=data.get("up_close_reply", False),
            up_close_danmu=data.get("up_close_danmu", False),
        )


_ARCHIVE_FIELDS = (
    "aid",
    "bvid",
    "title",
    "cover",
    "reject_reason",
    "reject_reason_url",
    "duration",
    "desc",
    "state",
    "state_desc",
    "dtime",
    "ptime",
    "ctime",
)


@dataclass
class Archive:
    """A submission as listed by the archive manager."""

    aid: int = 0
    bvid: str = ""
    title: str = ""
    cover: str = ""
    reject_reason: str = ""
    reject_reason_url: str = ""
    duration: int = 0
    desc: str = ""
    state: int = 0
    state_desc: str = ""
    dtime: int = 0
    ptime: int = 0
    ctime: int = 0

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Archive:
        _require(data, _ARCHIVE_FIELDS, "archive")
        return cls(**{name: data[name] for name in _ARCHIVE_FIELDS})

    def to_string_pretty(self) -> str:
        if self.state == 0:
            status = f"\x1b[1;92m{self.state_desc}\x1b[0m"
        elif self.state == -2:
            status = f"\x1b[1;91m{self.state_desc}\x1b[0m"
        elif self.state == -30:
            status = f"\x1b[1;93m{self.state_desc}\x1b[0m"
        else:
            status = self.desc
        return f"{self.bvid}\t{self.title}\t{status}"


@dataclass(frozen=True)
class Vid:
    """A submission identifier: either a numeric aid or a BV id."""

    aid: int | None = None
    bvid: str | None = None

    def __post_init__(self) -> None:
        if (self.aid is None) == (self.bvid is None):
            raise ValueError("exactly one of aid and bvid must be given")

    @classmethod
    def parse(cls, text: str) -> Vid:
        text = text.strip()
        if len(text) < 2:
            raise ValueError(f"invalid video id: {text!r}")
        prefix = text[:2]
        if prefix == "BV":
            return cls(bvid=text)
        digits = text[2:] if prefix == "av" else text
        if not _INT_RE.fullmatch(digits):
            raise ValueError(f"invalid digit found in {digits!r}")
        return cls(aid=int(digits))

    def __str__(self) -> str:
        if self.aid is not None:
            return f"aid={self.aid}"
        return f"bvid={self.bvid}"


@dataclass
class ResponseData:
    """The common envelope of API responses."""

    code: int
    message: str
    data: Any = None
    ttl: int | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ResponseData:
        _require(data, ("code", "message"), "response")
        return cls(
            code=data["code"],
            message=data["message"],
            data=data.get("data"),
            ttl=data.get("ttl"),
        )

    def to_dict(self) -> dict[str, Any]:
        return {"code": self.code, "data": self.data, "message": self.message, "ttl": self.ttl}

    def __str__(self) -> str:
        return json.dumps(self.to_dict(), ensure_ascii=False, separators=(",", ":"))