"""Client for the video platform's member API."""

from __future__ import annotations

import base64
import json
from os import PathLike
from typing import Any

import requests

from .models import Archive, BiliError, ResponseData, Studio, Vid, Video

USER_AGENT = "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 Chrome/63.0.3239.108"
TIMEOUT = 60

_MEMBER_CLIENT = "http://member.bilibili.com/x"
_MEMBER_WEB = "https://member.bilibili.com/x"


def page_count(count: int, page_size: int) -> int:
    """Number of pages needed to hold ``count`` items, ``page_size`` per page."""
    if page_size <= 0:
        raise ValueError("page_size must be positive")
    pages, rest = divmod(count, page_size)
    return pages + 1 if rest else pages


def _envelope(response: requests.Response) -> ResponseData:
    payload = response.json()
    if not isinstance(payload, dict):
        raise BiliError(f"unexpected response: {payload!r}")
    return ResponseData.from_dict(payload)


class BiliBili:
    """A logged-in session against the member API."""

    def __init__(
        self,
        access_token: str,
        cookies: list[dict[str, Any]] | None = None,
        session: requests.Session | None = None,
    ) -> None:
        self.access_token = access_token
        self.cookies = cookies
        self.session = session if session is not None else requests.Session()
        self.session.headers.setdefault("User-Agent", USER_AGENT)
        for name, value in self._cookie_pairs():
            self.session.cookies.set(name, value)

    @classmethod
    def from_login_info(cls, login_info: dict[str, Any]) -> BiliBili:
        """Build a client from stored login information."""
        try:
            access_token = login_info["token_info"]["access_token"]
        except (KeyError, TypeError) as exc:
            raise BiliError("login info: missing token_info.access_token") from exc
        cookie_info = login_info.get("cookie_info")
        cookies = cookie_info.get("cookies") if isinstance(cookie_info, dict) else None
        if not isinstance(cookies, list):
            cookies = None
        return cls(access_token, cookies)

    @classmethod
    def from_cookie_file(cls, path: str | PathLike[str]) -> BiliBili:
        """Build a client from a JSON file of login information."""
        try:
            with open(path, encoding="utf-8") as handle:
                login_info = json.load(handle)
        except OSError as exc:
            raise BiliError(f"open cookies file: {path}") from exc
        except ValueError as exc:
            raise BiliError(f"cookies file {path}: {exc}") from exc
        if not isinstance(login_info, dict):
            raise BiliError(f"cookies file {path}: not an object")
        return cls.from_login_info(login_info)

    def _cookie_pairs(self) -> list[tuple[str, str]]:
        return [
            (cookie["name"], cookie["value"])
            for cookie in self.cookies or []
            if isinstance(cookie, dict)
            and isinstance(cookie.get("name"), str)
            and isinstance(cookie.get("value"), str)
        ]

    def submit(self, studio: Studio) -> ResponseData:
        """Submit a new entry; raise BiliError unless the platform accepts it."""
        response = self.session.post(
            f"{_MEMBER_CLIENT}/vu/client/add?access_key={self.access_token}",
            json=studio.to_dict(),
            timeout=TIMEOUT,
        )
        ret = _envelope(response)
        if ret.code != 0:
            raise BiliError(str(ret))
        return ret

    def edit(self, studio: Studio) -> dict[str, Any]:
        """Edit an existing entry; raise BiliError unless the platform accepts it."""
        response = self.session.post(
            f"{_MEMBER_CLIENT}/vu/client/edit?access_key={self.access_token}",
            json=studio.to_dict(),
            timeout=TIMEOUT,
        )
        ret = response.json()
        if not isinstance(ret, dict) or ret.get("code") != 0:
            raise BiliError(json.dumps(ret, ensure_ascii=False))
        return ret

    def video_data(self, vid: Vid) -> Any:
        """Return the JSON description of a submitted entry."""
        response = self.session.get(
            f"{_MEMBER_CLIENT}/client/archive/view?access_key={self.access_token}&{vid}",
            timeout=TIMEOUT,
        )
        res = _envelope(response)
        if res.data is None:
            raise BiliError(str(res))
        return res.data

    def studio_data(self, vid: Vid) -> Studio:
        """Fetch an entry and return it as an editable Studio."""
        info = self.video_data(vid)
        archive = info.get("archive") if isinstance(info, dict) else None
        videos = info.get("videos") if isinstance(info, dict) else None
        if not isinstance(archive, dict):
            raise BiliError("video data: missing archive")
        if not isinstance(videos, list):
            raise BiliError("video data: missing videos")
        studio = Studio.from_dict(archive)
        studio.videos = [Video.from_dict(video) for video in videos]
        return studio

    def my_info(self) -> Any:
        return self.session.get("https://api.bilibili.com/x/space/myinfo").json()

    def archive_pre(self) -> Any:
        return self.session.get(f"{_MEMBER_WEB}/vupre/web/archive/pre").json()

    def recommend_tag(self, subtype_id: int, title: str, key: str) -> Any:
        """Return the tags the platform recommends for a title and file."""
        params = {
            "upload_id": "",
            "subtype_id": subtype_id,
            "title": title,
            "filename": key,
            "description": "",
            "cover_url": "",
            "t": "",
        }
        result = _envelope(
            self.session.get(f"{_MEMBER_WEB}/vupre/web/tag/recommend", params=params)
        )
        if result.code == 0:
            return result.data
        raise BiliError(result.message)

    def cover_up(self, data: bytes) -> str:
        """Upload a JPEG cover image and return its URL."""
        if self.cookies is None:
            raise BiliError("cover_up cookie error")
        csrf = next(
            (
                cookie.get("value")
                for cookie in self.cookies
                if isinstance(cookie, dict) and cookie.get("name") == "bili_jct"
            ),
            None,
        )
        if csrf is None:
            raise BiliError("cover_up jct error")
        encoded = base64.b64encode(data).decode("ascii")
        response = self.session.post(
            f"{_MEMBER_WEB}/vu/web/cover/up",
            data={"cover": f"data:image/jpeg;base64,{encoded}", "csrf": csrf},
        )
        if not response.ok:
            raise BiliError(response.text)
        res = _envelope(response)
        if res.data is None:
            raise BiliError(str(res))
        url = res.data.get("url") if isinstance(res.data, dict) else None
        if not isinstance(url, str):
            raise BiliError("cover_up error")
        return url

    def archives(self, status: str, page_num: int) -> Any:
        """Return one page of the archive manager's listing."""
        if self.cookies is None:
            raise BiliError("archives cookie error")
        cookie = "; ".join(f"{name}={value}" for name, value in self._cookie_pairs())
        response = self.session.get(
            f"{_MEMBER_WEB}/web/archives",
            params={"status": status, "pn": str(page_num)},
            headers={"Cookie": cookie},
            timeout=TIMEOUT,
        )
        res = _envelope(response)
        if res.data is None:
            raise BiliError(str(res))
        return res.data

    def _all_archive_pages(self, status: str) -> list[Any]:
        first_page = self.archives(status, 1)
        page = first_page.get("page") if isinstance(first_page, dict) else None
        page = page if isinstance(page, dict) else {}
        page_size = page.get("ps")
        count = page.get("count")
        if not isinstance(page_size, int) or page_size < 0:
            raise BiliError("all_studios ps error")
        if not isinstance(count, int) or count < 0:
            raise BiliError("all_studios count error")
        pages = page_count(count, page_size)
        return [first_page] + [self.archives(status, num) for num in range(2, pages + 1)]

    def all_archives(self, status: str) -> list[Archive]:
        """Return every archive with the given status, skipping malformed entries."""
        archives = []
        for page in self._all_archive_pages(status):
            audits = page.get("arc_audits") if isinstance(page, dict) else None
            if not isinstance(audits, list):
                continue
            for audit in audits:
                entry = audit.get("Archive") if isinstance(audit, dict) else None
                if not isinstance(entry, dict):
                    continue
                try:
                    archives.append(Archive.from_dict(entry))
                except BiliError:
                    continue
        return archives