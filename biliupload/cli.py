"""Command-line front end: upload, append to, show and list submissions."""

from __future__ import annotations

import argparse
import json
import logging
import math
import os
import re
import sys
import threading
import time
from collections.abc import Iterator, Sequence
from pathlib import PurePath
from typing import Any

import requests

from .chunks import split_progress
from .client import BiliBili
from .line import Line, UploadLine, default_line, line_for, probe
from .models import Archive, BiliError, ResponseData, Studio, Vid, Video
from .upos import Body

log = logging.getLogger(__name__)

_U64_MAX = 2**64 - 1
_FLOAT_RE = re.compile(r"[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?")
_SPECIAL_FLOATS = {"inf", "+inf", "-inf", "infinity", "+infinity", "-infinity", "nan", "+nan", "-nan"}
_UNITS = {"K": 1000.0, "M": 1000.0 * 1000.0, "G": 1000.0 * 1000.0 * 1000.0}
_ALL_STATUSES = "is_pubing,pubed,not_pubed"


def _parse_float(text: str) -> float:
    if _FLOAT_RE.fullmatch(text) or text.lower() in _SPECIAL_FLOATS:
        return float(text)
    raise ValueError(f"{text} is not ascii digit. invalid float literal")


def _to_u64(value: float) -> int:
    if math.isnan(value) or value <= 0:
        return 0
    if value >= _U64_MAX:
        return _U64_MAX
    return int(value)


def human_size(text: str) -> int:
    """Parse a size such as ``500``, ``10K``, ``1.5M`` or ``2G`` (decimal units) into bytes."""
    if text and text[-1] in _UNITS:
        value = _parse_float(text[:-1]) * _UNITS[text[-1]]
    else:
        value = _parse_float(text)
    return _to_u64(value)


def archive_status(is_pubing: bool, pubed: bool, not_pubed: bool) -> str:
    """Return the status filter for the archive listing; conflicting flags select all."""
    chosen = [
        name
        for name, flag in (("is_pubing", is_pubing), ("pubed", pubed), ("not_pubed", not_pubed))
        if flag
    ]
    if not chosen:
        return _ALL_STATUSES
    if len(chosen) == 1:
        return chosen[0]
    log.warning("选项互斥，默认列出所有状态的稿件")
    return _ALL_STATUSES


class _ProgressBar:
    """Thread-safe byte counter that draws a one-line bar on an interactive stderr."""

    def __init__(self, total: int) -> None:
        self.total = total
        self.done = 0
        self._lock = threading.Lock()
        self._visible = sys.stderr.isatty()

    def advance(self, amount: int) -> None:
        with self._lock:
            self.done += amount
            if self._visible:
                sys.stderr.write(f"\r{self.done}/{self.total} bytes")
                sys.stderr.flush()

    def wrap(self, chunks: Iterator[bytes]) -> Iterator[tuple[Body, int]]:
        for chunk in chunks:
            yield (lambda data=chunk: split_progress(data, self.advance)), len(chunk)

    def finish(self) -> None:
        if self._visible:
            sys.stderr.write("\r\x1b[2K")
            sys.stderr.flush()


def _probe_or_default(session: requests.Session) -> Line:
    try:
        return probe(session)
    except (requests.RequestException, BiliError, ValueError) as exc:
        log.warning("line probe failed, using default line: %s", exc)
        return default_line()


def upload_videos(
    bili: BiliBili,
    paths: Sequence[str | os.PathLike[str]],
    line: UploadLine | str | None = None,
    limit: int = 3,
) -> list[Video]:
    """Upload each file through the chosen (or probed) line and return the video parts."""
    log.info("number of concurrent futures: %s", limit)
    session = requests.Session()
    chosen = line_for(line) if line is not None else _probe_or_default(session)
    videos = []
    for path in paths:
        log.info("%s", chosen)
        try:
            total_size = os.stat(path).st_size
        except OSError as exc:
            raise BiliError(f"file {os.fspath(path)}: {exc}") from exc
        file_name = os.path.basename(os.fspath(path))
        parcel = chosen.pre_upload(bili, path)
        bar = _ProgressBar(total_size)
        started = time.monotonic()
        video = parcel.upload(session, limit, bar.wrap)
        bar.finish()
        elapsed_ms = max((time.monotonic() - started) * 1000, 1e-9)
        log.info(
            "Upload completed: %s => cost %.2fs, %.2f MB/s.",
            file_name,
            elapsed_ms / 1000,
            total_size / 1000 / elapsed_ms,
        )
        videos.append(video)
    return videos


def _login(cookie_file: str | os.PathLike[str]) -> BiliBili:
    bili = BiliBili.from_cookie_file(cookie_file)
    info = bili.my_info()
    data = info.get("data") if isinstance(info, dict) else None
    name = data.get("name") if isinstance(data, dict) else None
    log.info("user: %s", name if isinstance(name, str) else "")
    return bili


def _cover_up(studio: Studio, bili: BiliBili) -> None:
    if not studio.cover:
        return
    try:
        with open(studio.cover, "rb") as handle:
            data = handle.read()
    except OSError as exc:
        raise BiliError(f"cover: {studio.cover}") from exc
    url = bili.cover_up(data)
    log.info("%s", url)
    studio.cover = url


def upload_by_command(
    studio: Studio,
    cookie_file: str | os.PathLike[str],
    paths: Sequence[str | os.PathLike[str]],
    line: UploadLine | str | None = None,
    limit: int = 3,
) -> ResponseData:
    """Upload files and submit them as a new entry described by ``studio``."""
    if not paths:
        raise ValueError("no video files given")
    bili = _login(cookie_file)
    if not studio.title:
        studio.title = PurePath(os.fspath(paths[0])).stem
    _cover_up(studio, bili)
    studio.videos = upload_videos(bili, paths, line, limit)
    return bili.submit(studio)


def append(
    cookie_file: str | os.PathLike[str],
    vid: Vid,
    paths: Sequence[str | os.PathLike[str]],
    line: UploadLine | str | None = None,
    limit: int = 3,
) -> dict[str, Any]:
    """Upload files and add them as new parts of an existing entry."""
    bili = _login(cookie_file)
    uploaded = upload_videos(bili, paths, line, limit)
    studio = bili.studio_data(vid)
    studio.videos.extend(uploaded)
    return bili.edit(studio)


def show(cookie_file: str | os.PathLike[str], vid: Vid) -> Any:
    """Print and return the JSON description of an entry."""
    bili = _login(cookie_file)
    video_info = bili.video_data(vid)
    print(json.dumps(video_info, indent=2, ensure_ascii=False))
    return video_info


def list_archives(
    cookie_file: str | os.PathLike[str], is_pubing: bool, pubed: bool, not_pubed: bool
) -> list[Archive]:
    """Print one line per uploaded entry with the selected status and return them."""
    status = archive_status(is_pubing, pubed, not_pubed)
    bili = _login(cookie_file)
    archives = bili.all_archives(status)
    for archive in archives:
        print(archive.to_string_pretty())
    return archives


_LINE_METAVAR = "{" + ",".join(member.value for member in UploadLine) + "}"


def _add_transfer_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("video_path", nargs="*", help="需要上传的视频路径")
    parser.add_argument(
        "-l",
        "--line",
        type=UploadLine,
        choices=list(UploadLine),
        metavar=_LINE_METAVAR,
        help="选择上传线路",
    )
    parser.add_argument("--limit", type=int, default=3, help="单视频文件最大并发数")


def _add_studio_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--copyright", type=int, default=1, help="是否转载, 1-自制 2-转载")
    parser.add_argument("--source", default="", help="转载来源")
    parser.add_argument("--tid", type=int, default=171, help="投稿分区")
    parser.add_argument("--cover", default="", help="视频封面")
    parser.add_argument("--title", default="", help="视频标题")
    parser.add_argument("--desc", default="", help="视频简介")
    parser.add_argument("--dynamic", default="", help="空间动态")
    parser.add_argument("--tag", default="", help="视频标签，逗号分隔多个tag")
    parser.add_argument("--dtime", type=int, help="延时发布时间，10位时间戳")
    parser.add_argument("--interactive", type=int, default=0)
    parser.add_argument("--mission-id", type=int)
    parser.add_argument("--dolby", type=int, default=0, help="是否开启杜比音效")
    parser.add_argument("--hires", dest="lossless_music", type=int, default=0, help="是否开启 Hi-Res")
    parser.add_argument("--no-reprint", type=int, default=0, help="0-允许转载，1-禁止转载")
    parser.add_argument("--open-elec", type=int, default=0, help="是否开启充电")
    parser.add_argument("--up-selection-reply", action="store_true")
    parser.add_argument("--up-close-reply", action="store_true")
    parser.add_argument("--up-close-danmu", action="store_true")


def _studio_from_args(args: argparse.Namespace) -> Studio:
    return Studio(
        copyright=args.copyright,
        source=args.source,
        tid=args.tid,
        cover=args.cover,
        title=args.title,
        desc=args.desc,
        dynamic=args.dynamic,
        tag=args.tag,
        dtime=args.dtime,
        interactive=args.interactive,
        mission_id=args.mission_id,
        dolby=args.dolby,
        lossless_music=args.lossless_music,
        no_reprint=args.no_reprint,
        open_elec=args.open_elec,
        up_selection_reply=args.up_selection_reply,
        up_close_reply=args.up_close_reply,
        up_close_danmu=args.up_close_danmu,
    )


def build_parser() -> argparse.ArgumentParser:
    """Return the argument parser for the command line."""
    parser = argparse.ArgumentParser(prog="biliupload", description="上传视频并管理稿件")
    parser.add_argument("-u", "--user-cookie", default="cookies.json", help="登录信息文件")
    parser.add_argument(
        "--log-level",
        default="info",
        choices=["debug", "info", "warning", "error"],
        help="日志级别",
    )
    commands = parser.add_subparsers(dest="command", required=True)

    upload_cmd = commands.add_parser("upload", help="上传视频")
    _add_transfer_args(upload_cmd)
    _add_studio_args(upload_cmd)

    append_cmd = commands.add_parser("append", help="对某稿件追加视频")
    append_cmd.add_argument("-v", "--vid", type=Vid.parse, required=True, help="稿件 av 或 bv 号")
    _add_transfer_args(append_cmd)

    show_cmd = commands.add_parser("show", help="打印视频详情")
    show_cmd.add_argument("vid", type=Vid.parse, help="稿件 av 或 bv 号")

    list_cmd = commands.add_parser("list", help="列出所有已上传的视频")
    list_cmd.add_argument("--is-pubing", action="store_true", help="只包含进行中的视频")
    list_cmd.add_argument("--pubed", action="store_true", help="只包含已通过的视频")
    list_cmd.add_argument("--not-pubed", action="store_true", help="只包含未通过的视频")
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    """Run the command line; return the process exit status."""
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=args.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    try:
        if args.command == "upload":
            upload_by_command(
                _studio_from_args(args), args.user_cookie, args.video_path, args.line, args.limit
            )
        elif args.command == "append":
            append(args.user_cookie, args.vid, args.video_path, args.line, args.limit)
        elif args.command == "show":
            show(args.user_cookie, args.vid)
        elif args.command == "list":
            list_archives(args.user_cookie, args.is_pubing, args.pubed, args.not_pubed)
    except (BiliError, OSError, ValueError, requests.RequestException) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())