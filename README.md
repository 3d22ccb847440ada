# biliupload

Upload videos to bilibili from the command line or from Python, append
videos to existing submissions, print the details of a submission and list
the archives of your account.

Files are sent in chunks over an upload line. The named lines are `bda2`,
`ws`, `qn`, `kodo`, `cos`, `cos-internal` and `bldsa`. When no line is
chosen, the lines offered by the platform are probed and the fastest
reachable one is used; if probing fails, `bda2` is used.

## Installation

```
pip install .
```

For running the tests:

```
pip install ".[test]"
pytest
```

## Login information

Every command reads saved login information from a JSON file, `cookies.json`
in the current directory by default; choose another file with
`--user-cookie` (`-u`). The file must hold the access token and, for cover
uploads and the archive listing, the web cookies:

```json
{
  "token_info": {"access_token": "token"},
  "cookie_info": {
    "cookies": [
      {"name": "SESSDATA", "value": "placeholder"},
      {"name": "bili_jct", "value": "placeholder"}
    ]
  }
}
```

## Command line

Upload one or more files as a new submission. Without `--title` the stem of
the first file name is used as the title:

```
biliupload upload part1.mp4 part2.mp4 --title "My video" --tid 171 --tag "game,live"
```

Choose the upload line and how many chunks of one file are sent at once
(default 3):

```
biliupload upload video.mp4 --line ws --limit 5
```

Further options of `upload`: `--copyright` (1 original, 2 repost),
`--source`, `--cover` (a local JPEG that is uploaded first), `--desc`,
`--dynamic`, `--dtime` (a 10-digit Unix timestamp for delayed publishing),
`--interactive`, `--mission-id`, `--dolby`, `--hires`, `--no-reprint`,
`--open-elec`, `--up-selection-reply`, `--up-close-reply` and
`--up-close-danmu`.

Append videos to an existing submission, given by its `av` number, its plain
number or its `BV` id:

```
biliupload append --vid BV1xx411c7XX extra.mp4
```

Print the details of a submission as JSON:

```
biliupload show av170001
```

List your archives, optionally only those in review, published, or rejected:

```
biliupload list
biliupload list --is-pubing
biliupload list --pubed
biliupload list --not-pubed
```

The three filters exclude each other; when more than one is given, all
archives are listed and a warning is logged.

`--log-level` (`debug`, `info`, `warning`, `error`; default `info`) sets how
much is logged. On an error the command prints `Error: ...` to standard error
and exits with status 1. While a file uploads, a byte counter is drawn on an
interactive terminal.

## Python

Upload and submit in one call:

```python
from biliupload.cli import upload_by_command
from biliupload.models import Studio

result = upload_by_command(
    Studio(title="My video", tid=171, tag="game,live"),
    "cookies.json",
    ["video.mp4"],
    line="ws",
    limit=3,
)
```

`line` takes a member of `biliupload.line.UploadLine`, its value (such as
`"ws"`), or `None` to probe for the fastest line. Errors reported by the
service are raised as `biliupload.models.BiliError`.

The building blocks can also be used on their own:

- `biliupload.client.BiliBili` — the account API: `submit`, `edit`,
  `video_data`, `studio_data`, `my_info`, `archive_pre`, `recommend_tag`,
  `cover_up`, `archives` and `all_archives`. Create it with
  `BiliBili.from_cookie_file(path)` or `BiliBili.from_login_info(dict)`.
- `biliupload.models` — `Studio`, `Video`, `Credit`, `Subtitle`, `Archive`,
  `Vid` (`Vid.parse("av170001")`, `Vid.parse("BV...")`) and `ResponseData`.
- `biliupload.line` — `line_for`, `probe`, `default_line`, the line functions
  `bda2`, `ws`, `qn`, `kodo`, `cos`, `cos_internal`, `bldsa`, and
  `Line.pre_upload`, which returns a `Parcel` whose `upload` sends the file.
- `biliupload.upos` and `biliupload.cos` — the multipart uploads behind the
  lines.
- `biliupload.chunks` — `iter_file_chunks`, `split_progress` and `retry`.
- `biliupload.flvreader.FrameReader` — reads fixed-size frames from a byte
  stream.

```python
import requests

from biliupload.client import BiliBili
from biliupload.line import line_for

bili = BiliBili.from_cookie_file("cookies.json")
parcel = line_for("bda2").pre_upload(bili, "video.mp4")
video = parcel.upload(requests.Session(), limit=3)
```

## What this package does not do

- It does not log in. There is no command to obtain or renew login
  information; the cookie file must already exist.
- It does not download streams or videos, and has no command that dumps the
  contents of FLV files.
- It runs no web server.
- Only lines backed by upos (`bda2`, `ws`, `qn`, `bldsa`) and cos (`cos`,
  `cos-internal`) can upload. The `kodo` line can be chosen, but its
  pre-upload raises `BiliError` ("unsupported upload line").