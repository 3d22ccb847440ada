import pytest
import requests
import responses

from biliupload.client import BiliBili
from biliupload.cos import CosBucket
from biliupload.line import (
    Line,
    Parcel,
    UploadLine,
    Uploader,
    bda2,
    bldsa,
    cos,
    cos_internal,
    default_line,
    kodo,
    line_for,
    probe,
    qn,
    ws,
)
from biliupload.models import BiliError
from biliupload.upos import UposBucket

PREUPLOAD = "https://member.bilibili.com/preupload"
UPOS_URL = "https://upos.example.com/ugcboss/n123.mp4"
COS_URL = "https://bucket.cos.accelerate.example.com/n456.mp4"
FETCH_URL = "https://fetch.example.com/path"


@pytest.fixture
def mocked():
    with responses.RequestsMock(assert_all_requests_are_fired=False) as rsps:
        yield rsps


def upos_bucket_data(chunk_size=4):
    return {
        "chunk_size": chunk_size,
        "auth": "token",
        "endpoint": "//upos.example.com",
        "biz_id": 7,
        "upos_uri": "upos://ugcboss/n123.mp4",
    }


def cos_bucket_data():
    return {
        "OK": 1,
        "bili_filename": "n456.mp4",
        "biz_id": 42,
        "fetch_headers": {
            "X-Upos-Fetch-Source": "source",
            "X-Upos-Auth": "token",
            "Fetch-Header-Authorization": "token",
        },
        "fetch_url": "//fetch.example.com/path",
        "fetch_urls": [],
        "post_auth": "token",
        "put_auth": "token",
        "url": COS_URL,
    }


class _ChunkRecorder:
    """Progress hook that records the size of every chunk passed through."""

    def __init__(self):
        self.seen = []

    def _record(self, chunk):
        self.seen.append(len(chunk))
        return chunk, len(chunk)

    def __call__(self, chunks):
        return map(self._record, chunks)


@pytest.fixture
def clip(tmp_path):
    path = tmp_path / "clip.mp4"
    path.write_bytes(b"0123456789")
    return path


@pytest.mark.parametrize(
    "name, factory",
    [
        (UploadLine.KODO, kodo),
        (UploadLine.BDA2, bda2),
        (UploadLine.WS, ws),
        (UploadLine.QN, qn),
        (UploadLine.COS, cos),
        (UploadLine.COS_INTERNAL, cos_internal),
        (UploadLine.BLDSA, bldsa),
    ],
)
def test_line_for_matches_factory(name, factory):
    assert line_for(name) == factory()
    assert line_for(name.value) == factory()


def test_line_for_unknown_raises():
    with pytest.raises(ValueError):
        line_for("nowhere")


def test_default_line_values():
    line = default_line()
    assert line.os is Uploader.UPOS
    assert line.probe_url == "//upos-cs-upcdnbda2.bilivideo.com/OK"
    assert line.query == "probe_version=20221109&upcdn=bda2&zone=cs"
    assert line.cost > 10**30


def test_named_lines_pin_source_values():
    assert kodo().os is Uploader.KODO
    assert kodo().query == "bucket=bvcupcdnkodobm&probe_version=20211012"
    assert cos_internal().probe_url == "internal"
    assert bldsa().query == "zone=cs&upcdn=bldsa&probe_version=20221109"
    assert ws().cost == 0


def test_pre_upload_upos(mocked, clip):
    mocked.add(responses.GET, PREUPLOAD, json=upos_bucket_data())
    parcel = bda2().pre_upload(BiliBili("token"), clip)
    assert parcel.bucket == UposBucket.from_dict(upos_bucket_data())
    assert parcel.total_size == clip.stat().st_size
    assert parcel.enable_internal is False
    url = mocked.calls[0].request.url
    assert "upcdn=bda2" in url
    assert "r=upos" in url
    assert "name=clip.mp4" in url
    assert "profile=ugcupos%2Fbup&" in url


def test_pre_upload_cos_internal(mocked, clip):
    mocked.add(responses.GET, PREUPLOAD, json=cos_bucket_data())
    parcel = cos_internal().pre_upload(BiliBili("token"), clip)
    assert parcel.bucket == CosBucket.from_dict(cos_bucket_data())
    assert parcel.enable_internal is True
    assert "profile=ugcupos%2Fbupfetch" in mocked.calls[0].request.url


def test_pre_upload_failure(mocked, clip):
    mocked.add(responses.GET, PREUPLOAD, status=406, body="refused")
    with pytest.raises(BiliError, match="Failed to pre_upload from refused"):
        ws().pre_upload(BiliBili("token"), clip)


def test_pre_upload_unsupported_backend(mocked, clip):
    mocked.add(responses.GET, PREUPLOAD, json={})
    with pytest.raises(BiliError, match="unsupported"):
        Line(os=Uploader.BOS, probe_url="", query="").pre_upload(BiliBili("token"), clip)


def test_pre_upload_missing_file(tmp_path):
    with pytest.raises(OSError):
        bda2().pre_upload(BiliBili("token"), tmp_path / "absent.mp4")


def test_probe_picks_reachable_line(mocked):
    mocked.add(
        responses.GET,
        PREUPLOAD,
        json={
            "OK": 1,
            "lines": [
                {"os": "upos", "probe_url": "//a.example.com/OK", "query": "upcdn=a"},
                {"os": "upos", "probe_url": "//b.example.com/OK", "query": "upcdn=b"},
            ],
            "probe": {"get": {}},
        },
    )
    mocked.add(responses.GET, "https://a.example.com/OK", status=500)
    mocked.add(responses.GET, "https://b.example.com/OK")
    line = probe(requests.Session())
    assert line.query == "upcdn=b"
    assert line.cost < default_line().cost


def test_probe_all_unreachable_returns_default(mocked):
    mocked.add(
        responses.GET,
        PREUPLOAD,
        json={
            "OK": 1,
            "lines": [{"os": "upos", "probe_url": "//a.example.com/OK", "query": "upcdn=a"}],
            "probe": {},
        },
    )
    mocked.add(responses.POST, "https://a.example.com/OK", status=500)
    line = probe(requests.Session())
    assert line == default_line()
    assert mocked.calls[1].request.method == "POST"


def test_probe_bad_response(mocked):
    mocked.add(responses.GET, PREUPLOAD, json={"OK": 0})
    with pytest.raises(BiliError):
        probe(requests.Session())


def test_parcel_upload_upos(mocked, clip):
    mocked.add(responses.POST, UPOS_URL, json={"upload_id": "uid"})
    mocked.add(responses.POST, UPOS_URL, json={"OK": 1})
    mocked.add(responses.PUT, UPOS_URL)
    recorder = _ChunkRecorder()

    parcel = Parcel(UposBucket.from_dict(upos_bucket_data()), clip, clip.stat().st_size)
    video = parcel.upload(requests.Session(), 2, recorder)
    assert video.filename == "n123"
    assert video.title == clip.stem
    assert sum(recorder.seen) == clip.stat().st_size
    puts = [call for call in mocked.calls if call.request.method == "PUT"]
    assert len(puts) == len(recorder.seen)
    complete = mocked.calls[-1].request
    assert b"partNumber" in complete.body
    assert "uploadId=uid" in complete.url


def test_parcel_upload_cos(mocked, clip):
    mocked.add(
        responses.POST,
        COS_URL,
        body="<InitiateMultipartUploadResult><UploadId>upid</UploadId></InitiateMultipartUploadResult>",
    )
    mocked.add(responses.POST, COS_URL)
    mocked.add(responses.PUT, COS_URL, headers={"Etag": "tag"})
    mocked.add(responses.POST, FETCH_URL)
    parcel = Parcel(CosBucket.from_dict(cos_bucket_data()), clip, clip.stat().st_size)
    video = parcel.upload(requests.Session(), 3)
    assert video.filename == "n456"
    assert video.title == clip.stem
    put = next(call for call in mocked.calls if call.request.method == "PUT")
    assert put.request.body == clip.read_bytes()
    assert mocked.calls[-1].request.url.startswith(FETCH_URL)