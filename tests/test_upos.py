import json
from urllib.parse import parse_qs, urlsplit

import pytest
import requests
import responses

from biliupload.models import BiliError
from biliupload.upos import Upos, UposBucket

URL = "https://upos-sz.example.com/ugcboss/n1.mp4"

BUCKET = {
    "chunk_size": 4,
    "auth": "token",
    "endpoint": "//upos-sz.example.com",
    "biz_id": 42,
    "upos_uri": "upos://ugcboss/n1.mp4",
}


@pytest.fixture
def mocked():
    with responses.RequestsMock(assert_all_requests_are_fired=False) as rsps:
        yield rsps


def query_of(url):
    return {k: v[0] for k, v in parse_qs(urlsplit(url).query, keep_blank_values=True).items()}


def make_upos():
    upos = Upos(
        session=requests.Session(),
        bucket=UposBucket.from_dict(BUCKET),
        url=URL,
        upload_id="up1",
    )
    upos.retry_delay = 0
    return upos


def test_bucket_from_dict_missing_field():
    data = dict(BUCKET)
    del data["auth"]
    with pytest.raises(BiliError, match="auth"):
        UposBucket.from_dict(data)


def test_create_builds_url_and_reads_upload_id(mocked):
    mocked.add(responses.POST, URL, json={"upload_id": "abc", "OK": 1})
    upos = Upos.create(requests.Session(), UposBucket.from_dict(BUCKET))
    assert upos.url == URL
    assert upos.upload_id == "abc"
    request = mocked.calls[0].request
    assert request.headers["X-Upos-Auth"] == BUCKET["auth"]
    assert "uploads" in query_of(request.url)


def test_create_without_upload_id(mocked):
    mocked.add(responses.POST, URL, json={"OK": 0})
    with pytest.raises(BiliError):
        Upos.create(requests.Session(), UposBucket.from_dict(BUCKET))


def test_upload_chunks_reports_every_part(mocked):
    mocked.add(responses.PUT, URL, status=200)
    pieces = [b"abcd", b"efgh", b"ij"]
    total = sum(len(p) for p in pieces)
    results = list(make_upos().upload_chunks(((p, len(p)) for p in pieces), total, 2))
    parts = sorted(results, key=lambda item: item[0]["partNumber"])
    assert [part["partNumber"] for part, _ in parts] == [1, 2, 3]
    assert all(part["eTag"] == "etag" for part, _ in parts)
    assert sum(length for _, length in parts) == total

    queries = sorted(
        (query_of(call.request.url) for call in mocked.calls),
        key=lambda q: int(q["partNumber"]),
    )
    assert queries[0]["start"] == "0"
    assert queries[-1]["end"] == str(total)
    for before, after in zip(queries, queries[1:]):
        assert before["end"] == after["start"]
    for query in queries:
        assert query["chunks"] == str(len(pieces))
        assert query["uploadId"] == "up1"
        assert int(query["end"]) - int(query["start"]) == int(query["size"])

    bodies = sorted(call.request.body for call in mocked.calls)
    assert bodies == sorted(pieces)


def test_upload_chunks_accepts_body_factories(mocked):
    mocked.add(responses.PUT, URL, status=200)
    calls = []

    def factory():
        calls.append(1)
        return iter([b"ab", b"cd"])

    results = list(make_upos().upload_chunks([(factory, 4)], 4, 1))
    assert results == [({"partNumber": 1, "eTag": "etag"}, 4)]
    assert len(mocked.calls) == 1


def test_upload_chunks_retries_failed_put(mocked):
    mocked.add(responses.PUT, URL, status=500)
    mocked.add(responses.PUT, URL, status=200)
    results = list(make_upos().upload_chunks([(b"abcd", 4)], 4, 1))
    assert results == [({"partNumber": 1, "eTag": "etag"}, 4)]
    assert len(mocked.calls) == 2


def test_upload_chunks_gives_up(mocked):
    mocked.add(responses.PUT, URL, status=500)
    with pytest.raises(requests.HTTPError):
        list(make_upos().upload_chunks([(b"abcd", 4)], 4, 1))


def test_upload_chunks_rejects_zero_limit():
    with pytest.raises(ValueError):
        list(make_upos().upload_chunks([(b"abcd", 4)], 4, 0))


def test_complete_returns_video(mocked):
    mocked.add(responses.POST, URL, json={"OK": 1})
    parts = [{"partNumber": 1, "eTag": "etag"}]
    video = make_upos().complete(parts, "/videos/clip.mp4")
    assert video.filename == "n1"
    assert video.title is None
    request = mocked.calls[0].request
    query = query_of(request.url)
    assert query["name"] == "clip.mp4"
    assert query["uploadId"] == "up1"
    assert query["profile"] == "ugcupos/bup"
    assert json.loads(request.body) == {"parts": parts}


def test_complete_failure(mocked):
    mocked.add(responses.POST, URL, json={"OK": 0, "message": "fail"})
    with pytest.raises(BiliError, match="fail"):
        make_upos().complete([], "clip.mp4")