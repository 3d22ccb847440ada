import pytest

from biliupload.chunks import iter_file_chunks, retry, split_progress


def test_iter_file_chunks_reassembles(tmp_path):
    data = bytes(range(256)) * 40
    path = tmp_path / "video.flv"
    path.write_bytes(data)
    chunks = list(iter_file_chunks(path, 1000))
    assert b"".join(chunks) == data
    assert all(len(chunk) == 1000 for chunk in chunks[:-1])
    assert 0 < len(chunks[-1]) <= 1000


def test_iter_file_chunks_empty(tmp_path):
    path = tmp_path / "empty"
    path.write_bytes(b"")
    assert list(iter_file_chunks(path, 10)) == []


def test_iter_file_chunks_bad_size(tmp_path):
    path = tmp_path / "f"
    path.write_bytes(b"x")
    with pytest.raises(ValueError):
        list(iter_file_chunks(path, 0))


def test_split_progress_default_piece():
    data = b"a" * 10000
    reported = []
    pieces = list(split_progress(data, reported.append))
    assert b"".join(pieces) == data
    assert sum(reported) == len(data)
    assert max(reported) == 4096
    assert reported == [len(p) for p in pieces]


def test_split_progress_empty():
    reported = []
    assert list(split_progress(b"", reported.append)) == []
    assert reported == []


def test_retry_succeeds_after_failures():
    calls = []

    def flaky():
        calls.append(1)
        if len(calls) < 3:
            raise ConnectionError("boom")
        return "done"

    assert retry(flaky, attempts=3, delay=0) == "done"
    assert len(calls) == 3


def test_retry_reraises_last_error():
    calls = []

    def failing():
        calls.append(1)
        raise TimeoutError(str(len(calls)))

    with pytest.raises(TimeoutError, match="2"):
        retry(failing, attempts=2, delay=0)
    assert len(calls) == 2


def test_retry_invalid_attempts():
    with pytest.raises(ValueError):
        retry(lambda: 1, attempts=0)