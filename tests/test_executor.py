import requests

from course_mirror.executor import DownloadExecutor
from course_mirror.models import VideoType


class FakeResponse:
    def __init__(self, chunks, status=200):
        self.chunks = chunks
        self.status = status

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        return False

    def raise_for_status(self):
        if self.status >= 400:
            raise requests.HTTPError(f"{self.status} Server Error")

    def iter_content(self, chunk_size=None):
        yield from self.chunks


class FakeSession:
    def __init__(self, response):
        self.response = response
        self.calls = []

    def get(self, url, stream=False, timeout=None):
        self.calls.append(url)
        return self.response

    def close(self):
        pass


def make_executor(logger, response):
    return DownloadExecutor(logger=logger, retry_attempts=1, session=FakeSession(response))


def test_url_classification():
    assert DownloadExecutor.is_hls("https://cdn.example.com/v/720p.M3U8?token=1")
    assert not DownloadExecutor.is_hls("https://cdn.example.com/v/file.mp4")
    assert DownloadExecutor.is_google_drive("https://drive.google.com/file/d/abc/view")
    assert not DownloadExecutor.is_google_drive("https://example.com/file.pdf")


def test_download_file_writes_destination(tmp_path, logger):
    executor = make_executor(logger, FakeResponse([b"hello ", b"", b"world"]))
    destination = tmp_path / "module" / "01-intro-notes.pdf"

    result = executor.download("https://files.example.com/notes.pdf", destination)

    assert result.success
    assert result.file_path == str(destination)
    assert result.file_size == 11
    assert destination.read_bytes() == b"hello world"
    assert not (tmp_path / "module" / "01-intro-notes.pdf.part").exists()


def test_download_file_http_error_leaves_nothing(tmp_path, logger):
    executor = make_executor(logger, FakeResponse([b"partial"], status=503))
    destination = tmp_path / "out" / "01-intro-notes.pdf"

    result = executor.download("https://files.example.com/notes.pdf", destination)

    assert not result.success
    assert "503" in result.error_message
    assert not destination.exists()
    assert list((tmp_path / "out").iterdir()) == []


def test_download_routes_hls_to_stream_downloader(tmp_path, logger, monkeypatch):
    executor = make_executor(logger, FakeResponse([]))
    called = []
    monkeypatch.setattr(executor, "download_stream", lambda url, dest: called.append(url) or "hls")

    assert executor.download("https://cdn.example.com/720p.m3u8", tmp_path / "a.mp4") == "hls"
    assert called == ["https://cdn.example.com/720p.m3u8"]


def test_save_markdown(tmp_path, logger):
    executor = make_executor(logger, FakeResponse([]))
    destination = tmp_path / "m" / "01-intro.md"

    result = executor.save_markdown(destination, "# Intro\n")

    assert result.success
    assert destination.read_text(encoding="utf-8") == "# Intro\n"
    assert result.file_size == len("# Intro\n")


def test_known_stream_type_is_not_guessed_from_url(tmp_path, logger, monkeypatch):
    executor = make_executor(logger, FakeResponse([b"#EXTM3U"]))
    called = []
    monkeypatch.setattr(executor, "download_stream", lambda url, dest: called.append(url) or "stream")

    url = "https://cdn.example.com/v/hi/index?token=x"
    assert executor.download(url, tmp_path / "a.mp4", video_type=VideoType.HLS) == "stream"
    assert called == [url]
    assert executor.session.calls == []


def test_embedded_player_uses_stream_downloader(tmp_path, logger, monkeypatch):
    executor = make_executor(logger, FakeResponse([]))
    called = []
    monkeypatch.setattr(executor, "download_stream", lambda url, dest: called.append(url) or "stream")

    url = "https://player.vimeo.com/video/12345"
    assert executor.download(url, tmp_path / "a.mp4", video_type=VideoType.EMBED) == "stream"
    assert called == [url]


def test_existing_file_is_not_downloaded_again(tmp_path, logger):
    executor = make_executor(logger, FakeResponse([b"new data"]))
    destination = tmp_path / "01-intro.mp4"
    destination.write_bytes(b"complete video")

    result = executor.download("https://cdn.example.com/v/intro.mp4", destination)

    assert result.success
    assert result.file_size == len(b"complete video")
    assert destination.read_bytes() == b"complete video"
    assert executor.session.calls == []
