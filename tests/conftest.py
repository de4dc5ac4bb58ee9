import sys
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import pytest

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from course_mirror.logger import Logger  # noqa: E402
from course_mirror.models import DownloadResult, VideoType  # noqa: E402

MASTER_PLAYLIST = """#EXTM3U
#EXT-X-STREAM-INF:BANDWIDTH=800000,RESOLUTION=640x360
360p.m3u8
#EXT-X-STREAM-INF:BANDWIDTH=2800000,RESOLUTION=1280x720
720p.m3u8
#EXT-X-STREAM-INF:BANDWIDTH=5000000,RESOLUTION=1920x1080
1080p.m3u8
"""


class FakeBrowser:
    """ページURL -> extract_page_data() の結果 を返すだけのブラウザ"""

    def __init__(self, pages: Dict[str, Dict[str, Any]], redirects: Optional[Dict[str, str]] = None):
        self.pages = pages
        self.redirects = redirects or {}
        self.url = "about:blank"
        self.visited: List[str] = []
        self.closed = False

    def navigate(self, url: str):
        self.visited.append(url)
        self.url = self.redirects.get(url, url)

    def current_url(self) -> str:
        return self.url

    def extract_page_data(self) -> Dict[str, Any]:
        return dict(self.pages.get(self.url, {}))

    def close(self):
        self.closed = True


class FakeExecutor:
    """ネットワークを使わずにファイルを書き出す転送処理"""

    def __init__(self, fail_urls=(), on_download: Optional[Callable[[str], None]] = None):
        self.fail_urls = set(fail_urls)
        self.on_download = on_download
        self.downloads: List[str] = []
        self.video_types: List[Optional[VideoType]] = []
        self.markdowns: List[Path] = []

    def download(self, url: str, destination, video_type: Optional[VideoType] = None) -> DownloadResult:
        self.downloads.append(url)
        self.video_types.append(video_type)
        if self.on_download:
            self.on_download(url)
        if url in self.fail_urls:
            return DownloadResult(False, None, None, f"Failed to download {url}: 503")
        destination = Path(destination)
        destination.parent.mkdir(parents=True, exist_ok=True)
        destination.write_bytes(b"data")
        return DownloadResult(True, str(destination), 4, None)

    def save_markdown(self, destination, content: str) -> DownloadResult:
        destination = Path(destination)
        destination.parent.mkdir(parents=True, exist_ok=True)
        destination.write_text(content, encoding="utf-8")
        self.markdowns.append(destination)
        return DownloadResult(True, str(destination), len(content.encode("utf-8")), None)


@pytest.fixture
def logger(tmp_path: Path):
    log = Logger(tmp_path / "logs")
    yield log
    log.close()


@pytest.fixture(autouse=True)
def app_home(tmp_path: Path, monkeypatch):
    home = tmp_path / "home"
    monkeypatch.setenv("COURSE_MIRROR_HOME", str(home))
    return home
