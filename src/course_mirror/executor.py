"""実際のダウンロード処理の実行"""

import os
from pathlib import Path
from typing import Optional, Union

import gdown
import requests
import yt_dlp
from yt_dlp.utils import DownloadError
from tenacity import Retrying, stop_after_attempt, wait_exponential, retry_if_exception_type

from .logger import Logger
from .models import DownloadResult, VideoType
from .utils import format_file_size

CHUNK_SIZE = 1024 * 64
PART_SUFFIX = '.part'

PathLike = Union[str, Path]


class DownloadExecutor:
    """実際のダウンロード処理の実行

    途中までのファイルは <dest>.part に書き、完了時に置き換える。
    最終パスにファイルがあれば、それは完全にダウンロードされたものである。
    """

    def __init__(self, logger: Optional[Logger] = None, retry_attempts: int = 3,
                 session: Optional[requests.Session] = None, timeout: float = 60):
        self.logger = logger or Logger()
        self.session = session or requests.Session()
        self.timeout = timeout
        self.retrying = Retrying(
            stop=stop_after_attempt(max(1, retry_attempts)),
            wait=wait_exponential(multiplier=1, min=1, max=10),
            retry=retry_if_exception_type((requests.ConnectionError, requests.Timeout)),
            reraise=True
        )

    @staticmethod
    def is_hls(url: str) -> bool:
        return '.m3u8' in url.lower()

    @staticmethod
    def is_google_drive(url: str) -> bool:
        url_lower = url.lower()
        return 'drive.google.com' in url_lower or 'docs.google.com' in url_lower

    @staticmethod
    def get_file_size(file_path: PathLike) -> int:
        """ファイルサイズを取得"""
        try:
            return os.path.getsize(file_path)
        except OSError:
            return 0

    def _stream_to_file(self, url: str, part_path: Path):
        with self.session.get(url, stream=True, timeout=self.timeout) as response:
            response.raise_for_status()
            with open(part_path, 'wb') as f:
                for chunk in response.iter_content(chunk_size=CHUNK_SIZE):
                    if chunk:
                        f.write(chunk)

    def download_file(self, url: str, destination: PathLike) -> DownloadResult:
        """
        requests でファイルをダウンロード

        Args:
            url: ファイルのURL
            destination: 保存先パス

        Returns:
            DownloadResult: ダウンロード結果
        """
        destination = Path(destination)
        part_path = destination.with_name(destination.name + PART_SUFFIX)

        try:
            self.retrying(self._stream_to_file, url, part_path)
            os.replace(part_path, destination)
        except (requests.RequestException, OSError) as e:
            part_path.unlink(missing_ok=True)
            return self._failure(f"Failed to download {url}: {e}")

        return self._success(destination, "Downloaded file")

    def download_stream(self, url: str, destination: PathLike) -> DownloadResult:
        """
        yt-dlp で HLS ストリームや埋め込み動画を mp4 としてダウンロード

        Args:
            url: メディアプレイリスト、または Vimeo / Loom / YouTube / Wistia のプレイヤーURL
            destination: 保存先パス（.mp4）

        Returns:
            DownloadResult: ダウンロード結果
        """
        destination = Path(destination)
        ydl_opts = {
            'outtmpl': str(destination),
            'format': 'best',
            'merge_output_format': 'mp4',
            'retries': 3,
            'quiet': True,
            'no_warnings': True,
            'noprogress': True,
        }

        try:
            with yt_dlp.YoutubeDL(ydl_opts) as ydl:
                ydl.download([url])
        except DownloadError as e:
            return self._failure(f"Failed to download stream {url}: {e}")

        if not destination.exists():
            return self._failure(f"Failed to download stream {url}: output file not found")

        return self._success(destination, "Downloaded video")

    def download_drive(self, url: str, destination: PathLike) -> DownloadResult:
        """gdown で Google Drive 上の添付ファイルをダウンロード"""
        destination = Path(destination)
        part_path = destination.with_name(destination.name + PART_SUFFIX)

        try:
            output = gdown.download(url, output=str(part_path), quiet=True, fuzzy=True)
            if not output or not part_path.exists():
                raise FileNotFoundError("Downloaded file not found")
            os.replace(part_path, destination)
        except Exception as e:
            part_path.unlink(missing_ok=True)
            return self._failure(f"Failed to download document {url}: {e}")

        return self._success(destination, "Downloaded document")

    def download(self, url: str, destination: PathLike,
                 video_type: Optional[VideoType] = None) -> DownloadResult:
        """
        URL種別に応じてダウンロード

        最終パスに既にファイルがあれば転送せずに成功として返す。

        Args:
            url: ダウンロードするURL
            destination: 保存先パス
            video_type: 呼び出し側が種別を知っている場合に指定（None ならURLから判定）

        Returns:
            DownloadResult: ダウンロード結果
        """
        destination = Path(destination)

        if destination.exists():
            file_size = self.get_file_size(destination)
            self.logger.info(f"[SKIP] Already downloaded: {destination}", "skip")
            return DownloadResult(
                success=True,
                file_path=str(destination),
                file_size=file_size,
                error_message=None
            )

        # ディレクトリ作成
        destination.parent.mkdir(parents=True, exist_ok=True)

        if video_type is None:
            video_type = VideoType.HLS if self.is_hls(url) else VideoType.FILE

        if video_type in (VideoType.HLS, VideoType.EMBED):
            return self.download_stream(url, destination)
        if self.is_google_drive(url):
            return self.download_drive(url, destination)
        return self.download_file(url, destination)

    def save_markdown(self, destination: PathLike, content: str) -> DownloadResult:
        """Markdownを書き込む（一時ファイル経由で置き換え）"""
        destination = Path(destination)

        destination.parent.mkdir(parents=True, exist_ok=True)
        part_path = destination.with_name(destination.name + PART_SUFFIX)
        try:
            part_path.write_text(content, encoding='utf-8')
            os.replace(part_path, destination)
        except OSError as e:
            part_path.unlink(missing_ok=True)
            return self._failure(f"Failed to write {destination}: {e}")

        return DownloadResult(
            success=True,
            file_path=str(destination),
            file_size=self.get_file_size(destination),
            error_message=None
        )

    def _success(self, destination: Path, action: str) -> DownloadResult:
        file_size = self.get_file_size(destination)
        self.logger.info(f"{action}: {destination} ({format_file_size(file_size)})", "success")
        return DownloadResult(
            success=True,
            file_path=str(destination),
            file_size=file_size,
            error_message=None
        )

    def _failure(self, error_msg: str) -> DownloadResult:
        self.logger.error(error_msg)
        return DownloadResult(
            success=False,
            file_path=None,
            file_size=None,
            error_message=error_msg
        )
