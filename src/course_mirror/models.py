"""データモデルとEnum定義"""

from dataclasses import dataclass, field
from enum import Enum
import re
from typing import Any, Dict, List, Optional

from rich.console import Console
from rich.table import Table


class VideoType(Enum):
    """動画ソース種別"""
    HLS = "hls"
    FILE = "file"
    EMBED = "embed"
    NONE = "none"


# 動画プレイヤーの埋め込み（yt-dlp で取得する）
EMBED_PATTERN = re.compile(
    r'(?:player\.)?vimeo\.com|loom\.com/(?:embed|share)|youtube(?:-nocookie)?\.com|youtu\.be|wistia\.(?:net|com)',
    re.IGNORECASE
)


def detect_video_type(video_url: Optional[str], raw_type: Optional[str] = None) -> VideoType:
    """ページから得た動画URLの種別を判定"""
    if not video_url:
        return VideoType.NONE
    if raw_type == "hls" or ".m3u8" in video_url.lower():
        return VideoType.HLS
    if raw_type == "embed" or EMBED_PATTERN.search(video_url):
        return VideoType.EMBED
    return VideoType.FILE


class LessonOutcome(Enum):
    """レッスン処理結果"""
    COMPLETED = "completed"
    SKIPPED = "skipped"
    FAILED = "failed"
    INTERRUPTED = "interrupted"


@dataclass
class Variant:
    """HLSマスタープレイリストの1バリアント"""
    bandwidth: int
    url: str
    label: str
    width: Optional[int] = None
    height: Optional[int] = None


@dataclass
class Attachment:
    """レッスン添付ファイル"""
    name: str
    url: str


@dataclass
class Lesson:
    """巡回時に発見したレッスン"""
    index: int
    title: str
    url: str
    lesson_id: Optional[str] = None


@dataclass
class CourseModule:
    """コース内のモジュール"""
    index: int
    title: str
    url: str = ""
    module_id: Optional[str] = None
    is_locked: bool = False
    lessons: List[Lesson] = field(default_factory=list)


@dataclass
class Course:
    """コース構造"""
    title: str
    url: str
    community_slug: str
    modules: List[CourseModule] = field(default_factory=list)

    @property
    def total_lessons(self) -> int:
        return sum(len(m.lessons) for m in self.modules)


@dataclass
class LessonContent:
    """レッスンページから抽出したコンテンツ"""
    title: str
    description: Optional[str] = None
    html: Optional[str] = None
    video_url: Optional[str] = None
    video_type: VideoType = VideoType.NONE
    attachments: List[Attachment] = field(default_factory=list)

    @classmethod
    def from_page_data(cls, data: Dict[str, Any], fallback_title: str = "") -> "LessonContent":
        """ブラウザの extract_page_data() の結果から生成"""
        video_url = data.get("video_url") or None
        video_type = detect_video_type(video_url, data.get("video_type"))

        attachments = [
            Attachment(name=str(a.get("name") or ""), url=str(a["url"]))
            for a in data.get("attachments") or []
            if a.get("url")
        ]

        return cls(
            title=data.get("title") or fallback_title,
            description=data.get("description"),
            html=data.get("html"),
            video_url=video_url,
            video_type=video_type,
            attachments=attachments,
        )


@dataclass
class DownloadResult:
    """ダウンロード結果"""
    success: bool
    file_path: Optional[str]
    file_size: Optional[int]
    error_message: Optional[str]


@dataclass
class LedgerRecord:
    """完了済みレッスンのレコード（Resume用）"""
    lesson_key: str
    title: str
    module_title: str
    completed_at: str
    total_bytes: int
    files: List[str] = field(default_factory=list)


@dataclass
class FailureRecord:
    """失敗したレッスンのレコード"""
    lesson_key: str
    error_message: str
    failed_at: str


@dataclass
class SyncStatistics:
    """同期状態の統計"""
    completed: int
    failed: int
    total_bytes: int
    last_sync_at: Optional[str]


@dataclass
class CommunityReport:
    """コミュニティ単位の処理結果レポート"""
    community_slug: str
    course_title: str = ""
    total_lessons: int = 0
    completed: int = 0
    failed: int = 0
    skipped: int = 0
    interrupted: bool = False
    auth_required: bool = False
    fatal_error: Optional[str] = None
    errors: List[str] = field(default_factory=list)

    def record(self, outcome: LessonOutcome):
        """レッスン処理結果を集計"""
        if outcome == LessonOutcome.COMPLETED:
            self.completed += 1
        elif outcome == LessonOutcome.SKIPPED:
            self.skipped += 1
        elif outcome == LessonOutcome.FAILED:
            self.failed += 1
        elif outcome == LessonOutcome.INTERRUPTED:
            self.interrupted = True

    @property
    def status(self) -> str:
        if self.fatal_error:
            return "error"
        if self.auth_required:
            return "login required"
        if self.interrupted:
            return "interrupted"
        return "done"


@dataclass
class SyncReport:
    """全体レポート"""
    communities: List[CommunityReport]
    execution_time: float

    @property
    def completed(self) -> int:
        return sum(c.completed for c in self.communities)

    @property
    def failed(self) -> int:
        return sum(c.failed for c in self.communities)

    @property
    def skipped(self) -> int:
        return sum(c.skipped for c in self.communities)

    @property
    def has_failures(self) -> bool:
        return any(
            c.failed or c.fatal_error or c.auth_required for c in self.communities
        )

    def print_summary(self, console: Console):
        """サマリーを出力"""
        console.print("\n[bold cyan]===== 同期完了レポート =====[/bold cyan]\n")

        table = Table(title="全体統計")
        table.add_column("項目", style="cyan")
        table.add_column("件数", style="magenta", justify="right")

        table.add_row("✓ 完了", f"[green]{self.completed}[/green]")
        table.add_row("⊘ スキップ（同期済み）", f"[yellow]{self.skipped}[/yellow]")
        table.add_row("⊗ 失敗", f"[red]{self.failed}[/red]")
        table.add_row("実行時間", f"{self.execution_time:.2f}秒")

        console.print(table)

        if self.communities:
            console.print("\n[bold]コミュニティ別統計:[/bold]")
            community_table = Table()
            community_table.add_column("コミュニティ", style="cyan")
            community_table.add_column("完了", style="green", justify="right")
            community_table.add_column("スキップ", style="yellow", justify="right")
            community_table.add_column("失敗", style="red", justify="right")
            community_table.add_column("状態")

            for community in self.communities:
                community_table.add_row(
                    community.community_slug,
                    str(community.completed),
                    str(community.skipped),
                    str(community.failed),
                    community.status
                )

            console.print(community_table)

        for community in self.communities:
            if community.fatal_error:
                console.print(f"[red]{community.community_slug}: {community.fatal_error}[/red]")
            for error in community.errors:
                console.print(f"[red]  - {error}[/red]")
