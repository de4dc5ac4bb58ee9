"""同期状態の管理（Resume機能）

コミュニティごとに1つのSQLiteファイルを持つ。
完了レコードとファイル一覧は同じトランザクションで書き込む。
"""

import re
import sqlite3
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Sequence, Union

from .config import default_cache_dir
from .exceptions import LedgerError
from .filename import FileNameGenerator
from .models import CourseModule, FailureRecord, LedgerRecord, Lesson, SyncStatistics

# (プラットフォーム名, コースルートURLのパターン)
PLATFORM_ROOTS = [
    ('skool', re.compile(r'^https?://(?:www\.)?skool\.com/([^/?#]+)', re.IGNORECASE)),
    ('highlevel', re.compile(
        r'^https?://(?:[^/?#]*\.)?(?:clientclub\.net|leadconnectorhq\.com|highlevel\.io)/([^/?#]+)',
        re.IGNORECASE)),
]

UNKNOWN_COMMUNITY = "unknown"


def detect_platform(url: str) -> Optional[str]:
    """URLからプラットフォーム名を判定"""
    for platform, pattern in PLATFORM_ROOTS:
        if pattern.match(url or ''):
            return platform
    return None


def extract_community_slug(url: str) -> str:
    """
    URLからコミュニティのスラッグを抽出

    Args:
        url: コースのURL（例: "https://www.skool.com/my-community/classroom"）

    Returns:
        str: ルート直下のパス（小文字）。既知のプラットフォームでなければ "unknown"
    """
    for _, pattern in PLATFORM_ROOTS:
        match = pattern.match(url or '')
        if match:
            return match.group(1).lower()
    return UNKNOWN_COMMUNITY


def get_db_path(community_slug: str, cache_dir: Optional[Union[str, Path]] = None) -> Path:
    """コミュニティの同期状態DBのパス"""
    safe_slug = re.sub(r'[^A-Za-z0-9_-]', '_', community_slug)
    return Path(cache_dir or default_cache_dir()) / f"{safe_slug}.db"


def lesson_key(module: CourseModule, lesson: Lesson) -> str:
    """
    レッスンの同一性キー

    プラットフォームのIDがあればそれを使う。なければ並び順に依存しない
    (モジュールのスラッグ, タイトルのスラッグ) を使う。
    """
    if lesson.lesson_id:
        return f"id:{lesson.lesson_id}"
    module_slug = FileNameGenerator.slugify(module.title)
    return f"{module_slug}/{FileNameGenerator.slugify(lesson.title)}"


class SyncStateDB:
    """同期状態の管理"""

    def __init__(self, db_path: Union[str, Path]):
        if str(db_path) != ':memory:':
            db_path = Path(db_path)
            db_path.parent.mkdir(parents=True, exist_ok=True)
        self.db_path = db_path
        self._conn = sqlite3.connect(str(db_path))
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA foreign_keys = ON")
        self._conn.execute("PRAGMA journal_mode = WAL")
        self._init_schema()

    @classmethod
    def for_community(cls, community_slug: str,
                      cache_dir: Optional[Union[str, Path]] = None) -> "SyncStateDB":
        """コミュニティ用のDBを開く"""
        return cls(get_db_path(community_slug, cache_dir))

    def _init_schema(self):
        with self._conn:
            self._conn.executescript("""
                CREATE TABLE IF NOT EXISTS metadata (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS lessons (
                    lesson_key TEXT PRIMARY KEY,
                    title TEXT NOT NULL DEFAULT '',
                    module_title TEXT NOT NULL DEFAULT '',
                    completed INTEGER NOT NULL DEFAULT 1,
                    completed_at TEXT NOT NULL,
                    total_bytes INTEGER NOT NULL DEFAULT 0
                );

                CREATE TABLE IF NOT EXISTS lesson_files (
                    lesson_key TEXT NOT NULL REFERENCES lessons(lesson_key) ON DELETE CASCADE,
                    file_path TEXT NOT NULL,
                    PRIMARY KEY (lesson_key, file_path)
                );

                CREATE TABLE IF NOT EXISTS failures (
                    lesson_key TEXT PRIMARY KEY,
                    error_message TEXT NOT NULL,
                    failed_at TEXT NOT NULL
                );
            """)

    def close(self):
        """DB接続を閉じる"""
        self._conn.close()

    def __enter__(self) -> "SyncStateDB":
        return self

    def __exit__(self, *exc_info):
        self.close()

    def has(self, key: str) -> bool:
        """レッスンが完了済みかチェック"""
        row = self._conn.execute(
            "SELECT 1 FROM lessons WHERE lesson_key = ? AND completed = 1", (key,)
        ).fetchone()
        return row is not None

    def mark_complete(self, key: str, files: Sequence[Union[str, Path]],
                      title: str = "", module_title: str = "", total_bytes: int = 0) -> bool:
        """
        レッスン完了をマーク

        レコードとファイル一覧は両方書き込まれるか、どちらも書き込まれない。

        Args:
            key: lesson_key() で生成したキー
            files: 生成したファイルのパス
            title: レッスンタイトル
            module_title: モジュールタイトル
            total_bytes: 生成したファイルの合計サイズ

        Returns:
            bool: 新しく記録した場合 True（既に記録済みなら False）
        """
        try:
            with self._conn:
                if self.has(key):
                    return False
                self._conn.execute(
                    "INSERT INTO lessons (lesson_key, title, module_title, completed, completed_at, total_bytes) "
                    "VALUES (?, ?, ?, 1, ?, ?)",
                    (key, title, module_title, datetime.now().isoformat(), total_bytes)
                )
                self._conn.executemany(
                    "INSERT OR IGNORE INTO lesson_files (lesson_key, file_path) VALUES (?, ?)",
                    [(key, str(f)) for f in files]
                )
                self._conn.execute("DELETE FROM failures WHERE lesson_key = ?", (key,))
        except sqlite3.Error as e:
            raise LedgerError(f"Failed to record lesson {key}: {e}") from e
        return True

    def mark_failed(self, key: str, error_message: str):
        """レッスンの失敗を記録（完了扱いにはしない）"""
        try:
            with self._conn:
                self._conn.execute(
                    "INSERT INTO failures (lesson_key, error_message, failed_at) VALUES (?, ?, ?) "
                    "ON CONFLICT(lesson_key) DO UPDATE SET "
                    "error_message = excluded.error_message, failed_at = excluded.failed_at",
                    (key, error_message, datetime.now().isoformat())
                )
        except sqlite3.Error as e:
            raise LedgerError(f"Failed to record failure for {key}: {e}") from e

    def get_record(self, key: str) -> Optional[LedgerRecord]:
        """キーに対応するレコードを取得"""
        row = self._conn.execute(
            "SELECT * FROM lessons WHERE lesson_key = ?", (key,)
        ).fetchone()
        if row is None:
            return None
        return LedgerRecord(
            lesson_key=row['lesson_key'],
            title=row['title'],
            module_title=row['module_title'],
            completed_at=row['completed_at'],
            total_bytes=int(row['total_bytes']),
            files=self.get_manifest(key)
        )

    def get_manifest(self, key: str) -> List[str]:
        """レッスンで生成したファイル一覧"""
        rows = self._conn.execute(
            "SELECT file_path FROM lesson_files WHERE lesson_key = ? ORDER BY file_path", (key,)
        ).fetchall()
        return [row['file_path'] for row in rows]

    def get_failed_records(self) -> List[FailureRecord]:
        """失敗したレコードの一覧を取得"""
        rows = self._conn.execute(
            "SELECT * FROM failures ORDER BY failed_at"
        ).fetchall()
        return [
            FailureRecord(
                lesson_key=row['lesson_key'],
                error_message=row['error_message'],
                failed_at=row['failed_at']
            )
            for row in rows
        ]

    def count(self) -> int:
        """完了済みレッスン数"""
        return int(self._conn.execute(
            "SELECT COUNT(*) FROM lessons WHERE completed = 1"
        ).fetchone()[0])

    def get_statistics(self) -> SyncStatistics:
        """統計情報を取得"""
        total_bytes = self._conn.execute(
            "SELECT COALESCE(SUM(total_bytes), 0) FROM lessons"
        ).fetchone()[0]
        failed = self._conn.execute("SELECT COUNT(*) FROM failures").fetchone()[0]

        return SyncStatistics(
            completed=self.count(),
            failed=int(failed),
            total_bytes=int(total_bytes),
            last_sync_at=self.get_metadata('last_sync_at')
        )

    def set_metadata(self, key: str, value: str):
        """メタデータを保存"""
        with self._conn:
            self._conn.execute(
                "INSERT INTO metadata (key, value) VALUES (?, ?) "
                "ON CONFLICT(key) DO UPDATE SET value = excluded.value",
                (key, value)
            )

    def get_metadata(self, key: str) -> Optional[str]:
        """メタデータを取得"""
        row = self._conn.execute(
            "SELECT value FROM metadata WHERE key = ?", (key,)
        ).fetchone()
        return row['value'] if row else None

    def update_course_metadata(self, title: str, url: str):
        """同期後にコース情報を更新"""
        self.set_metadata('course_title', title)
        self.set_metadata('course_url', url)
        self.set_metadata('last_sync_at', datetime.now().isoformat())

    def clear(self):
        """すべてのレコードをクリア"""
        with self._conn:
            self._conn.execute("DELETE FROM lesson_files")
            self._conn.execute("DELETE FROM lessons")
            self._conn.execute("DELETE FROM failures")
