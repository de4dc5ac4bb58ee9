"""
course-mirror

会員制コースサイトのレッスン（動画・添付ファイル・本文）を
ローカルディスクにミラーします。

Features:
- Resume機能: 中断しても続きから再開
- 画質選択: HLSプレイリストから最適な画質を選択
- 安全な中断: Ctrl+C で処理中のレッスンを終えてから停止
"""

from .manager import CourseSyncManager, SyncOrchestrator
from .cli import main

__version__ = "1.0.0"
__license__ = "MIT"

__all__ = ["CourseSyncManager", "SyncOrchestrator", "main"]
