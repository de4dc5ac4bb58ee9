#!/usr/bin/env python3
"""
course-mirror

会員制コースサイトのレッスン（動画・添付ファイル・本文）を
ローカルディスクにミラーします。

Features:
- Resume機能: 中断しても続きから再開
- 画質選択: HLSプレイリストから最適な画質を選択
- 安全な中断: Ctrl+C で処理中のレッスンを終えてから停止
"""

from .cli import main

if __name__ == "__main__":
    main()
