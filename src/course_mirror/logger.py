"""ログ出力の管理"""

import logging
from pathlib import Path
from typing import Dict, Optional, Union

from rich.console import Console


class Logger:
    """ログ出力の管理"""

    LOG_FILES = {
        'success': 'sync_success.log',
        'error': 'sync_error.log',
        'skip': 'sync_skip.log',
        'resume': 'sync_resume.log',
        'auth': 'sync_auth.log',
    }

    def __init__(self, log_dir: Union[str, Path] = "logs", console: Optional[Console] = None):
        self.log_dir = Path(log_dir).expanduser()
        self.log_dir.mkdir(parents=True, exist_ok=True)
        self.console = console or Console()

        # ログファイルの設定
        self.loggers: Dict[str, logging.Logger] = {}
        self._setup_loggers()

    def _setup_loggers(self):
        """ロガーのセットアップ"""
        formatter = logging.Formatter(
            '[%(asctime)s] [%(levelname)s] %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )

        for name, filename in self.LOG_FILES.items():
            logger = logging.getLogger(f'course_mirror.{name}')
            logger.setLevel(logging.INFO)

            # 別のログディレクトリで作り直した場合に古いハンドラを外す
            for handler in list(logger.handlers):
                if isinstance(handler, logging.FileHandler):
                    logger.removeHandler(handler)
                    handler.close()

            fh = logging.FileHandler(self.log_dir / filename, encoding='utf-8')
            fh.setLevel(logging.INFO)
            fh.setFormatter(formatter)

            logger.addHandler(fh)
            self.loggers[name] = logger

    def info(self, message: str, category: str = "success"):
        """INFOレベルのログを出力"""
        if category in self.loggers:
            self.loggers[category].info(message)

    def warning(self, message: str, category: str = "error"):
        """WARNINGレベルのログを出力"""
        if category in self.loggers:
            self.loggers[category].warning(message)

    def error(self, message: str):
        """ERRORレベルのログを出力"""
        self.loggers['error'].error(message)

    def console_print(self, message: str, style: str = ""):
        """コンソールに出力"""
        if style:
            self.console.print(f"[{style}]{message}[/{style}]")
        else:
            self.console.print(message)

    def close(self):
        """ファイルハンドラを閉じる"""
        for logger in self.loggers.values():
            for handler in list(logger.handlers):
                if isinstance(handler, logging.FileHandler):
                    logger.removeHandler(handler)
                    handler.close()
