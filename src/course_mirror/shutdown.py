"""中断シグナルの管理

1回目の SIGINT/SIGTERM で処理中のレッスンを終えてから停止し、
2回目で ForcedShutdown を送出して即座に抜ける。
登録したクリーンアップは登録と逆順に実行する。
"""

import logging
import signal
from enum import Enum
from typing import Any, Callable, ContextManager, Dict, List, Optional, Sequence, Tuple, TypeVar

from .exceptions import ForcedShutdown
from .logger import Logger

log = logging.getLogger(__name__)

T = TypeVar("T")


class ShutdownState(Enum):
    """中断状態（逆戻りしない）"""
    RUNNING = "running"
    SHUTTING_DOWN = "shutting_down"
    TERMINATED = "terminated"


class ShutdownCoordinator:
    """中断シグナルとクリーンアップの管理"""

    def __init__(self, logger: Optional[Logger] = None):
        self.logger = logger
        self._state = ShutdownState.RUNNING
        self._guards: List[Tuple[str, Callable[[], Any]]] = []
        self._closed = False
        self._previous_handlers: Dict[int, Any] = {}

    @property
    def state(self) -> ShutdownState:
        return self._state

    def should_continue(self) -> bool:
        """処理を続けてよいか（中断が要求されたら False）"""
        return self._state == ShutdownState.RUNNING

    def is_shutting_down(self) -> bool:
        return self._state != ShutdownState.RUNNING

    def install(self, signals: Sequence[int] = (signal.SIGINT, signal.SIGTERM)):
        """シグナルハンドラを登録（メインスレッドから呼ぶこと）"""
        for signum in signals:
            self._previous_handlers[signum] = signal.signal(signum, self._handle_signal)

    def restore(self):
        """元のシグナルハンドラに戻す"""
        for signum, handler in self._previous_handlers.items():
            signal.signal(signum, handler)
        self._previous_handlers.clear()

    def _handle_signal(self, signum, frame):
        self.request_shutdown(signum)

    def request_shutdown(self, signum: Optional[int] = None):
        """
        中断を要求

        1回目は RUNNING -> SHUTTING_DOWN。2回目以降は TERMINATED にして
        ForcedShutdown を送出する。

        Args:
            signum: 受信したシグナル番号（プログラムからの要求なら None）

        Raises:
            ForcedShutdown: 2回目以降の要求
        """
        name = signal.Signals(signum).name if signum else "Shutdown request"

        if self._state == ShutdownState.RUNNING:
            self._state = ShutdownState.SHUTTING_DOWN
            self._report(
                f"{name} received, finishing the current lesson before stopping... "
                "(press Ctrl+C again to force exit)",
                "yellow"
            )
            return

        self._state = ShutdownState.TERMINATED
        self._report("Force exit", "red")
        raise ForcedShutdown(name)

    def register(self, callback: Callable[[], Any], name: Optional[str] = None) -> Callable[[], Any]:
        """クリーンアップ処理を登録（close() で登録と逆順に実行）"""
        self._guards.append((name or getattr(callback, '__qualname__', repr(callback)), callback))
        return callback

    def enter_context(self, cm: ContextManager[T], name: Optional[str] = None) -> T:
        """コンテキストマネージャに入り、その終了処理を登録"""
        value = cm.__enter__()
        self.register(lambda: cm.__exit__(None, None, None), name or type(cm).__name__)
        return value

    def close(self):
        """
        登録したクリーンアップ処理を逆順に実行

        各処理の例外はログに記録して次へ進む。2回目以降の呼び出しは何もしない。
        """
        if self._closed:
            return
        self._closed = True

        while self._guards:
            name, callback = self._guards.pop()
            try:
                callback()
            except Exception as e:
                log.warning("Cleanup %s failed: %s", name, e)
                if self.logger:
                    self.logger.warning(f"Cleanup {name} failed: {e}")

        if self._state != ShutdownState.RUNNING:
            self._state = ShutdownState.TERMINATED

    def __enter__(self) -> "ShutdownCoordinator":
        self.install()
        return self

    def __exit__(self, *exc_info):
        try:
            self.close()
        finally:
            self.restore()
        return False

    def _report(self, message: str, style: str):
        log.info(message)
        if self.logger:
            self.logger.console_print(f"\n{message}", style)
