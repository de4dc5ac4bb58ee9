"""例外定義"""


class CourseMirrorError(Exception):
    """course-mirror の基底例外"""


class AuthenticationRequired(CourseMirrorError):
    """ログインページに戻された（セッション切れ）"""

    def __init__(self, url: str, platform: str = ""):
        self.url = url
        self.platform = platform
        where = f" ({platform})" if platform else ""
        super().__init__(f"Authentication required{where}: redirected to {url}")


class ConfigError(CourseMirrorError):
    """設定値が不正"""


class LedgerError(CourseMirrorError):
    """同期状態DBへの書き込みに失敗"""


class ForcedShutdown(BaseException):
    """2回目の中断シグナルによる強制終了

    KeyboardInterrupt と同じく Exception を継承しないため、
    レッスン単位の except Exception では捕捉されない。
    """
