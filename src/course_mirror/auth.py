"""ログインページ判定（Login Gate）"""

import re
from typing import Iterable, List, Optional, Pattern, Tuple, Union

# 各プラットフォーム共通のIDプロバイダ
SHARED_PATTERNS: List[Tuple[str, str]] = [
    (r'accounts\.google\.com', '*'),
    (r'\.firebaseapp\.com', '*'),
]

# (パターン, プラットフォーム名) の順序付きリスト
DEFAULT_LOGIN_PATTERNS: List[Tuple[str, str]] = [
    (r'skool\.com/login', 'skool'),
    (r'sso\.clientclub\.net', 'highlevel'),
    (r'//sso\.', 'highlevel'),
    (r'/login\b', '*'),
    (r'/signin\b', '*'),
    (r'/auth\b', '*'),
] + SHARED_PATTERNS


class LoginGate:
    """現在のURLがログインページかどうかを判定"""

    def __init__(self, patterns: Optional[Iterable[Tuple[Union[str, Pattern], str]]] = None):
        if patterns is None:
            patterns = DEFAULT_LOGIN_PATTERNS
        self.patterns: List[Tuple[Pattern, str]] = [
            (re.compile(p) if isinstance(p, str) else p, platform)
            for p, platform in patterns
        ]

    @classmethod
    def for_platform(cls, platform: str) -> "LoginGate":
        """指定プラットフォーム用のパターンと共通パターンのみを持つ Gate を生成"""
        return cls([
            (p, name) for p, name in DEFAULT_LOGIN_PATTERNS
            if name in (platform, '*')
        ])

    def match(self, url: str) -> Optional[str]:
        """
        URLに一致したパターンのプラットフォーム名を返す

        Args:
            url: ブラウザの現在のURL

        Returns:
            一致したプラットフォーム名（共通パターンは "*"）、一致しなければ None
        """
        if not url:
            return None
        for pattern, platform in self.patterns:
            if pattern.search(url):
                return platform
        return None

    def is_login_page(self, url: str) -> bool:
        """ログインページ（要再認証）なら True"""
        return self.match(url) is not None
