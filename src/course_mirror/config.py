"""設定の管理

~/.course-mirror/config.json に保存する。環境変数 COURSE_MIRROR_HOME で場所を変更できる。
"""

import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .exceptions import ConfigError

logger = logging.getLogger(__name__)

VideoQuality = Literal["highest", "lowest", "1080p", "720p", "480p"]

# update_config() で変更できる項目
SETTABLE_FIELDS = (
    "output_dir",
    "video_quality",
    "retry_attempts",
    "headless",
    "log_dir",
)


def app_dir() -> Path:
    """アプリケーションのディレクトリ"""
    return Path(os.environ.get("COURSE_MIRROR_HOME", "~/.course-mirror")).expanduser()


def default_cache_dir() -> Path:
    """同期状態DBのディレクトリ"""
    return app_dir() / "cache"


def sessions_dir() -> Path:
    """ブラウザセッションの保存先"""
    return app_dir() / "sessions"


def config_file() -> Path:
    return app_dir() / "config.json"


class Config(BaseModel):
    """アプリケーション設定"""

    model_config = ConfigDict(extra="ignore", validate_assignment=True)

    output_dir: str = "~/Downloads/course-mirror"
    cache_dir: Optional[str] = None
    video_quality: VideoQuality = "highest"
    retry_attempts: int = Field(default=3, ge=0, le=10)
    headless: bool = True
    log_dir: str = "~/.course-mirror/logs"

    @property
    def output_path(self) -> Path:
        return Path(self.output_dir).expanduser()

    @property
    def cache_path(self) -> Path:
        return Path(self.cache_dir).expanduser() if self.cache_dir else default_cache_dir()

    @property
    def log_path(self) -> Path:
        return Path(self.log_dir).expanduser()


def load_config(path: Optional[Path] = None) -> Config:
    """
    設定ファイルを読み込む

    ファイルがなければデフォルト値で作成する。壊れている場合は警告してデフォルト値を返す。
    """
    path = path or config_file()

    if not path.exists():
        config = Config()
        save_config(config, path)
        return config

    try:
        with open(path, 'r', encoding='utf-8') as f:
            return Config.model_validate(json.load(f))
    except (OSError, ValueError, ValidationError) as e:
        logger.warning("Failed to parse config %s, using defaults: %s", path, e)
        return Config()


def save_config(config: Config, path: Optional[Path] = None):
    """設定ファイルに保存"""
    path = path or config_file()
    path.parent.mkdir(parents=True, exist_ok=True)

    with open(path, 'w', encoding='utf-8') as f:
        json.dump(config.model_dump(), f, ensure_ascii=False, indent=2)


def update_config(changes: Dict[str, Any], path: Optional[Path] = None) -> Config:
    """
    指定した項目だけを更新して保存

    Args:
        changes: 項目名 -> 新しい値（SETTABLE_FIELDS のみ）
        path: 設定ファイルのパス

    Returns:
        Config: 更新後の設定

    Raises:
        ConfigError: 変更できない項目、または不正な値
    """
    unknown = sorted(set(changes) - set(SETTABLE_FIELDS))
    if unknown:
        raise ConfigError(
            f"Unknown setting(s): {', '.join(unknown)}. "
            f"Settable: {', '.join(SETTABLE_FIELDS)}"
        )

    current = load_config(path)
    try:
        updated = Config.model_validate({**current.model_dump(), **changes})
    except ValidationError as e:
        raise ConfigError(str(e)) from e

    save_config(updated, path)
    return updated


def parse_setting(assignment: str) -> Dict[str, Any]:
    """
    "KEY=VALUE" 形式の文字列をパース

    真偽値と整数は型変換する（最終的な検証は Config で行う）。
    """
    if '=' not in assignment:
        raise ConfigError(f"Expected KEY=VALUE, got: {assignment}")

    key, value = assignment.split('=', 1)
    key = key.strip().replace('-', '_')
    value = value.strip()

    if value.lower() in ('true', 'false'):
        return {key: value.lower() == 'true'}
    if value.isdigit():
        return {key: int(value)}
    return {key: value}
