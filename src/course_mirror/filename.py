"""ファイル名の生成とサニタイズ

同じ (index, title) からは常に同じパスを生成する。
再実行時に同じパスを再計算できることが Resume の前提になる。
"""

import re
from pathlib import Path
from typing import Optional, Union

from slugify import slugify as _slugify

MAX_SLUG_LENGTH = 100
MIN_PREFIX_WIDTH = 2

PathLike = Union[str, Path]


class FileNameGenerator:
    """ファイル名の生成とサニタイズ"""

    # ドイツ語のウムラウトは分解ではなく綴り替え
    TRANSLITERATIONS = [
        ['ä', 'ae'],
        ['ö', 'oe'],
        ['ü', 'ue'],
        ['ß', 'ss'],
    ]

    # 一般的なファイルシステムで使えない文字
    ILLEGAL_CHARS = re.compile(r'[<>:"/\\|?*]')

    @staticmethod
    def slugify(text: str) -> str:
        """
        タイトルをスラッグに変換

        Args:
            text: 元のタイトル

        Returns:
            str: 小文字英数字とハイフンのみのスラッグ（最大100文字、空文字あり）
        """
        # 置換は大文字小文字を区別するので先に小文字化する
        return _slugify(
            str(text or '').lower(),
            max_length=MAX_SLUG_LENGTH,
            replacements=FileNameGenerator.TRANSLITERATIONS,
        )

    @staticmethod
    def index_prefix(index: int, total: Optional[int] = None) -> str:
        """
        1始まりのゼロ埋め番号を生成

        Args:
            index: 0始まりの位置
            total: 同じ一覧の件数（桁数を揃えるため）

        Returns:
            str: "01", "10", "100" など
        """
        width = max(MIN_PREFIX_WIDTH, len(str(total or 0)))
        return str(index + 1).zfill(width)

    @staticmethod
    def folder_name(index: int, title: str, total: Optional[int] = None) -> str:
        """フォルダ名を生成（例: 0, "Introduction" -> "01-introduction"）"""
        prefix = FileNameGenerator.index_prefix(index, total)
        return f"{prefix}-{FileNameGenerator.slugify(title)}"

    @staticmethod
    def lesson_basename(index: int, title: str, total: Optional[int] = None) -> str:
        """レッスン内ファイルのベース名を生成"""
        return FileNameGenerator.folder_name(index, title, total)

    @staticmethod
    def sanitize_filename(filename: str) -> str:
        """
        ファイル名をサニタイズ

        禁止文字を1文字ずつ "_" に置換する。空白・括弧・複数の拡張子はそのまま残す。
        """
        return FileNameGenerator.ILLEGAL_CHARS.sub('_', filename)

    @staticmethod
    def download_file_path(directory: PathLike, index: int, title: str,
                           original_filename: str, total: Optional[int] = None) -> Path:
        """添付ファイルの保存先パスを生成"""
        basename = FileNameGenerator.lesson_basename(index, title, total)
        sanitized = FileNameGenerator.sanitize_filename(original_filename)
        return Path(directory) / f"{basename}-{sanitized}"

    @staticmethod
    def video_path(directory: PathLike, index: int, title: str,
                   total: Optional[int] = None) -> Path:
        """動画ファイルの保存先パスを生成"""
        return Path(directory) / f"{FileNameGenerator.lesson_basename(index, title, total)}.mp4"

    @staticmethod
    def markdown_path(directory: PathLike, index: int, title: str,
                      total: Optional[int] = None) -> Path:
        """Markdownファイルの保存先パスを生成"""
        return Path(directory) / f"{FileNameGenerator.lesson_basename(index, title, total)}.md"

    @staticmethod
    def course_dir(output_root: PathLike, community_slug: str, course_title: str,
                   course_index: int = 0) -> Path:
        """
        コースのディレクトリを生成

        Returns:
            Path: {output_root}/{community_slug}/{NN-course}
        """
        course_folder = FileNameGenerator.folder_name(course_index, course_title)
        return Path(output_root).expanduser() / community_slug / course_folder

    @staticmethod
    def module_dir(course_dir: PathLike, index: int, title: str,
                   total: Optional[int] = None) -> Path:
        """モジュールのディレクトリを生成"""
        return Path(course_dir) / FileNameGenerator.folder_name(index, title, total)
