"""ユーティリティ関数"""

import re
from typing import List, Optional

from bs4 import BeautifulSoup

# 後ろに空行を入れるブロック要素
BLOCK_TAGS = ['p', 'div', 'h1', 'h2', 'h3', 'h4', 'h5', 'h6', 'blockquote', 'pre', 'ul', 'ol']


def format_file_size(size_bytes: int) -> str:
    """ファイルサイズを人間が読みやすい形式にフォーマット"""
    for unit in ['B', 'KB', 'MB', 'GB', 'TB']:
        if size_bytes < 1024.0:
            return f"{size_bytes:.1f} {unit}"
        size_bytes /= 1024.0
    return f"{size_bytes:.1f} PB"


def html_to_text(content: str) -> str:
    """
    BeautifulSoup による HTML -> テキスト変換

    Args:
        content: レッスン本文のHTML

    Returns:
        str: 段落・改行・(入れ子の)リストを保ったテキスト。script/style は除く
    """
    soup = BeautifulSoup(content, 'html.parser')

    for tag in soup(['script', 'style', 'noscript', 'template']):
        tag.decompose()

    for br in soup.find_all('br'):
        br.replace_with('\n')

    for item in soup.find_all('li'):
        depth = len(item.find_parents(['ul', 'ol'])) - 1
        item.insert(0, '  ' * max(depth, 0) + '- ')
        if item.find(['ul', 'ol']) is None:
            item.append('\n')

    # 入れ子のリストは親の項目の次の行から
    for nested in soup.find_all(['ul', 'ol']):
        if nested.find_parent('li') is not None:
            nested.insert_before('\n')

    for block in soup.find_all(BLOCK_TAGS):
        if block.name in ('ul', 'ol') and block.find_parent('li') is not None:
            continue
        block.append('\n\n')

    text = soup.get_text().replace('\xa0', ' ')
    text = '\n'.join(line.rstrip() for line in text.splitlines())
    return re.sub(r'\n{3,}', '\n\n', text).strip()


def format_lesson_markdown(title: str, description: Optional[str] = None,
                           html_content: Optional[str] = None,
                           video_url: Optional[str] = None) -> str:
    """レッスンのMarkdownを生成"""
    lines: List[str] = [f"# {title}", ""]

    if description:
        lines += [description, ""]

    if video_url:
        lines += ["## Video", "", f"Video URL: {video_url}", ""]

    if html_content:
        lines += ["---", "", html_to_text(html_content), ""]

    return "\n".join(lines)


def shorten(text: str, width: int = 40) -> str:
    """進捗表示用にタイトルを切り詰める"""
    return text if len(text) <= width else text[:width - 3] + "..."
