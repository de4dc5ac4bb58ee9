"""HLSマスタープレイリストの解析"""

import logging
from typing import Dict, Iterator, List, Optional, Tuple
from urllib.parse import urljoin

import m3u8
import requests
from tenacity import retry, stop_after_attempt, wait_exponential, retry_if_exception_type

from .models import Variant

logger = logging.getLogger(__name__)

STREAM_INF_TAG = '#EXT-X-STREAM-INF:'

# 画質設定名 -> 最大の高さ
QUALITY_HEIGHTS: Dict[str, Optional[int]] = {
    'highest': None,
    'lowest': None,
    '1080p': 1080,
    '720p': 720,
    '480p': 480,
}


def variant_label(bandwidth: int, height: Optional[int]) -> str:
    """高さがあれば "720p"、なければ "128k" 形式のラベル"""
    if height:
        return f"{height}p"
    return f"{(bandwidth + 500) // 1000}k"


def _stream_declarations(manifest_text: str) -> Iterator[Tuple[int, str, str]]:
    """(行番号, #EXT-X-STREAM-INF 行, URI行) を出現順に返す"""
    pending: Optional[Tuple[int, str]] = None

    for line_number, raw_line in enumerate(manifest_text.splitlines(), start=1):
        line = raw_line.strip()
        if not line:
            continue

        if line.startswith(STREAM_INF_TAG):
            if pending is not None:
                logger.debug("Dropped stream declaration without URI at line %d", pending[0])
            pending = (line_number, line)
            continue

        if line.startswith('#'):
            continue

        if pending is not None:
            yield pending[0], pending[1], line
            pending = None

    if pending is not None:
        logger.debug("Dropped stream declaration without URI at line %d", pending[0])


def _parse_declaration(tag_line: str, uri: str) -> Optional[m3u8.Playlist]:
    # 宣言ごとに m3u8 で読み、壊れた宣言だけを捨てる
    try:
        playlists = m3u8.loads(f"#EXTM3U\n{tag_line}\n{uri}\n").playlists
        playlist = playlists[0]
        stream_info = playlist.stream_info
        if stream_info.bandwidth is None:
            return None
    except (ValueError, TypeError, IndexError) as e:
        logger.debug("Malformed stream declaration %r: %s", tag_line, e)
        return None
    return playlist


def parse_variants(manifest_text: str, base_url: str) -> List[Variant]:
    """
    マスタープレイリストから画質バリアントを抽出

    壊れた宣言はその宣言だけを捨て、残りの解析は続ける。

    Args:
        manifest_text: m3u8 の内容
        base_url: 相対URLの解決に使うURL

    Returns:
        List[Variant]: 帯域の降順に並んだバリアント（宣言がなければ空リスト）
    """
    lines = manifest_text.splitlines()
    if lines and lines[0].strip() != '#EXTM3U':
        logger.debug("Manifest without #EXTM3U header: %s", base_url)

    variants: List[Variant] = []
    for line_number, tag_line, uri in _stream_declarations(manifest_text):
        playlist = _parse_declaration(tag_line, uri)
        if playlist is None:
            logger.debug("Skipped malformed stream declaration at line %d: %s", line_number, tag_line)
            continue

        stream_info = playlist.stream_info
        bandwidth = int(stream_info.bandwidth)
        width, height = stream_info.resolution or (None, None)

        # 絶対URLは urljoin でもそのまま残る
        variants.append(Variant(
            bandwidth=bandwidth,
            url=urljoin(base_url, playlist.uri),
            label=variant_label(bandwidth, height),
            width=width,
            height=height,
        ))

    # 帯域の降順（同値は出現順）
    variants.sort(key=lambda v: v.bandwidth, reverse=True)
    return variants


def select_variant(variants: List[Variant], max_height: Optional[int] = None,
                   lowest: bool = False) -> Optional[Variant]:
    """
    ダウンロードするバリアントを選択

    Args:
        variants: parse_variants() の結果（帯域の降順）
        max_height: 高さの上限（None なら上限なし）
        lowest: True なら最も低い帯域を選ぶ

    Returns:
        選択したバリアント（空リストなら None）。上限内のものがなければ最も低い帯域のもの
    """
    if not variants:
        return None

    if lowest:
        return variants[-1]

    if max_height is None:
        return variants[0]

    for variant in variants:
        if variant.height is not None and variant.height <= max_height:
            return variant

    # 上限内の解像度がない場合は解像度不明のもの、それもなければ最低画質
    for variant in variants:
        if variant.height is None:
            return variant

    return variants[-1]


@retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=1, max=10),
    retry=retry_if_exception_type((requests.ConnectionError, requests.Timeout)),
    reraise=True
)
def fetch_manifest(manifest_url: str, session: Optional[requests.Session] = None,
                   timeout: float = 30) -> str:
    """マスタープレイリストを取得"""
    http = session or requests
    response = http.get(manifest_url, timeout=timeout)
    response.raise_for_status()
    return response.text


def fetch_variants(manifest_url: str, session: Optional[requests.Session] = None) -> List[Variant]:
    """マスタープレイリストを取得してバリアントを返す"""
    return parse_variants(fetch_manifest(manifest_url, session=session), manifest_url)
