"""ブラウザ操作（Playwright）とコース構造の取得"""

import re
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Protocol

from .auth import LoginGate
from .config import sessions_dir
from .database import extract_community_slug
from .exceptions import AuthenticationRequired
from .models import Course, CourseModule, Lesson


class BrowserSession(Protocol):
    """同期処理が使うブラウザ操作"""

    def current_url(self) -> str: ...

    def navigate(self, url: str) -> None: ...

    def extract_page_data(self) -> Dict[str, Any]: ...

    def close(self) -> None: ...


# ページから構造化データを取り出す
EXTRACT_PAGE_DATA_JS = r"""
() => {
  const abs = (href) => { try { return new URL(href, location.href).href; } catch (e) { return null; } };
  const text = (el) => (el && el.textContent ? el.textContent.trim() : "");
  const uniq = (items) => {
    const seen = new Set();
    return items.filter((item) => item.url && !seen.has(item.url) && seen.add(item.url));
  };

  let videoUrl = null;
  const video = document.querySelector("video source[src], video[src]");
  if (video) videoUrl = abs(video.getAttribute("src"));
  if (!videoUrl || videoUrl.startsWith("blob:")) {
    const m = document.documentElement.innerHTML.match(/https?:[^"'\s]+\.m3u8[^"'\s]*/);
    videoUrl = m ? m[0].replace(/\\u0026/g, "&") : null;
  }

  // Vimeo / Loom / YouTube / Wistia の埋め込みプレイヤー
  let videoType = videoUrl ? (/\.m3u8/i.test(videoUrl) ? "hls" : "file") : null;
  if (!videoUrl) {
    const iframe = document.querySelector(
      'iframe[src*="vimeo.com"], iframe[src*="loom.com"], iframe[src*="youtube.com"], ' +
      'iframe[src*="youtube-nocookie.com"], iframe[src*="youtu.be"], iframe[src*="wistia"]');
    if (iframe) {
      videoUrl = abs(iframe.getAttribute("src"));
    } else {
      const wistia = document.querySelector('[class*="wistia_async_"]');
      const m = wistia && wistia.className.match(/wistia_async_(\w+)/);
      if (m) videoUrl = "https://fast.wistia.net/embed/iframe/" + m[1];
    }
    if (videoUrl) videoType = "embed";
  }

  const fileExt = /\.(pdf|zip|docx?|xlsx?|pptx?|csv|txt|png|jpe?g|mp3)(\?|$)/i;
  const attachments = uniq(Array.from(document.querySelectorAll("a[href]"))
    .filter((a) => a.hasAttribute("download") || fileExt.test(a.getAttribute("href")))
    .map((a) => {
      const url = abs(a.getAttribute("href"));
      const fallback = url ? decodeURIComponent(new URL(url).pathname.split("/").pop()) : "";
      return { name: a.getAttribute("download") || text(a) || fallback, url };
    }));

  const modules = uniq(Array.from(document.querySelectorAll(
      'a[href*="/classroom/"], a[href*="/categories/"]:not([href*="/posts/"])'))
    .map((a) => {
      const url = abs(a.getAttribute("href"));
      const m = url && url.match(/\/(?:classroom|categories)\/([A-Za-z0-9-]+)/);
      return { id: m ? m[1] : null, title: text(a), url,
               locked: !!a.querySelector('[class*="Lock"], [data-locked="true"]') };
    }));

  const lessons = uniq(Array.from(document.querySelectorAll(
      'a[href*="?md="], a[href*="&md="], a[href*="/posts/"]'))
    .map((a) => {
      const url = abs(a.getAttribute("href"));
      let id = null;
      if (url) {
        const parsed = new URL(url);
        id = parsed.searchParams.get("md");
        if (!id) { const m = parsed.pathname.match(/\/posts\/([A-Za-z0-9-]+)/); id = m ? m[1] : null; }
      }
      return { id, title: text(a), url };
    }));

  const main = document.querySelector("main, article, [class*='Content']");
  const heading = document.querySelector("h1");
  const meta = document.querySelector('meta[name="description"]');

  return {
    title: text(heading) || document.title,
    description: meta ? meta.getAttribute("content") : null,
    html: main ? main.innerHTML : null,
    video_url: videoUrl,
    video_type: videoType,
    attachments,
    modules,
    lessons,
  };
}
"""


class PlaywrightSession:
    """Playwright によるブラウザセッション

    ログイン状態はドメインごとに sessions ディレクトリの JSON に保存する。
    """

    def __init__(self, domain: str, headless: bool = True,
                 storage_dir: Optional[Path] = None, timeout_ms: int = 60000):
        self.domain = domain
        self.headless = headless
        self.storage_dir = Path(storage_dir) if storage_dir else sessions_dir()
        self.timeout_ms = timeout_ms
        self._playwright = None
        self._browser = None
        self._context = None
        self.page = None

    @property
    def storage_path(self) -> Path:
        safe_domain = re.sub(r'[^a-zA-Z0-9.-]', '_', self.domain)
        return self.storage_dir / f"{safe_domain}.json"

    def has_saved_session(self) -> bool:
        return self.storage_path.exists()

    def open(self) -> "PlaywrightSession":
        """ブラウザを起動して保存済みセッションを読み込む"""
        try:
            from playwright.sync_api import sync_playwright
        except ImportError:
            raise ImportError("playwright is required. Install with: pip install playwright && playwright install chromium")

        self._playwright = sync_playwright().start()
        self._browser = self._playwright.chromium.launch(headless=self.headless)

        storage_state = str(self.storage_path) if self.has_saved_session() else None
        self._context = self._browser.new_context(
            storage_state=storage_state,
            viewport={'width': 1280, 'height': 800}
        )
        self.page = self._context.new_page()
        return self

    def __enter__(self) -> "PlaywrightSession":
        return self.open()

    def __exit__(self, *exc_info):
        self.close()

    def current_url(self) -> str:
        return self.page.url

    def navigate(self, url: str):
        self.page.goto(url, wait_until='domcontentloaded', timeout=self.timeout_ms)

    def extract_page_data(self) -> Dict[str, Any]:
        return self.page.evaluate(EXTRACT_PAGE_DATA_JS)

    def save_session(self):
        """Cookie などのログイン状態を保存"""
        self.storage_dir.mkdir(parents=True, exist_ok=True)
        self._context.storage_state(path=str(self.storage_path))

    def login(self, login_url: str, gate: LoginGate, timeout_seconds: int = 300) -> bool:
        """
        ブラウザ上で手動ログインを待つ

        ヘッドレスではない状態で起動しておくこと。

        Args:
            login_url: ログインを開始するURL
            gate: ログインページ判定
            timeout_seconds: 待機する最大秒数

        Returns:
            bool: ログインできた場合 True
        """
        self.navigate(login_url)

        for _ in range(timeout_seconds):
            self.page.wait_for_timeout(1000)
            if not gate.is_login_page(self.current_url()):
                self.page.wait_for_timeout(1000)
                self.save_session()
                return True

        return False

    def close(self):
        """ブラウザを閉じる"""
        if self._context is not None:
            self._context.close()
            self._context = None
        if self._browser is not None:
            self._browser.close()
            self._browser = None
        if self._playwright is not None:
            self._playwright.stop()
            self._playwright = None


def _navigate_checked(browser: BrowserSession, url: str, gate: LoginGate):
    browser.navigate(url)
    current = browser.current_url()
    platform = gate.match(current)
    if platform is not None:
        raise AuthenticationRequired(current, platform)


def discover_course(browser: BrowserSession, url: str, gate: LoginGate,
                    should_continue: Optional[Callable[[], bool]] = None) -> Course:
    """
    コース構造（モジュールとレッスンの一覧）を取得

    Args:
        browser: ブラウザセッション
        url: コース（クラスルーム）のURL
        gate: ログインページ判定
        should_continue: ナビゲーションごとに確認する中断判定（False なら巡回を打ち切る）

    Returns:
        Course: 発見したコース構造（ロックされたモジュールのレッスンは含まない。
        中断した場合は巡回済みのモジュールまで）

    Raises:
        AuthenticationRequired: ログインページに戻された
    """
    running = should_continue or (lambda: True)

    _navigate_checked(browser, url, gate)
    data = browser.extract_page_data()

    course = Course(
        title=data.get('title') or extract_community_slug(url),
        url=url,
        community_slug=extract_community_slug(url)
    )

    raw_modules: List[Dict[str, Any]] = data.get('modules') or []
    if not raw_modules:
        # モジュール一覧がないページはそれ自体を1つのモジュールとして扱う
        module = CourseModule(index=0, title=course.title, url=url)
        module.lessons = _lessons_from(data)
        course.modules.append(module)
        return course

    for index, raw in enumerate(raw_modules):
        module = CourseModule(
            index=index,
            title=raw.get('title') or '',
            url=raw.get('url') or '',
            module_id=raw.get('id'),
            is_locked=bool(raw.get('locked'))
        )
        course.modules.append(module)
        if module.is_locked or not module.url:
            continue
        if not running():
            break

        _navigate_checked(browser, module.url, gate)
        module.lessons = _lessons_from(browser.extract_page_data())

    return course


def _lessons_from(data: Dict[str, Any]) -> List[Lesson]:
    return [
        Lesson(
            index=index,
            title=raw.get('title') or '',
            url=raw['url'],
            lesson_id=raw.get('id')
        )
        for index, raw in enumerate(r for r in data.get('lessons') or [] if r.get('url'))
    ]
