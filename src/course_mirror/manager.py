"""システム全体の統括"""

import time
from contextlib import ExitStack
from pathlib import Path
from typing import Callable, List, Optional
from urllib.parse import urlparse

import requests
from rich.console import Console
from rich.progress import Progress, SpinnerColumn, TextColumn, BarColumn, TaskProgressColumn
from rich.table import Table

from .auth import LoginGate
from .browser import BrowserSession, PlaywrightSession, discover_course
from .config import Config
from .database import SyncStateDB, detect_platform, extract_community_slug, lesson_key
from .exceptions import AuthenticationRequired, ForcedShutdown
from .executor import DownloadExecutor
from .filename import FileNameGenerator
from .logger import Logger
from .models import (
    CommunityReport, Course, CourseModule, Lesson, LessonContent, LessonOutcome,
    SyncReport, VideoType
)
from .playlist import QUALITY_HEIGHTS, fetch_variants, select_variant
from .shutdown import ShutdownCoordinator
from .utils import format_file_size, format_lesson_markdown, shorten

ProgressCallback = Callable[[Lesson, LessonOutcome], None]


class SyncOrchestrator:
    """1コミュニティ分のレッスンを順番に同期する

    レッスンの間と、ナビゲーション・プレイリスト取得・ダウンロードの直後に
    中断要求を確認する。すべての転送が終わったレッスンだけを完了として記録する。
    """

    def __init__(
        self,
        store: SyncStateDB,
        browser: BrowserSession,
        executor: DownloadExecutor,
        shutdown: ShutdownCoordinator,
        gate: LoginGate,
        logger: Logger,
        video_quality: str = "highest",
        skip_videos: bool = False,
        skip_content: bool = False,
        limit: Optional[int] = None,
        variant_fetcher: Callable[[str], list] = fetch_variants
    ):
        self.store = store
        self.browser = browser
        self.executor = executor
        self.shutdown = shutdown
        self.gate = gate
        self.logger = logger
        self.max_height = QUALITY_HEIGHTS.get(video_quality)
        self.lowest = video_quality == "lowest"
        self.skip_videos = skip_videos
        self.skip_content = skip_content
        self.limit = limit
        self.variant_fetcher = variant_fetcher
        self.attempted = 0
        self._report: Optional[CommunityReport] = None

    def run(self, course: Course, course_dir: Path, report: CommunityReport,
            on_progress: Optional[ProgressCallback] = None) -> CommunityReport:
        """
        コースの全レッスンを処理

        Args:
            course: discover_course() で取得したコース構造
            course_dir: コースの出力ディレクトリ
            report: 結果を書き込むレポート
            on_progress: レッスンごとに呼ばれるコールバック

        Returns:
            CommunityReport: 更新したレポート

        Raises:
            AuthenticationRequired: ログインページに戻された
            LedgerError: 同期状態DBへの書き込みに失敗
        """
        self._report = report
        module_count = len(course.modules)

        for module in course.modules:
            if module.is_locked:
                self.logger.info(f"[LOCKED] Skipped module: {module.title}", "skip")
                continue

            module_dir = FileNameGenerator.module_dir(course_dir, module.index, module.title, module_count)

            for lesson in module.lessons:
                if not self.shutdown.should_continue():
                    report.interrupted = True
                    return report
                if self.limit is not None and self.attempted >= self.limit:
                    return report

                outcome = self.process_lesson(module, lesson, module_dir)
                report.record(outcome)
                if on_progress:
                    on_progress(lesson, outcome)

                if outcome == LessonOutcome.INTERRUPTED:
                    return report

        return report

    def process_lesson(self, module: CourseModule, lesson: Lesson, module_dir: Path) -> LessonOutcome:
        """
        1レッスンを処理

        Returns:
            LessonOutcome: 処理結果
        """
        key = lesson_key(module, lesson)

        if self.store.has(key):
            self.logger.info(f"[RESUME] Skipped (already completed): {key}", "resume")
            return LessonOutcome.SKIPPED

        self.attempted += 1
        total = len(module.lessons)

        # ブラウザのエラー（タイムアウトなど）はこのレッスンだけの失敗
        try:
            self.browser.navigate(lesson.url)
        except Exception as e:
            return self._fail(key, [f"Failed to open {lesson.url}: {e}"])
        if not self.shutdown.should_continue():
            return LessonOutcome.INTERRUPTED
        self._check_login()

        try:
            page_data = self.browser.extract_page_data()
        except Exception as e:
            return self._fail(key, [f"Failed to read lesson page {lesson.url}: {e}"])
        content = LessonContent.from_page_data(page_data, lesson.title)

        files: List[str] = []
        errors: List[str] = []
        total_bytes = 0

        # 動画ソースの決定
        video_source = None
        if not self.skip_videos and content.video_type == VideoType.HLS:
            try:
                variants = self.variant_fetcher(content.video_url)
            except requests.RequestException as e:
                return self._fail(key, [f"Failed to fetch manifest {content.video_url}: {e}"])
            if not self.shutdown.should_continue():
                return LessonOutcome.INTERRUPTED

            variant = select_variant(variants, self.max_height, self.lowest)
            if variant is None:
                self.logger.info(f"No video variants in manifest, saving metadata only: {key}", "skip")
            else:
                video_source = variant.url
                self.logger.info(f"Selected {variant.label} ({variant.bandwidth}) for {key}", "success")
        elif not self.skip_videos and content.video_type in (VideoType.FILE, VideoType.EMBED):
            video_source = content.video_url

        if not self.skip_content:
            markdown = format_lesson_markdown(
                content.title, content.description, content.html, content.video_url
            )
            result = self.executor.save_markdown(
                FileNameGenerator.markdown_path(module_dir, lesson.index, lesson.title, total), markdown
            )
            if result.success:
                files.append(result.file_path)
                total_bytes += result.file_size or 0
            else:
                errors.append(result.error_message or "Failed to write markdown")

        # 転送するファイル: (URL, 保存先, 動画種別)
        transfers = []
        if video_source:
            transfers.append((
                video_source,
                FileNameGenerator.video_path(module_dir, lesson.index, lesson.title, total),
                content.video_type
            ))
        if not self.skip_content:
            for attachment in content.attachments:
                name = attachment.name or Path(urlparse(attachment.url).path).name or "attachment"
                transfers.append((
                    attachment.url,
                    FileNameGenerator.download_file_path(module_dir, lesson.index, lesson.title, name, total),
                    None
                ))

        for position, (url, destination, video_type) in enumerate(transfers):
            if position > 0 and not self.shutdown.should_continue():
                return LessonOutcome.INTERRUPTED

            result = self.executor.download(url, destination, video_type=video_type)
            if result.success:
                files.append(result.file_path)
                total_bytes += result.file_size or 0
            else:
                errors.append(result.error_message or f"Failed to download {url}")

        if errors:
            return self._fail(key, errors)

        self.store.mark_complete(
            key, files, title=lesson.title, module_title=module.title, total_bytes=total_bytes
        )
        self.logger.info(f"Completed lesson {key} ({len(files)} files, {format_file_size(total_bytes)})", "success")
        return LessonOutcome.COMPLETED

    def _check_login(self):
        current = self.browser.current_url()
        platform = self.gate.match(current)
        if platform is not None:
            raise AuthenticationRequired(current, platform)

    def _fail(self, key: str, errors: List[str]) -> LessonOutcome:
        message = "; ".join(errors)
        self.store.mark_failed(key, message)
        self.logger.error(f"Lesson {key} failed: {message}")
        if self._report is not None:
            self._report.errors.append(f"{key}: {message}")
        return LessonOutcome.FAILED


BrowserFactory = Callable[[str], BrowserSession]


class CourseSyncManager:
    """システム全体の統括"""

    def __init__(
        self,
        config: Config,
        shutdown: ShutdownCoordinator,
        logger: Optional[Logger] = None,
        executor: Optional[DownloadExecutor] = None,
        browser_factory: Optional[BrowserFactory] = None,
        quality: Optional[str] = None,
        limit: Optional[int] = None,
        skip_videos: bool = False,
        skip_content: bool = False,
        dry_run: bool = False,
        visible: bool = False
    ):
        self.config = config
        self.shutdown = shutdown
        self.logger = logger or Logger(config.log_path)
        self.console = self.logger.console
        self.executor = executor or DownloadExecutor(
            logger=self.logger, retry_attempts=config.retry_attempts
        )
        self.headless = config.headless and not visible
        self.browser_factory = browser_factory or self._open_browser
        self.quality = quality or config.video_quality
        self.limit = limit
        self.skip_videos = skip_videos
        self.skip_content = skip_content
        self.dry_run = dry_run
        self.forced = False

    def _open_browser(self, url: str) -> BrowserSession:
        domain = urlparse(url).hostname or url
        return PlaywrightSession(domain, headless=self.headless).open()

    def open_store(self, community_slug: str) -> SyncStateDB:
        return SyncStateDB.for_community(community_slug, self.config.cache_path)

    def run(self, urls: List[str]) -> SyncReport:
        """
        すべてのコミュニティを順番に同期

        2回目の中断シグナルで強制終了した場合も、それまでの集計を返す（forced が True になる）。
        """
        self.console.print("[bold cyan]course-mirror[/bold cyan]")
        start_time = time.time()
        reports: List[CommunityReport] = []

        try:
            for url in urls:
                if not self.shutdown.should_continue():
                    break
                report = CommunityReport(community_slug=extract_community_slug(url))
                reports.append(report)
                self.sync_community(url, report)
        except ForcedShutdown:
            self.forced = True
            if reports:
                reports[-1].interrupted = True

        return SyncReport(communities=reports, execution_time=time.time() - start_time)

    def sync_community(self, url: str, report: CommunityReport) -> CommunityReport:
        """
        1コミュニティを同期

        認証切れやその他の致命的なエラーはこのコミュニティだけを止め、レポートに記録する。
        """
        slug = report.community_slug
        platform = detect_platform(url)
        gate = LoginGate.for_platform(platform) if platform else LoginGate()

        self.console.print(f"\n[bold]Syncing community: {slug}[/bold]")
        self.console.print(f"URL: {url}")

        try:
            with ExitStack() as stack:
                store = stack.enter_context(self.open_store(slug))
                browser = self.browser_factory(url)
                stack.callback(browser.close)

                course = discover_course(browser, url, gate, self.shutdown.should_continue)
                report.course_title = course.title
                report.total_lessons = course.total_lessons
                if not self.shutdown.should_continue():
                    report.interrupted = True
                    return report
                self.console.print(
                    f"Found: {len(course.modules)} modules, {course.total_lessons} lessons"
                )

                if self.dry_run:
                    self.print_course_structure(course, store)
                    return report

                course_dir = FileNameGenerator.course_dir(self.config.output_path, slug, course.title)
                self.console.print(f"Output: {course_dir}")

                orchestrator = SyncOrchestrator(
                    store=store,
                    browser=browser,
                    executor=self.executor,
                    shutdown=self.shutdown,
                    gate=gate,
                    logger=self.logger,
                    video_quality=self.quality,
                    skip_videos=self.skip_videos,
                    skip_content=self.skip_content,
                    limit=self.limit
                )

                with Progress(
                    SpinnerColumn(),
                    TextColumn("[progress.description]{task.description}"),
                    BarColumn(),
                    TaskProgressColumn(),
                    console=self.console
                ) as progress:
                    task_id = progress.add_task(f"[cyan]{slug}", total=course.total_lessons)

                    def on_progress(lesson: Lesson, outcome: LessonOutcome):
                        progress.update(
                            task_id, advance=1,
                            description=f"[cyan]{shorten(lesson.title)} ({outcome.value})"
                        )

                    orchestrator.run(course, course_dir, report, on_progress)

                store.update_course_metadata(course.title, url)

        except AuthenticationRequired as e:
            report.auth_required = True
            self.logger.warning(str(e), "auth")
            self.console.print(f"[bold red]Login required for {slug}.[/bold red] "
                               f"Run: course-mirror --login {url}")
        except Exception as e:
            report.fatal_error = f"{type(e).__name__}: {e}"
            self.logger.error(f"Community {slug} aborted: {report.fatal_error}")

        self.console.print(
            f"  Completed: {report.completed}, Skipped: {report.skipped}, "
            f"Failed: {report.failed}"
        )
        return report

    def login(self, url: str, timeout_seconds: int = 300) -> bool:
        """ブラウザを表示して手動ログインし、セッションを保存"""
        platform = detect_platform(url)
        gate = LoginGate.for_platform(platform) if platform else LoginGate()
        domain = urlparse(url).hostname or url

        self.console.print("[bold]Browser opened. Please log in manually.[/bold]")
        with PlaywrightSession(domain, headless=False) as session:
            logged_in = session.login(url, gate, timeout_seconds)

        if logged_in:
            self.console.print("[bold green]Login successful! Session saved.[/bold green]")
        else:
            self.console.print(f"[bold red]Login timed out after {timeout_seconds} seconds[/bold red]")
        return logged_in

    def print_course_structure(self, course: Course, store: SyncStateDB):
        """コース構造と保存先を表示（ドライラン）"""
        table = Table(title=course.title)
        table.add_column("モジュール", style="cyan")
        table.add_column("レッスン")
        table.add_column("状態", justify="right")

        module_count = len(course.modules)
        for module in course.modules:
            module_folder = FileNameGenerator.folder_name(module.index, module.title, module_count)
            if module.is_locked:
                table.add_row(module_folder, "", "[yellow]locked[/yellow]")
                continue
            for lesson in module.lessons:
                basename = FileNameGenerator.lesson_basename(lesson.index, lesson.title, len(module.lessons))
                done = store.has(lesson_key(module, lesson))
                table.add_row(module_folder, basename, "[green]done[/green]" if done else "pending")

        self.console.print(table)

    def show_status(self, urls: List[str]):
        """現在の同期状態を表示"""
        table = Table(title="同期状態")
        table.add_column("コミュニティ", style="cyan")
        table.add_column("✓ 完了", style="green", justify="right")
        table.add_column("⊗ 失敗", style="red", justify="right")
        table.add_column("容量", style="magenta", justify="right")
        table.add_column("最終同期")

        for url in urls:
            slug = extract_community_slug(url)
            with self.open_store(slug) as store:
                stats = store.get_statistics()
            table.add_row(
                slug,
                str(stats.completed),
                str(stats.failed),
                format_file_size(stats.total_bytes),
                stats.last_sync_at or "-"
            )

        self.console.print(table)

    def reset(self, urls: List[str]):
        """同期状態をリセット"""
        for url in urls:
            slug = extract_community_slug(url)
            with self.open_store(slug) as store:
                store.clear()
            self.console.print(f"[bold green]Reset sync state for {slug}[/bold green]")
