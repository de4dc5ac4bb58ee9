"""コマンドラインインターフェース"""

import argparse
import sys
from typing import Dict, List, Optional

import requests
from rich.console import Console

from .config import load_config, parse_setting, update_config
from .exceptions import ConfigError, ForcedShutdown
from .executor import DownloadExecutor
from .logger import Logger
from .manager import CourseSyncManager
from .shutdown import ShutdownCoordinator

EXIT_INTERRUPTED = 130


def parse_arguments(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """コマンドライン引数をパース"""
    parser = argparse.ArgumentParser(
        prog="course-mirror",
        description="Mirror membership course content (videos, attachments, notes) to local disk"
    )

    parser.add_argument(
        "urls",
        nargs="*",
        help="Community / course URLs"
    )

    parser.add_argument(
        "--output-dir",
        help="Output directory (overrides config for this run)"
    )

    parser.add_argument(
        "--quality",
        choices=["highest", "lowest", "1080p", "720p", "480p"],
        help="Video quality (overrides config for this run)"
    )

    parser.add_argument(
        "--limit",
        type=int,
        help="Maximum number of lessons to download per community"
    )

    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Show the course structure without downloading"
    )

    parser.add_argument(
        "--skip-videos",
        action="store_true",
        help="Do not download videos"
    )

    parser.add_argument(
        "--skip-content",
        action="store_true",
        help="Do not save lesson notes or attachments"
    )

    parser.add_argument(
        "--visible",
        action="store_true",
        help="Show the browser window"
    )

    # 認証
    parser.add_argument(
        "--login",
        action="store_true",
        help="Open a browser to log in and save the session"
    )

    # Resume機能
    parser.add_argument(
        "--status",
        action="store_true",
        help="Show sync state"
    )

    parser.add_argument(
        "--reset",
        action="store_true",
        help="Reset sync state (next run re-downloads everything)"
    )

    # 設定
    parser.add_argument(
        "--set",
        metavar="KEY=VALUE",
        action="append",
        default=[],
        help="Update a config value (output_dir, video_quality, retry_attempts, headless, log_dir)"
    )

    parser.add_argument(
        "--show-config",
        action="store_true",
        help="Show current config"
    )

    return parser.parse_args(argv)


def _apply_settings(assignments: List[str], console: Console) -> int:
    changes: Dict[str, object] = {}
    try:
        for assignment in assignments:
            changes.update(parse_setting(assignment))
        config = update_config(changes)
    except ConfigError as e:
        console.print(f"[bold red]Error: {e}[/bold red]")
        return 2

    for key in changes:
        console.print(f"[green]{key} = {getattr(config, key)}[/green]")
    return 0


def main(argv: Optional[List[str]] = None):
    """メインエントリーポイント"""
    args = parse_arguments(argv)
    console = Console()

    if args.set:
        sys.exit(_apply_settings(args.set, console))

    config = load_config()
    if args.show_config:
        for key, value in config.model_dump().items():
            console.print(f"{key} = {value}")
        return

    if not args.urls:
        console.print("[bold red]Error: at least one URL is required[/bold red]")
        sys.exit(2)

    if args.output_dir:
        config = config.model_copy(update={"output_dir": args.output_dir})

    logger = Logger(config.log_path, console=console)
    shutdown = ShutdownCoordinator(logger=logger)
    shutdown.register(logger.close, "logger")
    session = shutdown.enter_context(requests.Session(), "http session")

    # マネージャー初期化
    manager = CourseSyncManager(
        config=config,
        shutdown=shutdown,
        logger=logger,
        executor=DownloadExecutor(
            logger=logger, retry_attempts=config.retry_attempts, session=session
        ),
        quality=args.quality,
        limit=args.limit,
        skip_videos=args.skip_videos,
        skip_content=args.skip_content,
        dry_run=args.dry_run,
        visible=args.visible
    )

    # モードに応じて処理を実行
    try:
        with shutdown:
            if args.login:
                ok = all(manager.login(url) for url in args.urls)
                exit_code = 0 if ok else 1
            elif args.status:
                manager.show_status(args.urls)
                exit_code = 0
            elif args.reset:
                manager.reset(args.urls)
                exit_code = 0
            else:
                report = manager.run(args.urls)
                report.print_summary(console)
                if manager.forced or shutdown.is_shutting_down():
                    exit_code = EXIT_INTERRUPTED
                else:
                    exit_code = 1 if report.has_failures else 0
    except ForcedShutdown:
        exit_code = EXIT_INTERRUPTED

    sys.exit(exit_code)


if __name__ == "__main__":
    main()
