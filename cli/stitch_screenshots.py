import argparse
import logging
import sys
from pathlib import Path
from typing import List

from PIL import Image

from controllers.stitching_controller import StitchingController
from models.config import OutputConfig, SUPPORTED_FORMATS
from services.config_manager import ConfigManager
from services.logging_manager import LoggingManager
from services.message_filters import filter_messages
from services.ocr_processor import OCRProcessor, RecognitionError
from services.storage_manager import StorageManager
from ui.progress import ProgressReporter

logger = logging.getLogger(__name__)


def _split_csv(value):
    return [v.strip() for v in value.split(",") if v.strip()] if value else []


def load_images(paths: List[str]) -> List[Image.Image]:
    """Open every screenshot up front so a bad path fails before OCR starts."""
    images = []
    for p in paths:
        with Image.open(p) as img:
            img.load()
            images.append(img.convert("RGB"))
    return images


def _apply_cli_filters(messages, args):
    """Apply sender, page, content and system filters based on CLI args."""
    if not messages:
        return messages
    from_user = None
    if args.only == "me":
        from_user = True
    elif args.only == "other":
        from_user = False
    pages = None
    if args.pages:
        try:
            pages = [int(p) for p in _split_csv(args.pages)]
        except ValueError:
            logger.warning(f"Invalid --pages value: {args.pages}")
    return filter_messages(
        messages,
        from_user=from_user,
        contains=args.contains,
        pages=pages,
        exclude_system=args.exclude_system,
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Stitch chat screenshots into one transcript")
    parser.add_argument("images", nargs="+", help="screenshot files, in capture order")
    parser.add_argument("--config", help="path to config.yaml / config.json")
    parser.add_argument("--prefix", default="transcript", help="filename prefix for output")
    parser.add_argument("--no-progress", action="store_true", help="disable progress reporter")
    # OCR / pipeline overrides
    parser.add_argument("--ocr-lang", help="override OCR language code (e.g. en, ch, japan)")
    parser.add_argument("--min-confidence", type=float, help="drop OCR lines below this confidence (0.0-1.0)")
    parser.add_argument("--workers", type=int, help="cap on concurrent OCR workers (default 0: one per screenshot)")
    parser.add_argument("--deadline", type=float, help="overall OCR deadline in seconds (0 disables)")
    parser.add_argument("--page-timeout", type=float, help="per-page OCR timeout in seconds (0 disables)")
    # Output overrides
    parser.add_argument("--format", choices=list(SUPPORTED_FORMATS), help="override output format")
    parser.add_argument("--formats", help="multi formats output, comma-separated, e.g. json,md")
    parser.add_argument("--outdir", help="override output directory")
    parser.add_argument("--exclude-fields", help="exclude fields for JSON/CSV output, comma-separated")
    parser.add_argument("--dry-run", action="store_true", help="print the transcript without saving")
    parser.add_argument("--skip-empty", action="store_true", help="do not save when there are zero messages")
    # Filters
    parser.add_argument("--only", choices=["me", "other"], help="keep only one side of the conversation")
    parser.add_argument("--contains", help="filter by substring in text (case-insensitive)")
    parser.add_argument("--pages", help="comma-separated source page indices to keep")
    parser.add_argument("--exclude-system", action="store_true", help="drop messages flagged as app chrome")
    return parser


def main(argv=None) -> int:
    """
    截图拼接 CLI 入口。

    函数级注释：
    - 读取配置（--config 或默认位置），CLI 参数覆盖配置中的 OCR/拼接/输出选项；
    - 所有截图识别失败时返回非零退出码并记录首个错误；
    - 部分页面失败时继续输出，失败页面以 warning 形式列出。
    """
    args = build_parser().parse_args(argv)

    app_cfg = ConfigManager(args.config).get_config()
    if args.ocr_lang:
        app_cfg.ocr.language = args.ocr_lang.strip()
    if args.min_confidence is not None:
        app_cfg.ocr.confidence_threshold = args.min_confidence
    if args.workers is not None:
        app_cfg.stitch.max_workers = args.workers
    if args.deadline is not None:
        app_cfg.stitch.deadline_seconds = args.deadline
    if args.page_timeout is not None:
        app_cfg.stitch.page_timeout_seconds = args.page_timeout
    app_cfg.validate()

    LoggingManager().setup(app_cfg, console_only=args.dry_run)

    try:
        images = load_images(args.images)
    except OSError as e:
        logger.error(f"Failed to open screenshot: {e}")
        return 2

    reporter = None if args.no_progress else ProgressReporter(logging.getLogger("progress"))
    controller = StitchingController(
        ocr=OCRProcessor(app_cfg.ocr),
        config=app_cfg.stitch,
        reporter=reporter,
    )

    try:
        report = controller.stitch_with_report(images)
    except RecognitionError as e:
        logger.error(f"No screenshot could be recognized: {e}")
        return 1

    for failure in report.failed_pages:
        logger.warning(f"Skipped {args.images[failure.page_index]}: {failure.reason}")

    messages = _apply_cli_filters(report.messages, args)

    if args.dry_run:
        for m in messages:
            print(f"[#{m.chronological_index}] {m.sender}: {m.text}")
        logger.info(f"Dry-run: stitched {len(messages)} messages, no file saved.")
        return 0

    if args.skip_empty and not messages:
        logger.info("Skip-empty is enabled and there are zero messages. Nothing will be saved.")
        return 0

    override = OutputConfig(
        format=(args.format or app_cfg.output.format),
        directory=(args.outdir or app_cfg.output.directory),
        formats=(_split_csv(args.formats) or list(app_cfg.output.formats)),
        exclude_fields=(_split_csv(args.exclude_fields) or list(app_cfg.output.exclude_fields)),
        exclude_system_messages=app_cfg.output.exclude_system_messages,
    )
    storage = StorageManager(override)
    if override.formats:
        paths = storage.save_messages_multiple(messages, args.prefix, override.formats)
    else:
        paths = [storage.save_messages(messages, args.prefix)]
    logger.info(f"Stitching finished, messages: {len(messages)}, files: {', '.join(str(Path(p)) for p in paths)}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
