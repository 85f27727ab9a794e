import typer
import traceback
import warnings
from pathlib import Path
from typing import Callable, List, Optional

# pyexiftool warns on every batch; keep the progress display clean
warnings.filterwarnings("ignore", module="exiftool")
from msync.config.loader import load_config
from msync.config.models import AppConfig
from msync.config.input_dirs import prepare_dest_root, validate_roots
from msync.domain.errors import SyncError
from msync.domain.events import RunFinished, RunStarted
from msync.domain.models import RunSummary
from msync.infrastructure.logging import setup_logging
from msync.infrastructure.event_bus import EventBus
from msync.infrastructure.file_scanner import FileScanner
from msync.infrastructure.exif_tool import ExifToolAdapter
from msync.infrastructure.ffmpeg import FFmpegAdapter
from msync.infrastructure.housekeeping import HousekeepingService
from msync.infrastructure.tags import TagReader
from msync.pipeline.indexer import Indexer
from msync.pipeline.prune import PruneEngine
from msync.pipeline.runner import JobRunner
from msync.pipeline.transcoder import TranscodePipeline
from msync.ui.state import RunState
from msync.ui.manager import UIManager

app = typer.Typer(help="msync - incremental audio library indexing and transcoding")

DEFAULT_CONFIG = Path("conf/msync.yaml")

ConfigOption = typer.Option(DEFAULT_CONFIG, "--config", "-c", help="Path to YAML config")
ThreadsOption = typer.Option(None, "--threads", "-t", help="Override number of worker threads")
LogPathOption = typer.Option(None, "--log-path", help="Path to log file (overrides config)")
DebugOption = typer.Option(False, "--debug/--no-debug", help="Enable verbose debug logging")
DryRunOption = typer.Option(False, "--dry-run", help="Report what would change without writing anything")


def build_config(
    config_path: Path,
    threads: Optional[int] = None,
    log_path: Optional[Path] = None,
    debug: bool = False,
) -> AppConfig:
    """Loads the YAML config (built-in defaults when the default path is absent) and applies CLI overrides."""
    if config_path == DEFAULT_CONFIG and not config_path.exists():
        config = AppConfig()
    else:
        config = load_config(config_path)
    if threads: config.general.threads = threads
    if log_path is not None: config.general.log_path = str(log_path)
    if debug: config.general.debug = True
    return config


def _fail(message: str):
    typer.secho(f"Error: {message}", fg=typer.colors.RED, err=True)
    raise typer.Exit(code=1)


def _execute(
    command: str,
    config: AppConfig,
    roots: List[Path],
    log_dir: Path,
    dry_run: bool,
    body: Callable[[EventBus], RunSummary],
) -> RunSummary:
    """Sets up logging and the console reporter, then runs body between RunStarted and RunFinished."""
    log_path_value = Path(config.general.log_path) if config.general.log_path else None
    logger = setup_logging(log_dir, debug=config.general.debug, log_path=log_path_value)
    logger.info(f"msync {command} started: roots={[str(r) for r in roots]} dry_run={dry_run}")
    logger.info(f"Config: threads={config.general.threads}, debug={config.general.debug}")

    bus = EventBus()
    state = RunState()
    ui_manager = UIManager(bus, state)

    bus.publish(RunStarted(command=command, roots=roots, dry_run=dry_run))
    with ui_manager:
        summary = body(bus)
    summary.dry_run = dry_run
    bus.publish(RunFinished(command=command, summary=summary))
    logger.info(
        f"msync {command} finished: found={summary.found} ok={summary.succeeded} "
        f"skipped={summary.skipped} failed={summary.failed}"
    )
    return summary


def _guard(run: Callable[[], None]):
    """Maps fatal errors to exit code 1 and Ctrl+C to 130."""
    try:
        run()
    except KeyboardInterrupt:
        typer.secho("\nStopped by user (Ctrl+C)", fg=typer.colors.YELLOW, err=True)
        raise typer.Exit(code=130)
    except typer.Exit:
        raise
    except (SyncError, ValueError, FileNotFoundError) as e:
        _fail(str(e))
    except Exception as e:
        with open("error.log", "a") as f:
            traceback.print_exc(file=f)
        typer.secho(f"Fatal Error: {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)


@app.command()
def index(
    paths: List[Path] = typer.Argument(..., help="Library roots to index (one index.json per root)"),
    dry_run: bool = DryRunOption,
    config_path: Path = ConfigOption,
    threads: Optional[int] = ThreadsOption,
    log_path: Optional[Path] = LogPathOption,
    debug: bool = DebugOption,
):
    """Build or refresh <root>/index.json for every given root."""

    def run():
        config = build_config(config_path, threads, log_path, debug)
        roots = validate_roots(paths)
        # A dry run leaves the roots untouched, log file included
        log_dir = Path.cwd() if dry_run else roots[0]

        def body(bus: EventBus) -> RunSummary:
            runner = JobRunner(
                bus,
                max_workers=config.general.threads,
                progress_every=config.general.progress_every,
                debug=config.general.debug,
            )
            indexer = Indexer(
                config=config,
                event_bus=bus,
                file_scanner=FileScanner(config.scan.audio_extensions),
                tag_reader=TagReader(),
                runner=runner,
            )
            total = RunSummary(dry_run=dry_run)
            for root in roots:
                total = total.merge(indexer.run(root, dry_run=dry_run))
            return total

        _execute("index", config, roots, log_dir, dry_run, body)

    _guard(run)


@app.command()
def prune(
    sources: List[Path] = typer.Argument(..., help="Source roots the destination mirrors"),
    dest: Path = typer.Option(..., "--dest", "-d", help="Transcoded destination root"),
    dry_run: bool = DryRunOption,
    config_path: Path = ConfigOption,
    threads: Optional[int] = ThreadsOption,
    log_path: Optional[Path] = LogPathOption,
    debug: bool = DebugOption,
):
    """Delete destination files whose lossless source no longer exists."""

    def run():
        config = build_config(config_path, threads, log_path, debug)
        roots = validate_roots(sources)
        dest_root = validate_roots([dest])[0]
        log_dir = Path.cwd() if dry_run else dest_root

        def body(bus: EventBus) -> RunSummary:
            return PruneEngine(config, bus).run(roots, dest_root, dry_run=dry_run)

        _execute("prune", config, roots, log_dir, dry_run, body)

    _guard(run)


def _transcode(
    format_name: str,
    sources: List[Path],
    dest: Path,
    dry_run: bool,
    config_path: Path,
    threads: Optional[int],
    log_path: Optional[Path],
    debug: bool,
):
    def run():
        config = build_config(config_path, threads, log_path, debug)
        roots = validate_roots(sources)
        ffmpeg = FFmpegAdapter(config.transcode, debug=config.general.debug)
        profile = ffmpeg.profile(format_name)
        dest_root = prepare_dest_root(dest, roots, dry_run=dry_run)
        log_dir = Path.cwd() if dry_run else dest_root

        exif = None
        if profile.copy_tags and not dry_run:
            exif = ExifToolAdapter()
            exif.start()  # Start ExifTool ONCE before processing

        def body(bus: EventBus) -> RunSummary:
            runner = JobRunner(
                bus,
                max_workers=config.general.threads,
                progress_every=config.general.progress_every,
                debug=config.general.debug,
            )
            pipeline = TranscodePipeline(
                config=config,
                event_bus=bus,
                file_scanner=FileScanner(config.scan.lossless_extensions),
                tag_reader=TagReader(),
                ffmpeg_adapter=ffmpeg,
                exif_adapter=exif,
                runner=runner,
                housekeeper=HousekeepingService(),
            )
            return pipeline.run(roots, dest_root, format_name, dry_run=dry_run)

        try:
            _execute(f"transcode-{format_name}", config, roots, log_dir, dry_run, body)
        finally:
            if exif:
                exif.stop()

    _guard(run)


@app.command("transcode-opus")
def transcode_opus(
    sources: List[Path] = typer.Argument(..., help="Lossless source roots"),
    dest: Path = typer.Option(..., "--dest", "-d", help="Destination root (created if missing)"),
    dry_run: bool = DryRunOption,
    config_path: Path = ConfigOption,
    threads: Optional[int] = ThreadsOption,
    log_path: Optional[Path] = LogPathOption,
    debug: bool = DebugOption,
):
    """Mirror the sources into DEST as Opus, with one cover.jpg per directory."""
    _transcode("opus", sources, dest, dry_run, config_path, threads, log_path, debug)


@app.command("transcode-mp3")
def transcode_mp3(
    sources: List[Path] = typer.Argument(..., help="Lossless source roots"),
    dest: Path = typer.Option(..., "--dest", "-d", help="Destination root (created if missing)"),
    dry_run: bool = DryRunOption,
    config_path: Path = ConfigOption,
    threads: Optional[int] = ThreadsOption,
    log_path: Optional[Path] = LogPathOption,
    debug: bool = DebugOption,
):
    """Mirror the sources into DEST as MP3, with one cover.jpg per directory."""
    _transcode("mp3", sources, dest, dry_run, config_path, threads, log_path, debug)


@app.command("transcode-aac")
def transcode_aac(
    sources: List[Path] = typer.Argument(..., help="Lossless source roots"),
    dest: Path = typer.Option(..., "--dest", "-d", help="Destination root (created if missing)"),
    dry_run: bool = DryRunOption,
    config_path: Path = ConfigOption,
    threads: Optional[int] = ThreadsOption,
    log_path: Optional[Path] = LogPathOption,
    debug: bool = DebugOption,
):
    """Mirror the sources into DEST as AAC (.m4a), copying tags with exiftool."""
    _transcode("aac", sources, dest, dry_run, config_path, threads, log_path, debug)


if __name__ == "__main__":
    app()
