"""Main application entry point for overdub."""

import sys
import time
import argparse
import logging
from pathlib import Path

from rich.console import Console
from rich.table import Table

from overdub.audio.capture import PyAudioCaptureDevice
from overdub.audio.playback import PyAudioPlayback
from overdub.errors import OverdubError
from overdub.models.recording import RecordingState
from overdub.models.session import SessionHandle
from overdub.services.recorder import CaptureStateMachine
from overdub.services.session_manager import SessionManager

from .config import OverdubConfig

logger = logging.getLogger(__name__)

console = Console()


def format_duration(duration_ms: int) -> str:
    total_seconds = duration_ms // 1000
    return f"{total_seconds // 60}:{total_seconds % 60:02d}"


class RecordingStatusLine:
    """Prints recorder transitions to the console."""

    def __init__(self):
        self.last_status = None

    def on_state(self, state: RecordingState) -> None:
        if state.status is not self.last_status:
            console.print(f"[bold]{state.status.value}[/bold] {format_duration(state.duration_ms)}")
            self.last_status = state.status
        if state.error:
            console.print(f"[red]{state.error}[/red]")


class App:

    def __init__(self, config_path: str, log_level: str):
        self.config = OverdubConfig(config_path)
        setup_logging(self.config, log_level or self.config.get('logging.level', 'INFO'))
        self.session_manager = SessionManager(self.config)

    def record(self, session: SessionHandle, duration: int) -> None:
        """Record one take for a fixed duration, then store it and remix."""
        recorder = CaptureStateMachine(
            PyAudioCaptureDevice(),
            session,
            constraints=self.config.get_capture_constraints(),
            tick_interval=self.config.get_tick_interval(),
        )
        status_line = RecordingStatusLine()
        recorder.subscribe(status_line.on_state)
        try:
            recorder.start()
            time.sleep(duration)
            state = recorder.stop()
            result = self.session_manager.save_take(session, state)
        finally:
            recorder.unsubscribe(status_line.on_state)
            recorder.reset()

        console.print(f"Saved take [cyan]{result.track.file_path}[/cyan] "
                      f"({format_duration(result.track.duration_ms or 0)})")
        console.print(f"Mixdown updated: [cyan]{result.mixdown.file_path}[/cyan]")
        self._print_dropped(result.dropped)

    def mix(self, session: SessionHandle) -> None:
        mixdown, result = self.session_manager.remix(session)
        console.print(f"Mixed {len(result.mix.sources)} track(s) into [cyan]{mixdown.file_path}[/cyan] "
                      f"({result.mix.duration_seconds:.2f}s)")
        self._print_dropped(result.dropped)

    def play(self, session: SessionHandle) -> None:
        plan = self.session_manager.build_playback_plan(session)
        self._print_dropped(plan.dropped)
        playback = PyAudioPlayback()
        playback.schedule(plan)
        console.print(f"Playing {len(plan.entries)} track(s) ({plan.duration_seconds:.1f}s)")
        playback.wait(timeout=plan.duration_seconds + 2.0)

    def tracks(self, session: SessionHandle) -> None:
        table = Table(title=f"Session {session.session_id}")
        table.add_column("Track")
        table.add_column("Type")
        table.add_column("Duration", justify="right")
        table.add_column("Size", justify="right")
        table.add_column("Created")

        tracks = self.session_manager.list_tracks(session, page_size=None)
        mixdown = self.session_manager.get_mixdown(session)
        for track in ([mixdown] if mixdown else []) + tracks:
            table.add_row(
                track.file_path,
                "mixdown" if track.is_mixdown else track.mime_type.split(";")[0],
                format_duration(track.duration_ms or 0),
                f"{track.size_bytes / 1024:.1f} KB",
                track.created_at.strftime("%Y-%m-%d %H:%M:%S"),
            )
        console.print(table)

    def _print_dropped(self, dropped) -> None:
        for item in dropped:
            console.print(f"[yellow]Skipped track {item.source_id}: {item.reason}[/yellow]")


LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
FILE_LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(funcName)s:%(lineno)d - %(message)s'


def setup_logging(config, level: str = "INFO") -> None:
    """Log everything to the configured file; warnings also go to stderr unless disabled."""
    log_file = Path(config.get('logging.file_path', 'data/logs/overdub.log'))
    log_file.parent.mkdir(parents=True, exist_ok=True)

    file_handler = logging.FileHandler(log_file)
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(logging.Formatter(FILE_LOG_FORMAT))
    handlers = [file_handler]

    if config.get('logging.console_output', True):
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(logging.WARNING)
        console_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handlers.append(console_handler)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(getattr(logging, level.upper()))
    for handler in handlers:
        root_logger.addHandler(handler)

    logger.info(f"overdub logging at {level.upper()} to {log_file}")


def main() -> None:
    """Main entry point for overdub."""
    parser = argparse.ArgumentParser(
        description="overdub - record voice takes and layer them into one mixdown",
    )

    parser.add_argument(
        "--config",
        type=str,
        help="Path to configuration YAML file (default: overdub.yaml)"
    )

    parser.add_argument(
        "--log-level",
        type=str,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Set logging level (default: from config, else INFO)"
    )

    parser.add_argument(
        "--version",
        action="version",
        version="overdub v0.1.0"
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    record_parser = subparsers.add_parser("record", help="Record a take and remix the session")
    record_parser.add_argument("--session", type=str, help="Session id (default: start a new session)")
    record_parser.add_argument("--duration", type=int, default=10,
                               help="Recording duration in seconds (default: 10)")

    for name, help_text in (("mix", "Regenerate the session mixdown"),
                            ("play", "Play every take of the session together"),
                            ("tracks", "List the tracks of a session")):
        command_parser = subparsers.add_parser(name, help=help_text)
        command_parser.add_argument("--session", type=str, required=True, help="Session id")

    args = parser.parse_args()

    try:
        app = App(args.config, args.log_level)
        if args.command == "record":
            session = SessionHandle(args.session) if args.session else app.session_manager.create_session()
            console.print(f"Session: [cyan]{session.session_id}[/cyan]")
            app.record(session, args.duration)
        else:
            getattr(app, args.command)(SessionHandle(args.session))
    except KeyboardInterrupt:
        console.print("\nGoodbye!")
    except OverdubError as e:
        console.print(f"[red]Error ({e.kind}): {e.cause}[/red]")
        logging.error(f"Application error: {e}")
        sys.exit(1)
    except Exception as e:
        console.print(f"[red]Error: {e}[/red]")
        logging.error(f"Application error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
