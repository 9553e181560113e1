"""
Main application controller
Coordinates all components of Dream Weaver
"""

from __future__ import annotations

import argparse
import logging
from typing import Optional

from . import __version__
from .ai import GeminiProvider
from .config import Config
from .formatting import format_created_at, transcript_preview
from .gateways import AnalysisGateway, ChatGateway
from .journal import Journal
from .paths import database_path, ensure_directories
from .speech import MicrophoneSpeechEngine, SpeechCapture
from .storage import JournalStore
from .workflow import WorkflowController

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

logger = logging.getLogger(__name__)


class AppController:
    """Main application controller"""

    def __init__(self, config: Optional[Config] = None):
        ensure_directories()
        self.config = config or Config()
        self.store = JournalStore(database_path())
        self.journal = Journal(self.store)

        self.speech = SpeechCapture(
            MicrophoneSpeechEngine(
                language=self.config.get('speech_language', 'en-US'),
                phrase_time_limit=self.config.get_float('phrase_time_limit', 15.0),
            )
        )
        self.analysis = AnalysisGateway(
            None, timeout_seconds=self.config.get_float('analysis_timeout', 120.0)
        )
        self.chat = ChatGateway(None)
        self.workflow = WorkflowController(self.speech, self.analysis, self.chat, self.journal)

        # UI (set later)
        self.window = None
        self.tray_icon = None

        self.init_llm_provider()

    def init_llm_provider(self) -> None:
        """Build the Gemini provider from config and hand it to the gateways"""
        provider = None
        analysis_timeout = self.config.get_float('analysis_timeout', 120.0)
        # Requests never outlive the analysis join.
        request_timeout = min(self.config.get_float('request_timeout', 90.0), analysis_timeout)
        api_key = self.config.api_key
        if not api_key:
            logger.warning("Gemini API key not configured; analysis will fail until it is set.")
        else:
            try:
                provider = GeminiProvider(
                    api_key,
                    text_model=self.config.get('text_model', ''),
                    image_model=self.config.get('image_model', ''),
                    timeout_seconds=request_timeout,
                )
                logger.info("Gemini provider initialized (text=%s, image=%s).",
                            provider.text_model, provider.image_model)
            except ValueError as exc:
                logger.error("Error initializing Gemini provider: %s", exc)

        self.analysis.provider = provider
        self.analysis.timeout_seconds = analysis_timeout
        self.chat.provider = provider
        self.chat.transmit_history = bool(self.config.get('chat_transmit_history', False))

    def run(self) -> None:
        """Run the desktop application"""
        # Import here so the CLI paths work without a display
        from .ui.main_window import MainWindow
        from .ui.tray_icon import TrayIcon

        self.window = MainWindow(self)
        self.tray_icon = TrayIcon(self)
        self.tray_icon.run()

        try:
            self.window.mainloop()
        finally:
            if self.tray_icon:
                self.tray_icon.stop()


def _list_dreams_cli(app: AppController, tag: str) -> int:
    entries = app.workflow.filtered_journal(tag)
    if not entries:
        print("No dreams found.")
        return 0
    for entry in entries:
        tags = " ".join(f"#{t}" for t in entry.tags) or "-"
        print(f"{format_created_at(entry.created_at)}  {entry.id}  {tags}")
        print(f"    {transcript_preview(entry.transcript, limit=100)}")
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(prog="dream-weaver")
    parser.add_argument("--version", action="store_true", help="Print app version and exit")
    parser.add_argument("--list-dreams", action="store_true", help="Print the dream journal and exit")
    parser.add_argument("--tag", default="", help="Only list dreams with a tag containing this text")
    parser.add_argument("--log-level", default="INFO", help="Logging level (default: INFO)")
    args = parser.parse_args(argv)
    if args.version:
        print(__version__)
        return 0

    logging.basicConfig(level=args.log_level.upper(), format=LOG_FORMAT)
    app = AppController()
    if args.list_dreams:
        return _list_dreams_cli(app, args.tag)

    if app.config.get('first_launch', True):
        logger.info("First launch: open Settings to add your Gemini API key.")
        app.config.set('first_launch', False)
    app.run()
    return 0
