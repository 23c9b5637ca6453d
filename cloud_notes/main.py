import os
import sys
from pathlib import Path

from PySide6.QtGui import QGuiApplication
from PySide6.QtQml import QQmlApplicationEngine

from cloud_notes.app.backend import BackendFacade
from cloud_notes.logger import get_logger
from cloud_notes.settings_manager import SettingsManager

# --- CLI logging options -----------------------------------------------------
# To prevent Qt from exiting due to unknown options, we preemptively parse
# our own options, reflect them in environment variables (CLOUD_NOTES_LOG_LEVEL,
# CLOUD_NOTES_LOG_CATS), and remove them from sys.argv.


def _apply_cli_logging_options(argv: list[str]) -> list[str]:
    import argparse

    parser = argparse.ArgumentParser(description="Cloud Notes", add_help=False)
    parser.add_argument("--log-level", help="Set log level")
    parser.add_argument("--log-cats", help="Set log categories")
    args, remaining = parser.parse_known_args(argv[1:])
    if args.log_level:
        os.environ["CLOUD_NOTES_LOG_LEVEL"] = args.log_level
    if args.log_cats:
        os.environ["CLOUD_NOTES_LOG_CATS"] = args.log_cats
    return [argv[0], *remaining]


_BASE_DIR = Path(getattr(sys, "_MEIPASS", Path(__file__).resolve().parent))


def run(argv: list[str] | None = None) -> int:
    """Application entrypoint (packaging-friendly)."""
    import argparse

    argv = _apply_cli_logging_options(list(sys.argv if argv is None else argv))
    logger = get_logger("main")

    parser = argparse.ArgumentParser(add_help=False)
    parser.add_argument("--settings", default=str(_BASE_DIR / "settings.json"), help="Settings file")
    parser.add_argument("callback_url", nargs="?", help="Sign-in redirect URL to complete")
    args, qt_args = parser.parse_known_args(argv[1:])

    app = QGuiApplication([argv[0], *qt_args])
    app.setApplicationName("Cloud Notes")

    backend = BackendFacade(settings=SettingsManager(args.settings))
    app.aboutToQuit.connect(backend.shutdown)

    engine = QQmlApplicationEngine()
    engine.addImageProvider("note", backend.note_image_provider)
    engine.rootContext().setContextProperty("backend", backend)
    engine.load(str(_BASE_DIR / "qml" / "Main.qml"))
    if not engine.rootObjects():
        logger.error("failed to load QML UI")
        backend.shutdown()
        return 1

    backend.start()
    if args.callback_url:
        backend.complete_sign_in(args.callback_url)

    return app.exec()


if __name__ == "__main__":
    sys.exit(run())
