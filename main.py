#!/usr/bin/env python3
"""NAM Installer - Entry Point"""

import argparse
import faulthandler
import json
import logging
import os
import sys
import traceback
from logging.handlers import RotatingFileHandler
from pathlib import Path

HERE = Path(__file__).resolve().parent
DEFAULT_SOURCE = HERE / "installation"
DEFAULT_CONFIG = HERE / "configuration.json"
DEFAULT_CLEANUP = HERE / "static" / "cleanup.txt"


def setup_logging() -> tuple[logging.Logger, Path]:
    log_dir = Path(os.environ.get("APPDATA", "~")).expanduser() / "NAMInstaller"
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / "naminstaller.log"

    handler = RotatingFileHandler(
        log_file,
        maxBytes=1 * 1024 * 1024,  # 1 MB
        backupCount=2,
        encoding="utf-8",
    )
    handler.setFormatter(logging.Formatter("%(asctime)s  %(levelname)-8s  %(name)s  %(message)s"))

    # Engine modules log through their own module loggers, so configure the root.
    root = logging.getLogger()
    root.setLevel(logging.INFO)
    root.addHandler(handler)
    return logging.getLogger("naminstaller"), log_dir


def install_crash_handler(logger: logging.Logger, log_dir: Path):
    # Python-level unhandled exceptions
    def handle_exception(exc_type, exc_value, exc_tb):
        if issubclass(exc_type, KeyboardInterrupt):
            sys.__excepthook__(exc_type, exc_value, exc_tb)
            return
        logger.critical(
            "Unhandled exception:\n%s",
            "".join(traceback.format_exception(exc_type, exc_value, exc_tb)),
        )

    sys.excepthook = handle_exception

    # C-level crashes (segfault, abort): faulthandler writes to a separate
    # file because it can't use Python logging machinery after a crash
    crash_file = log_dir / "crash.log"
    faulthandler.enable(open(crash_file, "w"), all_threads=True)


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Network Addon Mod Installer")
    parser.add_argument("--source", default=str(DEFAULT_SOURCE),
                        help="installation folder or packed bundle (.zip/.7z/.rar)")
    parser.add_argument("--config", default=None, help="path to configuration.json")
    parser.add_argument("--cleanup", default=None, help="path to the legacy-file manifest")
    parser.add_argument("--list-tree", action="store_true",
                        help="print the option tree as JSON and exit")
    parser.add_argument("--install", metavar="LOCATION",
                        help="install without the GUI into LOCATION (a Plugins folder)")
    parser.add_argument("--select", action="append", default=[], metavar="KEY",
                        help="selection key to install, e.g. 'top/Roads'; repeatable")
    parser.add_argument("--poll-interval", type=float, default=0.5)
    return parser.parse_args(argv)


def _existing(path: str | None, fallback: Path) -> Path | None:
    if path is not None:
        return Path(path)
    return fallback if fallback.exists() else None


def build_installer(args: argparse.Namespace, log_callback=None):
    from install_pipeline import Installer
    from installer_config import load_config, load_legacy_manifest

    config = load_config(_existing(args.config, DEFAULT_CONFIG))
    legacy_names = load_legacy_manifest(_existing(args.cleanup, DEFAULT_CLEANUP))
    return Installer.from_path(args.source, config, legacy_names, log_callback=log_callback)


def run_headless(args: argparse.Namespace, logger: logging.Logger) -> int:
    from install_pipeline import InstallError
    from installer_config import InstallRequest
    from option_tree import OptionTreeError

    try:
        installer = build_installer(args, log_callback=print)
    except (OptionTreeError, OSError, ValueError) as e:
        logger.error("Could not load installation files: %s", e)
        print(f"Could not load installation files: {e}", file=sys.stderr)
        return 2

    if args.list_tree:
        print(json.dumps(installer.tree_as_dict(), indent=2, ensure_ascii=False))
        return 0

    try:
        request = InstallRequest(files_to_install=args.select, location=args.install)
        installer.start_install(request)
    except (InstallError, ValueError) as e:
        logger.error("Install rejected: %s", e)
        print(f"Install rejected: {e}", file=sys.stderr)
        return 2

    while not installer.wait(args.poll_interval):
        snap = installer.progress()
        print(
            f"  cleaning {snap.cleaning_count}/{snap.cleaning_max}  "
            f"installing {snap.installed_count}/{snap.installed_max}"
        )
    snap = installer.progress()
    print(f"Done: {len(snap.files_copied)}/{snap.installed_max} option(s) installed")
    return 0 if snap.files_skipped == 0 else 1


if __name__ == "__main__":
    args = parse_args()

    logger, log_dir = setup_logging()
    install_crash_handler(logger, log_dir)
    logger.info("Starting NAM Installer")

    if args.list_tree or args.install:
        sys.exit(run_headless(args, logger))

    from gui import main
    main(logger, installer_factory=lambda log_cb: build_installer(args, log_cb))
