#!/usr/bin/env python3
"""
AutoPaint - paints an image on a collaborative pixel canvas
-----------------------------------------------------------
Converts an image into pixel placement requests against the canvas backend,
paced by the account's charges, and recovers automatically when the
authorization token expires.

Features:
- Quantizes the image to the colors available to the account
- Skips transparent and near-white background pixels
- Waits for charges instead of failing when the pool is empty
- Stop with ESC and resume from the same pixel
- Replays the Paint interaction to refresh an expired token

Requirements:
- Python 3.8+
- requests (HTTP client)
- pillow, numpy (image processing)
- playwright (browser for the canvas site, run "playwright install chromium")
- keyboard (ESC key detection)
"""

import sys
import argparse
import logging
import traceback

from app_logging import setup_logging, error_handler
from paint_queue import QueueState
from settings import Settings
from status import LANGUAGES
from token_capture import PlacementAnchor

logger = logging.getLogger("AutoPaint")

try:
    import keyboard  # ESC key detection
    from browser_host import BrowserHost
    from paint_session import AutoPaint
    from wplace_api import Transport
except ImportError as e:
    logger.critical(f"Failed to import required module: {e}")
    print(f"Error: Missing required dependency - {e}")
    print("Please install required packages using: pip install -e .")
    sys.exit(1)

VERSION = "1.0.0"


def parse_arguments(argv=None):
    parser = argparse.ArgumentParser(description="AutoPaint - paint an image on the collaborative canvas")

    parser.add_argument("image", nargs="?", help="Path to image file or URL")
    parser.add_argument("--config", "-c", help="Path to settings file (JSON)")
    parser.add_argument("--palette", "-l", help="Path to palette file (JSON or CSV) instead of the site's color picker")
    parser.add_argument("--resolution", "-r", type=float, help="Image scale multiplier (0.5, 1, 2)")
    parser.add_argument("--anchor", "-a", help="Placement anchor 'regionX,regionY,originX,originY' (skips position capture)")
    parser.add_argument("--language", choices=sorted(LANGUAGES), help="Status message language")
    parser.add_argument("--profile", help="Browser profile directory (keeps the login between runs)")
    parser.add_argument("--headless", action="store_true", default=None, help="Run the browser without a window")
    parser.add_argument("--no-auto-recovery", dest="auto_recovery", action="store_false", default=None,
                        help="Stop and ask for a manual paint when the token expires")
    parser.add_argument("--save-settings", action="store_true", help="Save the effective settings and continue")
    parser.add_argument("--debug", action="store_true", help="Show debug messages on the console")
    parser.add_argument("--version", action="version", version=f"AutoPaint {VERSION}")

    return parser.parse_args(argv)


@error_handler
def load_settings(args):
    """Settings file overridden by command line arguments"""
    settings = Settings(args.config)
    settings.load()
    settings.update(
        palette_file=args.palette,
        resolution=args.resolution,
        anchor=args.anchor,
        language=args.language,
        user_data_dir=args.profile,
        headless=args.headless,
        auto_recovery=args.auto_recovery,
    )
    if settings.anchor:
        # Validate early, AutoPaint parses it again
        PlacementAnchor.parse(settings.anchor)
    if args.save_settings:
        settings.save()
    return settings


def install_stop_key(app):
    """Stop painting when ESC is pressed"""
    try:
        keyboard.on_press_key("esc", lambda _: app.stop())
        return True
    except (ImportError, OSError) as e:
        # keyboard needs root on Linux
        logger.warning(f"ESC hotkey unavailable ({e}). Use Ctrl+C to stop.")
        return False


def run_cli_mode(args):
    """Run in command-line mode"""
    print("AutoPaint - CLI Mode")
    print("-" * 40)

    settings = load_settings(args)
    if settings is None:
        print("Error: Invalid settings")
        return QueueState.FAILED

    image_source = args.image or input("Enter image path or URL: ").strip()
    if not image_source:
        print("Error: No image given")
        return QueueState.FAILED

    transport = Transport()
    host = BrowserHost(transport, settings.site_url, settings.user_data_dir, bool(settings.headless))
    hotkey = False
    try:
        host.open()
        app = AutoPaint(settings, transport, host.scheduler(), host.recovery_ui())
        app.token_capture.add_listener(lambda token: host.sync_session())

        print(f"Loading image from {image_source}...")
        if app.load_image(image_source) is None:
            print("Error: Failed to load image")
            return QueueState.FAILED

        if settings.palette_file:
            if not app.load_palette(settings.palette_file):
                print("Error: Failed to load palette")
                return QueueState.FAILED
        else:
            input("\nLog in, open the color palette on the site, then press Enter...")
            if not app.set_palette(host.extract_palette()):
                print("Error: No available colors found")
                return QueueState.FAILED

        if app.anchor is None:
            print("\nPaint one pixel by hand where the top-left corner of the image should go.")
            if app.capture_anchor() is None:
                print("Error: Position not captured")
                return QueueState.FAILED

        host.sync_session()
        hotkey = install_stop_key(app)
        print("\nPainting... Press ESC to stop." if hotkey else "\nPainting... Press Ctrl+C to stop.")

        try:
            state = app.paint()
        except KeyboardInterrupt:
            app.stop()
            state = QueueState.PAUSED

        painted, total = app.progress()
        if state == QueueState.COMPLETED:
            print(f"Painting completed: {painted}/{total} pixels")
        elif state == QueueState.PAUSED:
            print(f"Painting stopped at {tuple(app.queue.context.cursor)}: {painted}/{total} pixels")
        else:
            print("Painting failed. Check the log file for more details.")
        return state

    finally:
        if hotkey:
            keyboard.unhook_all()
        host.close()


def main(argv=None):
    args = parse_arguments(argv)
    setup_logging(console_level=logging.DEBUG if args.debug else logging.INFO)
    logger.info(f"Command line arguments: {args}")

    state = run_cli_mode(args)
    logger.info("AutoPaint terminated")
    return 0 if state in (QueueState.COMPLETED, QueueState.PAUSED) else 1


if __name__ == "__main__":
    try:
        sys.exit(main())
    except KeyboardInterrupt:
        print("\nStopped by user.")
    except Exception as e:
        logger.error(f"Unexpected error: {e}")
        logger.error(traceback.format_exc())
        print(f"\nUnexpected error: {e}")
        sys.exit(1)
