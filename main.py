import argparse
import logging
import sys

from gamelib.library import create_plugin
from gamelib.models import Source
from gamelib.settings import SettingsManager


def setup_logging(verbose: bool = False):
    formatter = logging.Formatter('%(asctime)s - %(levelname)s - %(message)s')

    # Configure root logger
    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG if verbose else logging.INFO)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)
    root_logger.addHandler(handler)

    # File Handler
    try:
        file_handler = logging.FileHandler("importer.log")
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)
    except OSError as e:
        # Fallback if we can't write to file (e.g. permissions)
        print(f"Failed to setup file logging: {e}", file=sys.stderr)


def format_game(game) -> str:
    state = "installed" if game.is_installed else "library"
    line = f"{game.game_id}\t{game.name}\t{state}"
    if game.install_directory:
        line += f"\t{game.install_directory}"
    if game.outdated:
        line += "\t(update available)"
    return line


def main(argv=None):
    """
    Application entry point.
    """
    parser = argparse.ArgumentParser(description="List Steam or Origin games found on this machine and account.")
    parser.add_argument("--platform", choices=["steam", "origin"], default="steam")
    parser.add_argument("--settings", default=None, help="Settings file (default: settings.json)")
    parser.add_argument("--installed-only", action="store_true", help="Skip the account library")
    parser.add_argument("--verbose", action="store_true")
    args = parser.parse_args(argv)

    setup_logging(args.verbose)

    settings = SettingsManager(args.settings)
    if args.installed_only:
        settings.override("connect_account", False)

    source = Source.STEAM if args.platform == "steam" else Source.ORIGIN
    plugin = create_plugin(source, settings)
    games = plugin.get_games()

    for game in games:
        print(format_game(game))

    if plugin.last_error is not None:
        print(str(plugin.last_error), file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
