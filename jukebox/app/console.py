"""
Console front end for the Jukebox playback engine.

Reads one command per line from stdin and drives a single guild's
PlaylistController, standing in for a chat platform's command layer.

Commands:
    play <query|url|path>   add to the playlist (starts if idle)
    next | back             move through the playlist
    list                    show the playlist
    clear                   stop and empty the playlist
    del <index>             delete a playlist entry
    repeat [none|one|all]   set or show the repeat mode
    save|load|show <name>   saved playlists
    vol [level]             set (0-2) or show the volume
    pause | resume          pause or resume playback
    leave                   leave the output
    np                      what's playing now
    quit                    exit
"""

import logging
import signal
import sys
from typing import Callable, Dict, List, Optional

from jukebox.app.jukebox import Jukebox
from jukebox.app.log_file import attach_log_file
from jukebox.config import load_config
from jukebox.playback.controller import PlaylistController, RequestScope
from jukebox.playback.errors import CommandResult

logger = logging.getLogger(__name__)

CONSOLE_GUILD = "console"
CONSOLE_CHANNEL = "console"
CONSOLE_USER = "console"

USAGE = (
    "commands: play <query|url|path>, next, back, list, clear, del <index>, "
    "repeat [none|one|all], save <name>, load <name>, show <name>, vol [level], "
    "pause, resume, leave, np, quit"
)


class ConsoleCommands:
    """Maps console lines onto PlaylistController calls."""

    def __init__(self, controller: PlaylistController, scope: RequestScope):
        self.controller = controller
        self.scope = scope
        self._handlers: Dict[str, Callable[[str], CommandResult]] = {
            "play": lambda arg: controller.play_query(scope, arg),
            "next": lambda arg: controller.next(),
            "back": lambda arg: controller.back(),
            "list": lambda arg: controller.list(),
            "clear": lambda arg: controller.clear(),
            "del": lambda arg: controller.delete_at(arg),
            "repeat": lambda arg: controller.set_repeat(arg or None),
            "save": lambda arg: controller.save(arg, scope),
            "load": lambda arg: controller.load(arg, scope),
            "show": lambda arg: controller.show(arg, scope),
            "vol": lambda arg: controller.set_volume(arg) if arg else controller.volume(),
            "pause": lambda arg: controller.pause(),
            "resume": lambda arg: controller.resume(),
            "leave": lambda arg: controller.leave_output(),
            "np": lambda arg: controller.now_playing(),
        }

    def handle_line(self, line: str) -> Optional[str]:
        """
        Run one console line.

        Returns:
            Text to print, or None when the line asks to quit
        """
        line = line.strip()
        if not line:
            return ""
        verb, _, arg = line.partition(" ")
        verb = verb.lower()
        if verb in ("quit", "exit"):
            return None

        handler = self._handlers.get(verb)
        if handler is None:
            return USAGE
        result = handler(arg.strip())
        if result.ok:
            return result.message
        return f"error: {result.message}"


def main(args: Optional[List[str]] = None) -> None:
    """
    Console entry point.

    Loads configuration, sets up logging, and runs the command loop until
    quit, end of input, SIGINT or SIGTERM.
    """
    config = load_config()

    logging.basicConfig(
        level=getattr(logging, config.log_level.upper()),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )
    attach_log_file(logging.getLogger("jukebox"), config.log_file)

    logger.info("=" * 70)
    logger.info("Jukebox - Starting console")
    logger.info("=" * 70)

    jukebox = Jukebox.from_config(config)
    controller = jukebox.controller_for(CONSOLE_GUILD)
    scope = RequestScope(
        guild_id=CONSOLE_GUILD,
        channel_id=CONSOLE_CHANNEL,
        user_id=CONSOLE_USER,
        voice_target=config.output_target,
    )
    commands = ConsoleCommands(controller, scope)

    shutdown_initiated = False

    def shutdown() -> None:
        nonlocal shutdown_initiated
        if shutdown_initiated:
            logger.debug("[CONSOLE] Shutdown already in progress")
            return
        shutdown_initiated = True
        try:
            jukebox.shutdown()
        except Exception as e:
            logger.error(f"[CONSOLE] Error during shutdown: {e}", exc_info=True)

    def signal_handler(sig, frame):
        signal_name = "SIGTERM" if sig == signal.SIGTERM else "SIGINT"
        logger.info(f"[CONSOLE] Received {signal_name} signal - shutting down")
        shutdown()
        sys.exit(0)

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    print(USAGE, flush=True)
    try:
        for line in sys.stdin:
            output = commands.handle_line(line)
            if output is None:
                break
            if output:
                print(output, flush=True)
    finally:
        shutdown()


if __name__ == "__main__":
    main()
