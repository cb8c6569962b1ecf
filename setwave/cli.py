"""setwave CLI — stream section waveforms from Ableton Live to a setlist display.

Usage:
    setwave run                                  # follow Live until Ctrl-C
    setwave run --display-host 10.0.0.5 -v       # remote display, debug logs
    setwave check                                # verify the OSC connection
    setwave snapshot set.json                    # render a saved arrangement
    setwave snapshot set.json --send             # ...and push it to the display
"""

import argparse
import logging
import sys
import time

from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from .config import Settings

logger = logging.getLogger("setwave")


def _setup_logging(level):
    logging.basicConfig(
        level=level.upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(rich_tracebacks=True, show_path=False)],
    )


def _parse_args(argv=None):
    p = argparse.ArgumentParser(
        prog="setwave",
        description="Stream section waveform thumbnails from Ableton Live over OSC",
    )
    p.add_argument("-v", "--verbose", action="store_true", help="Debug logging")

    live = argparse.ArgumentParser(add_help=False)
    live.add_argument("--live-host", help="AbletonOSC host")
    live.add_argument("--live-port", type=int, help="AbletonOSC port")
    live.add_argument("--client-port", type=int, help="Local port for replies")

    display = argparse.ArgumentParser(add_help=False)
    display.add_argument("--display-host", help="Setlist display host")
    display.add_argument("--display-port", type=int, help="Setlist display port")
    display.add_argument("--resolution", type=int, help="Columns per section")
    display.add_argument(
        "--send-interval", type=float, help="Seconds between consecutive sends"
    )

    sub = p.add_subparsers(dest="command", required=True)

    run = sub.add_parser("run", parents=[live, display], help="Follow Live")
    run.add_argument("--dynamics-prefix", help="Name prefix of the audio track")
    run.add_argument("--sections-prefix", help="Name prefix of the sections track")
    run.add_argument("--workers", type=int, help="Parallel audio decodes")

    sub.add_parser("check", parents=[live], help="Verify the AbletonOSC connection")

    snap = sub.add_parser(
        "snapshot", parents=[display], help="Render a JSON arrangement snapshot"
    )
    snap.add_argument("path", help="Snapshot JSON file")
    snap.add_argument("--send", action="store_true", help="Send to the display")

    return p.parse_args(argv)


def _settings(args):
    settings = Settings.from_env()
    overrides = {
        name: getattr(args, name, None)
        for name in (
            "live_host",
            "live_port",
            "client_port",
            "display_host",
            "display_port",
            "resolution",
            "send_interval",
            "dynamics_prefix",
            "sections_prefix",
            "workers",
        )
    }
    if args.verbose:
        overrides["log_level"] = "DEBUG"
    return settings.override(**overrides).validate()


def _transport(settings):
    from .transport import EnvelopeTransport

    return EnvelopeTransport(
        settings.display_host,
        settings.display_port,
        interval=settings.send_interval,
    )


def cmd_run(settings, console):
    from .engine import WaveformEngine
    from .session import LiveSession, TrackNotFoundError

    try:
        session = LiveSession(
            hostname=settings.live_host,
            port=settings.live_port,
            client_port=settings.client_port,
        )
        transport = _transport(settings)
    except OSError as e:
        console.print(f"[red]Could not open OSC sockets:[/red] {e}")
        return 1

    engine = WaveformEngine(
        session,
        transport,
        resolution=settings.resolution,
        workers=settings.workers,
        dynamics_prefix=settings.dynamics_prefix,
        sections_prefix=settings.sections_prefix,
    )
    try:
        session.ping()
    except TimeoutError as e:
        console.print(f"[red]Ableton Live is not answering:[/red] {e}")
        console.print("Is AbletonOSC enabled as a Control Surface?")
        session.close()
        transport.close()
        return 1
    try:
        engine.start()
    except TimeoutError as e:
        console.print(f"[red]Live answered /live/test but not:[/red] {e}")
        console.print(
            "Is the setwave AbletonOSC extension installed? Run `setwave check`."
        )
        session.close()
        transport.close()
        return 1
    except TrackNotFoundError as e:
        console.print(f"[red]{e.args[0]}[/red]")
        session.close()
        transport.close()
        return 1

    console.print(
        f"Streaming to {settings.display_host}:{settings.display_port} "
        f"(resolution {settings.resolution}). Ctrl-C to stop."
    )
    try:
        while True:
            time.sleep(1.0)
    except KeyboardInterrupt:
        pass
    finally:
        engine.stop()
        transport.close()
        session.close()
    return 0


def cmd_check(settings, console):
    from .session import LiveSession, TrackNotFoundError, find_track

    session = LiveSession(
        hostname=settings.live_host,
        port=settings.live_port,
        client_port=settings.client_port,
    )
    try:
        session.ping()
        names = session.track_names()
        cues = session.cue_points()
        position = session.song_time()
        try:
            dynamics = find_track(names, settings.dynamics_prefix)
        except TrackNotFoundError:
            extensions = None
        else:
            extensions = session.check_extensions(dynamics)
    except TimeoutError as e:
        console.print(f"[red]FAIL[/red] {e}")
        return 1
    finally:
        session.close()

    console.print(f"[green]OK[/green] AbletonOSC at {settings.live_host}:{settings.live_port}")
    console.print(f"Playhead: {position:.2f} beats")

    tracks = Table("#", "Track", "Role")
    for i, name in enumerate(names):
        role = ""
        if name.startswith(settings.dynamics_prefix):
            role = "dynamics"
        elif name.startswith(settings.sections_prefix):
            role = "sections"
        tracks.add_row(str(i), name, role)
    console.print(tracks)

    cue_table = Table("Cue", "Beat")
    for cue in cues:
        cue_table.add_row(cue.name, f"{cue.time:g}")
    console.print(cue_table)

    if extensions is None:
        console.print(
            f"[yellow]No {settings.dynamics_prefix!r} track; "
            "extension endpoints not checked[/yellow]"
        )
        return 1
    ext_table = Table("Extension endpoint", "Status")
    for address, answered in extensions.items():
        status = "[green]ok[/green]" if answered else "[red]missing[/red]"
        ext_table.add_row(address, status)
    console.print(ext_table)
    return 0 if all(extensions.values()) else 1


def cmd_snapshot(settings, console, path, send):
    from .audio import AudioDecodeError, AudioStore
    from .engine import WaveformEngine
    from .snapshot import load_snapshot, snapshot_session
    from .stub import RecordingTransport

    snapshot = load_snapshot(path)
    store = AudioStore()
    try:
        for clip in snapshot.get("clips", []):
            if not clip.get("muted", False):
                store.load(clip["file_path"])
    except AudioDecodeError as e:
        console.print(f"[red]{e}[/red]")
        return 1

    session = snapshot_session(snapshot)
    recorder = RecordingTransport()
    engine = WaveformEngine(
        session, recorder, store=store, resolution=settings.resolution
    )
    engine.start(background=False)
    engine.process_pending()

    sections = recorder.sections()
    if not sections:
        console.print("No sections to render at this playhead position.")
        return 0

    r = settings.resolution
    for index, values in sections:
        peak = max(values[:r])
        trough = min(values[r:])
        console.print(f"section {index:3d}  max {peak:4d}  min {trough:4d}")
        logger.debug("section %d payload: %s", index, values)

    if send:
        transport = _transport(settings)
        try:
            transport.clear()
            for index, values in sections:
                transport.send_section(index, values)
        finally:
            transport.close()
        console.print(f"Sent {len(sections)} sections")
    return 0


def main(argv=None):
    args = _parse_args(argv)
    try:
        settings = _settings(args)
    except ValueError as e:
        print(f"setwave: {e}", file=sys.stderr)
        return 2
    _setup_logging(settings.log_level)
    console = Console()

    if args.command == "run":
        return cmd_run(settings, console)
    if args.command == "check":
        return cmd_check(settings, console)
    return cmd_snapshot(settings, console, args.path, args.send)


if __name__ == "__main__":
    sys.exit(main())
