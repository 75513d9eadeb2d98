import os
import sys
import json
import time
import argparse

try:
    from rich.console import Console
    from rich.table import Table
    from rich.panel import Panel
    from rich.progress import Progress, SpinnerColumn, BarColumn, TextColumn
    from rich import box
except ImportError:
    print("Error: The 'rich' library is required for the CLI but not installed.", file=sys.stderr)
    print("Please install it with: pip install wavepeek[cli]", file=sys.stderr)
    sys.exit(1)

from wavepeeklib import __version__
from wavepeeklib.config import (
    ConfigError,
    WaveformOptions,
    default_config,
    load_preset,
    merge_configs,
)
from wavepeeklib.engine import WaveformEngine
from wavepeeklib.events import EventBus
from wavepeeklib.hosts import SoundfileHost, preview_host
from wavepeeklib.log import configure_logging, trace_events
from wavepeeklib.models import GateParams, MissingFile
from wavepeeklib.reports import save_json, waveform_snapshot

console = Console()

_BARS = " ▁▂▃▄▅▆▇█"


def positive_int(value):
    ivalue = int(value)
    if ivalue <= 0:
        raise argparse.ArgumentTypeError("must be a positive integer")
    return ivalue


def parse_arguments(argv=None):
    parser = argparse.ArgumentParser(
        description="wavepeek: waveform peaks, regions and preview",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter
    )
    parser.add_argument("--version", action="version",
                        version=f"wavepeek {__version__}")
    parser.add_argument("--preset", type=str, default=None,
                        help="JSON preset file with configuration overrides")
    parser.add_argument("--index_dir", type=str, default=None,
                        help="Directory for peak index sidecars (default: next to the audio)")
    parser.add_argument("--debug", action="store_true",
                        help="Trace the peak pipeline to stderr (same as WAVEPEEK_DEBUG=1)")

    sub = parser.add_subparsers(dest="command")

    p = sub.add_parser("peaks", help="Extract and display a waveform",
                       formatter_class=argparse.ArgumentDefaultsHelpFormatter)
    p.add_argument("file", type=str, help="Audio file")
    p.add_argument("--width", type=positive_int, default=72,
                   help="Pixel width of the peak buffer")
    p.add_argument("--start", type=float, default=0.0,
                   help="Window start (seconds)")
    p.add_argument("--length", type=float, default=None,
                   help="Window length (seconds); default runs to the end")
    p.add_argument("--channels", type=positive_int, default=None,
                   help="Channels to extract; default uses the file's")
    p.add_argument("--amplify_quiet", type=float, default=None,
                   help="Extra gain factor for quiet material (>1 enables)")
    p.add_argument("--linear", action="store_true",
                   help="Disable logarithmic gain compression")
    p.add_argument("--json", type=str, default=None,
                   help="Write a JSON snapshot to this path")

    p = sub.add_parser("index", help="Build missing peak index sidecars")
    p.add_argument("files", nargs="+", help="Audio files")
    p.add_argument("--force", action="store_true",
                   help="Rebuild even when a sidecar exists")

    p = sub.add_parser("regions", help="Detect regions with the RMS gate",
                       formatter_class=argparse.ArgumentDefaultsHelpFormatter)
    p.add_argument("file", type=str, help="Audio file")
    p.add_argument("--open_db", type=float, default=-20.0,
                   help="Gate open threshold (dBFS)")
    p.add_argument("--close_db", type=float, default=-30.0,
                   help="Gate close threshold (dBFS)")
    p.add_argument("--min_length_ms", type=float, default=100.0,
                   help="Minimum region length (ms)")
    p.add_argument("--start_offset_ms", type=float, default=0.0,
                   help="Move region starts earlier (ms)")
    p.add_argument("--end_offset_ms", type=float, default=0.0,
                   help="Move region ends later (ms)")
    p.add_argument("--split_count", type=positive_int, default=None,
                   help="Split into N equal regions instead of detecting")
    p.add_argument("--split_time", type=float, default=None,
                   help="Split into fixed-duration regions (seconds) instead of detecting")
    p.add_argument("--json", type=str, default=None,
                   help="Write the region records to this path")

    p = sub.add_parser("play", help="Audition a window of a file",
                       formatter_class=argparse.ArgumentDefaultsHelpFormatter)
    p.add_argument("file", type=str, help="Audio file")
    p.add_argument("--start", type=float, default=0.0,
                   help="Window start (seconds)")
    p.add_argument("--length", type=float, default=None,
                   help="Window length (seconds); default runs to the end")
    p.add_argument("--at", type=float, default=0.0,
                   help="Start position relative to the window (seconds)")
    p.add_argument("--volume", type=float, default=None,
                   help="Preview volume (0-2)")
    p.add_argument("--fps", type=positive_int, default=30,
                   help="Cursor updates per second")

    argv = sys.argv[1:] if argv is None else argv
    if not argv:
        parser.print_help(sys.stderr)
        sys.exit(1)

    args = parser.parse_args(argv)
    if args.command is None:
        parser.print_help(sys.stderr)
        sys.exit(1)
    return args


def build_config(args):
    config = default_config()
    if args.preset:
        config = merge_configs(config, load_preset(args.preset))
    return config


def text_waveform(data):
    """One line of block characters for channel 0."""
    line = []
    for lo, hi in zip(data.min, data.max):
        amp = min(1.0, (abs(float(hi)) + abs(float(lo))) / 2.0)
        line.append(_BARS[int(round(amp * (len(_BARS) - 1)))])
    return "".join(line)


def cmd_peaks(args, engine, event_bus):
    notes = []
    event_bus.subscribe("index.rebuild", lambda **d: notes.append("peak index rebuilt"))
    event_bus.subscribe("extract.mono_fallback", lambda **d: notes.append("mono fallback"))
    event_bus.subscribe("waveform.placeholder", lambda **d: notes.append(f"placeholder: {d['reason']}"))

    overrides = {
        "start_offset": args.start,
        "display_length": args.length,
        "channel_count": args.channels,
    }
    if args.amplify_quiet is not None:
        overrides["amplify_quiet"] = args.amplify_quiet
    if args.linear:
        overrides["use_log_scale"] = False
    options = WaveformOptions.from_config(engine.config, **overrides)

    data = engine.get_waveform(args.file, args.width, options)

    console.print(Panel.fit(
        f"[bold]{os.path.basename(args.file)}[/]\n"
        f"Window: [cyan]{data.start_offset:.3f}s + {data.length:.3f}s[/] | "
        f"[cyan]{data.sample_rate} Hz[/] | [cyan]{data.channel_count} ch[/]\n"
        f"Width: [cyan]{data.width} px[/]"
        + ("\n[yellow]Placeholder[/]" if data.is_placeholder else ""),
        title="Waveform"
    ))

    table = Table(box=box.ROUNDED, title="Channels")
    table.add_column("Ch", justify="right")
    table.add_column("Min", justify="right")
    table.add_column("Max", justify="right")
    table.add_column("Mean env", justify="right", style="dim")
    for i, ch in enumerate(data.channels, start=1):
        table.add_row(
            str(i),
            f"{float(ch.min.min()):+.3f}",
            f"{float(ch.max.max()):+.3f}",
            f"{float(ch.rms.mean()):.3f}",
        )
    console.print(table)
    console.print(f"[green]{text_waveform(data)}[/]")
    for n in notes:
        console.print(f"  [yellow]⚠ {n}[/]")

    if args.json:
        snapshot = waveform_snapshot(args.file, data, engine.regions.regions(args.file))
        save_json(snapshot, args.json)
        console.print(f"\n[dim]Snapshot saved to: {args.json}[/]")
    return 0


def cmd_index(args, engine, event_bus):
    files = [f for f in args.files if os.path.isfile(f)]
    for f in args.files:
        if f not in files:
            console.print(f"[red]Not found:[/] {f}")

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        TextColumn("{task.completed}/{task.total}"),
        console=console,
    ) as progress:
        task_id = progress.add_task("[cyan]Indexing...", total=len(files))
        built = 0
        for f in files:
            if args.force:
                built += int(engine.regenerate_index(f))
            else:
                built += engine.generate_indexes([f])
            progress.advance(task_id)

    console.print(f"Built [bold green]{built}[/] of {len(files)} peak indexes.")
    return 0


def cmd_regions(args, engine, event_bus):
    if args.split_count is not None:
        regions = engine.split_regions_by_count(args.file, args.split_count)
        title = f"Split into {args.split_count}"
    elif args.split_time is not None:
        regions = engine.split_regions_by_time(args.file, args.split_time)
        title = f"Split every {args.split_time:g}s"
    else:
        params = GateParams(
            open_threshold_db=args.open_db,
            close_threshold_db=args.close_db,
            min_length_ms=args.min_length_ms,
            start_offset_ms=args.start_offset_ms,
            end_offset_ms=args.end_offset_ms,
        )
        regions = engine.auto_detect_regions(args.file, params=params)
        title = "Gate detection"

    if regions is None:
        console.print(f"[bold red]Error:[/] cannot read {args.file}")
        return 1

    table = Table(box=box.ROUNDED, title=title)
    table.add_column("#", justify="right", style="dim")
    table.add_column("Name", style="cyan")
    table.add_column("Start", justify="right")
    table.add_column("End", justify="right")
    table.add_column("Length", justify="right", style="bold green")
    for i, r in enumerate(regions, start=1):
        table.add_row(str(i), r.name, f"{r.start_pos:.3f}s",
                      f"{r.end_pos:.3f}s", f"{r.length:.3f}s")
    console.print(table)

    if args.json:
        with open(args.json, "w", encoding="utf-8") as f:
            json.dump(engine.regions.export_regions(args.file), f, indent=4)
        console.print(f"\n[dim]Regions saved to: {args.json}[/]")
    return 0


def cmd_play(args, engine, event_bus):
    player = engine.player
    if args.volume is not None:
        player.set_volume(args.volume)

    try:
        source = engine.probe.probe(args.file)
    except MissingFile as e:
        console.print(f"[bold red]Error:[/] {e}")
        return 1
    start = max(0.0, args.start)
    length = args.length if args.length is not None else source.duration - start

    if not player.start(args.file, start, length, args.at):
        console.print(f"[bold red]Error:[/] cannot preview {args.file}")
        return 1

    interval = 1.0 / args.fps
    with Progress(
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        TextColumn("{task.fields[pos]}"),
        console=console,
    ) as progress:
        task_id = progress.add_task("[cyan]Playing", total=max(length, 1e-6), pos="")
        try:
            while player.is_playing:
                pos = player.tick()
                if pos is not None:
                    progress.update(task_id, completed=pos - start,
                                    pos=f"{pos:.2f}s")
                time.sleep(interval)
        except KeyboardInterrupt:
            player.stop()
    return 0


COMMANDS = {
    "peaks": cmd_peaks,
    "index": cmd_index,
    "regions": cmd_regions,
    "play": cmd_play,
}


def main(argv=None):
    args = parse_arguments(argv)
    configure_logging(args.debug)

    try:
        config = build_config(args)
        event_bus = EventBus()
        trace_events(event_bus)
        engine = WaveformEngine(
            SoundfileHost(index_dir=args.index_dir),
            preview_host=preview_host() if args.command == "play" else None,
            config=config,
            event_bus=event_bus,
        )
    except ConfigError as e:
        console.print(f"[bold red]Error:[/] {e}")
        return 2

    try:
        return COMMANDS[args.command](args, engine, event_bus)
    finally:
        engine.cleanup()


if __name__ == "__main__":
    sys.exit(main())
