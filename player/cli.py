import logging
import shutil
import time
from pathlib import Path

import click
from mutagen import File as MutagenFile
from rich.console import Console
from rich.live import Live
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from shared import config
from shared.constants import SUPPORTED_AUDIO_FORMATS
from shared.database import TrackCatalog
from shared.models import Track, PlaybackStatus

console = Console()


def _format_time(seconds: float) -> str:
    return f"{int(seconds // 60)}:{int(seconds % 60):02d}"


def read_audio_tags(path: Path) -> dict:
    """Title, artist and duration from the file's tags; empty values if unreadable."""
    audio = MutagenFile(str(path), easy=True)
    if audio is None:
        return {"title": "", "artist": "", "duration": 0}
    tags = audio.tags or {}

    def first(key):
        values = tags.get(key) or []
        return str(values[0]) if values else ""

    duration = getattr(audio.info, 'length', 0) or 0
    return {"title": first('title'), "artist": first('artist'), "duration": round(duration, 2)}


@click.group()
@click.option('--log-level', default=config.LOG_LEVEL, show_default=True,
              type=click.Choice(['DEBUG', 'INFO', 'WARNING', 'ERROR'], case_sensitive=False))
def cli(log_level):
    """🎵 FlowMusic"""
    logging.basicConfig(
        level=log_level.upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True)],
    )


@cli.command()
@click.option('--host', default=config.HOST, show_default=True)
@click.option('--port', default=config.PORT, show_default=True, type=int)
@click.option('--debug', is_flag=True)
def serve(host, port, debug):
    """Run the streaming and playback API."""
    from shared.api import start_api
    console.print(Panel.fit(
        f"[bold]{config.APP_NAME} ONLINE[/bold]\n\n"
        f"Stream: http://localhost:{port}/api/tracks/<id>/stream\n"
        f"Uploads: {config.UPLOADS_DIR}",
        border_style="green",
    ))
    start_api(host=host, port=port, debug=debug)


@cli.command(name='list')
def list_tracks():
    """List tracks in the catalog."""
    tracks = TrackCatalog().get_all_tracks()
    if not tracks:
        console.print("[yellow]Catalog is empty.[/yellow]")
        return

    table = Table(title=f"Catalog ({len(tracks)} tracks)")
    table.add_column("ID", style="cyan", no_wrap=True)
    table.add_column("Title", style="bold white")
    table.add_column("Artist", style="green")
    table.add_column("Duration", style="magenta")
    table.add_column("Plays", style="yellow", justify="right")
    for t in tracks:
        table.add_row(t.id[:8], t.title, t.artist, _format_time(t.duration), str(t.plays))
    console.print(table)


@cli.command()
@click.argument('file', type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option('--title')
@click.option('--artist')
def add(file, title, artist):
    """Copy an audio file into the uploads root and register it."""
    if file.suffix.lower() not in SUPPORTED_AUDIO_FORMATS:
        raise click.BadParameter(f"unsupported format {file.suffix}", param_hint='FILE')

    catalog = TrackCatalog()
    track_id = catalog.generate_id()
    locator = f"audio/{track_id}{file.suffix.lower()}"
    target = catalog.uploads_dir / locator
    target.parent.mkdir(parents=True, exist_ok=True)
    shutil.copy2(file, target)

    tags = read_audio_tags(target)
    track = catalog.add_track(Track(
        id=track_id,
        title=title or tags["title"] or file.stem,
        artist=artist or tags["artist"] or "Unknown Artist",
        duration=tags["duration"],
        audio_url=locator,
    ))
    console.print(f"[green]✓ Added {track.title} by {track.artist}[/green] [cyan]{track.id}[/cyan]")


@cli.command()
@click.argument('track_ids', nargs=-1, required=True)
@click.option('--shuffle', is_flag=True)
@click.option('--repeat', type=click.Choice(['none', 'all', 'one']), default='none', show_default=True)
def play(track_ids, shuffle, repeat):
    """Play tracks locally through the catalog's files."""
    try:
        from player.mpv_engine import MpvEngine
    except OSError:
        console.print(Panel.fit(
            "[red bold]Missing System Dependency: libmpv[/red bold]\n\n"
            "Please install it:\n"
            "• Ubuntu/Debian: [green]sudo apt install libmpv2[/green]\n"
            "• Fedora: [green]sudo dnf install mpv-libs[/green]\n"
            "• Arch: [green]sudo pacman -S mpv[/green]",
            border_style="red"
        ))
        return
    from player.session import PlaybackSession, default_stream_url

    catalog = TrackCatalog()
    queue = []
    for track_id in track_ids:
        track = catalog.get_track(track_id)
        if track is None:
            console.print(f"[red]Unknown track {track_id}[/red]")
            return
        queue.append(track)

    def resolve_url(track):
        # Local playback reads files directly, so it does not count as a stream play
        if track.has_direct_url:
            return default_stream_url(track)
        return str(catalog.resolve_audio_locator(track.id))

    session = PlaybackSession(MpvEngine(), url_resolver=resolve_url)
    if shuffle:
        session.toggle_shuffle()
    while session.state.repeat_mode.value != repeat:
        session.toggle_repeat()
    session.play_track(queue[0], queue)

    try:
        with Live(refresh_per_second=4, console=console) as live:
            while session.status is not PlaybackStatus.ENDED:
                state = session.state
                track = state.current_track
                if track is None:
                    break
                total = state.duration or 1
                percent = min(100, (state.position / total) * 100)

                status = Text()
                status.append(f"{_format_time(state.position)} ", style="cyan")
                status.append("━" * int(percent / 2), style="blue")
                status.append(" " * (50 - int(percent / 2)), style="gray")
                status.append(f" {_format_time(state.duration)}", style="cyan")
                live.update(Panel(status, title=f"{track.artist} - {track.title} [{state.status.value}]"))
                time.sleep(0.25)
    except KeyboardInterrupt:
        console.print("\n[yellow]Stopped.[/yellow]")
    finally:
        session.close()


if __name__ == '__main__':
    cli()
