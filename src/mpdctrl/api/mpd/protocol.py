"""MPD protocol encoding and decoding.

MPD uses a simple line-based text protocol:
- Commands are sent as plain text lines
- Responses are key-value pairs: "key: value"
- Responses end with "OK" or "ACK [error@index] {command} message"
- A greeting "OK MPD <version>" is sent once after connecting

Nothing here holds state; the pipeline feeds its receive buffer through
``decode`` and hands complete frames to the typed parsers.

Reference: https://mpd.readthedocs.io/en/stable/protocol.html
"""

from __future__ import annotations

import re
from collections.abc import Iterable

from mpdctrl.api.mpd.types import (
    MpdOutput,
    MpdResponse,
    MpdStats,
    MpdStatus,
    PlaybackOptions,
    PlayerState,
    Song,
    StoredPlaylist,
)


class MpdError(Exception):
    """MPD protocol error (an ACK response).

    Attributes:
        code: MPD error code, or 0 if the ACK line was not well formed.
        command: Name of the failing command.
        message: Server's message text.
        ack: The ACK line verbatim.
    """

    def __init__(self, code: int, command: str, message: str, ack: str = "") -> None:
        self.code = code
        self.command = command
        self.message = message
        self.ack = ack or message
        super().__init__(f"MPD error {code} in {command}: {message}")


# Pattern for ACK responses: ACK [error@command_listNum] {current_command} message_text
ACK_PATTERN = re.compile(r"ACK \[(\d+)@\d+\] \{(\w*)\} ?(.*)")

GREETING_PREFIX = "OK MPD "


def parse_ack(line: str) -> MpdError:
    """Build an MpdError from an ACK line, keeping the raw text.

    Args:
        line: The ACK line, without trailing newline.

    Returns:
        MpdError carrying the parsed code/command/message.
    """
    match = ACK_PATTERN.match(line)
    if match:
        return MpdError(int(match.group(1)), match.group(2), match.group(3), ack=line)
    return MpdError(0, "", line, ack=line)


def parse_greeting(line: str) -> str | None:
    """Return the protocol version from a greeting line, or None."""
    if line.startswith(GREETING_PREFIX):
        return line[len(GREETING_PREFIX) :].strip()
    return None


def decode(buffer: str) -> tuple[MpdResponse | None, str]:
    """Decode the first complete response in a receive buffer.

    A response is complete at a line equal to ``OK`` or starting with
    ``ACK ``. Lines without a ``:`` (the greeting, stray chatter) are
    skipped. Keys and values are stripped; repeated keys are kept in
    order.

    Args:
        buffer: Accumulated text received from the server.

    Returns:
        (response, remainder) when a terminator was found, otherwise
        (None, buffer) unchanged.
    """
    fields: list[tuple[str, str]] = []
    pos = 0
    while True:
        end = buffer.find("\n", pos)
        if end == -1:
            return None, buffer

        line = buffer[pos:end].rstrip("\r")
        pos = end + 1

        if line == "OK":
            return MpdResponse(tuple(fields), buffer[:pos]), buffer[pos:]
        if line.startswith("ACK "):
            return MpdResponse(tuple(fields), buffer[:pos], ack=line), buffer[pos:]

        key, sep, value = line.partition(":")
        if not sep:
            continue
        fields.append((key.strip(), value.strip()))


def group_records(
    fields: Iterable[tuple[str, str]],
    leading_key: str = "file",
) -> list[dict[str, str]]:
    """Regroup a flat field stream into records.

    Every occurrence of ``leading_key`` starts a new record. Fields seen
    before the first leading key do not belong to any record and are
    dropped. Keys are lowercased; within a record the first value wins.

    Args:
        fields: Ordered (key, value) pairs.
        leading_key: Key that opens a record (e.g. "file", "outputid").

    Returns:
        List of lowercase-keyed dicts.
    """
    leading = leading_key.lower()
    records: list[dict[str, str]] = []
    current: dict[str, str] | None = None

    for key, value in fields:
        name = key.lower()
        if name == leading:
            current = {}
            records.append(current)
        if current is not None:
            current.setdefault(name, value)

    return records


def _to_int(value: str | None, default: int = -1) -> int:
    if value is None or value == "":
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _to_float(value: str | None) -> float | None:
    if value is None or value == "":
        return None
    try:
        return float(value)
    except ValueError:
        return None


def _or_none(value: str | None) -> str | None:
    return value if value else None


def parse_song(data: dict[str, str]) -> Song:
    """Parse one song record into a Song.

    Args:
        data: Lowercase-keyed dict (from ``MpdResponse.to_dict`` or
            ``group_records``).

    Returns:
        Song instance.
    """
    duration = _to_float(data.get("duration"))
    if duration is None:
        duration = _to_float(data.get("time"))

    return Song(
        file=data.get("file", ""),
        artist=_or_none(data.get("artist")),
        title=_or_none(data.get("title")),
        album=_or_none(data.get("album")),
        album_artist=_or_none(data.get("albumartist")),
        duration=duration,
        elapsed=_to_float(data.get("elapsed")),
        pos=_to_int(data.get("pos")),
        id=_to_int(data.get("id")),
    )


def parse_current_song(response: MpdResponse) -> Song | None:
    """Parse a ``currentsong`` response; None when nothing is loaded."""
    data = response.to_dict()
    if not data.get("file"):
        return None
    return parse_song(data)


def parse_songs(response: MpdResponse) -> list[Song]:
    """Parse a song listing (``playlistinfo``, ``search``)."""
    return [parse_song(record) for record in group_records(response.fields, "file")]


def parse_status(response: MpdResponse) -> MpdStatus:
    """Parse a ``status`` response into MpdStatus.

    Args:
        response: Decoded status response.

    Returns:
        MpdStatus instance.
    """
    data = response.to_dict()

    elapsed = _to_float(data.get("elapsed"))
    duration = _to_float(data.get("duration"))

    # Older servers only report "time: elapsed:duration"
    time_value = data.get("time", "")
    if ":" in time_value:
        elapsed_str, duration_str = time_value.split(":", 1)
        if elapsed is None:
            elapsed = _to_float(elapsed_str)
        if duration is None:
            duration = _to_float(duration_str)

    return MpdStatus(
        state=PlayerState.from_string(data.get("state", "stop")),
        options=PlaybackOptions.from_status_fields(data),
        volume=_to_int(data.get("volume")),
        crossfade=_to_int(data.get("xfade"), 0),
        song=_to_int(data.get("song")),
        song_id=_to_int(data.get("songid")),
        elapsed=elapsed,
        duration=duration,
        playlist_length=_to_int(data.get("playlistlength"), 0),
        bitrate=_to_int(data.get("bitrate"), 0),
        audio=data.get("audio", ""),
        updating_db=_to_int(data.get("updating_db")),
        error=data.get("error", ""),
    )


def parse_outputs(response: MpdResponse) -> list[MpdOutput]:
    """Parse an ``outputs`` response."""
    return [
        MpdOutput(
            id=_to_int(record.get("outputid")),
            name=record.get("outputname", ""),
            enabled=record.get("outputenabled") == "1",
            plugin=record.get("plugin", ""),
        )
        for record in group_records(response.fields, "outputid")
    ]


def parse_stats(response: MpdResponse) -> MpdStats:
    """Parse a ``stats`` response."""
    data = response.to_dict()
    return MpdStats(
        artists=_to_int(data.get("artists"), 0),
        albums=_to_int(data.get("albums"), 0),
        songs=_to_int(data.get("songs"), 0),
        uptime=_to_int(data.get("uptime"), 0),
        playtime=_to_int(data.get("playtime"), 0),
        db_playtime=_to_int(data.get("db_playtime"), 0),
        db_update=_to_int(data.get("db_update"), 0),
    )


def parse_playlists(response: MpdResponse) -> list[StoredPlaylist]:
    """Parse a ``listplaylists`` response."""
    return [
        StoredPlaylist(name=record.get("playlist", ""), last_modified=record.get("last-modified", ""))
        for record in group_records(response.fields, "playlist")
    ]


def parse_changed(response: MpdResponse) -> list[str]:
    """Return the subsystem names reported by an ``idle`` response."""
    return response.get_all("changed")


def escape_arg(arg: str) -> str:
    """Escape an argument for MPD command.

    MPD requires arguments with spaces or special chars to be quoted.
    Inside quotes, backslash and double-quote must be escaped.

    Args:
        arg: The argument to escape.

    Returns:
        Escaped argument, quoted if necessary.
    """
    # If no special characters, return as-is
    if arg and not any(c in arg for c in ' "\'\t\n\\'):
        return arg

    # Escape backslashes and quotes, wrap in quotes
    escaped = arg.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def format_command(command: str, *args: object) -> str:
    """Format an MPD command with arguments.

    Args:
        command: The MPD command name.
        *args: Command arguments; non-strings are converted with str().

    Returns:
        Formatted command string (without newline).
    """
    if not args:
        return command
    escaped_args = [escape_arg(arg if isinstance(arg, str) else str(arg)) for arg in args]
    return f"{command} {' '.join(escaped_args)}"


def encode(command: str, *args: object) -> bytes:
    """Encode a command line for the wire, newline-terminated."""
    return f"{format_command(command, *args)}\n".encode()
