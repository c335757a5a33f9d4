"""
Bulk directory listing over the persistent shell.

One composite command does cd + pwd + `ls -la` + symlink classification, so
a listing costs a single round trip. The response has three parts:

    <pwd output>
    <ls -la rows>
    <<<SEP>>>
    <name>-><D|F|B>      one per symlink
    <<<END>>>

Android ships toolbox, toybox, busybox or coreutils `ls`, and they disagree
on date columns, so the row parser accepts both `YYYY-MM-DD HH:MM` and
`MMM DD HH:MM` (and `MMM DD YYYY` for old files).
"""
import re
from datetime import datetime
from typing import Iterable, List, Optional, Tuple

import structlog

from .config import LISTING_SEPARATOR, LISTING_ARROW, LISTING_END
from .models import DirectoryEntry, EntryKind, ListingResponse

logger = structlog.get_logger()

_MONTHS = {
    name: number for number, name in enumerate(
        ["jan", "feb", "mar", "apr", "may", "jun",
         "jul", "aug", "sep", "oct", "nov", "dec"], start=1)
}

_FIELD = re.compile(r"\s*(\S+)")
_TIME = re.compile(r"^(\d{1,2}):(\d{2})(?::\d{2}(?:\.\d+)?)?$")
_YEAR = re.compile(r"^\d{4}$")
_ISO_DATE = re.compile(r"^(\d{4})-(\d{1,2})-(\d{1,2})$")
_SHORT_DATE = re.compile(r"^([A-Za-z]{3})\s+(\d{1,2})$")
# Mode string: type char, nine permission chars, optional ACL/SELinux suffix
_PERMS = re.compile(r"^[-dlcbpsD][-rwxsStTlL]{9}[.+@]?$")

_SYMLINK_KINDS = {
    "D": EntryKind.SYMLINK_TO_DIRECTORY,
    "F": EntryKind.SYMLINK_TO_FILE,
    "B": EntryKind.BROKEN_SYMLINK,
}

SymlinkRecord = Tuple[str, str]


def quote_path(path: str) -> str:
    """Double-quote a path for sh, escaping the characters that stay live inside quotes."""
    escaped = re.sub(r'([\\"$`])', r"\\\1", path)
    return f'"{escaped}"'


def build_listing_command(path: str) -> str:
    """
    Composite listing command for `path`.

    cd errors are discarded: if the cd fails, pwd reports the directory the
    shell was already in and the listing describes that one. The trailing
    end token is printed even for an empty directory.
    """
    arrow = LISTING_ARROW
    return (
        f"cd {quote_path(path)} 2>/dev/null; pwd; ls -la; echo \"{LISTING_SEPARATOR}\"; "
        f"for f in * .*; do [ -L \"$f\" ] && "
        f"([ -d \"$f\" ] && echo \"$f{arrow}D\" || "
        f"([ -f \"$f\" ] && echo \"$f{arrow}F\" || echo \"$f{arrow}B\")); "
        f"done; echo \"{LISTING_END}\""
    )


def _take_field(line: str, pos: int) -> Tuple[Optional[str], int]:
    match = _FIELD.match(line, pos)
    if not match:
        return None, pos
    return match.group(1), match.end()


def parse_ls_datetime(date: str, time_str: str, now: Optional[datetime] = None) -> datetime:
    """
    Timestamp for an `ls -la` date/time pair, as local time.

    `date` is `YYYY-MM-DD` or `MMM DD` (current year assumed). `time_str` is
    `HH:MM`, or a year for files coreutils considers old. Anything that does
    not parse yields `now`, so one odd row never fails a listing.
    """
    now = now or datetime.now()
    date = date.strip()
    time_str = time_str.strip()

    year = None
    hour = minute = 0
    if _YEAR.match(time_str):
        year = int(time_str)
    else:
        time_match = _TIME.match(time_str)
        if not time_match:
            logger.debug("ls_time_unparsed", date=date, time=time_str)
            return now
        hour, minute = int(time_match.group(1)), int(time_match.group(2))

    try:
        iso = _ISO_DATE.match(date)
        if iso:
            return datetime(int(iso.group(1)), int(iso.group(2)), int(iso.group(3)), hour, minute)
        short = _SHORT_DATE.match(date)
        if short and short.group(1).lower() in _MONTHS:
            return datetime(
                year or now.year, _MONTHS[short.group(1).lower()], int(short.group(2)),
                hour, minute
            )
    except ValueError:
        # Out-of-range parts, e.g. Feb 30 or 25:00
        logger.debug("ls_date_out_of_range", date=date, time=time_str)
        return now

    logger.debug("ls_date_unparsed", date=date, time=time_str)
    return now


def parse_ls_line(line: str, now: Optional[datetime] = None) -> Optional[DirectoryEntry]:
    """
    Parse one `ls -la` row. Returns None for rows that describe nothing:
    the `total` header, permission errors, toolbox `?` placeholders,
    stderr lines without a mode string, malformed rows, and `.`/`..`.
    """
    line = line.rstrip("\r\n")
    if "Permission denied" in line or line.startswith("total") or "?" in line:
        return None

    fields = []
    pos = 0
    for _ in range(5):
        field, pos = _take_field(line, pos)
        if field is None:
            return None
        fields.append(field)
    perms, links, owner, group, size = fields
    if not _PERMS.match(perms):
        return None

    # Device nodes print "major, minor" where the size goes
    if size.endswith(","):
        minor, pos = _take_field(line, pos)
        if minor is None:
            return None
        size = ""

    date, pos = _take_field(line, pos)
    if date is None:
        return None
    if date.lower() in _MONTHS:
        day, pos = _take_field(line, pos)
        if day is None:
            return None
        date = f"{date} {day}"

    time_str, pos = _take_field(line, pos)
    if time_str is None:
        return None

    rest = line[pos:]
    if rest[:1] in (" ", "\t"):
        rest = rest[1:]

    name, target = rest, None
    if perms.startswith("l"):
        head, sep, tail = rest.partition(" -> ")
        if sep:
            name, target = head, tail

    if not name or name in (".", ".."):
        return None

    if perms.startswith("d"):
        kind = EntryKind.DIRECTORY
    elif perms.startswith("l"):
        # refined by apply_symlink_types
        kind = EntryKind.SYMLINK_TO_FILE
    else:
        kind = EntryKind.FILE

    try:
        size_value = max(int(size), 0)
    except ValueError:
        size_value = 0
    try:
        link_count = max(int(links), 0)
    except ValueError:
        link_count = 1

    return DirectoryEntry(
        name=name,
        kind=kind,
        size=size_value,
        owner=owner,
        group=group,
        links=link_count,
        mtime=parse_ls_datetime(date, time_str, now),
        target=target,
        permissions=perms,
    )


def parse_symlink_record(line: str, arrow: str = LISTING_ARROW) -> Optional[SymlinkRecord]:
    """Split `name<arrow>X` on the last arrow, so names containing the arrow survive."""
    name, sep, code = line.rstrip("\r\n").rpartition(arrow)
    if not sep or not name or code not in _SYMLINK_KINDS:
        return None
    return name, code


def apply_symlink_types(entries: List[DirectoryEntry], records: Iterable[SymlinkRecord]) -> List[DirectoryEntry]:
    """Set each named entry's kind from its classification record (D, F or B)."""
    by_name = {entry.name: entry for entry in entries}
    for name, code in records:
        entry = by_name.get(name)
        if entry is not None:
            entry.kind = _SYMLINK_KINDS[code]
    return entries


def parse_listing_response(
    raw: str,
    fallback_path: str = "",
    separator: str = LISTING_SEPARATOR,
    arrow: str = LISTING_ARROW,
    now: Optional[datetime] = None,
) -> ListingResponse:
    """Parse the composite command's output into the new cwd and its entries."""
    path = ""
    entries: List[DirectoryEntry] = []
    records: List[SymlinkRecord] = []
    after_separator = False

    for line in raw.splitlines():
        line = line.rstrip("\r")
        if not line.strip():
            continue
        if line.strip() == separator:
            after_separator = True
            continue
        if line.strip() == LISTING_END:
            continue

        if after_separator:
            record = parse_symlink_record(line, arrow)
            if record:
                records.append(record)
        elif not path:
            path = line
        else:
            entry = parse_ls_line(line, now)
            if entry:
                entries.append(entry)

    apply_symlink_types(entries, records)
    return ListingResponse(path=path or fallback_path, entries=entries)


def listing_complete(raw: str) -> bool:
    """True when the response carries the end token, i.e. the whole command ran."""
    return any(line.strip() == LISTING_END for line in raw.splitlines())
