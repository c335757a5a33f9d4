"""Tests for the directory listing protocol."""
import os
from datetime import datetime, timedelta

import pytest

from adb_panel.core.listing import (
    apply_symlink_types,
    build_listing_command,
    listing_complete,
    parse_listing_response,
    parse_ls_datetime,
    parse_ls_line,
    parse_symlink_record,
    quote_path,
)
from adb_panel.core.models import DirectoryEntry, EntryKind


# ==================== parse_ls_line ====================

@pytest.mark.parametrize("line", [
    "total 8",
    "ls: ./secret: Permission denied",
    "d????????? ? ? ? ? ? ? broken_dir",
    "-rw-r--r-- 1 root root ? 2024-01-15 09:30 odd",
    "garbage",
    "",
    "ls: cannot access 'gone.tmp': No such file or directory",
    "ls: ./x: Input/output error on this one row",
])
def test_skipped_lines(line):
    assert parse_ls_line(line) is None


def test_symlink_line():
    entry = parse_ls_line("lrwxrwxrwx 1 root root 4 Jan 1 00:00 mylink -> target")
    assert entry.name == "mylink"
    assert entry.target == "target"
    assert entry.kind == EntryKind.SYMLINK_TO_FILE
    assert entry.is_symlink


def test_name_with_spaces_is_preserved():
    entry = parse_ls_line("-rw-r--r-- 1 root root 123 Jan 1 00:00 My File.txt")
    assert entry.name == "My File.txt"
    assert entry.kind == EntryKind.FILE
    assert entry.size == 123
    assert entry.target is None


def test_iso_date_row_fields():
    entry = parse_ls_line("drwxrwx--x 4 system sdcard_rw 3488 2024-01-15 09:30 Android")
    assert entry.name == "Android"
    assert entry.kind == EntryKind.DIRECTORY
    assert entry.links == 4
    assert entry.owner == "system"
    assert entry.group == "sdcard_rw"
    assert entry.size == 3488
    assert entry.mtime == datetime(2024, 1, 15, 9, 30)
    assert entry.permissions == "drwxrwx--x"


def test_symlink_absolute_target():
    entry = parse_ls_line("lrwxrwxrwx 1 root root 10 2024-01-15 09:30 sdcard -> /storage/self/primary")
    assert entry.name == "sdcard"
    assert entry.target == "/storage/self/primary"


def test_non_symlink_keeps_arrow_in_name():
    entry = parse_ls_line("-rw-r--r-- 1 root root 5 2024-01-15 09:30 a -> b")
    assert entry.name == "a -> b"
    assert entry.target is None


def test_dot_entries_dropped():
    assert parse_ls_line("drwxr-xr-x 2 root root 4096 2024-01-15 09:30 .") is None
    assert parse_ls_line("drwxr-xr-x 2 root root 4096 2024-01-15 09:30 ..") is None


def test_bad_size_and_links_fall_back():
    entry = parse_ls_line("-rw-r--r-- x root root big 2024-01-15 09:30 file")
    assert entry.size == 0
    assert entry.links == 1


def test_device_node_row():
    entry = parse_ls_line("crw-rw-rw- 1 root root 1, 3 2024-01-15 09:30 null")
    assert entry.name == "null"
    assert entry.size == 0
    assert entry.mtime == datetime(2024, 1, 15, 9, 30)


def test_crlf_line_endings():
    entry = parse_ls_line("-rw-r--r-- 1 root root 7 2024-01-15 09:30 notes.txt\r")
    assert entry.name == "notes.txt"


# ==================== parse_ls_datetime ====================

def test_iso_date():
    ts = parse_ls_datetime("2024-01-15", "09:30")
    assert (ts.year, ts.month, ts.day, ts.hour, ts.minute) == (2024, 1, 15, 9, 30)


def test_short_date_uses_current_year():
    ts = parse_ls_datetime("Jan 15", "09:30")
    assert ts.year == datetime.now().year
    assert (ts.month, ts.day, ts.hour, ts.minute) == (1, 15, 9, 30)


def test_short_date_with_year_instead_of_time():
    assert parse_ls_datetime("Mar 3", "2019") == datetime(2019, 3, 3)


def test_seconds_are_tolerated():
    assert parse_ls_datetime("2024-01-15", "09:30:59.123") == datetime(2024, 1, 15, 9, 30)


@pytest.mark.parametrize("date,time_str", [
    ("garbage", "??"),
    ("2024-01-15", "noon"),
    ("Foo 15", "09:30"),
    ("2024-02-30", "09:30"),
    ("2024-01-15", "25:00"),
])
def test_unparseable_falls_back_to_now(date, time_str):
    before = datetime.now()
    ts = parse_ls_datetime(date, time_str)
    assert before - timedelta(seconds=1) <= ts <= datetime.now() + timedelta(seconds=1)


def test_fallback_uses_supplied_now():
    now = datetime(2030, 6, 1, 12, 0)
    assert parse_ls_datetime("garbage", "??", now=now) == now
    assert parse_ls_datetime("Jan 2", "03:04", now=now) == datetime(2030, 1, 2, 3, 4)


# ==================== symlink records ====================

def test_symlink_record_splits_on_last_arrow():
    assert parse_symlink_record("a->b->D") == ("a->b", "D")
    assert parse_symlink_record("link->F") == ("link", "F")
    assert parse_symlink_record("link->X") is None
    assert parse_symlink_record("no arrow") is None


def test_apply_symlink_types():
    entries = [
        DirectoryEntry(name="d", kind=EntryKind.SYMLINK_TO_FILE),
        DirectoryEntry(name="f", kind=EntryKind.SYMLINK_TO_FILE),
        DirectoryEntry(name="b", kind=EntryKind.SYMLINK_TO_FILE),
        DirectoryEntry(name="plain", kind=EntryKind.FILE),
    ]
    apply_symlink_types(entries, [("d", "D"), ("f", "F"), ("b", "B"), ("missing", "D")])

    kinds = {e.name: e.kind for e in entries}
    assert kinds == {
        "d": EntryKind.SYMLINK_TO_DIRECTORY,
        "f": EntryKind.SYMLINK_TO_FILE,
        "b": EntryKind.BROKEN_SYMLINK,
        "plain": EntryKind.FILE,
    }
    assert entries[0].is_directory
    assert not entries[1].is_directory


# ==================== parse_listing_response ====================

def test_composite_response():
    """End-to-end parse of a captured response."""
    raw = "\n".join([
        "/sdcard",
        "total 8",
        "drwxr-xr-x 2 root root 4096 Jan 1 00:00 Download",
        "lrwxrwxrwx 1 root root 10 Jan 1 00:00 link -> Download",
        "<<<SEP>>>",
        "link->D",
    ])

    listing = parse_listing_response(raw)

    assert listing.path == "/sdcard"
    assert [e.name for e in listing.entries] == ["Download", "link"]
    download, link = listing.entries
    assert download.kind == EntryKind.DIRECTORY
    assert link.kind == EntryKind.SYMLINK_TO_DIRECTORY
    assert link.is_symlink and link.is_directory
    assert link.target == "Download"


def test_response_with_crlf_and_end_token():
    raw = "/data/local/tmp\r\n-rw-r--r-- 1 shell shell 3 2024-01-15 09:30 x\r\n<<<SEP>>>\r\n<<<END>>>\r\n"
    listing = parse_listing_response(raw)
    assert listing.path == "/data/local/tmp"
    assert [e.name for e in listing.entries] == ["x"]


def test_stderr_lines_between_rows_are_dropped():
    raw = "\n".join([
        "/sdcard",
        "total 8",
        "ls: cannot access 'gone.tmp': No such file or directory",
        "-rw-r--r-- 1 root root 3 2024-01-15 09:30 real.txt",
        "<<<SEP>>>",
        "<<<END>>>",
    ])
    assert [e.name for e in parse_listing_response(raw).entries] == ["real.txt"]


def test_mode_string_suffixes_accepted():
    assert parse_ls_line("drwxr-xr-x. 2 root root 4096 2024-01-15 09:30 selinux").name == "selinux"
    assert parse_ls_line("-rw-rw-r--+ 1 u g 1 2024-01-15 09:30 acl").name == "acl"


def test_empty_directory_response():
    raw = "/sdcard/empty\ntotal 0\n<<<SEP>>>\n<<<END>>>"
    listing = parse_listing_response(raw)
    assert listing.path == "/sdcard/empty"
    assert listing.entries == []
    assert listing_complete(raw)


def test_missing_end_token_is_incomplete():
    assert not listing_complete("/sdcard\ntotal 0\n<<<SEP>>>")
    assert not listing_complete("")


def test_empty_response_uses_fallback_path():
    assert parse_listing_response("", fallback_path="/sdcard").path == "/sdcard"


def test_custom_tokens():
    raw = "/x\nlrwxrwxrwx 1 root root 1 2024-01-15 09:30 l -> d\n<<<!>>>\nl:->D"
    listing = parse_listing_response(raw, separator="<<<!>>>", arrow=":->")
    assert listing.entries[0].kind == EntryKind.SYMLINK_TO_DIRECTORY


# ==================== build_listing_command ====================

def test_build_listing_command_shape():
    cmd = build_listing_command("/sdcard/My Dir")
    assert cmd.startswith('cd "/sdcard/My Dir" 2>/dev/null; pwd; ls -la; echo "<<<SEP>>>";')
    assert '[ -L "$f" ]' in cmd
    assert 'echo "$f->D"' in cmd
    assert 'echo "$f->F"' in cmd
    assert 'echo "$f->B"' in cmd
    assert cmd.endswith('echo "<<<END>>>"')


def test_quote_path_escapes_shell_specials():
    assert quote_path('a"b$c`d\\e') == '"a\\"b\\$c\\`d\\\\e"'


# ==================== against a real shell ====================

def test_listing_command_runs_in_sh(sh_session, tmp_path):
    """Run the composite command in a local sh and parse what comes back."""
    (tmp_path / "sub").mkdir()
    (tmp_path / "file.txt").write_text("hello")
    (tmp_path / "My File.txt").write_text("x")
    os.symlink("sub", tmp_path / "dirlink")
    os.symlink("file.txt", tmp_path / "filelink")
    os.symlink("missing", tmp_path / "broken")
    os.symlink("sub", tmp_path / ".hiddenlink")

    session = sh_session()
    assert session.start()
    raw = session.execute(build_listing_command(str(tmp_path)))

    assert listing_complete(raw)
    listing = parse_listing_response(raw)
    kinds = {e.name: e.kind for e in listing.entries}

    assert listing.path == str(tmp_path)
    assert kinds == {
        "sub": EntryKind.DIRECTORY,
        "file.txt": EntryKind.FILE,
        "My File.txt": EntryKind.FILE,
        "dirlink": EntryKind.SYMLINK_TO_DIRECTORY,
        "filelink": EntryKind.SYMLINK_TO_FILE,
        "broken": EntryKind.BROKEN_SYMLINK,
        ".hiddenlink": EntryKind.SYMLINK_TO_DIRECTORY,
    }
    by_name = {e.name: e for e in listing.entries}
    assert by_name["file.txt"].size == 5
    assert by_name["dirlink"].target == "sub"


def test_failed_cd_lists_previous_directory(sh_session, tmp_path):
    session = sh_session()
    assert session.start()
    session.execute(f"cd '{tmp_path}'")

    raw = session.execute(build_listing_command(str(tmp_path / "does-not-exist")))

    assert parse_listing_response(raw).path == str(tmp_path)
