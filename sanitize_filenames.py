#!/usr/bin/env -S uv run --script

# /// script
# requires-python = ">=3.12"
# dependencies = [
#     "click",
#     "colorama",
# ]
# ///

import os
import re
from collections import Counter
from dataclasses import dataclass
from enum import Enum
from typing import NamedTuple

import click
from colorama import Fore, Style, deinit, init

DEFAULT_REPLACEMENT = "_"

# Characters swapped for the replacement character in a base name
UNSAFE_CHARS = re.compile(r"""[\s.,":?'#;&*\\()\[\]]""")

# (input, expected) pairs checked by --test and by the test suite
SELF_CHECK_CASES = [
    ("×", "x"),
    ("Hello", "Hello"),
    ("hello.wav", "hello.wav"),
    ("Hello World", "Hello_World"),
    ("Hello.World", "Hello.World"),
    ("hello world.wav", "hello_world.wav"),
    ("Hello.world.wav", "Hello_world.wav"),
    ("hello? + world.wav", "hello_+_world.wav"),
    ("Bart_banner_14_5_×_2_5_in.png", "Bart_banner_14_5_x_2_5_in.png"),
    ("hello? &&*()#@+ world.wav", "hello_@+_world.wav"),
    ("August Gold Q&A Audio.m4a.wav", "August_Gold_Q_A_Audio_m4a.wav"),
    ("nested/dir/file name.txt", "nested/dir/file_name.txt"),
    ("/absolute/path/Hello World.txt", "/absolute/path/Hello_World.txt"),
    ("relative/./path/Hello World.txt", "relative/./path/Hello_World.txt"),
]


class RenameAction(Enum):
    """What happened to a single path."""

    UNCHANGED = "unchanged"
    MISSING_SOURCE = "missing source"
    TARGET_EXISTS = "target exists"
    APPLIED = "applied"
    WOULD_APPLY = "would apply"

    @property
    def is_skip(self) -> bool:
        return self in (
            RenameAction.UNCHANGED,
            RenameAction.MISSING_SOURCE,
            RenameAction.TARGET_EXISTS,
        )


class RenameResult(NamedTuple):
    action: RenameAction
    path: str


@dataclass(frozen=True)
class SanitizeOptions:
    recursive: bool = False
    dry_run: bool = False
    replacement: str = DEFAULT_REPLACEMENT


class RenameReport:
    """Tally of rename outcomes for one run"""

    def __init__(self):
        self.counts = Counter()

    def record(self, action: RenameAction) -> None:
        self.counts[action] += 1

    @property
    def renamed(self) -> int:
        return self.counts[RenameAction.APPLIED] + self.counts[RenameAction.WOULD_APPLY]

    @property
    def skipped(self) -> int:
        return sum(count for action, count in self.counts.items() if action.is_skip)

    def summary(self, dry_run: bool = False) -> str:
        if dry_run:
            return f"Dry run complete: would rename {self.renamed} paths, {self.skipped} skipped."
        return f"Renamed {self.renamed} paths, skipped {self.skipped}."


def extract_extension(path: str, name: str, is_dir=os.path.isdir) -> str:
    """Return the extension of name, or an empty string if it has none.

    Directories and hidden names never have an extension, and both sides of
    the final dot must be non-empty.
    """
    if name.startswith(".") or is_dir(path):
        return ""
    stem, dot, extension = name.rpartition(".")
    if dot and stem and extension:
        return extension
    return ""


def sanitize(path: str, replacement: str = DEFAULT_REPLACEMENT, is_dir=os.path.isdir) -> str:
    """
    Return path with its final component rewritten to contain only safe
    characters. The directory prefix is passed through untouched.

    The extension of a regular file is split off first and re-attached
    unmodified, so "Hello.world.wav" becomes "Hello_world.wav" rather than
    "Hello_world_wav".
    """
    trimmed = path.rstrip(os.sep) or path
    name = os.path.basename(trimmed)
    if name in ("", os.curdir, os.pardir):
        return path
    # Prefix is kept exactly as spelled, separators included
    directory = trimmed[: len(trimmed) - len(name)]

    extension = extract_extension(trimmed, name, is_dir=is_dir)

    # Literal replacement, so a backslash is not read as a regex escape
    result = name.replace("×", "x")
    result = UNSAFE_CHARS.sub(lambda _: replacement, result)
    result = re.sub(f"{re.escape(replacement)}{{2,}}", lambda _: replacement, result)

    if extension:
        # The dot before the extension was replaced above
        separator = f"{replacement}{extension}"
        if result.endswith(separator):
            result = result[: -len(separator)]

    result = directory + result
    if extension:
        result = f"{result}.{extension}"
    return result


def rename_path(old: str, new: str, dry_run: bool = False) -> RenameResult:
    """Rename old to new unless that would be a no-op or clobber something."""
    # Names that are not valid UTF-8 carry surrogate escapes; echo them safely
    shown_old = click.format_filename(old)
    shown_new = click.format_filename(new)

    if os.path.normpath(old) == os.path.normpath(new):
        click.echo(f"Old name and new name are the same for '{shown_old}'.  Not changing")
        return RenameResult(RenameAction.UNCHANGED, old)
    if not os.path.lexists(old):
        click.echo(f"Old file name '{shown_old}' does not exist.  Skipping")
        return RenameResult(RenameAction.MISSING_SOURCE, old)
    if os.path.lexists(new):
        click.echo(f"New file name '{shown_new}' already exists!  Skipping")
        return RenameResult(RenameAction.TARGET_EXISTS, old)

    if dry_run:
        click.echo(f"Would change '{shown_old}' to '{shown_new}'")
        return RenameResult(RenameAction.WOULD_APPLY, new)

    click.echo(f"Changing '{shown_old}' to '{shown_new}'")
    os.rename(old, new)
    return RenameResult(RenameAction.APPLIED, new)


def sanitize_single(path: str, options: SanitizeOptions, report: RenameReport | None = None) -> str:
    """Sanitize one path in place and return its final name."""
    result = rename_path(path, sanitize(path, options.replacement), dry_run=options.dry_run)
    if report is not None:
        report.record(result.action)
    return result.path


def is_real_directory(path: str) -> bool:
    return os.path.isdir(path) and not os.path.islink(path)


def sanitize_tree(path: str, options: SanitizeOptions, report: RenameReport | None = None) -> str:
    """
    Sanitize a directory tree bottom-up and return the root's final name.

    Children are renamed before their parent so their paths stay valid.
    Symlinks are renamed like files and never followed. Anything that is not
    a real directory is handled as a single path.
    """
    if not is_real_directory(path):
        return sanitize_single(path, options, report)

    for entry in sorted(os.listdir(path)):
        child = os.path.join(path, entry)
        if is_real_directory(child):
            sanitize_tree(child, options, report)
        else:
            sanitize_single(child, options, report)

    return sanitize_single(path, options, report)


def process_path(path: str, options: SanitizeOptions, report: RenameReport | None = None) -> str:
    if options.recursive:
        return sanitize_tree(path, options, report)
    return sanitize_single(path, options, report)


def run_self_checks() -> bool:
    """Print a PASS/FAIL line per known case and return True if all passed."""
    init(autoreset=True)
    passed = True
    try:
        for source, expected in SELF_CHECK_CASES:
            actual = sanitize(source, is_dir=lambda _: False)
            if actual == expected:
                click.echo(f"{Fore.GREEN}[PASS]{Style.RESET_ALL}: Input of '{source}' matched '{expected}'")
            else:
                passed = False
                click.echo(
                    f"{Fore.RED}[FAIL]{Style.RESET_ALL}: Input of '{source}' expected '{expected}' but got '{actual}'"
                )
    finally:
        # Restore the streams colorama wrapped
        deinit()
    return passed


def validate_replacement(ctx, param, value):
    """Ensure the replacement is one character and not a path separator"""
    if not value:
        raise click.BadParameter("Replacement character cannot be empty")
    if len(value) != 1:
        raise click.BadParameter("Replacement character must be a single character")
    if value in (os.sep, os.altsep, "/"):
        raise click.BadParameter(f"Replacement character '{value}' is not allowed")
    return value


class SanitizeCommand(click.Command):
    """Command that exits with status 1 on usage errors."""

    def parse_args(self, ctx, args):
        try:
            return super().parse_args(ctx, args)
        except click.UsageError as e:
            e.exit_code = 1
            raise


@click.command(
    cls=SanitizeCommand,
    context_settings={"help_option_names": ["-h", "--help"]},
    epilog="""\b
Examples:
  sanitize_filenames "My File.txt"
  sanitize_filenames --dry-run "My File.txt"
  sanitize_filenames --recursive --replacement - ~/Downloads
  sanitize_filenames -- "-weird name.mp3"
""",
)
@click.argument("paths", nargs=-1)
@click.option(
    "--recursive",
    "-r",
    is_flag=True,
    help="Recursively sanitize directories and their contents",
)
@click.option(
    "--dry-run",
    "-n",
    is_flag=True,
    help="Show actions without renaming files",
)
@click.option(
    "--replacement",
    "-c",
    default=DEFAULT_REPLACEMENT,
    metavar="CHAR",
    callback=validate_replacement,
    help="Replacement character to use (default: _)",
)
@click.option(
    "--test",
    "-t",
    "self_test",
    is_flag=True,
    help="Run built-in checks and exit",
)
@click.pass_context
def sanitize_filenames(ctx, paths, recursive, dry_run, replacement, self_test):
    """
    Rename PATHS so their names contain only safe characters.

    Whitespace and characters such as ? & # ( ) are replaced with the
    replacement character, and repeated replacements are collapsed into one.
    Use '--' to stop option parsing when filenames begin with '-'.
    """
    if self_test:
        ctx.exit(0 if run_self_checks() else 1)

    targets = [p for p in paths if p not in (os.curdir, os.pardir)]
    if not targets:
        click.echo("No files or directories specified", err=True)
        click.echo(ctx.get_help(), err=True)
        ctx.exit(1)

    options = SanitizeOptions(recursive=recursive, dry_run=dry_run, replacement=replacement)
    report = RenameReport()

    for target in targets:
        try:
            process_path(target, options, report)
        except OSError as e:
            raise click.ClickException(str(e)) from e

    click.echo(f"\n{report.summary(dry_run=dry_run)}")


if __name__ == "__main__":
    sanitize_filenames()
