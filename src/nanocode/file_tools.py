"""
File tools - read, write, edit, search and rearrange files.

Every handler takes the invocation's flat argument map and returns the
result text. Failures are raised as ToolError (or left as OSError for the
tool boundary to format); none of them decide how the error is shown.
"""

import logging
import os
import re
import shutil
from pathlib import Path

from nanocode.config import ToolConfig
from nanocode.tools import ToolArgs, ToolError, get_path, require

logger = logging.getLogger(__name__)

NONE_FOUND = "none"
EMPTY_DIRECTORY = "(empty)"


def _int_arg(args: ToolArgs, name: str, default: int | None = None) -> int | None:
    value = args.get(name)
    if value is None or value == "":
        return default
    try:
        return int(value)
    except (TypeError, ValueError) as e:
        raise ToolError(f"{name} must be an integer") from e


def _flag(args: ToolArgs, name: str) -> bool:
    value = args.get(name)
    if isinstance(value, str):
        return value.strip().lower() in ("true", "1", "yes")
    return bool(value)


class FileTools:
    """
    Filesystem handlers sharing one ToolConfig.

    ignore_patterns are directory names (.git, node_modules, ...) that
    glob, grep and list never descend into.
    """

    def __init__(self, config: ToolConfig | None = None) -> None:
        self.config = config or ToolConfig()
        self._ignored = frozenset(self.config.ignore_patterns)

    def is_ignored(self, path: Path) -> bool:
        """True if any directory component of path is an ignored name."""
        return any(part in self._ignored for part in path.parts[:-1])

    def read(self, args: ToolArgs) -> str:
        """Read a file with line numbers, optionally a window of it."""
        path = Path(get_path(args))
        offset = _int_arg(args, "offset", 0) or 0
        limit = _int_arg(args, "limit")

        size = path.stat().st_size
        if size > self.config.max_file_size:
            raise ToolError(
                f"file is {size} bytes, larger than the {self.config.max_file_size} byte limit"
            )

        lines = path.read_text(encoding="utf-8", errors="replace").split("\n")
        selected = lines[offset:offset + limit] if limit else lines[offset:]
        return "\n".join(
            f"{offset + index + 1:>4}| {line}" for index, line in enumerate(selected)
        )

    def write(self, args: ToolArgs) -> str:
        """Write content to a file, creating parent directories."""
        path = Path(get_path(args))
        content = args.get("content")
        if content is None:
            raise ToolError("content parameter is required")
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(str(content), encoding="utf-8")
        return "ok"

    def edit(self, args: ToolArgs) -> str:
        """
        Replace `old` with `new` in a file.

        Without `all`, the target must occur exactly once; the file is left
        untouched when it does not.
        """
        path = Path(get_path(args))
        old = require(args, "old")
        new = args.get("new")
        if new is None:
            raise ToolError("new parameter is required")
        old, new = str(old), str(new)
        replace_all = _flag(args, "all")

        text = path.read_text(encoding="utf-8")
        count = text.count(old)
        if count == 0:
            raise ToolError("old_string not found")
        if count > 1 and not replace_all:
            raise ToolError(f"old_string appears {count} times, use all=true")

        updated = text.replace(old, new) if replace_all else text.replace(old, new, 1)
        path.write_text(updated, encoding="utf-8")
        return "ok"

    def glob(self, args: ToolArgs) -> str:
        """Find files by glob pattern, newest first."""
        pattern = str(require(args, "pattern"))
        base = Path(str(args.get("path") or ".")).resolve()

        found: list[tuple[float, str]] = []
        for match in base.glob(pattern):
            if self.is_ignored(match.relative_to(base)) or not match.is_file():
                continue
            try:
                mtime = match.stat().st_mtime
            except OSError:
                mtime = 0.0
            found.append((mtime, str(match)))

        found.sort(key=lambda item: item[0], reverse=True)
        return "\n".join(path for _, path in found) or NONE_FOUND

    def _walk_files(self, base: Path) -> list[Path]:
        if base.is_file():
            return [base]
        files: list[Path] = []
        for root, dirs, names in os.walk(base):
            dirs[:] = sorted(d for d in dirs if d not in self._ignored)
            files.extend(Path(root) / name for name in sorted(names))
        return files

    def grep(self, args: ToolArgs) -> str:
        """Search files for a regex; hits are `file:line:text`."""
        pattern = str(require(args, "pattern"))
        base = Path(str(args.get("path") or ".")).resolve()
        try:
            regex = re.compile(pattern)
        except re.error as e:
            raise ToolError(f"invalid regex: {e}") from e

        limit = self.config.grep_limit
        hits: list[str] = []
        for file_path in self._walk_files(base):
            try:
                if file_path.stat().st_size > self.config.max_file_size:
                    continue
                lines = file_path.read_text(encoding="utf-8").split("\n")
            except (UnicodeDecodeError, OSError):
                continue

            for number, line in enumerate(lines, start=1):
                if regex.search(line):
                    hits.append(f"{file_path}:{number}:{line.rstrip()}")
                    if len(hits) >= limit:
                        logger.debug(f"grep hit limit of {limit} matches")
                        return "\n".join(hits)

        return "\n".join(hits) or NONE_FOUND

    def _list_entries(self, directory: Path, recursive: bool, prefix: str = "") -> list[str]:
        entries: list[str] = []
        for entry in sorted(directory.iterdir(), key=lambda p: p.name):
            is_dir = entry.is_dir()
            if is_dir and entry.name in self._ignored:
                continue
            entries.append(f"{prefix}{entry.name}{'/' if is_dir else ''}")
            if is_dir and recursive:
                entries.extend(self._list_entries(entry, recursive, prefix + "  "))
        return entries

    def list_dir(self, args: ToolArgs) -> str:
        """List a directory, directories suffixed with `/`."""
        path = Path(get_path(args))
        entries = self._list_entries(path, _flag(args, "recursive"))
        return "\n".join(entries) or EMPTY_DIRECTORY

    def delete(self, args: ToolArgs) -> str:
        """Delete a file, or a directory (non-empty ones only with recursive)."""
        raw = get_path(args)
        path = Path(raw)
        if path.is_dir() and not path.is_symlink():
            if _flag(args, "recursive"):
                shutil.rmtree(path)
            else:
                path.rmdir()
        else:
            path.unlink()
        return f"Deleted: {raw}"

    def move(self, args: ToolArgs) -> str:
        """Move or rename a file or directory."""
        source = str(require(args, "from"))
        destination = str(require(args, "to"))
        if not Path(source).exists():
            raise ToolError(f"source does not exist: {source}")
        shutil.move(source, destination)
        return f"Moved: {source} -> {destination}"

    def copy(self, args: ToolArgs) -> str:
        """Copy a file, or a directory tree when recursive is set."""
        source = str(require(args, "from"))
        destination = str(require(args, "to"))
        src = Path(source)
        if src.is_dir():
            if not _flag(args, "recursive"):
                raise ToolError(f"{source} is a directory, use recursive=true")
            shutil.copytree(src, destination, dirs_exist_ok=True)
        else:
            shutil.copy2(src, destination)
        return f"Copied: {source} -> {destination}"

