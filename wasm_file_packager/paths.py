"""Preload path handling.

This module turns raw ``--preload-file`` values into the ordered package plan:

- ``src@dst`` parsing, with ``@@`` as an escaped literal ``@``.
- Recursive directory expansion that skips hidden files and prunes hidden
  directories.
- Mapping of destinations onto rooted, ``/``-separated virtual paths.
- First-wins deduplication and derivation of the directories to create.

Every stage takes a tuple of frozen entries and returns a new tuple.
"""

from dataclasses import dataclass, replace
import logging
import os
import pathlib
import posixpath
import stat

from wasm_file_packager import LOGGER_NAME
from wasm_file_packager.errors import NothingToDoError, PathSafetyError


AUDIO_SUFFIXES: frozenset[str] = frozenset({".ogg", ".wav", ".mp3"})

_SEPARATOR: str = "/"
_AT_SENTINEL: str = "\x00"


@dataclass(frozen=True, slots=True)
class PreloadSpec:
    """A parsed preload specification.

    :ivar source: Source path on the host.
    :ivar destination: Requested destination path.
    :ivar explicit: ``True`` if the destination came from ``src@dst``.
    """

    source: str
    destination: str
    explicit: bool


@dataclass(frozen=True, slots=True)
class FileEntry:
    """A single file headed for the virtual filesystem.

    :ivar source_path: File on the host.
    :ivar virtual_path: Destination path (rooted and ``/``-separated once mapped).
    :ivar explicit_destination: Destination is not rewritten against the working
        directory: it was given with ``src@dst``, or has already been mapped.
    :ivar byte_range: ``(start, end)`` offsets in the data blob, once packed.
    """

    source_path: pathlib.Path
    virtual_path: str
    explicit_destination: bool
    byte_range: tuple[int, int] | None = None

    @property
    def is_audio(self) -> bool:
        return self.virtual_path[-4:] in AUDIO_SUFFIXES


def parse_preload_spec(spec: str) -> PreloadSpec:
    """Split a preload specification into source and destination.

    :param spec: Raw value, e.g. ``assets@/static`` or ``mail@@host.txt``.
    :returns: Parsed spec. No filesystem access is performed.
    """

    escaped: str = spec.replace("@@", _AT_SENTINEL)
    at_position: int = escaped.find("@")
    if at_position < 0:
        path: str = escaped.replace(_AT_SENTINEL, "@")
        return PreloadSpec(source=path, destination=path, explicit=False)

    return PreloadSpec(
        source=escaped[0:at_position].replace(_AT_SENTINEL, "@"),
        destination=escaped[at_position + 1 :].replace(_AT_SENTINEL, "@"),
        explicit=True,
    )


def resolve_preload_specs(
    specs: tuple[str, ...] | list[str],
    *,
    logger: logging.Logger | None = None,
) -> tuple[PreloadSpec, ...]:
    """Parse preload specs and drop the ones whose source does not exist.

    :param specs: Raw preload values.
    :param logger: Optional logger for warnings.
    :returns: Parsed specs with an existing source, in input order.
    """

    if logger is None:
        logger = logging.getLogger(LOGGER_NAME)

    resolved: list[PreloadSpec] = []
    for raw in specs:
        parsed: PreloadSpec = parse_preload_spec(raw)
        if os.path.exists(parsed.source) is False:
            logger.warning(f"Warning: {raw} does not exist, ignoring.")
            continue
        resolved.append(parsed)
    return tuple(resolved)


def is_hidden(path: pathlib.Path) -> bool:
    """Return whether the platform treats ``path`` as hidden.

    Dot-prefixed names are hidden everywhere; Windows and BSD/macOS file
    attributes are honored as well.

    :param path: Path to check.
    :returns: ``True`` if the entry should be skipped.
    """

    name: str = path.name
    if name not in {"", ".", ".."} and name.startswith(".") is True:
        return True

    try:
        st: os.stat_result = path.stat()
    except OSError:
        return False

    attributes: int = getattr(st, "st_file_attributes", 0)
    if attributes & stat.FILE_ATTRIBUTE_HIDDEN:
        return True
    flags: int = getattr(st, "st_flags", 0)
    if flags & stat.UF_HIDDEN:
        return True
    return False


def expand_entries(
    specs: tuple[PreloadSpec, ...],
    *,
    logger: logging.Logger | None = None,
) -> tuple[FileEntry, ...]:
    """Expand preload specs into one entry per file.

    :param specs: Specs with existing sources.
    :param logger: Optional logger for debug output.
    :returns: File entries, destinations not yet normalized.
    """

    if logger is None:
        logger = logging.getLogger(LOGGER_NAME)

    entries: list[FileEntry] = []
    for spec in specs:
        source: pathlib.Path = pathlib.Path(spec.source)
        if is_hidden(source) is True:
            logger.debug(f"wasm-file-packager: skipping hidden path {source}")
            continue
        if source.is_dir() is True:
            entries.extend(_walk_directory(spec=spec, root=source, logger=logger))
            continue
        entries.append(
            FileEntry(
                source_path=source,
                virtual_path=spec.destination,
                explicit_destination=spec.explicit,
            )
        )
    return tuple(entries)


def _walk_directory(
    *,
    spec: PreloadSpec,
    root: pathlib.Path,
    logger: logging.Logger,
) -> list[FileEntry]:
    """Walk a directory tree, pruning hidden entries.

    :param spec: Spec that named the directory.
    :param root: Directory to walk.
    :param logger: Logger for debug output.
    :returns: Entries for every regular, non-hidden file below ``root``.
    """

    dst_root: str = spec.destination.rstrip(_SEPARATOR + os.sep)
    entries: list[FileEntry] = []

    for root_str, dirs, files in os.walk(root, topdown=True):
        root_path: pathlib.Path = pathlib.Path(root_str)

        keep_dirs: list[str] = []
        for d in sorted(dirs):
            if is_hidden(root_path / d) is True:
                logger.debug(
                    f"wasm-file-packager: skipping directory {root_path / d} from inclusion in the virtual filesystem"
                )
                continue
            keep_dirs.append(d)
        dirs[:] = keep_dirs

        for name in sorted(files):
            src_path: pathlib.Path = root_path / name
            if is_hidden(src_path) is True:
                logger.debug(
                    f"wasm-file-packager: skipping file {src_path} from inclusion in the virtual filesystem"
                )
                continue
            if src_path.is_file() is False:
                continue

            rel: str = src_path.relative_to(root).as_posix()
            entries.append(
                FileEntry(
                    source_path=src_path,
                    virtual_path=f"{dst_root}{_SEPARATOR}{rel}",
                    explicit_destination=spec.explicit,
                )
            )

    return entries


def normalize_virtual_path(destination: str, source_path: pathlib.Path) -> str:
    """Normalize a destination into a rooted, ``/``-separated virtual path.

    Applying this to its own output returns the output unchanged.

    :param destination: Destination path.
    :param source_path: Source file, used when ``destination`` names a directory.
    :returns: Virtual path.
    """

    path: str = destination.replace(os.sep, _SEPARATOR)
    if path.endswith(_SEPARATOR) is True:
        path = path + source_path.name
    if path.startswith(_SEPARATOR) is False:
        path = _SEPARATOR + path
    return path


def map_virtual_paths(
    entries: tuple[FileEntry, ...],
    *,
    cwd: pathlib.Path | str | None = None,
    logger: logging.Logger | None = None,
) -> tuple[FileEntry, ...]:
    """Map destinations onto virtual paths rooted at the working directory.

    Mapped entries are marked explicit, so mapping them again is a no-op.

    :param entries: Expanded entries.
    :param cwd: Directory that becomes the virtual root (defaults to the cwd).
    :param logger: Optional logger.
    :returns: Entries with normalized virtual paths.
    :raises PathSafetyError: If an auto-mapped destination leaves ``cwd``.
    """

    if logger is None:
        logger = logging.getLogger(LOGGER_NAME)
    root: str = os.path.abspath(os.fspath(cwd) if cwd is not None else os.getcwd())

    mapped: list[FileEntry] = []
    for entry in entries:
        destination: str = entry.virtual_path
        if entry.explicit_destination is False:
            destination = _relative_to_root(destination, root=root, logger=logger)

        virtual_path: str = normalize_virtual_path(destination, entry.source_path)
        if logger.isEnabledFor(logging.DEBUG) is True:
            logger.debug(
                f"wasm-file-packager: packaging file {entry.source_path} to VFS in path {virtual_path}"
            )
        mapped.append(replace(entry, virtual_path=virtual_path, explicit_destination=True))
    return tuple(mapped)


def _relative_to_root(path: str, *, root: str, logger: logging.Logger) -> str:
    """Rewrite an auto-mapped destination relative to the virtual root.

    :param path: Destination as given on the command line.
    :param root: Absolute virtual root directory.
    :param logger: Logger for the absolute-path notice.
    :returns: Destination relative to ``root``.
    :raises PathSafetyError: If ``path`` is not below ``root``.
    """

    abs_path: str = os.path.abspath(os.path.join(root, path))
    try:
        inside: bool = abs_path != root and os.path.commonpath([abs_path, root]) == root
    except ValueError:
        # Different drives on Windows.
        inside = False
    if inside is False:
        raise PathSafetyError(
            f'Error: Embedding "{path}" which is outside the current directory "{root}". '
            "This is invalid since the current directory becomes the root that the generated code will see"
        )

    rel: str = os.path.relpath(abs_path, root)
    if os.path.isabs(path) is True:
        logger.warning(
            f'Warning: Embedding an absolute file/directory name "{path}" to the virtual filesystem. '
            f'The file will be made available in the relative path "{rel}". '
            "You can use the explicit syntax --preload-file srcpath@dstpath to explicitly specify "
            "the target location the absolute source path should be directed to."
        )
    return rel


def deduplicate(entries: tuple[FileEntry, ...]) -> tuple[FileEntry, ...]:
    """Keep the first entry for every virtual path.

    :param entries: Mapped entries.
    :returns: The package plan.
    :raises NothingToDoError: If no entries remain.
    """

    seen: set[str] = set()
    plan: list[FileEntry] = []
    for entry in entries:
        if entry.virtual_path in seen:
            continue
        seen.add(entry.virtual_path)
        plan.append(entry)

    if len(plan) == 0:
        raise NothingToDoError()
    return tuple(plan)


def directory_prefixes(plan: tuple[FileEntry, ...]) -> tuple[str, ...]:
    """List the directories needed to hold every planned file.

    :param plan: Package plan.
    :returns: Unique directory paths, shallowest first, discovery order per depth.
    """

    discovered: list[str] = []
    seen: set[str] = set()
    for entry in plan:
        dirname: str = posixpath.dirname(entry.virtual_path).lstrip(_SEPARATOR)
        if len(dirname) == 0:
            continue
        parts: list[str] = [p for p in dirname.split(_SEPARATOR) if len(p) > 0]
        for i in range(len(parts)):
            prefix: str = _SEPARATOR + _SEPARATOR.join(parts[0 : i + 1])
            if prefix in seen:
                continue
            seen.add(prefix)
            discovered.append(prefix)

    # sorted() is stable, so discovery order survives within a depth.
    return tuple(sorted(discovered, key=lambda p: p.count(_SEPARATOR)))
