"""Package builder.

This module drives the packaging pipeline end to end:

- Resolve ``--preload-file`` specs, expand directories and map every file to
  a virtual path rooted at the working directory.
- Concatenate file contents into the ``.data`` blob, recording byte ranges.
- Render the JavaScript loader around the resulting manifest and write it,
  leaving an unchanged output file untouched.
"""

from dataclasses import dataclass
import logging
import pathlib
import sys
import time
from typing import TextIO

from wasm_file_packager import LOGGER_NAME
from wasm_file_packager.config import Configuration
from wasm_file_packager.glue import render_glue_script
from wasm_file_packager.packer import (
    Manifest,
    PackResult,
    RemotePackage,
    build_manifest,
    pack_blob,
    remote_package_for,
)
from wasm_file_packager.paths import (
    FileEntry,
    PreloadSpec,
    deduplicate,
    directory_prefixes,
    expand_entries,
    map_virtual_paths,
    resolve_preload_specs,
)


@dataclass(frozen=True, slots=True)
class PackageResult:
    """Result of a packaging run.

    :ivar plan: Final plan, with byte ranges when data was packed.
    :ivar manifest: Manifest embedded in the loader.
    :ivar script: Rendered loader script.
    :ivar total_size: Size of the data blob (0 when nothing was packed).
    :ivar script_written: Whether the loader output was (re)written.
    """

    plan: tuple[FileEntry, ...]
    manifest: Manifest
    script: str
    total_size: int
    script_written: bool


def build_package(
    config: Configuration,
    *,
    cwd: pathlib.Path | None = None,
    logger: logging.Logger | None = None,
    stdout: TextIO | None = None,
) -> PackageResult:
    """Build the data blob and loader script.

    :param config: Run configuration.
    :param cwd: Directory that becomes the virtual root (defaults to the cwd).
    :param logger: Optional logger for progress output.
    :param stdout: Stream for the loader when no ``js_output`` is configured.
    :returns: Packaging result.
    :raises PathSafetyError: If an auto-mapped path leaves the working directory.
    :raises NothingToDoError: If no files are left to package.
    """

    if logger is None:
        logger = logging.getLogger(LOGGER_NAME)

    t_total0: float = time.perf_counter()
    logger.info(f"wasm-file-packager: target={config.target}")
    logger.info(f"wasm-file-packager: js_output={config.js_output if config.js_output is not None else '<stdout>'}")
    logger.info(f"wasm-file-packager: heap_copy={config.heap_copy}")
    if config.separate_metadata is True:
        logger.warning(
            "wasm-file-packager: --separate-metadata is not supported; metadata stays embedded in the loader"
        )

    specs: tuple[PreloadSpec, ...] = resolve_preload_specs(config.preload_specs, logger=logger)
    expanded: tuple[FileEntry, ...] = expand_entries(specs, logger=logger)
    mapped: tuple[FileEntry, ...] = map_virtual_paths(expanded, cwd=cwd, logger=logger)
    mapped = _exclude_outputs(mapped, config=config, logger=logger)
    plan: tuple[FileEntry, ...] = deduplicate(mapped)
    if logger.isEnabledFor(logging.DEBUG) is True:
        logger.debug(
            f"wasm-file-packager: plan has {len(plan)} files ({len(mapped) - len(plan)} duplicates dropped)"
        )

    total_size: int = 0
    remote_package: RemotePackage | None = None
    if config.has_preloaded is True:
        t_pack0: float = time.perf_counter()
        packed: PackResult = pack_blob(plan, config.target, logger=logger)
        t_pack1: float = time.perf_counter()
        plan = packed.plan
        total_size = packed.total_size
        remote_package = remote_package_for(config.target)
        logger.info(
            f"wasm-file-packager: packed {len(plan)} files ({total_size / (1024 * 1024):.1f} MiB) "
            f"into {config.target} in {t_pack1 - t_pack0:.2f}s"
        )

    manifest: Manifest = build_manifest(plan, remote_package=remote_package)
    script: str = render_glue_script(manifest, config, directory_prefixes(plan))
    written: bool = write_output(script, config.js_output, stream=stdout)
    if config.js_output is not None:
        if written is True:
            logger.info(f"wasm-file-packager: wrote {config.js_output}")
        else:
            logger.info(f"wasm-file-packager: {config.js_output} is up to date")

    t_total1: float = time.perf_counter()
    logger.info(f"wasm-file-packager: done in {t_total1 - t_total0:.2f}s")
    return PackageResult(
        plan=plan,
        manifest=manifest,
        script=script,
        total_size=total_size,
        script_written=written,
    )


def _exclude_outputs(
    entries: tuple[FileEntry, ...],
    *,
    config: Configuration,
    logger: logging.Logger,
) -> tuple[FileEntry, ...]:
    """Drop entries that are this run's own data blob or loader.

    :param entries: Mapped entries.
    :param config: Run configuration.
    :param logger: Logger for debug output.
    :returns: Entries whose source is neither output file.
    """

    outputs: set[pathlib.Path] = {config.target.resolve()}
    if config.js_output is not None:
        outputs.add(config.js_output.resolve())

    kept: list[FileEntry] = []
    for entry in entries:
        if entry.source_path.resolve() in outputs:
            logger.debug(
                f"wasm-file-packager: skipping output file {entry.source_path} from inclusion in the virtual filesystem"
            )
            continue
        kept.append(entry)
    return tuple(kept)

def write_output(
    script: str,
    js_output: pathlib.Path | None,
    *,
    stream: TextIO | None = None,
) -> bool:
    """Write the loader script, skipping the write if the file is unchanged.

    Leaving identical output alone keeps its timestamp stable for build tools.

    :param script: Rendered loader script.
    :param js_output: Output path, or ``None`` to write to ``stream``.
    :param stream: Stream used without ``js_output`` (defaults to stdout).
    :returns: ``True`` if anything was written.
    """

    if js_output is None:
        if stream is None:
            stream = sys.stdout
        stream.write(script)
        stream.flush()
        return True

    new_bytes: bytes = script.encode("utf-8")
    if js_output.is_file() is True and js_output.read_bytes() == new_bytes:
        return False

    js_output.parent.mkdir(parents=True, exist_ok=True)
    js_output.write_bytes(new_bytes)
    return True
