"""Command line interface for wasm-file-packager."""

import argparse
import logging
import pathlib
import sys

from wasm_file_packager import LOGGER_NAME
from wasm_file_packager.builder import build_package
from wasm_file_packager.config import Configuration, resolve_configuration
from wasm_file_packager.errors import PackagerError


_PRELOAD_HELP: str = (
    "Specify a file to preload before running the compiled code asynchronously. "
    "The path is relative to the current directory at compile time. "
    "If a directory is passed here, its entire contents will be embedded. "
    "Use SRC@DST to choose the virtual path; write @@ for a literal @. "
    "Preloaded files are stored in the --target data file, which must be served "
    "next to the generated loader."
)

_NO_HEAP_COPY_HELP: str = (
    "If specified, the preloaded filesystem is not copied inside the module HEAP, "
    "but kept in a separate typed array outside it. "
    "The default is to embed the VFS inside the HEAP, so that mmap()ing files in it is a no-op. "
    "Passing this flag optimizes for fread() usage, omitting it optimizes for mmap() usage."
)

_SEPARATE_METADATA_HELP: str = (
    "Store package metadata separately. Only applicable when preloading and --js-output is given. "
    "Currently accepted but ignored."
)


def _configure_logging(*, verbose: int, quiet: int) -> logging.Logger:
    """Configure the wasm-file-packager logger.

    :param verbose: Verbosity count (0+).
    :param quiet: Quietness count (0+).
    :returns: Configured logger.
    """

    level: int = logging.INFO
    if quiet >= 2:
        level = logging.ERROR
    elif quiet >= 1:
        level = logging.WARNING
    elif verbose >= 1:
        level = logging.DEBUG

    logger: logging.Logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level)
    logger.propagate = False

    handler: logging.Handler = logging.StreamHandler(stream=sys.stderr)
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter("%(message)s"))

    logger.handlers.clear()
    logger.addHandler(handler)
    return logger


def _build_parser() -> argparse.ArgumentParser:
    parser: argparse.ArgumentParser = argparse.ArgumentParser(
        prog="wasm-file-packager",
        description=(
            "Pack files into a .data blob plus a JavaScript loader that mounts them "
            "in a WebAssembly module's virtual filesystem."
        ),
    )
    parser.add_argument(
        "-t",
        "--target",
        type=str,
        default=None,
        help="Target data filename.",
    )
    parser.add_argument(
        "-p",
        "--preload-file",
        "--preload",
        dest="preload_specs",
        action="extend",
        nargs="+",
        default=[],
        metavar="SPEC",
        help=_PRELOAD_HELP,
    )
    parser.add_argument(
        "-j",
        "--js-output",
        type=pathlib.Path,
        default=None,
        help="Write the loader to this file. If not specified, standard output is used.",
    )
    parser.add_argument(
        "-n",
        "--no-heap-copy",
        dest="heap_copy",
        action="store_false",
        help=_NO_HEAP_COPY_HELP,
    )
    parser.add_argument(
        "-s",
        "--separate-metadata",
        action="store_true",
        help=_SEPARATE_METADATA_HELP,
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help="Enable verbose logging. Pass multiple times for more detail.",
    )
    parser.add_argument(
        "-q",
        "--quiet",
        action="count",
        default=0,
        help="Reduce logging. Pass multiple times to suppress more output.",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    """Run the wasm-file-packager CLI.

    :param argv: Optional argv list (excluding program name).
    :returns: Exit code.
    """

    parser: argparse.ArgumentParser = _build_parser()
    ns = parser.parse_args(argv)

    if ns.target is None or len(ns.target.strip()) == 0:
        # Nothing can be written without a target; show usage and leave quietly.
        parser.print_help(file=sys.stdout)
        return 0

    logger: logging.Logger = _configure_logging(verbose=ns.verbose, quiet=ns.quiet)
    try:
        config: Configuration = resolve_configuration(
            target=ns.target,
            preload_specs=ns.preload_specs,
            js_output=ns.js_output,
            heap_copy=ns.heap_copy,
            separate_metadata=ns.separate_metadata,
        )
        build_package(config, logger=logger)
    except PackagerError as e:
        logger.error(str(e))
        return 1
    return 0
