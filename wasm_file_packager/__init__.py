"""wasm-file-packager.

A small build utility that packs files and directories into a single ``.data``
blob plus a JavaScript loader that rebuilds them as a virtual filesystem inside
a WebAssembly module at startup.
"""

__all__: list[str] = ["LOGGER_NAME", "__version__"]

__version__: str = "0.1.0"

LOGGER_NAME: str = "wasm_file_packager"
"""Name of the package logger every module reports through."""
