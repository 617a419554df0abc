"""Configuration resolution.

Turns raw command line values into the immutable :class:`Configuration` that
the whole pipeline reads from. Nothing downstream mutates it.
"""

from dataclasses import dataclass
import pathlib

from wasm_file_packager.errors import ConfigurationError


@dataclass(frozen=True, slots=True)
class Configuration:
    """Packaging run configuration.

    :ivar target: Path of the ``.data`` blob to write.
    :ivar preload_specs: Raw ``--preload-file`` values, in command line order.
    :ivar js_output: Path of the loader script, or ``None`` for stdout.
    :ivar heap_copy: Copy fetched bytes into the module heap at runtime.
    :ivar separate_metadata: Accepted for compatibility; metadata stays embedded.
    """

    target: pathlib.Path
    preload_specs: tuple[str, ...] = ()
    js_output: pathlib.Path | None = None
    heap_copy: bool = True
    separate_metadata: bool = False

    @property
    def has_preloaded(self) -> bool:
        """Whether any preload data was requested."""

        return len(self.preload_specs) > 0


def resolve_configuration(
    *,
    target: str | pathlib.Path | None,
    preload_specs: list[str] | tuple[str, ...] | None = None,
    js_output: str | pathlib.Path | None = None,
    heap_copy: bool = True,
    separate_metadata: bool = False,
) -> Configuration:
    """Resolve user-supplied options into a :class:`Configuration`.

    :param target: Target data file path.
    :param preload_specs: Preload specifications (``src`` or ``src@dst``).
    :param js_output: Optional loader script output path.
    :param heap_copy: Whether the loader copies data into the heap.
    :param separate_metadata: Whether metadata should be stored separately.
    :returns: Resolved configuration.
    :raises ConfigurationError: If the target is missing or blank.
    """

    target_path: pathlib.Path | None = _optional_path(target)
    if target_path is None:
        raise ConfigurationError("A --target data file is required.")

    specs: tuple[str, ...] = ()
    if preload_specs is not None:
        for spec in preload_specs:
            if len(spec.strip()) == 0:
                raise ConfigurationError("Empty --preload-file value.")
        specs = tuple(preload_specs)

    return Configuration(
        target=target_path,
        preload_specs=specs,
        js_output=_optional_path(js_output),
        heap_copy=heap_copy,
        separate_metadata=separate_metadata,
    )


def _optional_path(value: str | pathlib.Path | None) -> pathlib.Path | None:
    """Convert an optional CLI value to a path, treating blanks as unset.

    :param value: Raw value.
    :returns: Path, or ``None``.
    """

    if value is None:
        return None
    if isinstance(value, pathlib.Path):
        return value
    if len(value.strip()) == 0:
        return None
    return pathlib.Path(value)
