"""Data blob packing and manifest assembly.

The blob is a raw concatenation of file contents in plan order with no
header, padding or checksum. Byte ranges are recorded only in the manifest.
"""

from dataclasses import dataclass, replace
import json
import logging
import pathlib
import uuid

from wasm_file_packager import LOGGER_NAME
from wasm_file_packager.paths import FileEntry


LARGE_BUNDLE_THRESHOLD: int = 256 * 1024 * 1024


@dataclass(frozen=True, slots=True)
class PackResult:
    """Outcome of packing the data blob.

    :ivar plan: Plan entries with byte ranges filled in.
    :ivar total_size: Number of bytes written.
    """

    plan: tuple[FileEntry, ...]
    total_size: int


@dataclass(frozen=True, slots=True)
class ManifestFile:
    filename: str
    start: int
    end: int
    audio: int


@dataclass(frozen=True, slots=True)
class RemotePackage:
    """Details the loader needs to fetch and validate the data blob.

    :ivar size: Size of the blob on disk.
    :ivar uuid: Identifier regenerated on every build.
    """

    size: int
    uuid: str


@dataclass(frozen=True, slots=True)
class Manifest:
    """Metadata handed to ``loadPackage`` in the generated loader.

    :ivar files: One record per packed file, in plan order.
    :ivar remote_package_size: Blob size, when the blob is fetched remotely.
    :ivar package_uuid: Blob identifier, when the blob is fetched remotely.
    """

    files: tuple[ManifestFile, ...]
    remote_package_size: int | None = None
    package_uuid: str | None = None

    def to_dict(self) -> dict[str, object]:
        """Convert to the JSON-ready manifest shape.

        :returns: ``{"files": [...], "remote_package_size"?, "package_uuid"?}``.
        """

        data: dict[str, object] = {
            "files": [
                {"filename": f.filename, "start": f.start, "end": f.end, "audio": f.audio}
                for f in self.files
            ]
        }
        if self.remote_package_size is not None:
            data["remote_package_size"] = self.remote_package_size
        if self.package_uuid is not None:
            data["package_uuid"] = self.package_uuid
        return data

    def to_json(self) -> str:
        return json.dumps(self.to_dict())


def pack_blob(
    plan: tuple[FileEntry, ...],
    target: pathlib.Path,
    *,
    logger: logging.Logger | None = None,
) -> PackResult:
    """Concatenate every planned file into ``target``.

    :param plan: Deduplicated package plan.
    :param target: Data blob path (truncated if it exists).
    :param logger: Optional logger.
    :returns: The plan with byte ranges, and the blob size.
    """

    if logger is None:
        logger = logging.getLogger(LOGGER_NAME)

    packed: list[FileEntry] = []
    start: int = 0
    with open(target, "wb") as f:
        for entry in plan:
            data: bytes = entry.source_path.read_bytes()
            end: int = start + len(data)
            f.write(data)
            packed.append(replace(entry, byte_range=(start, end)))
            start = end

    if start > LARGE_BUNDLE_THRESHOLD:
        logger.warning(
            f"warning: file packager is creating an asset bundle of {start // (1024 * 1024)} MB. "
            "this is very large, and browsers might have trouble loading it. See "
            "https://hacks.mozilla.org/2015/02/synchronous-execution-and-filesystem-access-in-emscripten/"
        )

    return PackResult(plan=tuple(packed), total_size=start)


def remote_package_for(target: pathlib.Path) -> RemotePackage:
    """Describe a packed blob for remote fetching.

    :param target: Packed data blob.
    :returns: Its on-disk size and a fresh identifier.
    """

    return RemotePackage(size=target.stat().st_size, uuid=str(uuid.uuid4()))


def build_manifest(
    plan: tuple[FileEntry, ...],
    *,
    remote_package: RemotePackage | None = None,
) -> Manifest:
    """Build the loader manifest.

    :param plan: Packed plan (entries without a byte range are recorded as empty).
    :param remote_package: Remote fetch details, when the blob is downloaded.
    :returns: Manifest in plan order.
    """

    files: list[ManifestFile] = []
    for entry in plan:
        start, end = entry.byte_range if entry.byte_range is not None else (0, 0)
        files.append(
            ManifestFile(
                filename=entry.virtual_path,
                start=start,
                end=end,
                audio=1 if entry.is_audio is True else 0,
            )
        )

    if remote_package is None:
        return Manifest(files=tuple(files))
    return Manifest(
        files=tuple(files),
        remote_package_size=remote_package.size,
        package_uuid=remote_package.uuid,
    )
