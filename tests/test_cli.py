"""Tests for the command line interface."""

from __future__ import annotations

import json
import logging
import re

from wasm_file_packager import LOGGER_NAME
from wasm_file_packager.cli import main


def _embedded_manifest(script: str) -> dict:
    match = re.search(r"^ loadPackage\((.*)\);$", script, re.MULTILINE)
    assert match is not None
    return json.loads(match.group(1))


class TestMain:
    """Test exit codes and output routing."""

    def test_missing_target_prints_usage(self, workspace, capsys):
        assert main([]) == 0

        captured = capsys.readouterr()
        assert "usage: wasm-file-packager" in captured.out
        assert list(workspace.iterdir()) == []

    def test_single_file_goes_to_stdout(self, workspace, write_file, capsys):
        write_file(workspace / "README.md", b"# readme\n")

        assert main(["--target", "out.data", "--preload-file", "README.md"]) == 0

        captured = capsys.readouterr()
        assert captured.out.count("new DataRequest(") == 1
        files = _embedded_manifest(captured.out)["files"]
        assert files == [{"filename": "/README.md", "start": 0, "end": 9, "audio": 0}]

    def test_hidden_files_are_excluded(self, workspace, write_file, capsys):
        write_file(workspace / "assets" / "a.png", b"A")
        write_file(workspace / "assets" / ".b.png", b"B")

        assert main(["-t", "out.data", "-p", "assets@/static"]) == 0

        files = _embedded_manifest(capsys.readouterr().out)["files"]
        assert [f["filename"] for f in files] == ["/static/a.png"]

    def test_empty_plan_fails(self, workspace, capsys):
        assert main(["-t", "out.data", "-p", "missing.txt"]) == 1

        captured = capsys.readouterr()
        assert "Nothing to do!" in captured.err
        assert "missing.txt does not exist, ignoring." in captured.err
        assert captured.out == ""
        assert not (workspace / "out.data").exists()

    def test_path_outside_working_directory_fails(self, workspace, write_file, capsys):
        write_file(workspace.parent / "secret.txt", b"s")

        assert main(["-t", "out.data", "-p", "../secret.txt"]) == 1

        assert "outside the current directory" in capsys.readouterr().err
        assert not (workspace / "out.data").exists()

    def test_js_output_and_no_heap_copy(self, workspace, write_file, capsys):
        write_file(workspace / "a.txt", b"abc")
        write_file(workspace / "b.txt", b"de")

        code = main(["-t", "out.data", "-p", "a.txt", "b.txt", "-j", "out.js", "--no-heap-copy", "-q"])

        assert code == 0
        assert capsys.readouterr().out == ""
        script = (workspace / "out.js").read_text(encoding="utf-8")
        assert "DataRequest.prototype.byteArray = byteArray;" in script
        manifest = _embedded_manifest(script)
        assert [(f["start"], f["end"]) for f in manifest["files"]] == [(0, 3), (3, 5)]
        assert manifest["remote_package_size"] == 5

    def test_separate_metadata_is_advisory(self, workspace, write_file, capsys):
        write_file(workspace / "a.txt", b"abc")

        assert main(["-t", "out.data", "-p", "a.txt", "-j", "out.js", "--separate-metadata"]) == 0

        assert "--separate-metadata is not supported" in capsys.readouterr().err
        assert "loadPackage({" in (workspace / "out.js").read_text(encoding="utf-8")

    def test_repeated_preload_flags_accumulate(self, workspace, write_file, capsys):
        write_file(workspace / "a.txt", b"a")
        write_file(workspace / "b.txt", b"b")

        assert main(["-t", "out.data", "-p", "a.txt", "--preload", "b.txt"]) == 0

        files = _embedded_manifest(capsys.readouterr().out)["files"]
        assert [f["filename"] for f in files] == ["/a.txt", "/b.txt"]

    def test_rerun_over_working_directory_skips_own_outputs(self, workspace, write_file, capsys):
        write_file(workspace / "a.txt", b"abc")
        argv = ["-v", "-t", "out.data", "-p", ".", "-j", "out.js"]

        assert main(argv) == 0
        capsys.readouterr()
        assert main(argv) == 0

        err = capsys.readouterr().err
        assert "skipping output file out.data" in err
        assert "skipping output file out.js" in err
        files = _embedded_manifest((workspace / "out.js").read_text(encoding="utf-8"))["files"]
        assert [f["filename"] for f in files] == ["/a.txt"]

    def test_logging_goes_through_package_logger(self, workspace, write_file):
        write_file(workspace / "a.txt", b"a")

        assert main(["-t", "out.data", "-p", "a.txt", "-j", "out.js"]) == 0

        logger = logging.getLogger(LOGGER_NAME)
        assert len(logger.handlers) == 1
        assert logger.propagate is False
