"""Loader script rendering.

The generated JavaScript is assembled from fixed fragments, in this order:

1. ``Module`` bootstrap and download counters.
2. One ``FS_createPath`` call per directory, parents first.
3. The ``DataRequest`` shim and ``processPackageData``, which either copies the
   fetched bytes into ``HEAPU8`` or keeps the fetched buffer as-is.
4. The remote fetch of the data blob, with aggregate progress reporting.

Every value interpolated into a string literal goes through
:func:`escape_js_string`.
"""

import posixpath
import re
import textwrap

from wasm_file_packager.config import Configuration
from wasm_file_packager.packer import Manifest


_PLACEHOLDER_RE: re.Pattern[str] = re.compile(r"__WFP_[A-Z_]+__")


def escape_js_string(value: str) -> str:
    """Escape a value for use inside a quoted JavaScript string literal.

    Backslashes become ``/`` (host paths), quotes are backslash-escaped and
    line breaks are written as escape sequences. Everything outside ASCII is
    written as ``\\uXXXX``, including the lone surrogates Python uses for
    undecodable file names, so the result always encodes as UTF-8.

    :param value: Raw value.
    :returns: ASCII-only escaped value, safe between ``'...'`` or ``"..."``.
    """

    escaped: str = (
        value.replace("\\", "/")
        .replace("'", "\\'")
        .replace('"', '\\"')
        .replace("\n", "\\n")
        .replace("\r", "\\r")
    )
    if escaped.isascii() is True:
        return escaped
    return "".join(_escape_code_point(ch) for ch in escaped)


def _escape_code_point(ch: str) -> str:
    code: int = ord(ch)
    if code < 0x80:
        return ch
    if code > 0xFFFF:
        # JavaScript strings are UTF-16.
        code -= 0x10000
        return f"\\u{0xD800 + (code >> 10):04x}\\u{0xDC00 + (code & 0x3FF):04x}"
    return f"\\u{code:04x}"


def render_glue_script(
    manifest: Manifest,
    config: Configuration,
    prefixes: tuple[str, ...],
    *,
    preload: bool | None = None,
) -> str:
    """Render the loader script.

    :param manifest: Manifest passed to ``loadPackage``.
    :param config: Run configuration (heap copy mode, target name).
    :param prefixes: Directories to create, parents before children.
    :param preload: Emit the data request and fetch stages. Defaults to
        whether the configuration requested preload data.
    :returns: JavaScript source.
    """

    if preload is None:
        preload = config.has_preloaded

    parts: list[str] = [_BOOTSTRAP_TEMPLATE]
    parts.append(_render_create_paths(prefixes))

    if preload is True:
        use_data: str = _HEAP_COPY_TEMPLATE if config.heap_copy is True else _NO_HEAP_COPY_TEMPLATE
        parts.append(_fill(_DATA_REQUEST_TEMPLATE, {"__WFP_USE_DATA__": use_data}))
    parts.append("  }\n")

    if preload is True:
        parts.append(
            _fill(
                _REMOTE_FETCH_TEMPLATE,
                {
                    "__WFP_PACKAGE_NAME__": escape_js_string(str(config.target)),
                    "__WFP_REMOTE_PACKAGE_BASE__": escape_js_string(config.target.name),
                },
            )
        )

    parts.append(_fill(_RUN_TEMPLATE, {"__WFP_METADATA_JSON__": manifest.to_json()}))
    return "".join(parts)


def _render_create_paths(prefixes: tuple[str, ...]) -> str:
    """Render the directory creation statements.

    :param prefixes: Absolute virtual directories, parents first.
    :returns: One ``FS_createPath`` statement per directory.
    """

    lines: list[str] = []
    for prefix in prefixes:
        parent, name = posixpath.split(prefix)
        lines.append(
            f"    Module['FS_createPath']('{escape_js_string(parent)}', '{escape_js_string(name)}', true, true);\n"
        )
    return "".join(lines)


def _fill(template: str, values: dict[str, str]) -> str:
    """Substitute ``__WFP_*__`` placeholders in a single pass.

    Substituted text is never rescanned, so values may contain anything.

    :param template: Template text.
    :param values: Placeholder to replacement mapping.
    :returns: Rendered text.
    :raises KeyError: If the template uses an unknown placeholder.
    """

    return _PLACEHOLDER_RE.sub(lambda m: values[m.group(0)], template)


_BOOTSTRAP_TEMPLATE: str = textwrap.dedent(
    r"""
    // This file was generated by wasm-file-packager.
    var Module = typeof Module !== 'undefined' ? Module : {};

    if (!Module.expectedDataFileDownloads) {
      Module.expectedDataFileDownloads = 0;
      Module.finishedDataFileDownloads = 0;
    }
    Module.expectedDataFileDownloads++;
    (function() {
     var loadPackage = function(metadata) {

      function runWithFS() {

        function assert(check, msg) {
          if (!check) throw msg + new Error().stack;
        }
    """
).lstrip()


_DATA_REQUEST_TEMPLATE: str = r"""
    function DataRequest(start, end, audio) {
      this.start = start;
      this.end = end;
      this.audio = audio;
    }
    DataRequest.prototype = {
      requests: {},
      open: function(mode, name) {
        this.name = name;
        this.requests[name] = this;
        Module['addRunDependency']('fp ' + this.name);
      },
      send: function() {},
      onload: function() {
        var byteArray = this.byteArray.subarray(this.start, this.end);
        this.finish(byteArray);
      },
      finish: function(byteArray) {
        var that = this;
        // canOwn this data in the filesystem, it is a slice of a buffer that never changes
        Module['FS_createDataFile'](this.name, null, byteArray, true, true, true);
        Module['removeRunDependency']('fp ' + that.name);
        this.requests[this.name] = null;
      }
    };

    var files = metadata.files;
    for (var i = 0; i < files.length; ++i) {
      new DataRequest(files[i].start, files[i].end, files[i].audio).open('GET', files[i].filename);
    }

    function processPackageData(arrayBuffer) {
      Module.finishedDataFileDownloads++;
      assert(arrayBuffer, 'Loading data file failed.');
      assert(arrayBuffer instanceof ArrayBuffer, 'bad input to processPackageData');
      var byteArray = new Uint8Array(arrayBuffer);
__WFP_USE_DATA__
      var files = metadata.files;
      for (var i = 0; i < files.length; ++i) {
        DataRequest.prototype.requests[files[i].filename].onload();
      }
      Module['removeRunDependency']('datafile_' + PACKAGE_NAME);
    };
    Module['addRunDependency']('datafile_' + PACKAGE_NAME);

    if (!Module.preloadResults) Module.preloadResults = {};

    Module.preloadResults[PACKAGE_NAME] = {fromCache: false};
    if (fetched) {
      processPackageData(fetched);
      fetched = null;
    } else {
      fetchedCallback = processPackageData;
    }
"""


_HEAP_COPY_TEMPLATE: str = r"""      // Copy the whole package into the heap. Files refer to slices of it and are never freed
      // (this may run before malloc is ready, during startup).
      var ptr = Module['getMemory'](byteArray.length);
      Module['HEAPU8'].set(byteArray, ptr);
      DataRequest.prototype.byteArray = Module['HEAPU8'].subarray(ptr, ptr + byteArray.length);
"""


_NO_HEAP_COPY_TEMPLATE: str = r"""      // Reuse the fetched buffer as the source for file reads.
      DataRequest.prototype.byteArray = byteArray;
"""


_REMOTE_FETCH_TEMPLATE: str = r"""
    var PACKAGE_PATH;
    if (typeof window === 'object') {
      PACKAGE_PATH = window['encodeURIComponent'](window.location.pathname.toString().substring(0, window.location.pathname.toString().lastIndexOf('/')) + '/');
    } else if (typeof location !== 'undefined') {
      // worker
      PACKAGE_PATH = encodeURIComponent(location.pathname.toString().substring(0, location.pathname.toString().lastIndexOf('/')) + '/');
    } else {
      throw 'using preloaded data can only be done on a web page or in a web worker';
    }
    var PACKAGE_NAME = '__WFP_PACKAGE_NAME__';
    var REMOTE_PACKAGE_BASE = '__WFP_REMOTE_PACKAGE_BASE__';
    if (typeof Module['locateFilePackage'] === 'function' && !Module['locateFile']) {
      Module['locateFile'] = Module['locateFilePackage'];
      err('warning: you defined Module.locateFilePackage, that has been renamed to Module.locateFile (using your locateFilePackage for now)');
    }
    var REMOTE_PACKAGE_NAME = Module['locateFile'] ? Module['locateFile'](REMOTE_PACKAGE_BASE, '') : REMOTE_PACKAGE_BASE;

    var REMOTE_PACKAGE_SIZE = metadata.remote_package_size;
    var PACKAGE_UUID = metadata.package_uuid;

    function fetchRemotePackage(packageName, packageSize, callback, errback) {
      var xhr = new XMLHttpRequest();
      xhr.open('GET', packageName, true);
      xhr.responseType = 'arraybuffer';
      xhr.onprogress = function(event) {
        var url = packageName;
        var size = packageSize;
        if (event.total) size = event.total;
        if (event.loaded) {
          if (!xhr.addedTotal) {
            xhr.addedTotal = true;
            if (!Module.dataFileDownloads) Module.dataFileDownloads = {};
            Module.dataFileDownloads[url] = {
              loaded: event.loaded,
              total: size
            };
          } else {
            Module.dataFileDownloads[url].loaded = event.loaded;
          }
          var total = 0;
          var loaded = 0;
          var num = 0;
          for (var download in Module.dataFileDownloads) {
            var data = Module.dataFileDownloads[download];
            total += data.total;
            loaded += data.loaded;
            num++;
          }
          total = Math.ceil(total * Module.expectedDataFileDownloads / num);
          if (Module['setStatus']) Module['setStatus']('Downloading data... (' + loaded + '/' + total + ')');
        } else if (!Module.dataFileDownloads) {
          if (Module['setStatus']) Module['setStatus']('Downloading data...');
        }
      };
      xhr.onerror = function(event) {
        errback(new Error('NetworkError for: ' + packageName));
      };
      xhr.onload = function(event) {
        // file:// URLs can report status 0
        if (xhr.status == 200 || xhr.status == 304 || xhr.status == 206 || (xhr.status == 0 && xhr.response)) {
          var packageData = xhr.response;
          callback(packageData);
        } else {
          errback(new Error(xhr.statusText + ' : ' + xhr.responseURL));
        }
      };
      xhr.send(null);
    };

    function handleError(error) {
      console.error('package error:', error);
    };

    var fetchedCallback = null;
    var fetched = Module['getPreloadedPackage'] ? Module['getPreloadedPackage'](REMOTE_PACKAGE_NAME, REMOTE_PACKAGE_SIZE) : null;

    if (!fetched) fetchRemotePackage(REMOTE_PACKAGE_NAME, REMOTE_PACKAGE_SIZE, function(data) {
      if (fetchedCallback) {
        fetchedCallback(data);
        fetchedCallback = null;
      } else {
        fetched = data;
      }
    }, handleError);
"""


_RUN_TEMPLATE: str = r"""
  if (Module['calledRun']) {
    runWithFS();
  } else {
    if (!Module['preRun']) Module['preRun'] = [];
    Module['preRun'].push(runWithFS); // FS is not initialized yet, wait for it
  }

 }
 loadPackage(__WFP_METADATA_JSON__);

})();
"""
