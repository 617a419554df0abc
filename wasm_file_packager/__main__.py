import sys

from wasm_file_packager.cli import main

sys.exit(main())
