from __future__ import annotations

from catalog_mirror.entrypoints.main import main

if __name__ == "__main__":
    raise SystemExit(main())
