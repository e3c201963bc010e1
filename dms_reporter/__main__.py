from __future__ import annotations

from dms_reporter.cli import main

if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
