"""
Start the burnlink HTTP service (drops, reader, auth, stats).

Host, port and reload come from HOST / PORT / RELOAD; the store from
DATABASE_URL or DB_PATH. Tables are created on startup. A failed start exits
with status 1 and a short checklist.
"""

import logging
import sys

from burnlink.main import run


def main() -> None:
    try:
        run()
    except Exception:
        logging.basicConfig(level=logging.ERROR)
        logging.exception("burnlink failed to start.")
        print("\n❌ burnlink failed to start.")
        print("   See error above. Most common causes:")
        print("   - Database path/URL invalid (DATABASE_URL or DB_PATH)")
        print("   - HOST/PORT already bound by another process")
        print("   - Data directory for DB_PATH not writable\n")
        sys.exit(1)


if __name__ == "__main__":
    main()
