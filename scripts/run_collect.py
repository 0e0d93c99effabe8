"""Run a listing collection and save results to the database."""

import sys
from pathlib import Path

# Add src to path for script execution without installing
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from listing_collector.cli import main

if __name__ == "__main__":
    raise SystemExit(main())
