"""Run Tile Stitcher from a source checkout with ``python main.py``."""

import sys

from tilestitch.main import main


if __name__ == "__main__":
    sys.exit(main(sys.argv))
