import sys

from bootforge.cli import main

if __name__ == "__main__":
    sys.exit(main())
