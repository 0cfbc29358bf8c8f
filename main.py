import sys

from watermarker.cli import main

if __name__ == "__main__":
    sys.exit(main())
