"""pebble-testbed main entry point."""
import sys

from pebble_testbed import main

if __name__ == '__main__':
    sys.exit(main.main())  # pragma: no cover
