"""Allow `python -m alertsleuth`."""

import sys

from alertsleuth.cli import main

sys.exit(main())
