import sys

from chordispeak.presentation.cli import main

sys.exit(main())
