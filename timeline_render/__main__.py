import sys

from timeline_render.cli import main

sys.exit(main())
