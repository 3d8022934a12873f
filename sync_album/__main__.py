import sys

from sync_album.cli import main

sys.exit(main())
