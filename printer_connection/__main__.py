import sys

from printer_connection.cli import main

sys.exit(main())
