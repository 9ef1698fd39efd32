import sys

from smbfuzzer.cli import main

sys.exit(main())
