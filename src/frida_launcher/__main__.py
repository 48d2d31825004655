import sys

from frida_launcher.cli import main

sys.exit(main())
