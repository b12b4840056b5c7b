"""Allow ``python -m devkeyring``."""

from devkeyring.cli.main import main

main()
