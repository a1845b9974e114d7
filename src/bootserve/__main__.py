"""Allow ``python -m bootserve``."""

from bootserve.cli.main import main

main()
