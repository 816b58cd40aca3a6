"""Allow ``python -m logsink_e2e``."""

from logsink_e2e.cli.main import main

main()
