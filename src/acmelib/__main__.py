"""Allow ``python -m acmelib``."""

from acmelib.cli.main import main

main()
