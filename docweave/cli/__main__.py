"""Allow ``python -m docweave.cli`` execution (runs :mod:`docweave.cli.run`)."""

from docweave.cli.run import main

main()
