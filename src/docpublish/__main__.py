"""Allow ``python -m docpublish``."""

from __future__ import annotations

from docpublish.cli import main

main()
