"""Entry point for ``python -m FundCatalog.SearchIndex``."""

from .cli import app

app(prog_name="fundsearch")
