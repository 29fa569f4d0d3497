"""Allow ``python -m certshare``."""

from certshare.cli import app

app(prog_name="certshare")
