"""Allow running as ``python -m sgdk_helper``."""

from sgdk_helper.cli import app

app(prog_name="sgdk-helper")
