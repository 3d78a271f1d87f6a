"""Allow `python -m streamverse_ingest`."""

from streamverse_ingest.main import run

run()
