"""
Daum Cafe Harvester – Archive cafe boards to the local filesystem.

Supports:
  • Cookie-jar based login (identity token → cafe session), with one
    automatic cookie refresh
  • Incremental board crawls that resume from the last archived post
  • Bounded (latest-ID) and unbounded (missing-streak) stop policies
  • Concurrent image/attachment downloads with atomic publish
"""

__version__ = "0.3.0"
