"""
certshare: sharded, rate-limited folder sharing driven by a spreadsheet.

Workers grant Drive folder access to the participants listed in a Google
Sheet; a monitor rebuilds their progress from the log files they append to.
"""

__version__ = "0.3.0"
