"""Blinker signals emitted by applications.

Usage:
    from phaseware.signals import app_mounted

    @app_mounted.connect_via(sub_app)
    def on_mounted(sender, parent):
        ...
"""

from blinker import Namespace

_signals = Namespace()

# Sent once per mount with the mounted application as sender and the
# mounting application as ``parent``.
app_mounted = _signals.signal("app-mounted")
