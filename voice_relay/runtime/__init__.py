"""Runtime package.

Keep this module dependency-light: importing `voice_relay.runtime.*` in unit
tests should not open any network connection or spawn the transcoder.
"""

__all__: list[str] = []
