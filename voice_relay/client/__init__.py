from .playback import Player, PlaybackQueue
from .controller import Recorder, SessionCallbacks, SessionController

__all__ = ["PlaybackQueue", "Player", "Recorder", "SessionCallbacks", "SessionController"]
