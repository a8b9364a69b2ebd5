from .wav import frame_wav, strip_wav_header
from .normalizer import AudioNormalizer
from .transcoder import Transcoder, FfmpegTranscoder

__all__ = ["AudioNormalizer", "FfmpegTranscoder", "Transcoder", "frame_wav", "strip_wav_header"]
