"""
holdtype: push-to-talk voice dictation daemon

Hold a hotkey, speak, release: the audio is transcribed with Whisper and
typed at the cursor. With GPU isolation enabled every transcription runs in
a short-lived worker process so accelerator memory is freed between
utterances.
"""

__version__ = "0.1.0"
