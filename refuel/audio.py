"""Audio/Text-to-speech module for Refuel."""

import subprocess
from typing import Optional, Callable

from .config import CONFIG


class Audio:
    """Text-to-speech for directions.

    speak() returns immediately. A new announcement, or cancel_all(), cuts
    off whatever is still playing so at most one instruction is audible.
    """

    def __init__(self, callback: Optional[Callable[[str], None]] = None):
        self.callback = callback  # for debug GUI
        self._process: Optional[subprocess.Popen] = None

    def set_callback(self, callback: Optional[Callable[[str], None]]):
        """Set callback function for audio events"""
        self.callback = callback

    def speak(self, text: str):
        """Speak text using espeak without waiting for it to finish"""
        self.cancel_all()

        if self.callback:
            self.callback(text)

        try:
            self._process = subprocess.Popen(
                ["espeak", "-s", str(CONFIG["speech_rate"]), "-v", CONFIG["speech_voice"], text],
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
            )
        except FileNotFoundError:
            print(f"[AUDIO] {text}")
        except OSError as e:
            print(f"Audio error: {e}")
            print(f"[AUDIO] {text}")

    def cancel_all(self):
        """Stop the announcement in flight, if any"""
        process, self._process = self._process, None
        if process and process.poll() is None:
            process.terminate()
            try:
                process.wait(timeout=1)
            except subprocess.TimeoutExpired:
                process.kill()
                process.wait()

    @property
    def speaking(self) -> bool:
        return self._process is not None and self._process.poll() is None
