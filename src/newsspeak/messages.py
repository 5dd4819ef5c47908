from textual.message import Message


class VoiceStateChanged(Message):
    bubble = False

    def __init__(self, listening: bool, transcript: str, error: str | None = None) -> None:
        self.listening = listening
        self.transcript = transcript
        self.error = error
        super().__init__()


class VoiceSearch(Message):
    """A final voice transcript to search for."""
    bubble = False

    def __init__(self, term: str) -> None:
        self.term = term
        super().__init__()


class NarrationStateChanged(Message):
    bubble = False

    def __init__(self, speaking: bool, url: str | None) -> None:
        self.speaking = speaking
        self.url = url
        super().__init__()


class BookmarksChanged(Message):
    bubble = False
