from __future__ import annotations

from typing import Optional

from textual.app import ComposeResult
from textual.content import Content
from textual.containers import Horizontal, Vertical
from textual.widgets import ListItem, Static
from textual.reactive import reactive
from rich.text import Text

from .datamodels import Article, Category
from .presentation import format_relative_date


# --- UI Widgets ---
class CategoryListItem(ListItem):
    """A navigation entry; `category` is None for the default headlines."""

    def __init__(self, category: Optional[Category], label: str):
        super().__init__()
        self.category = category
        self.label = label

    def compose(self) -> ComposeResult:
        yield Static(Text(self.label))


class HeadlineItem(ListItem):
    def __init__(self, article: Article, bookmarked: bool = False, speaking: bool = False):
        super().__init__()
        self.article = article
        self.bookmarked = bookmarked
        self.speaking = speaking

    def _flags(self) -> str:
        flags = ""
        if self.bookmarked:
            flags += "★"
        if self.speaking:
            flags += "♪"
        return flags

    def compose(self) -> ComposeResult:
        with Horizontal(classes="headline-container"):
            yield Static(self._flags(), classes="headline-flag", markup=False)
            with Vertical(classes="headline-body"):
                yield Static(Text(self.article.title), classes="headline-title")
                meta = f"{self.article.source_name or 'Unknown Source'} · " + format_relative_date(
                    self.article.published_at
                )
                yield Static(Text(meta), classes="headline-meta")

    def refresh_flags(self, bookmarked: bool, speaking: bool) -> None:
        self.bookmarked = bookmarked
        self.speaking = speaking
        self.query_one(".headline-flag", Static).update(self._flags())


class StatusBar(Static):
    """Bottom line: transient status, speech activity and the key hints."""

    loading_status = reactive("")
    activity = reactive("")
    keybinding_hint = reactive("")

    def set_keybindings(self, hint: str) -> None:
        self.keybinding_hint = hint

    def render_status(self) -> Content:
        parts = []
        if self.activity:
            parts.append(Content.styled(self.activity, "bold magenta"))
        if self.loading_status:
            parts.append(Content(self.loading_status))
        if self.keybinding_hint:
            parts.append(Content.from_markup(self.keybinding_hint))
        return Content(" | ").join(parts)

    def on_mount(self) -> None:
        self.update(self.render_status())

    def watch_loading_status(self, _: str) -> None:
        self.update(self.render_status())

    def watch_activity(self, _: str) -> None:
        self.update(self.render_status())

    def watch_keybinding_hint(self, _: str) -> None:
        self.update(self.render_status())


class ErrorMessage(Static):
    """Feed failure text with the retry key below it."""

    def __init__(self, message: str, retry_key: Optional[str] = "r"):
        text = Text(f"Oops! Something went wrong. {message}", style="bold red")
        if retry_key:
            text.append(f"\nPress {retry_key} to try again.", style="dim")
        super().__init__(text, classes="empty-message")
