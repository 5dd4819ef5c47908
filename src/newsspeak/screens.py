from __future__ import annotations

import webbrowser

from textual.app import ComposeResult
from textual.binding import Binding
from textual.containers import VerticalScroll
from textual.screen import Screen
from textual.widgets import DataTable, Footer, Header, Markdown
from rich.text import Text

from .datamodels import Article
from .messages import BookmarksChanged, NarrationStateChanged
from .presentation import format_relative_date
from .widgets import StatusBar


def article_markdown(article: Article) -> str:
    parts = [f"# {article.title}\n"]
    meta = [article.source_name or "Unknown Source", format_relative_date(article.published_at)]
    if article.author:
        meta.append(f"by {article.author}")
    parts.append(f"*{' · '.join(meta)}*\n")
    parts.append(article.description or "No description provided.")
    if article.content and article.content != article.description:
        parts.append(f"\n\n{article.content}")
    parts.append(f"\n\n---\n\n[Read more]({article.url})")
    return "\n".join(parts)


# --- Story screen (separate) ---
class StoryViewScreen(Screen):
    BINDINGS = [
        Binding("escape,q,left", "app.pop_screen", "Back"),
        Binding("o", "open_in_browser", "Open in browser"),
        Binding("t", "narrate", "Listen/Stop"),
        Binding("b", "bookmark", "Bookmark"),
        Binding("s", "share", "Share"),
        Binding("down", "scroll_down", "Scroll Down"),
        Binding("up", "scroll_up", "Scroll Up"),
    ]

    def __init__(self, article: Article):
        super().__init__()
        self.article = article

    def compose(self) -> ComposeResult:
        yield Header()
        yield VerticalScroll(
            Markdown(article_markdown(self.article), id="story-markdown"),
            id="story-scroll",
        )
        yield StatusBar()

    def on_mount(self) -> None:
        self.title = self.article.title
        self.query_one("#story-scroll").focus()
        self._update_status()

    def _update_status(self) -> None:
        bookmarked = self.app.bookmarks.is_bookmarked(self.article.url)
        speaking = (
            self.app.narrator.speaking and self.app.narrator.current_url == self.article.url
        )
        self.sub_title = "Bookmarked" if bookmarked else ""
        self.query_one(StatusBar).set_keybindings(
            f"[b]t[/] {'stop' if speaking else 'listen'}, "
            f"[b]b[/] {'unbookmark' if bookmarked else 'bookmark'}, "
            "[b]s[/] share, [b]o[/] open"
        )

    def on_bookmarks_changed(self, _: BookmarksChanged) -> None:
        self._update_status()

    def on_narration_state_changed(self, _: NarrationStateChanged) -> None:
        self._update_status()

    def action_open_in_browser(self) -> None:
        webbrowser.open(self.article.url)

    def action_narrate(self) -> None:
        self.app.toggle_narration(self.article)

    def action_bookmark(self) -> None:
        self.app.toggle_bookmark(self.article)

    def action_share(self) -> None:
        self.app.share_article(self.article)

    def action_scroll_down(self) -> None:
        self.query_one("#story-scroll").scroll_down()

    def action_scroll_up(self) -> None:
        self.query_one("#story-scroll").scroll_up()


class BookmarksScreen(Screen):
    BINDINGS = [
        Binding("escape,q,left", "app.pop_screen", "Back"),
        Binding("d", "delete_bookmark", "Delete"),
        Binding("D", "clear_bookmarks", "Clear all"),
        Binding("o", "open_in_browser", "Open in browser"),
    ]

    def compose(self) -> ComposeResult:
        yield Header()
        yield DataTable(id="bookmarks-table")
        yield Footer()

    def on_mount(self) -> None:
        self.title = "Bookmarks"
        table = self.query_one(DataTable)
        table.cursor_type = "row"
        table.add_column("Title", key="title")
        table.add_column("Source", key="source")
        table.add_column("Published", key="date")
        self._populate()

    def _populate(self) -> None:
        table = self.query_one(DataTable)
        table.clear()
        bookmarks = self.app.bookmarks.list()
        for bookmark in bookmarks:
            table.add_row(
                Text(bookmark.title),
                Text(bookmark.source_name or "Unknown Source"),
                Text(format_relative_date(bookmark.published_at)),
                key=bookmark.url,
            )
        self.sub_title = f"{len(bookmarks)} saved"

    def on_bookmarks_changed(self, _: BookmarksChanged) -> None:
        self._populate()

    def _selected_url(self) -> str | None:
        table = self.query_one(DataTable)
        if not table.row_count or not table.is_valid_row_index(table.cursor_row):
            return None
        row_key, _ = table.coordinate_to_cell_key(table.cursor_coordinate)
        return str(row_key.value)

    def action_delete_bookmark(self) -> None:
        """Delete the selected bookmark."""
        url = self._selected_url()
        if url is None:
            return
        self.app.bookmarks.remove(url)
        self.app.notify("Bookmark deleted.")

    def action_clear_bookmarks(self) -> None:
        if not self.app.bookmarks.list():
            return
        self.app.bookmarks.clear()
        self.app.notify("All bookmarks cleared.")

    def action_open_in_browser(self) -> None:
        url = self._selected_url()
        if url:
            webbrowser.open(url)

    def on_data_table_row_selected(self, event: DataTable.RowSelected) -> None:
        webbrowser.open(str(event.row_key.value))
