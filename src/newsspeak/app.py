from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.containers import Horizontal, Vertical
from textual.worker import Worker, WorkerState
from textual.widgets import (
    Header,
    Input,
    ListView,
    LoadingIndicator,
    Rule,
    Static,
)
from rich.text import Text

from .bookmarks import BookmarkStore
from .config import (
    PREFERRED_VOICES,
    STORAGE_DIR,
    UI_DEFAULTS,
    resolve_api_key,
)
from .datamodels import Article, Category, FeedResult, SortField, SortOrder
from .errors import FeedError, UnsupportedCapability
from .messages import BookmarksChanged, NarrationStateChanged, VoiceSearch, VoiceStateChanged
from .pipeline import FeedPipeline
from .presentation import filter_articles, present
from .query import build_query, describe_query
from .screens import BookmarksScreen, StoryViewScreen
from .share import COPIED, Sharer
from .sources.base import FeedSource
from .sources.newsapi import NewsApiSource
from .speech.narration import ArticleNarrator, Synthesizer, default_synthesizer
from .speech.recognition import Recognizer, VoiceQueryCapture, default_recognizer
from .storage import FileStorage, KeyValueStorage
from .widgets import CategoryListItem, ErrorMessage, HeadlineItem, StatusBar

logger = logging.getLogger("newsspeak")

SORT_LABELS = {
    SortField.PUBLISHED_AT: "Date",
    SortField.TITLE: "Title",
    SortField.SOURCE: "Source",
}


class NewsApp(App):
    TITLE = "NewsSpeak"
    SUB_TITLE = "Latest Headlines"

    CSS_PATH = "app.css"

    BINDINGS = [
        Binding("q", "quit", "Quit"),
        Binding("r", "refresh", "Refresh"),
        Binding("b", "bookmark", "Bookmark"),
        Binding("B", "show_bookmarks", "Show Bookmarks"),
        Binding("t", "narrate", "Listen"),
        Binding("v", "voice_search", "Voice Search"),
        Binding("s", "share", "Share"),
        Binding("o", "cycle_sort", "Sort Field"),
        Binding("O", "toggle_sort_order", "Sort Order"),
        Binding("left", "nav_left", "Navigate Left"),
        Binding("right", "nav_right", "Navigate Right"),
        Binding("ctrl+l", "toggle_left_pane", "Toggle Categories"),
        Binding("/", "focus_search", "Search"),
        Binding("f", "focus_filter", "Filter"),
    ]

    def __init__(
        self,
        theme: Optional[str] = None,
        config: Optional[dict[str, Any]] = None,
        search: Optional[str] = None,
        category: Optional[str] = None,
        source: Optional[FeedSource] = None,
        storage: Optional[KeyValueStorage] = None,
        synthesizer: Optional[Synthesizer] = None,
        recognizer: Optional[Recognizer] = None,
        enable_speech: bool = True,
        **kwargs: Any,
    ):
        super().__init__(**kwargs)
        self.config = config or {}
        self._theme_name = theme or self.config.get("theme")
        self.search_term: Optional[str] = search
        self.category: Optional[Category] = Category.parse(
            category or self.config.get("default_category")
        )
        self.sort_field = SortField.PUBLISHED_AT
        self.sort_order = SortOrder.DESC
        self.filter_text = ""
        self.articles: List[Article] = []
        self._worker_generations: Dict[Worker, int] = {}

        self.source = source or NewsApiSource(self.config, api_key=resolve_api_key(self.config))
        self.pipeline = FeedPipeline(self.source)

        self.storage = storage or FileStorage(STORAGE_DIR, watch=True)
        self.bookmarks = BookmarkStore(self.storage)
        self.bookmarks.subscribe(lambda _: self.post_message(BookmarksChanged()))

        if enable_speech:
            synthesizer = synthesizer or default_synthesizer()
            recognizer = recognizer or default_recognizer()
        narration = self.config.get("narration", {})
        self.narrator = ArticleNarrator(
            synthesizer,
            preferred_voices=narration.get("preferred_voices") or PREFERRED_VOICES,
            on_change=self._on_narrator_change,
            rate=narration.get("rate", 0.9),
            volume=narration.get("volume", 0.8),
        )
        self.voice = VoiceQueryCapture(
            recognizer,
            on_search=lambda term: self.post_message(VoiceSearch(term)),
            on_change=self._on_voice_change,
        )
        self.sharer = Sharer(self.config.get("share_command"), copy=self.copy_to_clipboard)

    def compose(self) -> ComposeResult:
        yield Header()
        # Main horizontal split: left = categories, right = headlines
        with Horizontal(id="main"):
            with Vertical(id="left"):
                yield Static("Categories", classes="pane-title")
                yield ListView(id="categories-list")
            yield Rule(orientation="vertical")
            with Vertical(id="right"):
                yield Static("Headlines", classes="pane-title", id="headlines-title")
                yield Input(placeholder="Search breaking news, topics, or keywords...", id="search-input")
                yield Input(placeholder="Filter headlines...", id="headline-filter")
                yield ListView(id="headlines-list")
        yield StatusBar()

    def on_mount(self) -> None:
        if self._theme_name:
            if self._theme_name in self.available_themes:
                self.theme = self._theme_name
            else:
                logger.warning("Unknown theme %s; keeping %s", self._theme_name, self.theme)

        categories = self.query_one("#categories-list", ListView)
        categories.append(CategoryListItem(None, "Latest Headlines"))
        for category in Category:
            categories.append(CategoryListItem(category, category.label))
        categories.focus()

        self.query_one("#headline-filter", Input).display = False
        if self.search_term:
            self.query_one("#search-input", Input).value = self.search_term

        keybindings_text = self.config.get("ui", {}).get(
            "statusbar_keybindings", UI_DEFAULTS["statusbar_keybindings"]
        )
        self._keybindings = keybindings_text.format(color="$accent")
        self._update_status_hint()
        self._load_feed()

    def on_unmount(self) -> None:
        self.narrator.stop()
        self.voice.stop()
        self.bookmarks.close()
        self.storage.close()

    # --- Navigation ---
    def navigate(
        self, search: Optional[str] = None, category: Optional[Category] = None
    ) -> None:
        """Switch to a search or a category and fetch it."""
        self.search_term = search
        self.category = category
        self.query_one("#search-input", Input).value = search or ""
        self._load_feed()

    def _load_feed(self) -> None:
        query = build_query(self.search_term, self.category)
        generation = self.pipeline.begin()
        title = describe_query(query)
        self.sub_title = title
        self.query_one("#headlines-title", Static).update(Text(title))
        self.query_one(StatusBar).loading_status = f"Loading {title}..."

        headlines_list = self.query_one("#headlines-list", ListView)
        headlines_list.clear()
        headlines_list.mount(LoadingIndicator())
        worker = self.run_worker(
            lambda: self.pipeline.run(query, generation),
            name="headlines_loader",
            group="feed",
            thread=True,
        )
        self._worker_generations[worker] = generation

    def on_worker_state_changed(self, event: Worker.StateChanged) -> None:
        if getattr(event.worker, "name", None) != "headlines_loader":
            return
        if event.state in (WorkerState.PENDING, WorkerState.RUNNING):
            return

        generation = self._worker_generations.pop(event.worker, None)
        if generation is None or not self.pipeline.is_current(generation):
            logger.debug("Discarding stale feed result (generation %s)", generation)
            return

        if event.state is WorkerState.SUCCESS:
            result: FeedResult = event.worker.result
            if result.ok:
                self._handle_headlines_loaded(result)
            else:
                self._handle_headlines_error(result.error)
        else:
            error = getattr(event.worker, "error", None)
            logger.error("Headlines worker failed: %s", error)
            self._handle_headlines_error(error)

    def _clear_loading(self) -> ListView:
        headlines_list = self.query_one("#headlines-list", ListView)
        for indicator in headlines_list.query(LoadingIndicator):
            indicator.remove()
        return headlines_list

    def _handle_headlines_loaded(self, result: FeedResult) -> None:
        self._clear_loading()
        self.query_one(StatusBar).loading_status = ""
        self.articles = result.articles
        self._update_headlines_list()

    def _handle_headlines_error(self, error: Optional[BaseException]) -> None:
        self.articles = []
        headlines_list = self._clear_loading()
        headlines_list.clear()
        if isinstance(error, FeedError):
            message = error.user_message
        else:
            message = "Failed to load news articles. Please try again later."
        self.query_one(StatusBar).loading_status = "Error loading headlines."
        headlines_list.mount(ErrorMessage(message))

    def _visible_articles(self) -> List[Article]:
        ordered = present(self.articles, self.sort_field, self.sort_order)
        return filter_articles(ordered, self.filter_text)

    def _update_headlines_list(self) -> None:
        headlines_list = self.query_one("#headlines-list", ListView)
        headlines_list.clear()

        visible = self._visible_articles()
        if not visible:
            if self.search_term:
                message = f'No articles found for "{self.search_term}". Try a different search term.'
            else:
                message = "No news articles available at the moment. Please check back later."
            headlines_list.mount(Static(Text(message), classes="empty-message"))
            self._update_status_hint()
            return

        for article in visible:
            headlines_list.append(
                HeadlineItem(
                    article,
                    bookmarked=self.bookmarks.is_bookmarked(article.url),
                    speaking=self._is_narrating(article),
                )
            )
        self._update_status_hint()

    def _refresh_headline_flags(self) -> None:
        for item in self.query_one("#headlines-list", ListView).query(HeadlineItem):
            if item.is_mounted:
                item.refresh_flags(
                    self.bookmarks.is_bookmarked(item.article.url),
                    self._is_narrating(item.article),
                )

    def _update_status_hint(self) -> None:
        arrow = "↓" if self.sort_order is SortOrder.DESC else "↑"
        sort = f"Sort: {SORT_LABELS[self.sort_field]} {arrow}"
        count = f"{len(self._visible_articles())} Articles" if self.articles else ""
        hint = " | ".join(p for p in (count, sort, self._keybindings) if p)
        self.query_one(StatusBar).set_keybindings(hint)

    def _highlighted_article(self) -> Optional[Article]:
        headlines_list = self.query_one("#headlines-list", ListView)
        item = headlines_list.highlighted_child
        if isinstance(item, HeadlineItem):
            return item.article
        return None

    def on_list_view_selected(self, event: ListView.Selected) -> None:
        if event.list_view.id == "categories-list":
            if isinstance(event.item, CategoryListItem):
                self.navigate(category=event.item.category)
        elif event.list_view.id == "headlines-list":
            if isinstance(event.item, HeadlineItem):
                self.push_screen(StoryViewScreen(event.item.article))

    def on_input_changed(self, event: Input.Changed) -> None:
        if event.input.id == "headline-filter":
            self.filter_text = event.value
            self._update_headlines_list()

    def on_input_submitted(self, event: Input.Submitted) -> None:
        if event.input.id == "search-input":
            term = event.value.strip()
            if term:
                self.navigate(search=term)
            self.query_one("#headlines-list").focus()
        elif event.input.id == "headline-filter":
            if not event.input.value:
                event.input.display = False
            self.query_one("#headlines-list").focus()

    def on_input_blur(self, event: Input.Blur) -> None:
        if event.input.id == "headline-filter" and not event.input.value:
            event.input.display = False

    # --- Bookmarks, narration, sharing ---
    def toggle_bookmark(self, article: Article) -> None:
        if self.bookmarks.toggle(article):
            self.notify("Article bookmarked.")
        else:
            self.notify("Bookmark removed.")

    def toggle_narration(self, article: Article) -> None:
        try:
            self.narrator.toggle(article)
        except UnsupportedCapability as e:
            self.notify(str(e), severity="error", markup=False)

    def share_article(self, article: Article) -> None:
        try:
            outcome = self.sharer.share(article)
        except RuntimeError as e:
            self.notify(str(e), severity="error", markup=False)
            return
        if outcome == COPIED:
            self.notify("Article link copied to clipboard!")
        else:
            self.notify("Article shared.")

    def _is_narrating(self, article: Article) -> bool:
        return self.narrator.speaking and self.narrator.current_url == article.url

    def _on_narrator_change(self, narrator: ArticleNarrator) -> None:
        self.post_message(NarrationStateChanged(narrator.speaking, narrator.current_url))

    def _on_voice_change(self, capture: VoiceQueryCapture) -> None:
        self.post_message(
            VoiceStateChanged(capture.listening, capture.transcript, capture.last_error)
        )

    def _forward_to_screen(self, message_factory) -> None:
        if len(self.screen_stack) > 1:
            self.screen.post_message(message_factory())

    def on_bookmarks_changed(self, _: BookmarksChanged) -> None:
        self._refresh_headline_flags()
        self._forward_to_screen(BookmarksChanged)

    def on_narration_state_changed(self, message: NarrationStateChanged) -> None:
        if not self.voice.listening:
            self.query_one(StatusBar).activity = "Reading aloud" if message.speaking else ""
        self._refresh_headline_flags()
        self._forward_to_screen(lambda: NarrationStateChanged(message.speaking, message.url))

    def on_voice_state_changed(self, message: VoiceStateChanged) -> None:
        status = self.query_one(StatusBar)
        if message.listening:
            status.activity = (
                f"Listening: {message.transcript}" if message.transcript else "Listening..."
            )
        else:
            status.activity = ""
        if message.error:
            self.notify(
                f"Voice search stopped: {message.error}", severity="warning", markup=False
            )

    def on_voice_search(self, message: VoiceSearch) -> None:
        if len(self.screen_stack) > 1:
            self.pop_screen()
        self.navigate(search=message.term)

    # --- Actions ---
    def action_refresh(self) -> None:
        self._load_feed()

    def action_bookmark(self) -> None:
        article = self._highlighted_article()
        if article is not None:
            self.toggle_bookmark(article)

    def action_narrate(self) -> None:
        if self.narrator.speaking:
            self.narrator.stop()
            return
        article = self._highlighted_article()
        if article is not None:
            self.toggle_narration(article)

    def action_share(self) -> None:
        article = self._highlighted_article()
        if article is not None:
            self.share_article(article)

    def action_voice_search(self) -> None:
        if self.voice.listening:
            self.voice.stop()
            return
        try:
            self.voice.start()
        except UnsupportedCapability as e:
            self.notify(str(e), severity="error", markup=False)

    def action_show_bookmarks(self) -> None:
        self.push_screen(BookmarksScreen())

    def action_cycle_sort(self) -> None:
        fields = list(SortField)
        self.sort_field = fields[(fields.index(self.sort_field) + 1) % len(fields)]
        self._update_headlines_list()
        self._update_status_hint()

    def action_toggle_sort_order(self) -> None:
        self.sort_order = SortOrder.ASC if self.sort_order is SortOrder.DESC else SortOrder.DESC
        self._update_headlines_list()
        self._update_status_hint()

    def action_nav_left(self) -> None:
        if self.query_one("#headlines-list").has_focus:
            self.query_one("#categories-list").focus()

    def action_nav_right(self) -> None:
        headlines_list = self.query_one("#headlines-list", ListView)
        if headlines_list.has_focus:
            article = self._highlighted_article()
            if article is not None:
                self.push_screen(StoryViewScreen(article))
        elif self.query_one("#categories-list").has_focus:
            headlines_list.focus()

    def action_toggle_left_pane(self) -> None:
        """Toggle the left pane."""
        left_pane = self.query_one("#left")
        left_pane.display = not left_pane.display

    def action_focus_search(self) -> None:
        self.query_one("#search-input").focus()

    def action_focus_filter(self) -> None:
        """Focus the filter input."""
        filter_input = self.query_one("#headline-filter")
        filter_input.display = True
        filter_input.focus()
