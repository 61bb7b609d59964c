from __future__ import annotations

import logging
import sys
from typing import List, Optional, Sequence

from rich.text import Text
from textual import work
from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.containers import Container, Horizontal, VerticalScroll
from textual.widgets import Button, Input, Label, ListItem, ListView, Static

from .api_interface import RealAPI
from .auth import OAuthProvider
from .composer import Composer
from .config import (
    AUTH_ERROR_ROUTE,
    FRIENDS_ROUTE,
    INBOX_ROUTE,
    LANDING_ROUTE,
    MAX_MESSAGE_LENGTH,
    ME_ROUTE,
    SETTINGS_ROUTE,
    SETUP_ROUTE,
    Settings,
    load_settings,
)
from .data_models import Message
from .errors import AuthError
from .friends import FriendGraphController
from .inbox import InboxController
from .log import configure_logging
from .notify import Notifier
from .onboarding import UsernameClaim, clean_username
from .profile_fetcher import CancelToken, ProfileFetcher
from .reactions import SocialActionController
from .session import AuthCallbackFlow, SessionResolver, profile_route, profile_username
from .settings import SettingsController
from .storage import AvatarStorage
from .threads import Thread, group_threads

logger = logging.getLogger("replied.main")

FOOTER = "[i] Inbox [f] Friends [m] Me [s] Settings [p] Open profile [o] Sign out [q] Quit"


def format_time_ago(message: Message) -> str:
    return message.created_at.strftime("%Y-%m-%d %H:%M")


def render_message(message: Message) -> Text:
    text = Text()
    text.append(f"“{message.content}”\n", style="bold")
    if message.reply is not None:
        text.append(f"  ↳ {message.reply.content}\n", style="green")
    text.append(f"  {format_time_ago(message)}", style="dim")
    if message.reply is not None:
        liked = "♥" if message.is_liked else "♡"
        saved = "★" if message.is_bookmarked else "☆"
        text.append(f"  {liked} {message.likes_count}  {saved} {message.bookmarks_count}", style="dim")
    return text


def render_thread(thread: Thread, viewer_id: Optional[str]) -> Text:
    text = Text()
    for idx, message in enumerate(thread.messages):
        if idx:
            text.append("\n  follow-up ", style="italic dim")
        text.append_text(render_message(message))
    if thread.accepts_follow_up(viewer_id):
        text.append("\n  [u] ask a follow-up", style="cyan")
    return text


def render_feed_entry(message: Message) -> Text:
    text = Text()
    if message.receiver is not None:
        text.append(f"@{message.receiver.username}\n", style="cyan")
    text.append_text(render_message(message))
    return text


def on_ui_thread(app: App, fn, *args):
    """Run ``fn`` on the app thread, whichever thread we are called from."""
    try:
        return app.call_from_thread(fn, *args)
    except RuntimeError:
        # already on the app thread
        return fn(*args)


class KeyedItem(ListItem):
    """List row that remembers which record it shows.

    Lists are re-rendered from background threads, so actions look the
    record up by ``row_key`` instead of trusting the row position.
    """

    def __init__(self, *children, row_key: str, handle: Optional[str] = None, **kwargs):
        super().__init__(*children, **kwargs)
        self.row_key = row_key
        self.handle = handle


def selected_message(item: Optional[ListItem], messages: Sequence[Message]) -> Optional[Message]:
    row_key = getattr(item, "row_key", None)
    if row_key is None:
        return None
    for message in messages:
        if message.id == row_key:
            return message
    return None


class TextualNotifier(Notifier):
    """Shows notifications as textual toasts from any thread."""

    _SEVERITY = {"success": "information", "information": "information", "warning": "warning", "error": "error"}

    def __init__(self, app: App):
        self.app = app

    def show(self, message: str, severity: str = "information") -> None:
        super().show(message, severity)
        level = self._SEVERITY.get(severity, "information")
        on_ui_thread(self.app, lambda: self.app.notify(message, severity=level, timeout=3))


# ───────── Landing ─────────
class LandingView(Container):
    def __init__(self, error: bool = False, **kwargs):
        super().__init__(**kwargs)
        self.error = error

    def compose(self) -> ComposeResult:
        yield Static("replied", classes="panel-header")
        yield Static("Receive anonymous messages. Publish the answers you like.")
        if self.error:
            yield Static("Sign-in did not complete. Please try again.", classes="error-text")
        yield Button("Sign in with Google", id="sign-in", variant="primary")
        yield Static("Or press [p] to visit someone's page without signing in.", markup=False)

    def on_button_pressed(self, event: Button.Pressed) -> None:
        if event.button.id == "sign-in":
            self.app.sign_in()


# ───────── Setup ─────────
class SetupView(Container):
    def __init__(self, claim: UsernameClaim, **kwargs):
        super().__init__(**kwargs)
        self.claim = claim

    def compose(self) -> ComposeResult:
        yield Static("Claim your handle", classes="panel-header")
        yield Input(placeholder="username", max_length=30, id="username-input")
        yield Static("", id="username-status")
        yield Button("Claim", id="claim-username", variant="primary")

    def on_input_changed(self, event: Input.Changed) -> None:
        self.claim.check_as_you_type(event.value, self._report)

    def _report(self, username: str, available: Optional[bool]) -> None:
        if available is None:
            status = "" if len(username) < 3 else "Could not check availability"
        else:
            status = f"@{username} is available" if available else f"@{username} is taken"
        on_ui_thread(self.app, self.query_one("#username-status", Static).update, status)

    def on_button_pressed(self, event: Button.Pressed) -> None:
        if event.button.id == "claim-username":
            self._claim(self.query_one("#username-input", Input).value)

    @work(thread=True, exclusive=True)
    def _claim(self, value: str) -> None:
        if self.claim.claim(value):
            self.app.call_from_thread(self.app.navigate, INBOX_ROUTE)

    def on_unmount(self) -> None:
        self.claim.close()


# ───────── Inbox ─────────
class InboxView(Container):
    def __init__(self, inbox: InboxController, **kwargs):
        super().__init__(**kwargs)
        self.inbox = inbox
        self.cancel = CancelToken()
        self.delete_armed: Optional[str] = None
        self.showing_history = False

    def compose(self) -> ComposeResult:
        yield Static("inbox.pending", id="inbox-title", classes="panel-header")
        yield ListView(id="inbox-list")
        yield Input(placeholder="Write your reply…", max_length=MAX_MESSAGE_LENGTH, id="reply-input")
        with Horizontal(classes="actions"):
            yield Button("Publish", id="publish", variant="primary")
            yield Button("Silence", id="silence")
            yield Button("Delete", id="delete", variant="error")
            yield Button("History", id="toggle-history")

    def on_mount(self) -> None:
        self._load()

    def on_unmount(self) -> None:
        self.cancel.cancel()
        self.inbox.unsubscribe()

    @work(thread=True, exclusive=True)
    def _load(self) -> None:
        if self.inbox.refresh(self.cancel) and not self.cancel.cancelled:
            self.app.call_from_thread(self._render_view)
            self.inbox.subscribe(lambda _m: self.app.call_from_thread(self._render_view))

    @work(thread=True, exclusive=True, group="history")
    def _load_history(self) -> None:
        if self.inbox.load_history(self.cancel):
            self.app.call_from_thread(self._render_view)

    @property
    def shown(self) -> List[Message]:
        return self.inbox.history if self.showing_history else self.inbox.messages

    def _render_view(self) -> None:
        title = "inbox.history" if self.showing_history else "inbox.pending"
        self.query_one("#inbox-title", Static).update(title)
        self.query_one("#toggle-history", Button).label = "Pending" if self.showing_history else "History"
        for button_id in ("#publish", "#silence"):
            self.query_one(button_id, Button).disabled = self.showing_history
        self.query_one("#reply-input", Input).display = not self.showing_history
        listing = self.query_one("#inbox-list", ListView)
        listing.clear()
        if not self.shown:
            empty = "No messages yet." if self.showing_history else "Silence is an answer too. Nothing pending."
            listing.append(ListItem(Label(empty)))
        for message in self.shown:
            status = Text(f"[{message.status}] ", style="dim") if self.showing_history else Text()
            status.append_text(render_message(message))
            listing.append(KeyedItem(Static(status), row_key=message.id))

    def _selected(self) -> Optional[Message]:
        return selected_message(self.query_one("#inbox-list", ListView).highlighted_child, self.shown)

    def on_button_pressed(self, event: Button.Pressed) -> None:
        if event.button.id == "toggle-history":
            self.showing_history = not self.showing_history
            self._render_view()
            if self.showing_history:
                self._load_history()
            return
        message = self._selected()
        if message is None:
            return
        if event.button.id == "publish":
            reply_input = self.query_one("#reply-input", Input)
            reply_input.disabled = True
            self._publish(message.id, reply_input.value)
        elif event.button.id == "silence":
            self._archive(message.id)
        elif event.button.id == "delete":
            if self.delete_armed != message.id:
                self.delete_armed = message.id
                self.app.notify("Press Delete again to remove it forever.", severity="warning")
                return
            self.delete_armed = None
            self._delete(message.id)

    @work(thread=True, exclusive=True, group="publish")
    def _publish(self, message_id: str, content: str) -> None:
        published = self.inbox.publish_reply(message_id, content)
        self.app.call_from_thread(self._after_publish, published)

    def _after_publish(self, published: bool) -> None:
        reply_input = self.query_one("#reply-input", Input)
        reply_input.disabled = False
        if published:
            reply_input.value = ""
            self._render_view()

    @work(thread=True)
    def _archive(self, message_id: str) -> None:
        if self.inbox.archive(message_id):
            self.app.call_from_thread(self._render_view)

    @work(thread=True)
    def _delete(self, message_id: str) -> None:
        if self.inbox.delete(message_id, confirm=lambda: True):
            self.app.call_from_thread(self._render_view)


# ───────── Public profile ─────────
class ProfileView(Container):
    BINDINGS = [
        Binding("l", "like", "Like", show=False),
        Binding("b", "bookmark", "Bookmark", show=False),
        Binding("u", "follow_up", "Follow-up", show=False),
        Binding("r", "report", "Report", show=False),
    ]

    def __init__(self, username: str, fetcher: ProfileFetcher, reactions: SocialActionController, session: SessionResolver, api, notifier: Notifier, **kwargs):
        super().__init__(**kwargs)
        self.username = username
        self.fetcher = fetcher
        self.reactions = reactions
        self.session = session
        self.api = api
        self.notifier = notifier
        self.cancel = CancelToken()
        self.threads: List[Thread] = []
        self.composer: Optional[Composer] = None

    def compose(self) -> ComposeResult:
        yield Static(f"@{self.username}", id="profile-header", classes="panel-header")
        yield Static("", id="profile-bio")
        yield Input(placeholder="Ask me anything anonymously…", max_length=MAX_MESSAGE_LENGTH, id="ask-input")
        yield Static("", id="ask-status")
        yield ListView(id="thread-list")

    def on_mount(self) -> None:
        self._load()

    def on_unmount(self) -> None:
        self.cancel.cancel()

    @work(thread=True, exclusive=True)
    def _load(self) -> None:
        page = self.fetcher.fetch_public(self.username, cancel=self.cancel)
        if page is not None:
            self.app.call_from_thread(self._render_view, page)

    def _render_view(self, page) -> None:
        if not page.found:
            self.query_one("#profile-header", Static).update(f"@{self.username} was not found")
            self.query_one("#ask-input", Input).display = False
            return
        profile = page.profile
        self.composer = Composer(self.api, self.notifier, profile.id)
        self.threads = page.threads
        self.query_one("#profile-header", Static).update(f"{profile.label}  @{profile.username}")
        self.query_one("#profile-bio", Static).update(profile.bio or "")
        ask = self.query_one("#ask-input", Input)
        ask.disabled = profile.is_paused
        if profile.is_paused:
            ask.placeholder = "This inbox is paused by its owner"
        listing = self.query_one("#thread-list", ListView)
        listing.clear()
        if not self.threads:
            listing.append(ListItem(Label("No conversations public yet.")))
        for thread in self.threads:
            listing.append(KeyedItem(Static(render_thread(thread, self.session.user_id)), row_key=thread.thread_id))

    def on_input_changed(self, event: Input.Changed) -> None:
        if event.input.id == "ask-input" and self.composer is not None:
            self.composer.set_text(event.value)
            mode = f" (follow-up in {self.composer.thread_id[:8]})" if self.composer.thread_id else ""
            self.query_one("#ask-status", Static).update(f"{len(self.composer.text)} / {MAX_MESSAGE_LENGTH}{mode}")

    def on_input_submitted(self, event: Input.Submitted) -> None:
        if event.input.id == "ask-input" and self.composer is not None and not self.composer.sending:
            event.input.disabled = True
            self._send()

    @work(thread=True, exclusive=True, group="send")
    def _send(self) -> None:
        sent = self.composer.submit()
        self.app.call_from_thread(self._after_send, sent)

    def _after_send(self, sent: bool) -> None:
        ask = self.query_one("#ask-input", Input)
        ask.disabled = False
        if sent:
            ask.value = ""
            self.query_one("#ask-status", Static).update("")

    def _selected(self) -> Optional[Thread]:
        item = self.query_one("#thread-list", ListView).highlighted_child
        row_key = getattr(item, "row_key", None)
        return next((t for t in self.threads if t.thread_id == row_key), None)

    def action_follow_up(self) -> None:
        thread = self._selected()
        if thread is None or self.composer is None:
            return
        if not thread.accepts_follow_up(self.session.user_id):
            self.notifier.info("Only the original asker can follow up")
            return
        self.composer.reply_in_thread(thread.thread_id)
        self.query_one("#ask-input", Input).focus()

    def action_like(self) -> None:
        self._react("like", self._selected())

    def action_bookmark(self) -> None:
        self._react("bookmark", self._selected())

    def action_report(self) -> None:
        thread = self._selected()
        if thread is not None:
            self._report(thread.root)

    @work(thread=True)
    def _react(self, kind: str, thread: Optional[Thread]) -> None:
        if thread is None:
            return
        message = thread.messages[-1]
        toggle = self.reactions.toggle_like if kind == "like" else self.reactions.toggle_bookmark
        toggle(message)
        self.app.call_from_thread(self._rerender_threads)

    @work(thread=True)
    def _report(self, message: Message) -> None:
        self.reactions.report(message)

    def _rerender_threads(self) -> None:
        by_id = {t.thread_id: t for t in self.threads}
        for item in self.query_one("#thread-list", ListView).query(KeyedItem):
            thread = by_id.get(item.row_key)
            if thread is not None:
                item.query_one(Static).update(render_thread(thread, self.session.user_id))


# ───────── Own page and saved lists ─────────
class MeView(VerticalScroll):
    def __init__(self, fetcher: ProfileFetcher, session: SessionResolver, **kwargs):
        super().__init__(**kwargs)
        self.fetcher = fetcher
        self.session = session
        self.cancel = CancelToken()
        self.focused_handle: Optional[str] = None

    def compose(self) -> ComposeResult:
        yield Static("me", id="me-header", classes="panel-header")
        yield ListView(id="own-threads")
        yield Static("me.bookmarks", classes="panel-header")
        yield ListView(id="bookmark-list")
        yield Static("me.likes", classes="panel-header")
        yield ListView(id="like-list")
        yield Button("Open selected profile", id="open-profile")

    def on_mount(self) -> None:
        self._load()

    def on_unmount(self) -> None:
        self.cancel.cancel()

    @work(thread=True, exclusive=True)
    def _load(self) -> None:
        page = self.fetcher.fetch_own(cancel=self.cancel)
        if page is None:
            return
        self.app.call_from_thread(self._render_own, page)
        for kind, list_id in (("bookmark", "#bookmark-list"), ("like", "#like-list")):
            saved = self.fetcher.fetch_saved(kind, cancel=self.cancel)
            if saved is not None:
                self.app.call_from_thread(self._render_saved, list_id, saved)

    def _render_own(self, page) -> None:
        if page.profile is not None:
            self.query_one("#me-header", Static).update(f"{page.profile.label}  @{page.profile.username}")
        listing = self.query_one("#own-threads", ListView)
        listing.clear()
        for thread in group_threads(page.messages):
            listing.append(KeyedItem(Static(render_thread(thread, self.session.user_id)), row_key=thread.thread_id))

    def _render_saved(self, list_id: str, messages: List[Message]) -> None:
        listing = self.query_one(list_id, ListView)
        listing.clear()
        if not messages:
            listing.append(ListItem(Label("Nothing saved yet.")))
        for message in messages:
            handle = message.receiver.username if message.receiver else None
            listing.append(KeyedItem(Static(render_feed_entry(message)), row_key=message.id, handle=handle))

    def on_list_view_highlighted(self, event: ListView.Highlighted) -> None:
        self.focused_handle = getattr(event.item, "handle", None)

    def on_button_pressed(self, event: Button.Pressed) -> None:
        if event.button.id == "open-profile" and self.focused_handle:
            self.app.navigate(profile_route(self.focused_handle))


# ───────── Friends ─────────
class FriendsView(VerticalScroll):
    def __init__(self, friends: FriendGraphController, **kwargs):
        super().__init__(**kwargs)
        self.friends = friends
        self.results = []
        self.focused_handle: Optional[str] = None

    def compose(self) -> ComposeResult:
        yield Static("friends.feed", classes="panel-header")
        yield ListView(id="feed-list")
        yield Static("friends.requests", classes="panel-header")
        yield ListView(id="request-list")
        yield Static("friends.list", classes="panel-header")
        yield ListView(id="friend-list")
        yield Static("friends.search", classes="panel-header")
        yield Input(placeholder="Find users (2+ characters)", id="user-search")
        yield ListView(id="search-list")
        with Horizontal(classes="actions"):
            yield Button("Open profile", id="open-profile", variant="primary")
            yield Button("Accept request", id="accept")
            yield Button("Unfriend", id="unfriend", variant="error")
            yield Button("Add friend", id="add-friend")

    def on_mount(self) -> None:
        self._load()

    def on_unmount(self) -> None:
        self.friends.close()

    @work(thread=True, exclusive=True)
    def _load(self) -> None:
        self.friends.load_feed()
        self.friends.load_requests()
        self.friends.load_friends()
        self.app.call_from_thread(self._render_view)

    def _render_view(self) -> None:
        feed = self.query_one("#feed-list", ListView)
        feed.clear()
        if not self.friends.feed:
            feed.append(ListItem(Label("No answers from friends yet.")))
        for message in self.friends.feed:
            handle = message.receiver.username if message.receiver else None
            feed.append(KeyedItem(Static(render_feed_entry(message)), row_key=message.id, handle=handle))
        requests_list = self.query_one("#request-list", ListView)
        requests_list.clear()
        for request in self.friends.requests:
            who = request.other.label if request.other else request.sender_id
            handle = request.other.username if request.other else None
            requests_list.append(KeyedItem(Label(f"{who} wants to be friends"), row_key=request.id, handle=handle))
        friend_list = self.query_one("#friend-list", ListView)
        friend_list.clear()
        for friendship in self.friends.friends:
            handle = friendship.other.username if friendship.other else None
            friend_list.append(KeyedItem(Label(f"@{handle}" if handle else friendship.id), row_key=friendship.id, handle=handle))

    def _render_results(self, results) -> None:
        self.results = list(results)
        listing = self.query_one("#search-list", ListView)
        listing.clear()
        for user in self.results:
            listing.append(KeyedItem(Label(f"{user.label}  @{user.username}"), row_key=user.id, handle=user.username))

    def on_input_changed(self, event: Input.Changed) -> None:
        if event.input.id == "user-search":
            self.friends.search_as_you_type(event.value, self._deliver_results)

    def _deliver_results(self, results) -> None:
        on_ui_thread(self.app, self._render_results, results)

    def on_list_view_highlighted(self, event: ListView.Highlighted) -> None:
        self.focused_handle = getattr(event.item, "handle", None)

    def _row_key(self, list_id: str) -> Optional[str]:
        return getattr(self.query_one(list_id, ListView).highlighted_child, "row_key", None)

    def on_button_pressed(self, event: Button.Pressed) -> None:
        button_id = event.button.id
        if button_id == "open-profile":
            if self.focused_handle:
                self.app.navigate(profile_route(self.focused_handle))
            return
        action, list_id = {
            "accept": ("accept", "#request-list"),
            "unfriend": ("unfriend", "#friend-list"),
            "add-friend": ("send_request", "#search-list"),
        }.get(button_id, (None, None))
        if action is None:
            return
        row_key = self._row_key(list_id)
        if row_key is not None:
            self._mutate(action, row_key)

    @work(thread=True)
    def _mutate(self, action: str, target_id: str) -> None:
        if getattr(self.friends, action)(target_id):
            self.app.call_from_thread(self._render_view)


# ───────── Settings ─────────
class SettingsView(VerticalScroll):
    def __init__(self, controller: SettingsController, **kwargs):
        super().__init__(**kwargs)
        self.controller = controller
        self.delete_armed = False

    def compose(self) -> ComposeResult:
        yield Static("settings.profile", classes="panel-header")
        yield Static("", id="public-link")
        yield Button("View my public page", id="view-public")
        yield Static("", id="avatar-preview", classes="ascii-avatar")
        yield Input(placeholder="Path to an image file", id="avatar-path")
        yield Button("Upload avatar", id="upload-avatar")
        yield Input(placeholder="Display name", id="display-name")
        yield Input(placeholder="Bio", id="bio")
        yield Button("Save profile", id="save-profile", variant="primary")
        yield Static("\n→ Inbox", classes="settings-section-header")
        yield Button("Pause inbox", id="toggle-pause")
        yield Static("\n→ Blocked phrases", classes="settings-section-header")
        yield Input(placeholder="Add a phrase and press enter", id="blocked-input")
        yield ListView(id="blocked-list")
        yield Button("Remove selected phrase", id="remove-phrase")
        yield Static("\n→ Danger zone", classes="settings-section-header")
        yield Button("Delete account", id="delete-account", variant="error")

    def on_mount(self) -> None:
        self._load()

    @work(thread=True, exclusive=True)
    def _load(self) -> None:
        if self.controller.load() is not None:
            self.app.call_from_thread(self._render_view)

    def _render_view(self) -> None:
        profile = self.controller.profile
        if profile is None:
            return
        self.query_one("#public-link", Static).update(f"Public link: {self.controller.public_link}")
        self.query_one("#display-name", Input).value = self.controller.form.display_name
        self.query_one("#bio", Input).value = self.controller.form.bio
        self.query_one("#avatar-preview", Static).update(self.controller.avatar_preview)
        self.query_one("#toggle-pause", Button).label = "Resume inbox" if profile.is_paused else "Pause inbox"
        phrases = self.query_one("#blocked-list", ListView)
        phrases.clear()
        for phrase in profile.blocked_phrases:
            phrases.append(KeyedItem(Label(phrase), row_key=phrase))

    def on_input_submitted(self, event: Input.Submitted) -> None:
        if event.input.id == "blocked-input":
            event.input.value = ""
            self._run("add_blocked_phrase", event.value)

    def on_button_pressed(self, event: Button.Pressed) -> None:
        button_id = event.button.id
        if button_id == "view-public":
            if self.controller.profile is not None:
                self.app.navigate(profile_route(self.controller.profile.username))
        elif button_id == "toggle-pause":
            self._run("toggle_pause")
        elif button_id == "remove-phrase":
            phrase = getattr(self.query_one("#blocked-list", ListView).highlighted_child, "row_key", None)
            if phrase is not None:
                self._run("remove_blocked_phrase", phrase)
        elif button_id == "upload-avatar":
            self._run("upload_avatar", self.query_one("#avatar-path", Input).value.strip())
        elif button_id == "save-profile":
            self.controller.form.display_name = self.query_one("#display-name", Input).value
            self.controller.form.bio = self.query_one("#bio", Input).value
            self._run("save")
        elif button_id == "delete-account":
            if not self.delete_armed:
                self.delete_armed = True
                self.app.notify("This cannot be undone. Press Delete account again to confirm.", severity="warning")
                return
            self._delete_account()

    @work(thread=True)
    def _run(self, action: str, *args) -> None:
        getattr(self.controller, action)(*args)
        self.app.call_from_thread(self._render_view)

    @work(thread=True, exclusive=True)
    def _delete_account(self) -> None:
        if self.controller.delete_account(confirm=lambda: self.delete_armed):
            self.app.call_from_thread(self.app.navigate, LANDING_ROUTE)


class RepliedApp(App):
    CSS = """
    #app-header { dock: top; height: 1; background: $primary; }
    #app-footer { dock: bottom; height: 1; text-style: dim; }
    #go-to { dock: top; display: none; }
    .panel-header { text-style: bold; margin: 1 0 0 0; }
    .error-text { color: $error; }
    .actions { height: auto; }
    ListView { height: auto; max-height: 16; }
    """

    ENABLE_COMMAND_PALETTE = False

    BINDINGS = [
        Binding("q", "quit", "Quit", show=False),
        Binding("i", "show('/inbox')", "Inbox", show=False),
        Binding("f", "show('/friends')", "Friends", show=False),
        Binding("m", "show('/me')", "Me", show=False),
        Binding("s", "show('/settings')", "Settings", show=False),
        Binding("p", "open_profile", "Open profile", show=False),
        Binding("escape", "close_go_to", "Close", show=False),
        Binding("o", "sign_out", "Sign out", show=False),
    ]

    def __init__(self, settings: Settings | None = None, initial_route: str = INBOX_ROUTE):
        super().__init__()
        self.settings = settings or load_settings()
        self.notifier = TextualNotifier(self)
        self.provider = OAuthProvider(self.settings)
        self.api = RealAPI(self.settings.backend_url, timeout=self.settings.request_timeout)
        self.resolver = SessionResolver(self.provider, self.api)
        self.api.token_source = self.resolver.token
        self.storage = AvatarStorage(self.settings.storage_url, self.resolver.token, bucket=self.settings.storage_bucket)
        self.inbox = InboxController(self.api, self.notifier, poll_interval=self.settings.inbox_poll_interval)
        self.reactions = SocialActionController(self.api, self.notifier, lambda: self.resolver.user_id)
        self.current_route = initial_route

    def compose(self) -> ComposeResult:
        yield Static("replied", id="app-header", markup=False)
        yield Input(placeholder="Go to @handle and press enter (esc to close)", id="go-to")
        yield Container(id="screen-container")
        yield Static(FOOTER, id="app-footer", markup=False)

    def on_mount(self) -> None:
        self.resolver.add_listener(self._session_changed)
        self._start_session()

    def on_unmount(self) -> None:
        self.inbox.unsubscribe()
        self.resolver.stop()

    @work(thread=True, exclusive=True, group="session")
    def _start_session(self) -> None:
        self.resolver.start()

    def _session_changed(self, resolver: SessionResolver) -> None:
        on_ui_thread(self, self._reroute)

    def _reroute(self) -> None:
        who = f"@{self.resolver.username}" if self.resolver.username else "signed out"
        self.query_one("#app-header", Static).update(f"replied [{self.current_route}] {who}")
        redirect = self.resolver.redirect_for(self.current_route)
        if redirect is not None:
            self.navigate(redirect)
        elif not self.query("#screen-container > *"):
            self.navigate(self.current_route)

    def navigate(self, route: str) -> None:
        """Show ``route`` after applying the session guard."""
        for _ in range(3):
            redirect = self.resolver.redirect_for(route)
            if redirect is None or redirect == route:
                break
            logger.debug("redirect %s -> %s", route, redirect)
            route = redirect
        self.current_route = route
        container = self.query_one("#screen-container", Container)
        container.remove_children()
        container.mount(self._view_for(route))
        who = f"@{self.resolver.username}" if self.resolver.username else "signed out"
        self.query_one("#app-header", Static).update(f"replied [{route}] {who}")

    def _view_for(self, route: str):
        path = route.split("?", 1)[0]
        if self.resolver.loading:
            return Static("Loading…")
        if path == SETUP_ROUTE:
            return SetupView(UsernameClaim(self.api, self.notifier, self.resolver))
        if path == INBOX_ROUTE:
            return InboxView(self.inbox)
        if path == FRIENDS_ROUTE:
            return FriendsView(FriendGraphController(self.api, self.notifier))
        if path == ME_ROUTE:
            return MeView(ProfileFetcher(self.api, self.notifier), self.resolver)
        if path == SETTINGS_ROUTE:
            return SettingsView(SettingsController(self.api, self.notifier, self.resolver, self.storage, self.settings.public_base_url))
        username = profile_username(route)
        if username is not None:
            return ProfileView(
                username,
                ProfileFetcher(self.api, self.notifier),
                self.reactions,
                self.resolver,
                self.api,
                self.notifier,
            )
        return LandingView(error=route == AUTH_ERROR_ROUTE)

    def action_show(self, route: str) -> None:
        self.navigate(route)

    def action_open_profile(self) -> None:
        go_to = self.query_one("#go-to", Input)
        go_to.display = True
        go_to.focus()

    def action_close_go_to(self) -> None:
        go_to = self.query_one("#go-to", Input)
        go_to.value = ""
        go_to.display = False

    def on_input_submitted(self, event: Input.Submitted) -> None:
        if event.input.id != "go-to":
            return
        username = clean_username(event.value.lstrip("@"))
        self.action_close_go_to()
        if username:
            self.navigate(profile_route(username))

    def action_sign_out(self) -> None:
        self._sign_out()

    @work(thread=True, exclusive=True, group="auth")
    def _sign_out(self) -> None:
        self.inbox.unsubscribe()
        self.resolver.sign_out()
        self.call_from_thread(self.navigate, LANDING_ROUTE)

    @work(thread=True, exclusive=True, group="auth")
    def sign_in(self) -> None:
        try:
            self.provider.begin_sign_in()
            code = self.provider.wait_for_code()
        except AuthError as exc:
            self.notifier.error(str(exc))
            return
        flow = AuthCallbackFlow(self.provider, lambda route: self.call_from_thread(self.navigate, route)).start()
        try:
            self.provider.exchange_code(code)
        except AuthError as exc:
            # the callback flow times out and routes to the error page
            logger.warning("code exchange failed: %s", exc)
        flow.wait()


def initial_route_from_args(argv: Sequence[str]) -> str:
    """``replied alice`` opens @alice's page; no argument opens the inbox."""
    if argv:
        username = clean_username(argv[0].lstrip("@"))
        if username:
            return profile_route(username)
    return INBOX_ROUTE


def main(argv: Sequence[str] | None = None):
    configure_logging()
    logger.debug("starting replied")
    route = initial_route_from_args(sys.argv[1:] if argv is None else argv)
    try:
        RepliedApp(initial_route=route).run()
    except Exception:
        logger.exception("Exception occurred while running RepliedApp:")


if __name__ == "__main__":
    main()
