"""Textual app for PassVault.

Start here with `python -m passvault.frontend.cli.app` or `passvault`
"""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime
from typing import Optional

import pyperclip
from textual import events, on
from textual.app import App, ComposeResult
from textual.containers import Horizontal, Vertical, VerticalScroll
from textual.message import Message
from textual.screen import ModalScreen
from textual.widgets import (
    Button,
    Checkbox,
    DataTable,
    Footer,
    Header,
    Input,
    Label,
    ListItem,
    ListView,
    Select,
    Static,
)

from passvault.core import totp
from passvault.core.audit import find_duplicate_passwords, find_weak_passwords, security_score
from passvault.core.config import PasswordGeneratorConfig, SecurityConfig, load_config, save_config
from passvault.core.exceptions import (
    CorruptVaultError,
    DecryptionFailedError,
    PassVaultError,
    TooManyAttemptsError,
    ValidationError,
)
from passvault.core.generator import MIN_PASSWORD_LENGTH, PasswordConfig, generate_passphrase, generate_password
from passvault.core.models import CardDetails, Entry, EntryType, Folder, IdentityDetails, Vault, create_entry_from_dict
from passvault.core.validator import calculate_entropy, estimate_crack_time, password_strength, validate_master_password
from passvault.frontend.cli.autolock import AutoLocker
from passvault.frontend.cli.context import AppContext, build_context

logger = logging.getLogger(__name__)

MASK = "••••••••"
NO_FOLDER = ""


def _format_time(value: Optional[datetime], fmt: str) -> str:
    if value is None:
        return "never"
    return value.astimezone().strftime(fmt)


# === Messages routed from timer threads ===


class AutoLockRequested(Message):
    """The inactivity timer expired."""


class ClipboardCleared(Message):
    """A copied secret was wiped from the clipboard."""


# === Modal definitions ===


class UnlockModal(ModalScreen[Optional[str]]):
    """Master password prompt; in create mode asks for a confirmation too."""

    def __init__(self, create: bool = False, vault_path: str = ""):
        super().__init__()
        self.create = create
        self.vault_path = vault_path

    def compose(self) -> ComposeResult:  # pragma: no cover - UI only
        with Vertical(classes="dialog small"):
            title = "Create Vault" if self.create else "Unlock Vault"
            yield Static(title, classes="title")
            yield Static(self.vault_path, classes="section-label")
            yield Label("Master password")
            self.password_input = Input(password=True, id="password")
            yield self.password_input
            if self.create:
                yield Label("Confirm master password")
                self.confirm_input = Input(password=True, id="confirm")
                yield self.confirm_input
            with Horizontal():
                yield Button("Quit (Esc)", id="cancel")
                yield Button("Create (Enter)" if self.create else "Unlock (Enter)", id="ok", variant="primary")

    def on_mount(self) -> None:  # pragma: no cover
        self.set_focus(self.password_input)

    def _submit(self) -> None:
        password = self.password_input.value
        if self.create:
            try:
                validate_master_password(password, self.confirm_input.value)
            except ValidationError as exc:
                self.app.notify(str(exc), severity="error")
                return
        elif not password:
            self.app.notify("Password cannot be empty", severity="error")
            return
        self.dismiss(password)

    def on_button_pressed(self, event: Button.Pressed) -> None:  # pragma: no cover
        if event.button.id == "cancel":
            self.dismiss(None)
        else:
            self._submit()

    def on_key(self, event) -> None:  # pragma: no cover
        if event.key == "escape":
            self.dismiss(None)
        elif event.key == "enter":
            self._submit()


class EntryTypeModal(ModalScreen[Optional[EntryType]]):
    def compose(self) -> ComposeResult:  # pragma: no cover
        with Vertical(classes="dialog small"):
            yield Static("New Entry", classes="title")
            for entry_type in EntryType:
                yield Button(entry_type.label, id=f"type-{entry_type.value}")
            yield Button("Cancel (Esc)", id="cancel")

    def on_button_pressed(self, event: Button.Pressed) -> None:  # pragma: no cover
        if event.button.id == "cancel":
            self.dismiss(None)
            return
        self.dismiss(EntryType(int(event.button.id.split("-", 1)[1])))

    def on_key(self, event) -> None:  # pragma: no cover
        if event.key == "escape":
            self.dismiss(None)


class EntryFormResult:
    def __init__(self, entry_type: EntryType, fields: dict, card: CardDetails | None = None, identity: IdentityDetails | None = None):
        self.entry_type = entry_type
        self.fields = fields
        self.card = card
        self.identity = identity


class EntryEditorModal(ModalScreen[Optional[EntryFormResult]]):
    """Create or edit an entry; the fields shown depend on the entry type."""

    CARD_FIELDS = (
        ("cardholder_name", "Cardholder name"),
        ("number", "Card number"),
        ("brand", "Brand"),
        ("exp_month", "Expiry month"),
        ("exp_year", "Expiry year"),
        ("cvv", "CVV"),
    )
    IDENTITY_FIELDS = (
        ("title", "Title"),
        ("first_name", "First name"),
        ("middle_name", "Middle name"),
        ("last_name", "Last name"),
        ("email", "Email"),
        ("phone", "Phone"),
        ("address1", "Address"),
        ("address2", "Address line 2"),
        ("city", "City"),
        ("state", "State / region"),
        ("postal_code", "Postal code"),
        ("country", "Country"),
        ("ssn", "Social security number"),
        ("passport_number", "Passport number"),
    )
    SECRET_FIELDS = frozenset({"cvv", "ssn", "passport_number"})

    def __init__(self, entry_type: EntryType, entry: Entry | None = None, folders: list[tuple[str, str]] | None = None, default_folder: str | None = None):
        super().__init__()
        self.entry_type = entry_type
        self.entry = entry
        self.folders = folders or []
        self.default_folder = default_folder
        self.inputs: dict[str, Input] = {}

    def _input(self, key: str, label: str, value: str = "", password: bool = False) -> ComposeResult:
        yield Label(label)
        widget = Input(value=value, password=password, id=key)
        self.inputs[key] = widget
        yield widget

    def compose(self) -> ComposeResult:  # pragma: no cover - UI only
        entry = self.entry
        title = f"Edit {self.entry_type.label}" if entry else f"New {self.entry_type.label}"
        with VerticalScroll(classes="dialog"):
            yield Static(title, classes="title")
            yield from self._input("name", "Name", entry.name if entry else "")

            if self.entry_type is EntryType.LOGIN:
                yield from self._input("username", "Username", entry.username if entry else "")
                yield from self._input("password", "Password", entry.password if entry else "", password=True)
                yield Button("Generate password", id="generate")
                yield from self._input("uri", "URL", entry.uri if entry else "")
                yield from self._input("totp_secret", "TOTP secret or otpauth:// URI", entry.totp_secret if entry else "")
            elif self.entry_type is EntryType.CARD:
                card = entry.card if entry and entry.card else CardDetails()
                for key, label in self.CARD_FIELDS:
                    yield from self._input(f"card-{key}", label, getattr(card, key), password=key in self.SECRET_FIELDS)
            elif self.entry_type is EntryType.IDENTITY:
                identity = entry.identity if entry and entry.identity else IdentityDetails()
                for key, label in self.IDENTITY_FIELDS:
                    yield from self._input(f"identity-{key}", label, getattr(identity, key), password=key in self.SECRET_FIELDS)

            yield from self._input("notes", "Notes", entry.notes if entry else "")
            yield from self._input("tags", "Tags (comma-separated)", ", ".join(entry.tags) if entry else "")

            yield Label("Folder")
            current = (entry.folder_id if entry else self.default_folder) or NO_FOLDER
            options = [("(none)", NO_FOLDER)] + [(path, fid) for fid, path in self.folders]
            if current not in {value for _, value in options}:
                current = NO_FOLDER
            self.folder_select = Select(options, value=current, allow_blank=False, id="folder")
            yield self.folder_select
            self.favorite_box = Checkbox("Favorite", value=bool(entry and entry.is_favorite), id="favorite")
            yield self.favorite_box
            with Horizontal():
                yield Button("Cancel (Esc)", id="cancel")
                yield Button("Save (Ctrl+S)", id="ok", variant="primary")

    def on_mount(self) -> None:  # pragma: no cover
        self.set_focus(self.inputs["name"])

    def _value(self, key: str) -> str:
        widget = self.inputs.get(key)
        return widget.value.strip() if widget is not None else ""

    def _submit(self) -> None:
        name = self._value("name")
        if not name:
            self.app.notify("Entry name cannot be empty", severity="error")
            return
        totp_value = self._value("totp_secret")
        if totp_value:
            try:
                totp.config_for_secret(totp_value).generate_code()
            except PassVaultError as exc:
                self.app.notify(f"Invalid TOTP secret: {exc}", severity="error")
                return

        folder = self.folder_select.value
        fields = {
            "name": name,
            "notes": self._value("notes"),
            "tags": [t.strip() for t in self._value("tags").split(",") if t.strip()],
            "folder_id": folder if isinstance(folder, str) and folder else None,
            "is_favorite": self.favorite_box.value,
        }
        card = identity = None
        if self.entry_type is EntryType.LOGIN:
            fields.update(
                username=self._value("username"),
                password=self.inputs["password"].value,
                uri=self._value("uri"),
                totp_secret=totp_value,
            )
        elif self.entry_type is EntryType.CARD:
            card = self._details(CardDetails, "card", self.CARD_FIELDS, self.entry.card if self.entry else None)
        elif self.entry_type is EntryType.IDENTITY:
            identity = self._details(IdentityDetails, "identity", self.IDENTITY_FIELDS, self.entry.identity if self.entry else None)
        self.dismiss(EntryFormResult(self.entry_type, fields, card=card, identity=identity))

    def _details(self, cls, prefix: str, shown, current):
        # start from the stored payload so fields without an input survive an edit
        values = current.to_dict() if current is not None else {}
        values.update({key: self._value(f"{prefix}-{key}") for key, _ in shown if f"{prefix}-{key}" in self.inputs})
        return cls(**values)

    def _fill_password(self, value: Optional[str]) -> None:
        if value:
            self.inputs["password"].value = value

    def on_button_pressed(self, event: Button.Pressed) -> None:  # pragma: no cover
        if event.button.id == "cancel":
            self.dismiss(None)
        elif event.button.id == "generate":
            self.app.push_screen(GeneratorModal(self.app.password_config()), self._fill_password)
        else:
            self._submit()

    def on_key(self, event) -> None:  # pragma: no cover
        if event.key == "escape":
            self.dismiss(None)
        elif event.key == "ctrl+s":
            self._submit()


class GeneratorModal(ModalScreen[Optional[str]]):
    """Generate a password or passphrase; dismisses with the accepted value."""

    def __init__(self, config: PasswordConfig | None = None, passphrase_config=None):
        super().__init__()
        self.config = config or PasswordConfig()
        self.passphrase_config = passphrase_config
        self.value = ""

    def compose(self) -> ComposeResult:  # pragma: no cover - UI only
        with Vertical(classes="dialog small"):
            yield Static("Password Generator", classes="title")
            self.generated = Static("", id="generated")
            yield self.generated
            self.strength = Static("", classes="section-label", id="strength")
            yield self.strength
            yield Label("Length")
            self.length_input = Input(value=str(self.config.length), id="length")
            yield self.length_input
            self.symbols_box = Checkbox("Symbols", value=self.config.include_symbols, id="symbols")
            yield self.symbols_box
            self.passphrase_box = Checkbox("Passphrase", value=False, id="passphrase")
            yield self.passphrase_box
            with Horizontal():
                yield Button("Cancel (Esc)", id="cancel")
                yield Button("Regenerate (r)", id="regen")
                yield Button("Use (Enter)", id="ok", variant="primary")

    def on_mount(self) -> None:  # pragma: no cover
        self.regenerate()

    def regenerate(self) -> None:
        try:
            if self.passphrase_box.value:
                self.value = generate_passphrase(self.passphrase_config)
            else:
                self.config.length = int(self.length_input.value or self.config.length)
                self.config.include_symbols = self.symbols_box.value
                self.value = generate_password(self.config)
        except (ValueError, ValidationError) as exc:
            self.app.notify(str(exc), severity="error")
            return
        entropy = calculate_entropy(self.value)
        self.generated.update(self.value)
        self.strength.update(
            f"{password_strength(self.value).label} - {entropy:.0f} bits - cracked in {estimate_crack_time(entropy)}"
        )

    def on_button_pressed(self, event: Button.Pressed) -> None:  # pragma: no cover
        if event.button.id == "cancel":
            self.dismiss(None)
        elif event.button.id == "regen":
            self.regenerate()
        else:
            self.dismiss(self.value or None)

    def on_key(self, event) -> None:  # pragma: no cover
        if event.key == "escape":
            self.dismiss(None)
        elif event.key == "enter":
            self.dismiss(self.value or None)


class NewFolderResult:
    def __init__(self, name: str, parent_id: str | None):
        self.name = name
        self.parent_id = parent_id


class FolderModal(ModalScreen[Optional[NewFolderResult]]):
    def __init__(self, parent_id: str | None = None, parent_path: str = ""):
        super().__init__()
        self.parent_id = parent_id
        self.parent_path = parent_path

    def compose(self) -> ComposeResult:  # pragma: no cover
        with Vertical(classes="dialog small"):
            yield Static("New Folder", classes="title")
            if self.parent_path:
                yield Static(f"Inside: {self.parent_path}", classes="section-label")
            yield Label("Folder name")
            self.name_input = Input(id="folder-name")
            yield self.name_input
            with Horizontal():
                yield Button("Cancel (Esc)", id="cancel")
                yield Button("Create (Enter)", id="ok", variant="primary")

    def on_mount(self) -> None:  # pragma: no cover
        self.set_focus(self.name_input)

    def _submit(self) -> None:
        name = self.name_input.value.strip()
        if not name:
            self.app.notify("Folder name cannot be empty", severity="error")
            return
        self.dismiss(NewFolderResult(name, self.parent_id))

    def on_button_pressed(self, event: Button.Pressed) -> None:  # pragma: no cover
        if event.button.id == "cancel":
            self.dismiss(None)
        else:
            self._submit()

    def on_key(self, event) -> None:  # pragma: no cover
        if event.key == "escape":
            self.dismiss(None)
        elif event.key == "enter":
            self._submit()


class DeleteConfirmModal(ModalScreen[Optional[bool]]):
    def __init__(self, prompt: str):
        super().__init__()
        self.prompt = prompt

    def compose(self) -> ComposeResult:  # pragma: no cover
        with Vertical(classes="dialog small"):
            yield Static(self.prompt)
            with Horizontal():
                yield Button("Cancel (Esc)", id="cancel")
                yield Button("Delete (Enter)", id="ok", variant="error")

    def on_button_pressed(self, event: Button.Pressed) -> None:  # pragma: no cover
        self.dismiss(event.button.id == "ok")

    def on_key(self, event) -> None:  # pragma: no cover
        if event.key == "escape":
            self.dismiss(False)
        elif event.key == "enter":
            self.dismiss(True)


class ChangePasswordResult:
    def __init__(self, current: str, new: str):
        self.current = current
        self.new = new


class ChangePasswordModal(ModalScreen[Optional[ChangePasswordResult]]):
    def compose(self) -> ComposeResult:  # pragma: no cover - UI only
        with Vertical(classes="dialog small"):
            yield Static("Change Master Password", classes="title")
            yield Label("Current password")
            self.current_input = Input(password=True, id="current")
            yield self.current_input
            yield Label("New password")
            self.new_input = Input(password=True, id="new")
            yield self.new_input
            yield Label("Confirm new password")
            self.confirm_input = Input(password=True, id="confirm")
            yield self.confirm_input
            with Horizontal():
                yield Button("Cancel (Esc)", id="cancel")
                yield Button("Change (Enter)", id="ok", variant="primary")

    def on_mount(self) -> None:  # pragma: no cover
        self.set_focus(self.current_input)

    def _submit(self) -> None:
        try:
            validate_master_password(self.new_input.value, self.confirm_input.value)
        except ValidationError as exc:
            self.app.notify(str(exc), severity="error")
            return
        self.dismiss(ChangePasswordResult(self.current_input.value, self.new_input.value))

    def on_button_pressed(self, event: Button.Pressed) -> None:  # pragma: no cover
        if event.button.id == "cancel":
            self.dismiss(None)
        else:
            self._submit()

    def on_key(self, event) -> None:  # pragma: no cover
        if event.key == "escape":
            self.dismiss(None)
        elif event.key == "enter":
            self._submit()


class SettingsResult:
    def __init__(self, security: SecurityConfig, generator: PasswordGeneratorConfig):
        self.security = security
        self.generator = generator


class SettingsModal(ModalScreen[Optional[SettingsResult]]):
    """Timeouts, clipboard clearing and password generator defaults."""

    GENERATOR_FLAGS = (
        ("include_uppercase", "Uppercase"),
        ("include_lowercase", "Lowercase"),
        ("include_numbers", "Numbers"),
        ("include_symbols", "Symbols"),
        ("exclude_ambiguous", "Exclude ambiguous (0O1lI)"),
    )

    def __init__(self, security: SecurityConfig, generator: PasswordGeneratorConfig):
        super().__init__()
        self.security = security
        self.generator = generator
        self.boxes: dict[str, Checkbox] = {}

    def compose(self) -> ComposeResult:  # pragma: no cover - UI only
        with VerticalScroll(classes="dialog"):
            yield Static("Settings", classes="title")
            yield Static("Security", classes="section-label")
            yield Label("Auto-lock timeout (minutes, 0 = disabled)")
            self.auto_lock_input = Input(value=str(self.security.auto_lock_timeout), id="auto-lock")
            yield self.auto_lock_input
            yield Label("Clipboard timeout (seconds, 0 = disabled)")
            self.clipboard_input = Input(value=str(self.security.clipboard_timeout), id="clipboard")
            yield self.clipboard_input
            self.boxes["clear_clipboard_on_lock"] = Checkbox("Clear clipboard on lock", value=self.security.clear_clipboard_on_lock)
            self.boxes["clear_clipboard_on_exit"] = Checkbox("Clear clipboard on exit", value=self.security.clear_clipboard_on_exit)
            yield self.boxes["clear_clipboard_on_lock"]
            yield self.boxes["clear_clipboard_on_exit"]

            yield Static("Password Generator Defaults", classes="section-label")
            yield Label("Length")
            self.length_input = Input(value=str(self.generator.length), id="length")
            yield self.length_input
            for key, label in self.GENERATOR_FLAGS:
                self.boxes[key] = Checkbox(label, value=getattr(self.generator, key))
                yield self.boxes[key]
            with Horizontal():
                yield Button("Cancel (Esc)", id="cancel")
                yield Button("Save (Ctrl+S)", id="ok", variant="primary")

    def on_mount(self) -> None:  # pragma: no cover
        self.set_focus(self.auto_lock_input)

    def _number(self, widget: Input, label: str, minimum: int = 0) -> int | None:
        try:
            value = int(widget.value.strip())
        except ValueError:
            value = None
        if value is None or value < minimum:
            self.app.notify(f"{label} must be a whole number of at least {minimum}", severity="error")
            return None
        return value

    def _submit(self) -> None:
        auto_lock = self._number(self.auto_lock_input, "Auto-lock timeout")
        clipboard = self._number(self.clipboard_input, "Clipboard timeout")
        length = self._number(self.length_input, "Password length", MIN_PASSWORD_LENGTH)
        if auto_lock is None or clipboard is None or length is None:
            return
        flags = {key: self.boxes[key].value for key, _ in self.GENERATOR_FLAGS}
        if not any(flags[key] for key in ("include_uppercase", "include_lowercase", "include_numbers", "include_symbols")):
            self.app.notify("Select at least one character set", severity="error")
            return
        security = replace(
            self.security,
            auto_lock_timeout=auto_lock,
            clipboard_timeout=clipboard,
            clear_clipboard_on_lock=self.boxes["clear_clipboard_on_lock"].value,
            clear_clipboard_on_exit=self.boxes["clear_clipboard_on_exit"].value,
        )
        self.dismiss(SettingsResult(security, replace(self.generator, length=length, **flags)))

    def on_button_pressed(self, event: Button.Pressed) -> None:  # pragma: no cover
        if event.button.id == "cancel":
            self.dismiss(None)
        else:
            self._submit()

    def on_key(self, event) -> None:  # pragma: no cover
        if event.key == "escape":
            self.dismiss(None)
        elif event.key == "ctrl+s":
            self._submit()


class AlertModal(ModalScreen[None]):
    """Simple alert modal with a title, message, and OK button."""

    def __init__(self, title: str, message: str):
        super().__init__()
        self.alert_title = title
        self.alert_message = message

    def compose(self) -> ComposeResult:  # pragma: no cover
        with Vertical(classes="dialog small"):
            yield Static(self.alert_title, classes="title")
            yield Static("")
            yield Static(self.alert_message)
            yield Static("")
            with Horizontal():
                yield Button("OK", id="ok", variant="primary")

    def on_button_pressed(self, event: Button.Pressed) -> None:  # pragma: no cover
        self.dismiss(None)

    def on_key(self, event) -> None:  # pragma: no cover
        if event.key in ("escape", "enter"):
            self.dismiss(None)


HELP_TEXT = """\
n  new entry          e  edit entry        d  delete entry
u  copy username      c  copy password     t  copy TOTP code
g  generator          f  new folder        x  delete folder
/  search             a  security audit    p  change password
s  settings           l  lock              ?  help
q  quit

Copied secrets are cleared from the clipboard after the configured timeout.
The vault locks itself after the configured period of inactivity.
"""


class HelpModal(AlertModal):
    def __init__(self):
        super().__init__("Keyboard Shortcuts", HELP_TEXT)


class PassVaultApp(App):
    """Password vault browser: folders on the left, entries and details on the right."""

    TITLE = "PassVault"

    CSS = """
    #sidebar { width: 28%; min-width: 24; border: heavy $surface; }
    #main { border: heavy $surface; }
    #entries { height: 1fr; }
    #detail { height: auto; min-height: 8; padding: 0 1; border-top: solid $surface; }
    .title { padding: 1 1; text-style: bold; }
    #status { padding: 0 1; height: 1; color: $text-muted; }
    .section-label { padding: 0 1; color: $text-muted; }
    ModalScreen { align: center middle; background: rgba(0,0,0,0.45); }
    .dialog { width: 75%; height: 85%; padding: 1; border: heavy $surface; background: $boost; }
    .dialog.small { height: auto; max-height: 85%; }
    """

    BINDINGS = [
        ("q", "quit", "Quit"),
        ("l", "lock", "Lock"),
        ("n", "new_entry", "New"),
        ("e", "edit_entry", "Edit"),
        ("d", "delete_entry", "Delete"),
        ("u", "copy_username", "Copy User"),
        ("c", "copy_password", "Copy Pass"),
        ("t", "copy_totp", "Copy TOTP"),
        ("g", "generate", "Generator"),
        ("f", "new_folder", "New Folder"),
        ("x", "delete_folder", "Delete Folder"),
        ("/", "search", "Search"),
        ("a", "audit", "Audit"),
        ("p", "change_password", "Master Password"),
        ("s", "settings", "Settings"),
        ("question_mark", "help", "Help"),
    ]

    def __init__(self, ctx: AppContext | None = None):
        self.ctx = ctx or build_context()
        super().__init__()

        self.folders: ListView | None = None
        self.table: DataTable | None = None
        self.detail: Static | None = None
        self.status: Static | None = None
        self.search_input: Input | None = None
        self.row_keys: list[str] = []
        # None shows every entry; otherwise a folder id
        self.current_folder: str | None = None
        self.selected_entry_id: str | None = None
        self.autolocker = AutoLocker(
            self.ctx.config.security.auto_lock_timeout * 60,
            on_timeout=self._auto_lock_from_thread,
        )
        self.ctx.clipboard.on_cleared = self._clipboard_cleared_from_thread

    # --- Layout ---

    def compose(self) -> ComposeResult:
        yield Header(show_clock=True)
        with Horizontal():
            with Vertical(id="sidebar"):
                yield Static("Folders", classes="title")
                self.folders = ListView(id="folders")
                yield self.folders
            with Vertical(id="main"):
                self.search_input = Input(placeholder="Search (/)", id="search")
                yield self.search_input
                self.table = DataTable(id="entries", cursor_type="row")
                yield self.table
                self.detail = Static("", id="detail", markup=False)
                yield self.detail
                self.status = Static("", id="status")
                yield self.status
        yield Footer()

    def on_mount(self) -> None:
        assert self.table is not None
        self.table.add_columns("Name", "Type", "Username", "Folder", "Modified")
        self.set_interval(1.0, self._refresh_totp)
        self._prompt_unlock()

    def on_unmount(self) -> None:
        self.autolocker.stop()
        if self.ctx.config.security.clear_clipboard_on_exit:
            self.ctx.clipboard.clear()
        self.ctx.clipboard.cancel()
        self.ctx.session.lock()

    # --- Session lifecycle ---

    @property
    def vault(self) -> Vault | None:
        if not self.ctx.session.is_unlocked:
            return None
        return self.ctx.session.vault

    def _prompt_unlock(self) -> None:
        create = not self.ctx.session.exists()
        self.push_screen(
            UnlockModal(create=create, vault_path=str(self.ctx.session.path)),
            self._handle_unlock,
        )

    def _handle_unlock(self, password: Optional[str]) -> None:
        if password is None:
            self.exit()
            return
        try:
            self.ctx.session.open_or_create(password)
        except DecryptionFailedError as exc:
            self.notify(str(exc), severity="error")
            self._prompt_unlock()
            return
        except TooManyAttemptsError as exc:
            self.notify(str(exc), severity="error")
            self._prompt_unlock()
            return
        except CorruptVaultError as exc:
            self.push_screen(AlertModal("Vault Unreadable", str(exc)), lambda _: self.exit(return_code=1))
            return
        except PassVaultError as exc:
            self.push_screen(AlertModal("Unlock Failed", str(exc)), lambda _: self._prompt_unlock())
            return

        self.ctx.first_run = False
        self.autolocker.set_timeout(self.ctx.config.security.auto_lock_timeout * 60)
        self.autolocker.start()
        self.current_folder = None
        self.refresh_folders()
        self.refresh_entries()
        if self.table is not None:
            self.set_focus(self.table)
        self._set_status(f"Unlocked {self.ctx.session.path}")

    def lock_vault(self, reason: str = "Vault locked") -> None:
        self.autolocker.stop()
        if self.ctx.config.security.clear_clipboard_on_lock:
            self.ctx.clipboard.clear()
        self.ctx.session.lock()
        self.selected_entry_id = None
        self.row_keys = []
        if self.table is not None:
            self.table.clear()
        if self.folders is not None:
            self.folders.clear()
        if self.detail is not None:
            self.detail.update("")
        self._set_status(reason)
        # drop any open dialogs; they may hold decrypted values
        while len(self.screen_stack) > 1:
            self.pop_screen()
        self._prompt_unlock()

    def _auto_lock_from_thread(self) -> None:
        # AutoLocker thread -> app message queue
        try:
            self.call_from_thread(self.post_message, AutoLockRequested())
        except RuntimeError:
            logger.debug("auto-lock fired after app exit")

    def _clipboard_cleared_from_thread(self) -> None:
        try:
            self.call_from_thread(self.post_message, ClipboardCleared())
        except RuntimeError:
            # the app already exited; the clipboard is clear regardless
            logger.debug("clipboard cleared after app exit")

    def on_auto_lock_requested(self, message: AutoLockRequested) -> None:
        if self.ctx.session.is_unlocked:
            self.lock_vault("Locked after inactivity")

    def on_clipboard_cleared(self, message: ClipboardCleared) -> None:
        self._set_status("Clipboard cleared")

    async def on_event(self, event: events.Event) -> None:
        if isinstance(event, (events.Key, events.MouseDown)):
            self.autolocker.reset()
        await super().on_event(event)

    def _save(self) -> bool:
        try:
            self.ctx.session.save()
        except PassVaultError as exc:
            self.push_screen(AlertModal("Save Failed", str(exc)))
            return False
        return True

    # --- Rendering ---

    def refresh_folders(self) -> None:
        assert self.folders is not None
        self.folders.clear()
        vault = self.vault
        if vault is None:
            return
        item = ListItem(Label("All entries"))
        item.data = None
        self.folders.append(item)
        for folder in sorted(vault.folders, key=lambda f: vault.folder_path(f.id).casefold()):
            path = vault.folder_path(folder.id)
            indent = "  " * path.count("/")
            item = ListItem(Label(f"{indent}{folder.name}"))
            item.data = folder.id
            self.folders.append(item)

    def refresh_entries(self) -> None:
        assert self.table is not None
        self.table.clear()
        self.row_keys = []
        vault = self.vault
        if vault is None:
            return
        query = self.search_input.value if self.search_input else ""
        entries = vault.search(query, folder_id=self.current_folder)
        entries.sort(key=lambda e: (not e.is_favorite, e.name.casefold()))
        date_format = self.ctx.config.ui.date_format
        for entry in entries:
            name = f"* {entry.name}" if entry.is_favorite else entry.name
            self.table.add_row(
                name,
                entry.type.label,
                entry.username,
                vault.folder_path(entry.folder_id),
                _format_time(entry.updated_at, date_format),
                key=entry.id,
            )
            self.row_keys.append(entry.id)
        if self.selected_entry_id not in self.row_keys:
            self.selected_entry_id = self.row_keys[0] if self.row_keys else None
        self.show_entry(self.selected_entry_id, track_access=False)
        folder = vault.folder_path(self.current_folder) if self.current_folder else "All entries"
        self._set_status(f"{folder}: {len(entries)} entr{'y' if len(entries) == 1 else 'ies'}")

    def _selected_entry(self) -> Entry | None:
        vault = self.vault
        if vault is None or self.selected_entry_id is None:
            return None
        return vault.find_entry(self.selected_entry_id)

    def _detail_lines(self, entry: Entry) -> list[str]:
        date_format = self.ctx.config.ui.date_format
        lines = [f"{entry.name}  ({entry.type.label})"]
        entry_type = entry.type
        if entry_type is EntryType.LOGIN:
            lines.append(f"Username: {entry.username}")
            lines.append(f"Password: {MASK if entry.password else ''}")
            if entry.uri:
                lines.append(f"URL: {entry.uri}")
            if entry.totp_secret:
                lines.append(f"TOTP: {self._totp_text(entry)}")
        elif entry_type is EntryType.SECURE_NOTE:
            pass
        elif entry_type is EntryType.CARD:
            card = entry.card or CardDetails()
            last4 = card.number[-4:] if card.number else ""
            lines.append(f"Card: {card.brand} **** {last4}".rstrip())
            lines.append(f"Holder: {card.cardholder_name}")
            lines.append(f"Expires: {card.exp_month}/{card.exp_year}")
        elif entry_type is EntryType.IDENTITY:
            identity = entry.identity or IdentityDetails()
            lines.append(f"Name: {identity.full_name}")
            if identity.email:
                lines.append(f"Email: {identity.email}")
            if identity.phone:
                lines.append(f"Phone: {identity.phone}")
        else:
            raise AssertionError(f"unhandled entry type {entry_type!r}")
        if entry.notes:
            lines.append(f"Notes: {entry.notes}")
        if entry.tags:
            lines.append(f"Tags: {', '.join(entry.tags)}")
        lines.append(
            f"Modified {_format_time(entry.updated_at, date_format)}, "
            f"viewed {_format_time(entry.accessed_at, date_format)}"
        )
        return lines

    def _totp_text(self, entry: Entry) -> str:
        try:
            code, remaining = totp.config_for_secret(entry.totp_secret).generate_code()
        except PassVaultError:
            return "invalid secret"
        if self.ctx.config.ui.show_totp_countdown:
            return f"{code} ({remaining}s)"
        return code

    def show_entry(self, entry_id: str | None, track_access: bool = True) -> None:
        if self.detail is None:
            return
        self.selected_entry_id = entry_id
        entry = self._selected_entry()
        if entry is None:
            self.detail.update("")
            return
        if track_access:
            entry.update_access_time()
        self.detail.update("\n".join(self._detail_lines(entry)))

    def _refresh_totp(self) -> None:
        entry = self._selected_entry()
        if entry is not None and entry.totp_secret and self.detail is not None:
            self.detail.update("\n".join(self._detail_lines(entry)))

    def _set_status(self, message: str) -> None:
        if self.status:
            self.status.update(message)

    # --- Events ---

    def on_data_table_row_highlighted(self, event: DataTable.RowHighlighted) -> None:
        if event.row_key is not None and event.row_key.value in self.row_keys:
            self.show_entry(event.row_key.value)

    def on_list_view_selected(self, event: ListView.Selected) -> None:
        self.current_folder = getattr(event.item, "data", None)
        self.refresh_entries()

    @on(Input.Changed, "#search")
    def on_search_changed(self, event: Input.Changed) -> None:
        self.refresh_entries()

    @on(Input.Submitted, "#search")
    def on_search_submitted(self, event: Input.Submitted) -> None:
        if self.table is not None:
            self.set_focus(self.table)

    # --- Actions ---

    def _require_entry(self) -> Entry | None:
        entry = self._selected_entry()
        if entry is None:
            self.notify("No entry selected", severity="warning")
        return entry

    def password_config(self) -> PasswordConfig:
        return self.ctx.config.password_generator.to_password_config()

    def _folder_choices(self) -> list[tuple[str, str]]:
        vault = self.vault
        if vault is None:
            return []
        return sorted(((f.id, vault.folder_path(f.id)) for f in vault.folders), key=lambda c: c[1].casefold())

    def action_search(self) -> None:
        if self.search_input is not None:
            self.set_focus(self.search_input)

    def action_new_entry(self) -> None:
        if self.vault is None:
            return
        self.push_screen(EntryTypeModal(), self._handle_entry_type)

    def _handle_entry_type(self, entry_type: Optional[EntryType]) -> None:
        if entry_type is None:
            return
        self.push_screen(
            EntryEditorModal(entry_type, folders=self._folder_choices(), default_folder=self.current_folder),
            self._handle_new_entry,
        )

    def _handle_new_entry(self, result: Optional[EntryFormResult]) -> None:
        vault = self.vault
        if result is None or vault is None:
            return
        try:
            entry = Entry(type=result.entry_type, card=result.card, identity=result.identity, **result.fields)
            vault.add_entry(entry)
        except ValidationError as exc:
            self.notify(str(exc), severity="error")
            return
        if not self._save():
            vault.remove_entry(entry.id)
            return
        self.selected_entry_id = entry.id
        self.refresh_entries()
        self.notify(f"Added '{entry.name}'")

    def action_edit_entry(self) -> None:
        entry = self._require_entry()
        if entry is None:
            return
        self.push_screen(
            EntryEditorModal(entry.type, entry=entry, folders=self._folder_choices()),
            lambda result: self._handle_edit_entry(entry.id, result),
        )

    def _handle_edit_entry(self, entry_id: str, result: Optional[EntryFormResult]) -> None:
        vault = self.vault
        if result is None or vault is None:
            return
        fields = dict(result.fields)
        if result.card is not None:
            fields["card"] = result.card
        if result.identity is not None:
            fields["identity"] = result.identity
        entry = vault.find_entry(entry_id)
        before = create_entry_from_dict(entry.to_dict()) if entry is not None else None
        try:
            vault.update_entry(entry_id, **fields)
        except (KeyError, ValidationError) as exc:
            self.notify(f"Could not update entry: {exc}", severity="error")
            return
        if not self._save():
            vault.remove_entry(entry_id)
            vault.add_entry(before)
            self.refresh_entries()
            return
        self.refresh_entries()
        self.notify("Entry updated")

    def action_delete_entry(self) -> None:
        entry = self._require_entry()
        if entry is None:
            return
        self.push_screen(
            DeleteConfirmModal(f"Delete '{entry.name}'? This cannot be undone."),
            lambda ok: self._handle_delete_entry(entry.id, ok),
        )

    def _handle_delete_entry(self, entry_id: str, ok: Optional[bool]) -> None:
        vault = self.vault
        if not ok or vault is None:
            return
        entry = vault.find_entry(entry_id)
        if entry is None or not vault.remove_entry(entry_id):
            return
        if not self._save():
            vault.add_entry(entry)
            return
        self.selected_entry_id = None
        self.refresh_entries()
        self.notify("Entry deleted")

    def _copy(self, label: str, value: str) -> None:
        if not value:
            self.notify(f"No {label} to copy", severity="warning")
            return
        try:
            self.ctx.clipboard.copy(value)
        except pyperclip.PyperclipException as exc:
            self.notify(f"Could not copy to clipboard: {exc}", severity="error")
            return
        timeout = self.ctx.clipboard.timeout
        suffix = f"; clears in {timeout:g}s" if timeout > 0 else ""
        self.notify(f"Copied {label}{suffix}")

    def action_copy_username(self) -> None:
        entry = self._require_entry()
        if entry is not None:
            self._copy("username", entry.username)

    def action_copy_password(self) -> None:
        entry = self._require_entry()
        if entry is None:
            return
        if entry.type is EntryType.CARD and entry.card is not None:
            self._copy("card number", entry.card.number)
        else:
            self._copy("password", entry.password)

    def action_copy_totp(self) -> None:
        entry = self._require_entry()
        if entry is None:
            return
        if not entry.totp_secret:
            self.notify("Entry has no TOTP secret", severity="warning")
            return
        try:
            code, _ = totp.config_for_secret(entry.totp_secret).generate_code()
        except PassVaultError as exc:
            self.notify(str(exc), severity="error")
            return
        self._copy("TOTP code", code)

    def action_generate(self) -> None:
        self.push_screen(
            GeneratorModal(self.password_config(), self.ctx.config.passphrase_generator.to_passphrase_config()),
            self._handle_generated,
        )

    def _handle_generated(self, value: Optional[str]) -> None:
        if value:
            self._copy("generated password", value)

    def action_new_folder(self) -> None:
        vault = self.vault
        if vault is None:
            return
        parent_path = vault.folder_path(self.current_folder) if self.current_folder else ""
        self.push_screen(FolderModal(self.current_folder, parent_path), self._handle_new_folder)

    def _handle_new_folder(self, result: Optional[NewFolderResult]) -> None:
        vault = self.vault
        if result is None or vault is None:
            return
        try:
            folder = vault.add_folder(Folder(result.name, parent_id=result.parent_id))
        except ValidationError as exc:
            self.notify(str(exc), severity="error")
            return
        if not self._save():
            vault.remove_folder(folder.id)
            return
        self.refresh_folders()
        self.notify(f"Folder '{result.name}' created")

    def action_delete_folder(self) -> None:
        vault = self.vault
        if vault is None or self.current_folder is None:
            self.notify("Select a folder first", severity="warning")
            return
        path = vault.folder_path(self.current_folder)
        self.push_screen(
            DeleteConfirmModal(f"Delete folder '{path}'? Entries and subfolders move up."),
            self._handle_delete_folder,
        )

    def _handle_delete_folder(self, ok: Optional[bool]) -> None:
        vault = self.vault
        if not ok or vault is None or self.current_folder is None:
            return
        folder = vault.find_folder(self.current_folder)
        if folder is None:
            return
        children = vault.children(folder.id)
        entries = [e for e in vault.entries if e.folder_id == folder.id]
        vault.remove_folder(folder.id)
        if not self._save():
            vault.add_folder(folder)
            for child in children:
                child.parent_id = folder.id
            for entry in entries:
                entry.folder_id = folder.id
            return
        self.current_folder = None
        self.refresh_folders()
        self.refresh_entries()
        self.notify("Folder deleted")

    def action_audit(self) -> None:
        vault = self.vault
        if vault is None:
            return
        weak = find_weak_passwords(vault)
        duplicates = find_duplicate_passwords(vault)
        lines = [f"Security score: {security_score(vault):.0f}/100", ""]
        lines.append(f"Weak passwords: {len(weak)}")
        lines.extend(f"  - {e.name}" for e in weak)
        lines.append(f"Reused passwords: {len(duplicates)} group(s)")
        for group in duplicates.values():
            lines.append("  - " + ", ".join(e.name for e in group))
        self.push_screen(AlertModal("Security Audit", "\n".join(lines)))

    def action_change_password(self) -> None:
        if self.vault is None:
            return
        self.push_screen(ChangePasswordModal(), self._handle_change_password)

    def _handle_change_password(self, result: Optional[ChangePasswordResult]) -> None:
        if result is None:
            return
        try:
            self.ctx.session.change_password(result.current, result.new)
        except PassVaultError as exc:
            self.notify(str(exc), severity="error")
            return
        self.notify("Master password changed")

    def action_settings(self) -> None:
        config = self.ctx.config
        self.push_screen(SettingsModal(config.security, config.password_generator), self._handle_settings)

    def _handle_settings(self, result: Optional[SettingsResult]) -> None:
        if result is None:
            return
        try:
            # rewrite only the edited sections; env overrides stay out of the file
            stored = load_config(self.ctx.config_path, apply_env=False)
            stored.security, stored.password_generator = result.security, result.generator
            path = save_config(stored, self.ctx.config_path)
        except PassVaultError as exc:
            self.push_screen(AlertModal("Settings Not Saved", str(exc)))
            return
        logger.info("settings saved to %s", path)
        config = self.ctx.config
        config.security, config.password_generator = result.security, result.generator
        self.autolocker.set_timeout(result.security.auto_lock_timeout * 60)
        if self.ctx.session.is_unlocked:
            self.autolocker.start()
        self.ctx.clipboard.set_timeout(result.security.clipboard_timeout)
        self.notify("Settings saved")

    def action_lock(self) -> None:
        if self.ctx.session.is_unlocked:
            self.lock_vault()

    def action_help(self) -> None:
        self.push_screen(HelpModal())


def run(ctx: AppContext | None = None) -> None:
    """Run the PassVault Textual application."""
    PassVaultApp(ctx=ctx).run()


if __name__ == "__main__":  # pragma: no cover
    run()
