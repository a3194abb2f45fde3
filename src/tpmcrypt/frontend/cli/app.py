"""Textual menu for tpmcrypt.

Start here with `tpmcrypt tui` or `python main.py`
"""

from __future__ import annotations

import logging
from typing import Optional

from textual.app import App, ComposeResult
from textual.containers import Horizontal, Vertical
from textual.screen import ModalScreen
from textual.widgets import Button, Footer, Header, Input, Label, ListItem, ListView, Static

from tpmcrypt.core.exceptions import TpmCryptError
from tpmcrypt.frontend.cli.context import AppContext, build_context

logger = logging.getLogger(__name__)

EXIT_FATAL = 2


# === Modal definitions ===


class FileOperationResult:
    def __init__(self, src: str, dst: str, reference: str):
        self.src = src
        self.dst = dst
        self.reference = reference


class FileOperationModal(ModalScreen[Optional[FileOperationResult]]):
    """Asks for input path, output path and key reference."""

    def __init__(self, title: str, src_hint: str, dst_hint: str, ref_hint: str):
        super().__init__()
        self.title_text = title
        self.src_hint = src_hint
        self.dst_hint = dst_hint
        self.ref_hint = ref_hint

    def compose(self) -> ComposeResult:  # pragma: no cover - UI only
        with Vertical(classes="dialog"):
            yield Static(self.title_text, classes="title")
            self.src_input = Input(placeholder=self.src_hint, id="src")
            yield self.src_input
            self.dst_input = Input(placeholder=self.dst_hint, id="dst")
            yield self.dst_input
            self.ref_input = Input(placeholder=self.ref_hint, id="ref")
            yield self.ref_input
            with Horizontal():
                yield Button("Cancel (Esc)", id="cancel")
                yield Button("Run (Enter)", id="ok", variant="primary")

    def on_mount(self) -> None:  # pragma: no cover
        self.set_focus(self.src_input)

    def _submit(self) -> None:
        src = self.src_input.value.strip()
        dst = self.dst_input.value.strip()
        reference = self.ref_input.value.strip()
        if not (src and dst and reference):
            self.app.notify("All three fields are required", severity="error")
            return
        self.dismiss(FileOperationResult(src=src, dst=dst, reference=reference))

    def on_button_pressed(self, event: Button.Pressed) -> None:
        if event.button.id == "cancel":
            self.dismiss(None)
        else:
            self._submit()

    def on_input_submitted(self, event: Input.Submitted) -> None:  # pragma: no cover
        self._submit()

    def on_key(self, event) -> None:  # pragma: no cover
        if event.key == "escape":
            self.dismiss(None)


class KeyReferenceModal(ModalScreen[Optional[str]]):
    """Asks for a single key reference."""

    def compose(self) -> ComposeResult:  # pragma: no cover - UI only
        with Vertical(classes="dialog"):
            yield Static("Delete associated TPM data", classes="title")
            yield Label("Key reference whose sealed key and IV should be deleted")
            self.ref_input = Input(placeholder="key reference", id="ref")
            yield self.ref_input
            with Horizontal():
                yield Button("Cancel (Esc)", id="cancel")
                yield Button("Delete (Enter)", id="ok", variant="error")

    def on_mount(self) -> None:  # pragma: no cover
        self.set_focus(self.ref_input)

    def _submit(self) -> None:
        reference = self.ref_input.value.strip()
        if not reference:
            self.app.notify("Key reference cannot be empty", severity="error")
            return
        self.dismiss(reference)

    def on_button_pressed(self, event: Button.Pressed) -> None:
        if event.button.id == "cancel":
            self.dismiss(None)
        else:
            self._submit()

    def on_input_submitted(self, event: Input.Submitted) -> None:  # pragma: no cover
        self._submit()

    def on_key(self, event) -> None:  # pragma: no cover
        if event.key == "escape":
            self.dismiss(None)


class ConfirmModal(ModalScreen[Optional[bool]]):
    def __init__(self, prompt: str):
        super().__init__()
        self.prompt = prompt

    def compose(self) -> ComposeResult:  # pragma: no cover
        with Vertical(classes="dialog"):
            yield Static(self.prompt)
            with Horizontal():
                yield Button("Cancel (Esc)", id="cancel")
                yield Button("Delete (Enter)", id="ok", variant="error")

    def on_button_pressed(self, event: Button.Pressed) -> None:
        self.dismiss(event.button.id == "ok")

    def on_key(self, event) -> None:  # pragma: no cover
        if event.key == "escape":
            self.dismiss(False)
        elif event.key == "enter":
            self.dismiss(True)


class ErrorModal(ModalScreen[None]):
    """Modal for displaying error messages prominently."""

    def __init__(self, title: str, message: str):
        super().__init__()
        self.error_title = title
        self.error_message = message

    def compose(self) -> ComposeResult:  # pragma: no cover
        with Vertical(classes="dialog"):
            yield Static(self.error_title, classes="title")
            yield Static(self.error_message)
            yield Static("")
            yield Button("OK", id="ok", variant="primary")

    def on_button_pressed(self, event: Button.Pressed) -> None:  # pragma: no cover
        self.dismiss(None)

    def on_key(self, event) -> None:  # pragma: no cover
        if event.key in ("escape", "enter"):
            self.dismiss(None)


# === App ===

MENU = (
    ("menu-encrypt", "1. Encrypt a file", "encrypt"),
    ("menu-decrypt", "2. Decrypt a file", "decrypt"),
    ("menu-delete-key", "3. Delete associated TPM data", "delete_key"),
    ("menu-wipe", "4. Delete **all** TPM data", "wipe"),
    ("menu-quit", "5. Exit", "quit"),
)


class TpmCryptApp(App):
    """Menu over the encryption, decryption and key management operations."""

    TITLE = "TPM-Encrypt"

    CSS = """
    #menu { border: heavy $surface; height: auto; }
    .title { padding: 0 1; text-style: bold; }
    #status { padding: 0 1 1 1; height: 3; color: $text-muted; }
    ModalScreen { align: center middle; background: rgba(0,0,0,0.45); }
    .dialog { width: 75%; height: auto; max-height: 90%; padding: 1; border: heavy $surface; background: $boost; }
    .dialog Horizontal { height: auto; }
    """

    BINDINGS = [
        ("e", "encrypt", "Encrypt"),
        ("d", "decrypt", "Decrypt"),
        ("k", "delete_key", "Delete Key Data"),
        ("w", "wipe", "Wipe All"),
        ("q", "quit", "Quit"),
    ]

    def __init__(self, ctx: AppContext | None = None):
        self.ctx = ctx or build_context()
        super().__init__()
        self.menu: ListView | None = None
        self.status: Static | None = None

    def compose(self) -> ComposeResult:
        yield Header(show_clock=True)
        with Vertical():
            yield Static("TPM-Encrypt Demo", classes="title")
            self.menu = ListView(
                *(ListItem(Label(text), id=item_id) for item_id, text, _ in MENU),
                id="menu",
            )
            yield self.menu
            self.status = Static("", id="status")
            yield self.status
        yield Footer()

    def on_mount(self) -> None:
        backend = self.ctx.config.store_backend
        self._set_status(f"Store: {backend} • Key root: {self.ctx.config.key_root}")

    def _set_status(self, text: str) -> None:
        if self.status is not None:
            self.status.update(text)

    def _report_error(self, title: str, exc: TpmCryptError) -> None:
        if exc.fatal:
            # no retry from the menu once the environment is unusable
            logger.critical("Unrecoverable environment fault: %s", exc)
            self.exit(return_code=EXIT_FATAL, message=f"{title}: {exc}")
            return
        self._set_status(f"{title}: {exc}")
        self.push_screen(ErrorModal(title, str(exc)))

    def on_list_view_selected(self, event: ListView.Selected) -> None:
        for item_id, _, action in MENU:
            if event.item.id == item_id:
                if action == "quit":
                    self.exit()
                else:
                    getattr(self, f"action_{action}")()
                return

    # === Actions ===

    def action_encrypt(self) -> None:
        self.push_screen(
            FileOperationModal(
                "Encrypt a file",
                "path of the file to encrypt",
                "path of the encrypted output file",
                "key reference (used to decrypt the file later)",
            ),
            self._handle_encrypt,
        )

    def _handle_encrypt(self, result: Optional[FileOperationResult]) -> None:
        if not result:
            return
        self._set_status("Encrypting file...")
        try:
            self.ctx.encryptor.encrypt_file(result.src, result.dst, result.reference)
        except TpmCryptError as exc:
            self._report_error("Encryption failed", exc)
            return
        self._set_status(f"Encrypted {result.src} -> {result.dst} (key reference '{result.reference}')")

    def action_decrypt(self) -> None:
        self.push_screen(
            FileOperationModal(
                "Decrypt a file",
                "path of the file to decrypt",
                "path of the plaintext output file",
                "key reference used to encrypt the file",
            ),
            self._handle_decrypt,
        )

    def _handle_decrypt(self, result: Optional[FileOperationResult]) -> None:
        if not result:
            return
        self._set_status("Decrypting file...")
        try:
            self.ctx.decryptor.decrypt_file(result.src, result.dst, result.reference)
        except TpmCryptError as exc:
            self._report_error("Decryption failed", exc)
            return
        self._set_status(f"Decrypted {result.src} -> {result.dst}")

    def action_delete_key(self) -> None:
        self.push_screen(KeyReferenceModal(), self._handle_delete_key)

    def _handle_delete_key(self, reference: Optional[str]) -> None:
        if not reference:
            return
        try:
            self.ctx.keys.delete(reference)
        except TpmCryptError as exc:
            self._report_error("Delete failed", exc)
            return
        self._set_status(f"Deleted sealed key data for '{reference}'")

    def action_wipe(self) -> None:
        prompt = "Delete ALL tpmcrypt data in the secure store? This cannot be undone."
        self.push_screen(ConfirmModal(prompt), self._handle_wipe)

    def _handle_wipe(self, confirmed: Optional[bool]) -> None:
        if not confirmed:
            return
        try:
            self.ctx.client.wipe_all()
        except TpmCryptError as exc:
            self._report_error("Wipe failed", exc)
            return
        self._set_status("Deleted all tpmcrypt data")


def main() -> None:  # pragma: no cover
    from tpmcrypt.frontend.cli.commands import main as cli_main

    raise SystemExit(cli_main(["tui"]))


if __name__ == "__main__":  # pragma: no cover
    main()
