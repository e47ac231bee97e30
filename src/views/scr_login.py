from textual import on, work
from textual.app import ComposeResult
from textual.containers import Horizontal, Vertical
from textual.events import Key
from textual.widgets import Button, Input, Label

import actions.accounts as accounts
from utils.messages import UserLoginMessage
from views.base_screen import BaseScreen
from views.modal_dialog import QuitDialogModal


class LoginScreen(BaseScreen):
    """
    Staff sign-in. Customers have no access to the console; the screen is
    dismissed only after a staff member authenticates.
    """

    def __init__(self):
        super().__init__()
        self.configure(header_sub_title="Iniciar sesión", show_sidebar=False)

    def compose(self) -> ComposeResult:
        yield from super().compose()
        with Vertical(id="div-login"):
            yield Label("Correo")
            yield Input(placeholder="admin@festamas.pe", id="input-login-email")
            yield Label("Contraseña")
            yield Input(placeholder="*********", password=True, id="input-login-pwd")
            with Horizontal(id="div-login-btns"):
                yield Button("Salir", id="btn-quit")
                yield Button("Ingresar", id="btn-login", variant="primary")

    def on_mount(self):
        self.query_one("#input-login-email").focus()

    def on_key(self, event: Key) -> None:
        if event.key == "enter" and self.focused == self.query_one("#input-login-pwd"):
            self.handle_login_submit()

    @on(Button.Pressed, "#btn-login")
    @work(exclusive=True)
    async def handle_login_submit(self) -> None:
        email = self.query_one("#input-login-email", Input).value.strip()
        pwd = self.query_one("#input-login-pwd", Input).value

        if not email or not pwd:
            self.notify("Correo y contraseña son obligatorios", severity="error")
            return

        result = await accounts.login(email, pwd)
        input_login_pwd = self.query_one("#input-login-pwd", Input)
        if not result.success:
            self.notify(result.message, severity="error")
        elif not result.data["identity"].is_staff:
            self.notify("No autorizado", severity="error")
        else:
            state = self.app.state
            state.identity = result.data["identity"]
            state.name = result.data["name"]
            await state.load_division()

            self.notify(f"Hola {state.name}!")
            self.app.post_message(UserLoginMessage())
            self.dismiss()
            return

        input_login_pwd.value = ""
        input_login_pwd.focus()
        input_login_pwd.add_class("-invalid")

    @on(Button.Pressed, "#btn-quit")
    def handle_quit_(self) -> None:
        self.app.push_screen(QuitDialogModal())
