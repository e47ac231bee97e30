import asyncio

from textual import on, work
from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.widgets import LoadingIndicator

from db.accounts import ensure_admin
from utils.config import get_settings
from utils.logger import get_logger
from utils.messages import ModeSwitchedMessage, QuitRequestedMessage, UserLogoutMessage
from utils.state import AdminState
from views.scr_dashboard import DashboardScreen
from views.scr_inventory import InventoryScreen
from views.scr_login import LoginScreen
from views.scr_orders import OrdersScreen
from views.scr_pos import PosScreen

_logger = get_logger(__name__)


class AdminApp(App):
    TITLE = get_settings().app_name

    BINDINGS = [
        Binding("ctrl+t", "switch_light", "Tema", show=True),
    ]

    MODES = {
        "dashboard": DashboardScreen,
        "orders": OrdersScreen,
        "pos": PosScreen,
        "inventory": InventoryScreen,
    }

    MODE_TITLES = {
        "dashboard": "Dashboard",
        "orders": "Pedidos",
        "pos": "Punto de venta",
        "inventory": "Inventario",
    }

    CSS_PATH = "views/admin.tcss"

    state: AdminState

    def __init__(self):
        super().__init__()
        self.state = AdminState()

    def compose(self) -> ComposeResult:
        yield LoadingIndicator()

    async def on_mount(self) -> None:
        self.main_flow()

    def action_switch_light(self):
        if self.theme == "textual-dark":
            self.theme = "solarized-light"
        else:
            self.theme = "textual-dark"
        self.notify(f"Tema: {self.theme}")

    @on(UserLogoutMessage)
    def handle_user_logout(self):
        _logger.info(f"User {self.state.identity.user_id} logged out")
        self.state.clear()
        self.notify("Sesión cerrada.")
        self.main_flow()

    @on(QuitRequestedMessage)
    def handle_quit(self):
        self.exit()

    @work
    async def main_flow(self):
        await self.push_screen_wait(LoginScreen())
        _logger.info(f"User {self.state.identity.user_id} logged in ({self.state.division.value})")
        self.post_message(ModeSwitchedMessage(self.current_mode, "dashboard"))
        await self.switch_mode("dashboard")


async def bootstrap() -> None:
    """Create the configured admin account so the console can be entered on a fresh database."""
    settings = get_settings()
    if not settings.bootstrap_admin_password:
        return
    admin = await ensure_admin(
        settings.bootstrap_admin_name,
        settings.bootstrap_admin_email,
        settings.bootstrap_admin_password,
    )
    _logger.info(f"Bootstrap admin ready: {admin.email}")


def run() -> None:
    asyncio.run(bootstrap())
    AdminApp().run()


if __name__ == "__main__":
    run()
