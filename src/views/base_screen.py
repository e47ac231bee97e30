from textual import on, work
from textual.app import ComposeResult
from textual.binding import Binding
from textual.containers import Container
from textual.screen import Screen
from textual.widgets import Button, Footer, Header, Label, ListItem, ListView, Markdown, Select

from db.models import Division
from utils.messages import (
    DivisionSwitchedMessage,
    ModeSwitchedMessage,
    UserLoginMessage,
    UserLogoutMessage,
)
from utils.pure import generate_markdown_table
from views.modal_dialog import DialogModal, QuitDialogModal

DIVISION_LABELS = {
    Division.JUGUETERIA: "Juguetería",
    Division.FIESTAS: "Fiestas",
}


class Sidebar(Container):
    init_mode = ""

    def compose(self) -> ComposeResult:
        yield Label("Usuario", id="label-info-1")
        yield Markdown("", id="md-userinfo")
        yield Select(
            [(label, division.value) for division, label in DIVISION_LABELS.items()],
            allow_blank=False,
            value=self.app.state.division.value,
            id="select-division",
        )
        yield Button("Cerrar sesión", id="btn-logout", variant="error")
        yield Label("Menú", id="label-info-2")
        yield ListView(id="list-menu")

    async def on_mount(self):
        self.init_mode = self.app.current_mode
        state = self.app.state
        if not state.logged_in:
            return

        table_rows = [
            ["ID", state.identity.user_id],
            ["Nombre", state.name],
            ["Rol", state.identity.role.value],
        ]
        await self.query_one(Markdown).update(
            generate_markdown_table(None, table_rows, ["l", "l"])
        )

        list_menu: ListView = self.query_one("#list-menu")
        await list_menu.clear()
        await list_menu.extend(
            [ListItem(Label(v), id="list-menu-item-" + k) for k, v in self.app.MODE_TITLES.items()]
        )
        self.highlight_item(self.init_mode)

    async def on_list_view_selected(self, event: ListView.Selected):
        selected_mode = event.item.id.removeprefix("list-menu-item-")
        self.highlight_item(self.init_mode)
        if self.app.current_mode != selected_mode:
            self.post_message(ModeSwitchedMessage(self.app.current_mode, selected_mode))
            await self.app.switch_mode(selected_mode)

    @on(Select.Changed, "#select-division")
    @work(exclusive=True)
    async def handle_division_change(self, event: Select.Changed):
        state = self.app.state
        if not state.logged_in or event.value == state.division.value:
            return
        if await state.switch_division(Division(event.value)):
            self.notify(f"División: {DIVISION_LABELS[state.division]}")
            self.app.post_message(DivisionSwitchedMessage(state.division.value))
        else:
            self.notify("No se pudo cambiar la división", severity="error")
            event.select.value = state.division.value

    @on(Button.Pressed, "#btn-logout")
    @work
    async def handle_logout(self):
        if not await self.app.push_screen_wait(
            DialogModal(
                "¿Seguro que quieres cerrar sesión?",
                primary_text="Sí",
                secondary_text="No",
                tone="warning",
            )
        ):
            return

        self.post_message(UserLogoutMessage())

    def highlight_item(self, mode_str: str):
        list_menu = self.query_one("#list-menu")
        for item in list_menu.children:
            item.highlighted = item.id == "list-menu-item-" + mode_str


class BaseScreen(Screen):
    """
    Inherited by all screens, contains common elements like
    headers, footers, sidebar, and keybindings.
    """

    BINDINGS = [
        Binding("ctrl+q", "quit", "Salir", show=True),
    ]

    def __init__(self):
        super().__init__()

        self.configure()

    def configure(
        self,
        header_sub_title: str = "Panel",
        show_sidebar: bool = True,
    ) -> None:
        """
        configure behavior of the base screen
        :return:
        """

        self.app.title = self.app.TITLE
        self.sub_title = header_sub_title
        for mode, screen_cls in self.app.MODES.items():
            if isinstance(self, screen_cls):
                self.sub_title = self.app.MODE_TITLES.get(mode, header_sub_title)

        self._show_sidebar = show_sidebar

    def compose(self) -> ComposeResult:
        if self._show_sidebar:
            yield Sidebar()
        yield Header()
        yield Footer(show_command_palette=False)

    @property
    def identity(self):
        return self.app.state.identity

    @property
    def division(self) -> Division:
        return self.app.state.division

    @on(UserLoginMessage)
    def handle_user_login(self):
        self.refresh()

    @work()
    async def action_quit(self):
        await self.app.push_screen_wait(QuitDialogModal())
