from textual import on, work
from textual.app import ComposeResult
from textual.events import ScreenResume
from textual.widgets import DataTable, Input

from db import catalog
from db.errors import MarketplaceError
from utils.messages import CartChangedMessage, ModeSwitchedMessage
from utils.pure import format_money
from views.base_screen import BaseScreen
from views.modal_prod_detail import ProdDetailModal


class ProdSearchScreen(BaseScreen):
    """
    Browse listings still available, filtered as you type.
    The caller's own listings are hidden since they cannot be bought.
    """

    def __init__(self):
        super().__init__()

    def compose(self) -> ComposeResult:
        yield from super().compose()
        yield Input(id="input-search", placeholder="Search title, description or category...")
        yield DataTable(id="table-search-result")

    def on_mount(self):
        table = self.query_one(DataTable)
        table.cursor_type = "row"
        table.zebra_stripes = True
        table.add_columns("ID", "Title", "Category", "Condition", "Price", "Views")
        self.query_one("#input-search").focus()

    @on(Input.Changed, "#input-search")
    @on(ModeSwitchedMessage)
    @on(ScreenResume)
    @on(CartChangedMessage)
    def handle_refresh(self) -> None:
        self.update_search_result(self.query_one("#input-search", Input).value)

    @on(DataTable.RowSelected)
    @work()
    async def handle_row_selected(self, event: DataTable.RowSelected) -> None:
        pid = int(event.data_table.get_row(event.row_key)[0])
        if await self.app.push_screen_wait(ProdDetailModal(pid)):
            self.app.post_message(CartChangedMessage())
        self.update_search_result(self.query_one("#input-search", Input).value)

    @work(exclusive=True)
    async def update_search_result(self, query: str) -> None:
        try:
            products = await catalog.list_available_products(
                self.app.state.db, query, exclude_seller=self.app.state.uid
            )
        except MarketplaceError as exc:
            self.notify_error(exc)
            return

        table = self.query_one(DataTable)
        table.clear()
        table.add_rows(
            [
                (p.pid, p.title, p.category or "-", p.condition or "-", format_money(p.price), p.views)
                for p in products
            ]
        )
