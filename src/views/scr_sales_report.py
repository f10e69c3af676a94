from textual import on, work
from textual.app import ComposeResult
from textual.containers import Vertical
from textual.events import ScreenResume
from textual.widgets import MarkdownViewer

from db import ledger
from db.errors import MarketplaceError
from utils.messages import ModeSwitchedMessage, NewOrderMessage
from utils.pure import format_money, generate_markdown_table
from views.base_screen import BaseScreen


class SalesReportScreen(BaseScreen):
    """
    Seller's sold listings with buyer info and revenue.
    """

    def __init__(self) -> None:
        super().__init__()

    def compose(self) -> ComposeResult:
        yield from super().compose()
        with Vertical():
            yield MarkdownViewer(id="md-sales", show_table_of_contents=False)

    def on_mount(self) -> None:
        self.handle_reload()

    @on(NewOrderMessage)
    @on(ScreenResume)
    @on(ModeSwitchedMessage)
    @work(exclusive=True)
    async def handle_reload(self) -> None:
        try:
            history = await ledger.sales_history(
                self.app.state.db, self.app.state.identity
            )
        except MarketplaceError as exc:
            self.notify_error(exc)
            return

        summary_md = (
            "### Sales Summary\n\n"
            f"- Items Sold: {history.total_sales}\n"
            f"- Total Revenue: {format_money(history.total_revenue)}\n\n"
        )
        rows = [
            [
                s.order_date[:10],
                s.order_number,
                s.title,
                s.qty,
                format_money(s.uprice),
                s.buyer_full_name or s.buyer_name,
            ]
            for s in history.sales
        ]
        table = generate_markdown_table(
            ["Date", "Order", "Item", "Qty", "Price", "Buyer"],
            rows,
            ["l", "l", "l", "r", "r", "l"],
        )
        md = summary_md + "### Sold Items\n\n" + (table or "_Nothing sold yet._")
        self.query_one("#md-sales", MarkdownViewer).document.update(md)
