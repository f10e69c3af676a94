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


class AdminOverviewScreen(BaseScreen):
    """
    Platform totals and the latest orders, for admins.
    """

    def compose(self) -> ComposeResult:
        yield from super().compose()
        with Vertical():
            yield MarkdownViewer(id="md-overview", show_table_of_contents=False)

    def on_mount(self) -> None:
        self.handle_reload()

    @on(NewOrderMessage)
    @on(ScreenResume)
    @on(ModeSwitchedMessage)
    @work(exclusive=True)
    async def handle_reload(self) -> None:
        try:
            stats = await ledger.admin_overview(self.app.state.db, self.app.state.identity)
        except MarketplaceError as exc:
            self.notify_error(exc)
            return

        totals_md = (
            "### Platform Overview\n\n"
            f"- Orders: {stats.total_orders}\n"
            f"- Revenue: {format_money(stats.total_revenue)}\n"
            f"- Listings Sold: {stats.products_sold}\n"
            f"- Listings Available: {stats.products_available}\n\n"
        )
        rows = [
            [
                order.created_at[:16].replace("T", " "),
                order.order_number,
                full_name or username,
                format_money(order.total_amount),
                order.status,
            ]
            for order, username, full_name in stats.recent_orders
        ]
        table = generate_markdown_table(
            ["Date", "Order", "Buyer", "Total", "Status"],
            rows,
            ["l", "l", "l", "r", "l"],
        )
        md = totals_md + "### Recent Orders\n\n" + (table or "_No orders yet._")
        self.query_one("#md-overview", MarkdownViewer).document.update(md)
