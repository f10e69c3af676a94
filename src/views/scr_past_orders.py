from textual import on, work
from textual.app import ComposeResult
from textual.containers import Horizontal, Vertical
from textual.events import ScreenResume
from textual.widgets import Button, DataTable, MarkdownViewer

from db import ledger
from db.errors import MarketplaceError
from db.models import OrderDetail
from utils.messages import ModeSwitchedMessage, NewOrderMessage
from utils.pure import format_money, generate_markdown_table
from views.base_screen import BaseScreen


class PastOrdersScreen(BaseScreen):
    """
    Customers browse their past orders and view details.

    Layout:
    - Markdown detail view at the top, showing the highlighted order.
    - Orders table below, newest first.
    """

    def __init__(self) -> None:
        super().__init__()

    def compose(self) -> ComposeResult:
        yield from super().compose()
        with Vertical():
            yield MarkdownViewer(id="md-order-detail", show_table_of_contents=False)
            yield DataTable(id="table-orders")
        with Horizontal(id="hort-table-control"):
            yield Button("Refresh", id="btn-refresh")

    def on_mount(self) -> None:
        table = self.query_one(DataTable)
        table.cursor_type = "row"
        table.zebra_stripes = True
        table.add_columns("ID", "Order No", "Date", "Items", "Products", "Total")
        self._load_orders()

    @on(Button.Pressed, "#btn-refresh")
    @on(ModeSwitchedMessage)
    @on(ScreenResume)
    @on(NewOrderMessage)
    def handle_refresh(self):
        self._load_orders()

    @on(DataTable.RowHighlighted)
    def handle_row_highlight(self, event: DataTable.RowHighlighted) -> None:
        row = event.data_table.get_row(event.row_key)
        if row:
            self._load_and_render_detail(int(row[0]))

    @work(exclusive=True, group="orders")
    async def _load_orders(self) -> None:
        try:
            summaries = await ledger.order_history(
                self.app.state.db, self.app.state.identity
            )
        except MarketplaceError as exc:
            self.notify_error(exc)
            return

        table = self.query_one(DataTable)
        table.clear()
        for s in summaries:
            table.add_row(
                s.order.oid,
                s.order.order_number,
                s.order.created_at[:16].replace("T", " "),
                s.item_count,
                s.product_titles,
                format_money(s.order.total_amount),
            )
        if summaries:
            table.move_cursor(row=0)
            self._load_and_render_detail(summaries[0].order.oid)
        else:
            self._render_detail(None)

    @work(exclusive=True, group="detail")
    async def _load_and_render_detail(self, oid: int) -> None:
        try:
            detail = await ledger.order_detail(
                self.app.state.db, self.app.state.identity, oid
            )
        except MarketplaceError as exc:
            self.notify_error(exc)
            self._render_detail(None)
            return
        self._render_detail(detail)

    def _render_detail(self, detail: OrderDetail | None) -> None:
        viewer = self.query_one("#md-order-detail", MarkdownViewer)
        if detail is None:
            viewer.document.update("### Select an order to view its details.")
            return

        o = detail.order
        header = (
            f"### Order {o.order_number}\n"
            f"Date: {o.created_at}  \n"
            f"Status: {o.status}  \n"
            f"Deliver To: {o.customer_name}, {o.delivery_address}  \n"
            f"Contact: {o.customer_email} / {o.customer_phone}\n\n"
        )
        if o.delivery_notes:
            header += f"Notes: {o.delivery_notes}\n\n"
        rows = [
            [
                ln.title,
                ln.seller_full_name or ln.seller_name,
                ln.line.qty,
                format_money(ln.line.uprice),
                format_money(ln.line_total),
            ]
            for ln in detail.lines
        ]
        table = generate_markdown_table(
            ["Product", "Seller", "Qty", "Unit Price", "Line Total"],
            rows,
            ["l", "l", "r", "r", "r"],
        )
        footer = f"\n\n**Grand Total:** {format_money(o.total_amount)}"
        viewer.document.update(header + table + footer)
