from textual import events, on, work
from textual.app import ComposeResult
from textual.containers import Horizontal, Vertical
from textual.reactive import reactive
from textual.screen import ModalScreen
from textual.widgets import Button, Input, Label, MarkdownViewer

from db import cart, catalog
from db.errors import MarketplaceError
from db.models import Product
from utils.messages import CartChangedMessage
from utils.pure import format_money, generate_markdown_table


class ProdDetailModal(ModalScreen[bool]):
    """
    Listing detail plus add-to-cart.
    Returns True if the cart changed, False if not.
    """

    order_qty = reactive(1)

    def __init__(self, pid: int) -> None:
        super().__init__()
        self._pid = pid
        self._prod: Product = None

    def compose(self) -> ComposeResult:
        with Horizontal(id="hort-prod-detail"):
            yield MarkdownViewer("", show_table_of_contents=False)
            with Vertical():
                yield Label("Quantity")
                with Horizontal():
                    yield Button("-", id="btn-sub-qty")
                    yield Input(value="1", id="input-order-qty", type="integer")
                    yield Button("+", id="btn-add-qty")
                with Horizontal():
                    yield Button("Go Back", id="btn-quit")
                    yield Button("Add to Cart", id="btn-addcart", variant="primary")

    async def on_mount(self):
        db = self.app.state.db
        try:
            await catalog.record_view(db, self._pid)
            self._prod = await catalog.get_product(db, self._pid)
        except MarketplaceError as exc:
            self.notify(exc.message, severity="error")
            self.dismiss(False)
            return

        p = self._prod
        rows = [
            ["Title", p.title],
            ["Description", p.descr],
            ["Category", p.category],
            ["Condition", p.condition],
            ["Price", format_money(p.price)],
            ["Status", p.status],
            ["Views", p.views],
        ]
        md_table_str = generate_markdown_table(["Attribute", "Value"], rows, ["l", "l"])
        await self.query_one(MarkdownViewer).document.update(
            f"### {p.title}\n\n" + md_table_str
        )

        if p.status != "available" or p.seller_id == self.app.state.uid:
            order_btn = self.query_one("#btn-addcart", Button)
            order_btn.label = "Sold" if p.status != "available" else "Your Listing"
            order_btn.disabled = True
            order_btn.variant = "warning"

        self.query_one("#input-order-qty").focus()

    def on_key(self, event: events.Key) -> None:
        if event.key == "escape":
            self.dismiss(False)

    def on_input_changed(self, message: Input.Changed) -> None:
        if message.input.id == "input-order-qty" and message.value.isdigit():
            self.order_qty = max(1, int(message.value))

    def watch_order_qty(self, qty: int) -> None:
        self.query_one("#btn-sub-qty").disabled = qty <= 1
        qty_input = self.query_one("#input-order-qty", Input)
        if qty_input.value != str(qty):
            qty_input.value = str(qty)

    @on(Button.Pressed, "#btn-add-qty")
    def handle_add_qty(self):
        self.order_qty += 1

    @on(Button.Pressed, "#btn-sub-qty")
    def handle_sub_qty(self):
        if self.order_qty > 1:
            self.order_qty -= 1

    @on(Button.Pressed, "#btn-quit")
    def handle_quit(self):
        self.dismiss(False)

    @on(Button.Pressed, "#btn-addcart")
    @work(exclusive=True)
    async def handle_addcart(self):
        try:
            line = await cart.add_item(
                self.app.state.db, self.app.state.identity, self._pid, self.order_qty
            )
        except MarketplaceError as exc:
            self.notify(exc.message, severity="error")
            return

        self.app.notify(f"In your cart: {self._prod.title} x{line.qty}.")
        self.app.post_message(CartChangedMessage())
        self.dismiss(True)
