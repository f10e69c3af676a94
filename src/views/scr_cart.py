from textual import on, work
from textual.app import ComposeResult
from textual.containers import Container, Horizontal, HorizontalGroup, VerticalScroll
from textual.events import ScreenResume
from textual.message import Message
from textual.widgets import Button, Label, Rule

from db import cart
from db.errors import MarketplaceError
from db.models import CartEntry
from utils.messages import CartChangedMessage, ModeSwitchedMessage, NewOrderMessage
from utils.pure import format_money
from views.base_screen import BaseScreen
from views.modal_checkout import CheckoutModal
from views.modal_dialog import DialogModal


class CartItemActionMessage(Message):
    bubble = True

    def __init__(self, action: str) -> None:
        super().__init__()
        self.action = action


class CartItemActionLabel(Label):
    def action_less(self):
        self.post_message(CartItemActionMessage("less"))

    def action_more(self):
        self.post_message(CartItemActionMessage("more"))

    def action_remove(self):
        self.post_message(CartItemActionMessage("remove"))


class CartItemWidget(HorizontalGroup):
    def __init__(self, entry: CartEntry):
        super().__init__()
        self.entry = entry

    def compose(self):
        e = self.entry
        with Container(id="div-cart-item-group"):
            with Container(id="div-item"):
                yield Label(e.title, id="label-item-name")
                yield Label(f"x{e.qty}", id="label-item-qty")
                yield Label(format_money(e.line_total), id="label-item-price")
                yield Label(f"from {e.seller_name}", id="label-item-seller")
            with Container(id="div-actions"):
                yield CartItemActionLabel("[@click=less()]-1[/]", id="link-item-less")
                yield CartItemActionLabel("[@click=more()]+1[/]", id="link-item-more")
                yield CartItemActionLabel("[@click=remove()]Remove[/]", id="link-item-remove")

    @on(CartItemActionMessage)
    @work()
    async def handle_item_action(self, message: CartItemActionMessage):
        message.stop()
        state = self.app.state
        try:
            if message.action == "remove":
                if not await self.app.push_screen_wait(
                    DialogModal(
                        "Do you really want to remove this item from cart?",
                        primary_text="Yes",
                        secondary_text="No",
                        tone="warning",
                    )
                ):
                    return
                await cart.remove_item(state.db, state.identity, self.entry.line_id)
                self.notify("Item removed from cart.")
            else:
                delta = 1 if message.action == "more" else -1
                await cart.update_quantity(
                    state.db, state.identity, self.entry.line_id, self.entry.qty + delta
                )
        except MarketplaceError as exc:
            self.notify(exc.message, severity="error")
        self.post_message(CartChangedMessage())


class CartScreen(BaseScreen):
    """
    Cart lines still available for purchase, plus checkout.
    """

    def __init__(self) -> None:
        super().__init__()

    def compose(self) -> ComposeResult:
        yield from super().compose()
        yield VerticalScroll(id="vertscroll-content")
        yield Label("Total Cart Value: $0.00", id="label-cart-total")
        yield Rule(line_style="dashed")
        with Horizontal(id="hort-buttons"):
            yield Button("Clear Cart", id="btn-clear-cart")
            yield Button("Refresh", id="btn-refresh")
            yield Button("Checkout", id="btn-checkout", variant="primary")

    def on_mount(self):
        self.handle_cart_change()

    @on(CartChangedMessage)
    @on(ModeSwitchedMessage)
    @on(ScreenResume)
    @on(Button.Pressed, "#btn-refresh")
    @work(exclusive=True)  # must be exclusive, else refreshes race and mount duplicates
    async def handle_cart_change(self):
        try:
            view = await cart.list_cart(self.app.state.db, self.app.state.identity)
        except MarketplaceError as exc:
            self.notify_error(exc)
            return

        content = self.query_one("#vertscroll-content")
        content.set_class(not view.entries, "no-items")
        if [c.entry for c in content.children] == view.entries:
            return

        await content.remove_children()
        await content.mount_all([CartItemWidget(entry) for entry in view.entries])
        self.query_one("#label-cart-total", Label).update(
            f"Total Cart Value: {format_money(view.total)}"
        )

    @on(Button.Pressed, "#btn-clear-cart")
    @work()
    async def handle_clear_cart(self) -> None:
        state = self.app.state
        if await cart.cart_count(state.db, state.identity) == 0:
            self.app.notify("Cart is empty.", severity="warning")
            return

        if await self.app.push_screen_wait(
            DialogModal(
                "Do you really want to remove all items from cart?",
                primary_text="Yes",
                secondary_text="No",
                tone="error",
            )
        ):
            await cart.clear_cart(state.db, state.identity)
            self.post_message(CartChangedMessage())

    @on(Button.Pressed, "#btn-checkout")
    @work()
    async def handle_checkout(self) -> None:
        view = await cart.list_cart(self.app.state.db, self.app.state.identity)
        if not view.entries:
            self.app.notify("Nothing in your cart can be checked out.", severity="warning")
            return

        order_number = await self.app.push_screen_wait(CheckoutModal())
        if order_number:
            self.app.post_message(NewOrderMessage(order_number))
        self.post_message(CartChangedMessage())
