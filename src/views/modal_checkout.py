from typing import Optional

from textual import events, on, work
from textual.app import ComposeResult
from textual.containers import Horizontal, Vertical, VerticalScroll
from textual.screen import ModalScreen
from textual.widgets import Button, Input, Label, MarkdownViewer

from db import cart, ledger, users
from db.errors import (
    EmptyCart,
    MarketplaceError,
    ProductNoLongerAvailable,
    ValidationError,
)
from db.models import DeliveryDetails
from utils.pure import format_money, generate_markdown_table
from views.modal_dialog import DialogModal, ReceiptDialogModal

# input id -> DeliveryDetails field
_FIELDS = {
    "input-full-name": "full_name",
    "input-email": "email",
    "input-phone": "phone",
    "input-address": "delivery_address",
    "input-notes": "delivery_notes",
}


class CheckoutModal(ModalScreen[Optional[str]]):
    """
    Order summary plus delivery details.
    Dismisses with the order number on success, None otherwise.
    """

    def compose(self) -> ComposeResult:
        with Vertical():
            yield MarkdownViewer("", show_table_of_contents=False)
            with VerticalScroll(id="div-delivery"):
                yield Label("Full Name")
                yield Input(placeholder="Jane Doe", id="input-full-name")
                yield Label("Email")
                yield Input(placeholder="jane@example.com", id="input-email")
                yield Label("Phone")
                yield Input(placeholder="+1234567890", id="input-phone")
                yield Label("Delivery Address")
                yield Input(placeholder="123 Main St, Anytown", id="input-address")
                yield Label("Delivery Notes (optional)")
                yield Input(placeholder="Leave at the door", id="input-notes")
            with Horizontal():
                yield Button("Go Back", id="btn-quit")
                yield Button("Place Order", id="btn-submit", variant="primary")

    async def on_mount(self):
        state = self.app.state
        try:
            view = await cart.list_cart(state.db, state.identity)
            profile = await users.get_user(state.db, state.uid)
        except MarketplaceError as exc:
            self.notify(exc.message, severity="error")
            self.dismiss(None)
            return

        rows = [
            [e.title, format_money(e.price), e.qty, format_money(e.line_total)]
            for e in view.entries
        ]
        md = generate_markdown_table(
            ["Item", "Unit Price", "Quantity", "Total Price"], rows, ["l", "r", "c", "r"]
        )
        md += f"\n\n**Total:** {format_money(view.total)}"
        await self.query_one(MarkdownViewer).document.update("### Order Summary\n\n" + md)

        # prefill from the profile
        self.query_one("#input-full-name", Input).value = profile.full_name or ""
        self.query_one("#input-email", Input).value = profile.email or ""
        self.query_one("#input-phone", Input).value = profile.phone or ""
        self.query_one("#input-address", Input).value = profile.address or ""
        self.query_one("#input-full-name").focus()

    def on_key(self, event: events.Key) -> None:
        if event.key == "escape":
            self.dismiss(None)

    def _details(self) -> DeliveryDetails:
        values = {
            field: self.query_one(f"#{input_id}", Input).value
            for input_id, field in _FIELDS.items()
        }
        return DeliveryDetails(**values)

    def _mark_invalid(self, fields) -> None:
        for input_id, field in _FIELDS.items():
            widget = self.query_one(f"#{input_id}", Input)
            widget.set_class(field in fields, "-invalid")
        for input_id, field in _FIELDS.items():
            if field in fields:
                self.query_one(f"#{input_id}").focus()
                break

    @on(Button.Pressed, "#btn-submit")
    @work(exclusive=True)
    async def handle_submit(self):
        details = self._details()
        try:
            ledger.validate_delivery(details)
        except ValidationError as exc:
            self._mark_invalid(exc.fields)
            self.notify(exc.message, severity="error")
            return
        self._mark_invalid(())

        if not await self.app.push_screen_wait(
            DialogModal(
                "Place order? This cannot be undone.",
                primary_text="Yes",
                secondary_text="No",
                tone="positive",
            )
        ):
            return

        state = self.app.state
        try:
            receipt = await ledger.checkout(
                state.db,
                state.identity,
                details,
                order_number_attempts=state.settings.order_number_attempts,
            )
        except (EmptyCart, ProductNoLongerAvailable) as exc:
            self.notify(exc.message, severity="warning")
            self.dismiss(None)
            return
        except MarketplaceError as exc:
            self.notify(exc.message, severity="error")
            return

        await self.app.push_screen_wait(ReceiptDialogModal(receipt))
        self.dismiss(receipt.order_number)

    @on(Button.Pressed, "#btn-quit")
    def handle_quit(self):
        self.dismiss(None)
