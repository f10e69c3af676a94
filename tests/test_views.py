from _support import MarketTestCase

from textual.app import App

from db import cart
from utils.messages import CartChangedMessage
from utils.state import GlobalState
from views.scr_cart import CartScreen


class CartOnlyApp(App):
    """Just enough of MarketplaceApp for a CartScreen to mount."""

    MODES = {"cart": CartScreen}
    MODE_TITLES = {"cart": "Cart"}

    def __init__(self, state: GlobalState):
        super().__init__()
        self.state = state

    def menu_for(self, role):
        return dict(self.MODE_TITLES)

    async def on_mount(self) -> None:
        await self.switch_mode("cart")


class CartScreenTestCase(MarketTestCase):
    async def _settle(self, app, pilot):
        await pilot.pause()
        await app.workers.wait_for_complete()
        await pilot.pause()

    async def test_empty_state_class_follows_cart(self):
        app = CartOnlyApp(GlobalState(db=self.db, identity=self.buyer))
        async with app.run_test() as pilot:
            await self._settle(app, pilot)
            screen = app.screen
            self.assertIsInstance(screen, CartScreen)
            content = screen.query_one("#vertscroll-content")
            self.assertTrue(content.has_class("no-items"))

            pid = await self.add_product("Mug", "4.50")
            await cart.add_item(self.db, self.buyer, pid)
            screen.post_message(CartChangedMessage())
            await self._settle(app, pilot)
            self.assertFalse(content.has_class("no-items"))
            self.assertEqual(len(content.children), 1)
