from typing import Dict

from textual import on, work
from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.widgets import LoadingIndicator

from db.database import Database
from db.seed import seed_demo_data
from utils.config import Settings, load_settings
from utils.logger import get_logger
from utils.messages import ModeSwitchedMessage, QuitRequestedMessage, UserLogoutMessage
from utils.state import GlobalState
from views.scr_admin_overview import AdminOverviewScreen
from views.scr_cart import CartScreen
from views.scr_login import LoginScreen
from views.scr_past_orders import PastOrdersScreen
from views.scr_prod_search import ProdSearchScreen
from views.scr_sales_report import SalesReportScreen

_logger = get_logger(__name__)


class MarketplaceApp(App):
    BINDINGS = [
        Binding("ctrl+t", "switch_light", "Toggle Theme", show=True),
    ]

    MODES = {
        "browse": ProdSearchScreen,
        "cart": CartScreen,
        "orders": PastOrdersScreen,
        "sales": SalesReportScreen,
        "overview": AdminOverviewScreen,
    }

    MODE_TITLES = {
        "browse": "Browse Listings",
        "cart": "Cart",
        "orders": "My Orders",
        "sales": "My Sales",
        "overview": "Platform Overview",
    }

    ROLE_MODES = {
        "user": ["browse", "cart", "orders"],
        "seller": ["browse", "cart", "orders", "sales"],
        "admin": ["browse", "cart", "orders", "sales", "overview"],
    }

    HOME_MODE = {"user": "browse", "seller": "sales", "admin": "overview"}

    CSS_PATH = "styles/app.tcss"

    state: GlobalState

    def __init__(self, settings: Settings | None = None):
        super().__init__()
        settings = settings or load_settings()
        self.state = GlobalState(
            db=Database(settings.db_path, busy_timeout=settings.busy_timeout),
            settings=settings,
        )

    def menu_for(self, role: str) -> Dict[str, str]:
        return {mode: self.MODE_TITLES[mode] for mode in self.ROLE_MODES.get(role, [])}

    def compose(self) -> ComposeResult:
        yield LoadingIndicator()

    async def on_mount(self) -> None:
        await self.state.db.open()
        if self.state.settings.seed_demo:
            await seed_demo_data(self.state.db)
        self.main_flow()

    async def on_unmount(self) -> None:
        await self.state.db.close()

    def action_switch_light(self):
        if self.theme == "textual-dark":
            self.theme = "solarized-light"
        else:
            self.theme = "textual-dark"
        self.notify(f"Theme changed to {self.theme}")

    @on(UserLogoutMessage)
    def handle_user_logout(self):
        self.state.logout()
        self.notify("Logout successful.")
        self.main_flow()

    @on(QuitRequestedMessage)
    async def handle_quit(self):
        await self.state.db.close()
        self.exit()

    @work
    async def main_flow(self):
        await self.push_screen_wait(LoginScreen())
        home = self.HOME_MODE.get(self.state.role, "browse")
        _logger.debug(f"user {self.state.uid} ({self.state.role}) -> {home}")
        self.post_message(ModeSwitchedMessage(self.current_mode, home))
        await self.switch_mode(home)


def run() -> None:
    settings = load_settings()
    if settings.debug:
        _logger.debug(f"Starting with {settings}")
    MarketplaceApp(settings).run()


if __name__ == "__main__":
    run()
