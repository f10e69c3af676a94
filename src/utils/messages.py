from textual.message import Message


class QuitRequestedMessage(Message):
    """
    broadcasted when the app is about to quit
    """

    bubble = True


class UserLogoutMessage(Message):
    """
    broadcasted when the user logs out
    """

    bubble = True


class UserLoginMessage(Message):
    """
    Fired once login resolved an identity, so screens can refresh
    """

    bubble = True


class CartChangedMessage(Message):
    """
    Fired whenever a line is added, edited or removed, or the cart is cleared.
    Post at App level when sent from outside the cart screen.
    """

    bubble = True


class NewOrderMessage(Message):
    """
    Fired after a checkout committed.
    Listened to by order history, sales and overview screens.
    """

    bubble = True

    def __init__(self, order_number: str) -> None:
        super().__init__()
        self.order_number = order_number


class ModeSwitchedMessage(Message):
    """
    fired whenever switch_mode is called
    must be fired from app level
    """

    bubble = True

    def __init__(self, old_mode: str, new_mode: str) -> None:
        super().__init__()
        self.old_mode = old_mode
        self.new_mode = new_mode
