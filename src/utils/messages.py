from textual.message import Message


class QuitRequestedMessage(Message):
    """
    broadcasted when the app is about to quit
    """

    bubble = True


class UserLogoutMessage(Message):
    """
    broadcasted when the staff member logs out
    """

    bubble = True


class UserLoginMessage(Message):
    """
    Fired after a successful login, so the screens can refresh
    """

    bubble = True


class OrdersChangedMessage(Message):
    """
    Fired when an order is created or changes status (POS sale, pay, deliver, cancel).
    Listened to by the dashboard and the orders screen.

    If posted from outside a screen, make sure to post at App level
    """

    bubble = True


class DivisionSwitchedMessage(Message):
    """
    Fired by the sidebar after the admin switches storefront division
    """

    bubble = True

    def __init__(self, division: str) -> None:
        super().__init__()
        self.division = division


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
