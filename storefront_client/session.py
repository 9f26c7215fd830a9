import json
import logging
from typing import Optional

from storefront_client.cart import CartEngine
from storefront_client.storage import LocalStorage

logger = logging.getLogger(__name__)

TOKEN_KEY = "token"
USER_KEY = "user"

class Session:
    """Bearer token and user record, stored next to the cart.

    Logging in keeps whatever is already in the cart. Logging out forgets the
    token and user and empties the cart.
    """

    def __init__(self, storage: LocalStorage, cart: CartEngine):
        self.storage = storage
        self.cart = cart

    @property
    def token(self) -> Optional[str]:
        return self.storage.get_item(TOKEN_KEY)

    @property
    def user(self) -> Optional[dict]:
        raw = self.storage.get_item(USER_KEY)
        if not raw:
            return None
        try:
            return json.loads(raw)
        except ValueError:
            logger.warning("Discarding unreadable saved user")
            return None

    @property
    def is_authenticated(self) -> bool:
        return bool(self.token)

    def login(self, token: str, user: Optional[dict] = None):
        self.storage.set_item(TOKEN_KEY, token)
        if user is not None:
            self.storage.set_item(USER_KEY, json.dumps(user))

    def update_user(self, changes: dict):
        user = dict(self.user or {}, **changes)
        self.storage.set_item(USER_KEY, json.dumps(user))

    def logout(self):
        self.storage.remove_item(TOKEN_KEY)
        self.storage.remove_item(USER_KEY)
        self.cart.clear_all()
