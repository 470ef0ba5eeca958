"""Anti-CSRF state tokens for the login handshake."""

import secrets


class StateTokenGenerator:
    """Produces unguessable, URL-safe, single-use state values."""

    # 32 random bytes = 256 bits, encoded to 43 URL-safe characters
    DEFAULT_NBYTES = 32
    MIN_NBYTES = 16

    def __init__(self, nbytes: int = DEFAULT_NBYTES):
        if nbytes < self.MIN_NBYTES:
            raise ValueError(f"State tokens need at least {self.MIN_NBYTES * 8} bits of entropy")
        self.nbytes = nbytes

    def generate(self) -> str:
        return secrets.token_urlsafe(self.nbytes)
