import secrets


def random_id(length: int = 10) -> str:
    """Generate a random lowercase hex identifier."""
    return secrets.token_hex((length + 1) // 2)[:length]


def message_id() -> str:
    """Generate a message id in the ``ID:`` form listeners see from brokers."""
    return f"ID:{secrets.token_hex(12)}"
