"""Account service: signup with email verification, cookie sessions and account management."""
