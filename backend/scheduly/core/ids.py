from uuid import uuid4


def new_id(prefix: str) -> str:
    return f"{prefix}_{uuid4().hex[:12]}"


def new_uid() -> str:
    """Calendar UID for candidates created here."""
    return f"scheduly-{uuid4()}"
